"""
Data models for the vocabulary spaced-repetition engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from vocab_srs.constants import (
    DEFAULT_CARD_DIFFICULTY,
    DEFAULT_CARD_PRIORITY,
    DEFAULT_ENGAGEMENT_SCORE,
    DEFAULT_MAX_DURATION_MINUTES,
    DEFAULT_TARGET_CARDS,
    SM2_INITIAL_EASE_FACTOR,
    SM2_INITIAL_INTERVAL,
)


class CardStatus(Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    GRADUATED = "graduated"
    SUSPENDED = "suspended"


class Assessment(Enum):
    FORGOT = "forgot"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"
    PERFECT = "perfect"


class SessionType(Enum):
    DAILY = "daily"
    CATCH_UP = "catch_up"
    PRACTICE = "practice"
    FOCUSED = "focused"


class SessionState(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"
    ABANDONED = "abandoned"


class SessionQuality(Enum):
    POOR = "poor"
    AVERAGE = "average"
    GOOD = "good"
    EXCELLENT = "excellent"


class PriorityReason(Enum):
    OVERDUE = "overdue"
    NEW = "new"
    DIFFICULT = "difficult"
    IMPORTANT = "important"


class ProgressEvent(Enum):
    CARD_REVIEWED = "card_reviewed"
    SESSION_ENDED = "session_ended"


@dataclass(frozen=True)
class LearningContext:
    """Static metadata attached to a card when it is created."""
    story_id: Optional[str] = None
    interest: Optional[str] = None
    difficulty: int = DEFAULT_CARD_DIFFICULTY
    priority: int = DEFAULT_CARD_PRIORITY


@dataclass(frozen=True)
class UserFeedback:
    """The learner's own view of a card, all fields optional."""
    difficulty: Optional[int] = None
    confidence: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Card:
    id: str
    keyword_id: str
    word: str
    translation: str
    audio_url: str
    next_review_date: datetime
    created_at: datetime
    image_url: Optional[str] = None
    ease_factor: float = SM2_INITIAL_EASE_FACTOR
    interval: int = SM2_INITIAL_INTERVAL
    repetitions: int = 0
    status: CardStatus = CardStatus.NEW
    last_reviewed_at: Optional[datetime] = None
    total_reviews: int = 0
    correct_reviews: int = 0
    average_response_time: float = 0.0
    learning_context: LearningContext = field(default_factory=LearningContext)
    user_feedback: UserFeedback = field(default_factory=UserFeedback)


@dataclass(frozen=True)
class ReviewSession:
    id: str
    user_id: str
    start_time: datetime
    session_type: SessionType = SessionType.DAILY
    target_cards: int = DEFAULT_TARGET_CARDS
    max_duration_minutes: int = DEFAULT_MAX_DURATION_MINUTES
    state: SessionState = SessionState.PENDING
    end_time: Optional[datetime] = None
    cards_reviewed: int = 0
    correct_answers: int = 0
    average_response_time: float = 0.0
    accuracy_rate: float = 0.0
    completion_rate: float = 0.0
    engagement_score: float = DEFAULT_ENGAGEMENT_SCORE
    new_cards: int = 0
    review_cards: int = 0
    graduated_cards: int = 0
    session_quality: Optional[SessionQuality] = None
    reviewed_card_ids: Tuple[str, ...] = ()


@dataclass
class ReviewPriority:
    card_id: str
    priority: int
    reason: PriorityReason
    days_overdue: int = 0


@dataclass
class UpcomingReviews:
    """Forecast of cards falling due, bucketed relative to today."""
    overdue: int = 0
    today: int = 0
    tomorrow: int = 0
    this_week: int = 0
    next_week: int = 0


@dataclass
class Statistics:
    total_cards: int = 0
    new_cards: int = 0
    learning_cards: int = 0
    review_cards: int = 0
    graduated_cards: int = 0
    suspended_cards: int = 0
    total_reviews: int = 0
    overall_accuracy: float = 0.0
    average_response_time: float = 0.0
    average_ease_factor: float = SM2_INITIAL_EASE_FACTOR
    average_interval: float = 0.0
    sessions_completed: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    upcoming: UpcomingReviews = field(default_factory=UpcomingReviews)


@dataclass
class ProgressUpdate:
    """Aggregate delta handed to the external progress tracker."""
    event: ProgressEvent
    accuracy: float
    session_id: Optional[str] = None
    card_id: Optional[str] = None
    keyword_id: Optional[str] = None
    assessment: Optional[Assessment] = None
    interval: Optional[int] = None
    ease_factor: Optional[float] = None
    cards_reviewed: int = 0
    session_quality: Optional[SessionQuality] = None
