"""
JSON conversion for cards and sessions.

The persistence gateways only ever see strings; conversion to and from the
dataclass models is handled here.
"""

import json
from datetime import datetime
from typing import List, Optional, Tuple

from vocab_srs.constants import DEFAULT_ENGAGEMENT_SCORE
from vocab_srs.exceptions import PersistenceError
from vocab_srs.models import (
    Card,
    CardStatus,
    LearningContext,
    ReviewSession,
    SessionQuality,
    SessionState,
    SessionType,
    UserFeedback,
)

SNAPSHOT_VERSION = 1


def _datetime_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def card_to_dict(card: Card) -> dict:
    """Convert a Card dataclass to a JSON-ready dict."""
    return {
        "id": card.id,
        "keyword_id": card.keyword_id,
        "word": card.word,
        "translation": card.translation,
        "audio_url": card.audio_url,
        "image_url": card.image_url,
        "ease_factor": card.ease_factor,
        "interval": card.interval,
        "repetitions": card.repetitions,
        "next_review_date": _datetime_to_str(card.next_review_date),
        "status": card.status.value,
        "created_at": _datetime_to_str(card.created_at),
        "last_reviewed_at": _datetime_to_str(card.last_reviewed_at),
        "total_reviews": card.total_reviews,
        "correct_reviews": card.correct_reviews,
        "average_response_time": card.average_response_time,
        "learning_context": {
            "story_id": card.learning_context.story_id,
            "interest": card.learning_context.interest,
            "difficulty": card.learning_context.difficulty,
            "priority": card.learning_context.priority,
        },
        "user_feedback": {
            "difficulty": card.user_feedback.difficulty,
            "confidence": card.user_feedback.confidence,
            "notes": card.user_feedback.notes,
        },
    }


def dict_to_card(data: dict) -> Card:
    """Convert a dict produced by card_to_dict back to a Card dataclass."""
    return Card(
        id=data["id"],
        keyword_id=data["keyword_id"],
        word=data["word"],
        translation=data["translation"],
        audio_url=data.get("audio_url") or "",
        image_url=data.get("image_url"),
        ease_factor=data["ease_factor"],
        interval=data["interval"],
        repetitions=data["repetitions"],
        next_review_date=_str_to_datetime(data["next_review_date"]),
        status=CardStatus(data["status"]),
        created_at=_str_to_datetime(data["created_at"]),
        last_reviewed_at=_str_to_datetime(data.get("last_reviewed_at")),
        total_reviews=data.get("total_reviews", 0),
        correct_reviews=data.get("correct_reviews", 0),
        average_response_time=data.get("average_response_time", 0.0),
        learning_context=LearningContext(**data.get("learning_context", {})),
        user_feedback=UserFeedback(**data.get("user_feedback", {})),
    )


def session_to_dict(session: ReviewSession) -> dict:
    """Convert a ReviewSession dataclass to a JSON-ready dict."""
    return {
        "id": session.id,
        "user_id": session.user_id,
        "start_time": _datetime_to_str(session.start_time),
        "end_time": _datetime_to_str(session.end_time),
        "session_type": session.session_type.value,
        "target_cards": session.target_cards,
        "max_duration_minutes": session.max_duration_minutes,
        "state": session.state.value,
        "cards_reviewed": session.cards_reviewed,
        "correct_answers": session.correct_answers,
        "average_response_time": session.average_response_time,
        "accuracy_rate": session.accuracy_rate,
        "completion_rate": session.completion_rate,
        "engagement_score": session.engagement_score,
        "new_cards": session.new_cards,
        "review_cards": session.review_cards,
        "graduated_cards": session.graduated_cards,
        "session_quality": session.session_quality.value if session.session_quality else None,
        "reviewed_card_ids": list(session.reviewed_card_ids),
    }


def dict_to_session(data: dict) -> ReviewSession:
    """Convert a dict produced by session_to_dict back to a ReviewSession."""
    quality = data.get("session_quality")
    return ReviewSession(
        id=data["id"],
        user_id=data["user_id"],
        start_time=_str_to_datetime(data["start_time"]),
        end_time=_str_to_datetime(data.get("end_time")),
        session_type=SessionType(data["session_type"]),
        target_cards=data["target_cards"],
        max_duration_minutes=data["max_duration_minutes"],
        state=SessionState(data["state"]),
        cards_reviewed=data.get("cards_reviewed", 0),
        correct_answers=data.get("correct_answers", 0),
        average_response_time=data.get("average_response_time", 0.0),
        accuracy_rate=data.get("accuracy_rate", 0.0),
        completion_rate=data.get("completion_rate", 0.0),
        engagement_score=data.get("engagement_score", DEFAULT_ENGAGEMENT_SCORE),
        new_cards=data.get("new_cards", 0),
        review_cards=data.get("review_cards", 0),
        graduated_cards=data.get("graduated_cards", 0),
        session_quality=SessionQuality(quality) if quality else None,
        reviewed_card_ids=tuple(data.get("reviewed_card_ids", [])),
    )


def dump_cards(cards: List[Card]) -> str:
    return json.dumps({
        "version": SNAPSHOT_VERSION,
        "cards": [card_to_dict(card) for card in cards],
    })


def load_cards(blob: str) -> List[Card]:
    """Raises PersistenceError if the snapshot can not be decoded."""
    try:
        data = json.loads(blob)
        return [dict_to_card(item) for item in data.get("cards", [])]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise PersistenceError(f"Unreadable cards snapshot: {e!r}") from e


def dump_sessions(active: List[ReviewSession], history: List[ReviewSession]) -> str:
    return json.dumps({
        "version": SNAPSHOT_VERSION,
        "active": [session_to_dict(s) for s in active],
        "history": [session_to_dict(s) for s in history],
    })


def load_sessions(blob: str) -> Tuple[List[ReviewSession], List[ReviewSession]]:
    """Returns (active sessions, history) from a sessions snapshot.

    Raises PersistenceError if the snapshot can not be decoded.
    """
    try:
        data = json.loads(blob)
        active = [dict_to_session(item) for item in data.get("active", [])]
        history = [dict_to_session(item) for item in data.get("history", [])]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise PersistenceError(f"Unreadable sessions snapshot: {e!r}") from e
    return active, history
