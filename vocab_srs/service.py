"""
SrsService composes the card store, the session manager and the statistics
aggregator behind one handle.

The host constructs one service per deck (or per tenant) and passes it
around; nothing here is global. All calls for one user are serialized by that
user's lock, and every mutation is persisted through the gateway before the
call returns.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from vocab_srs.card_store import CardStore
from vocab_srs.constants import (
    DEFAULT_DUE_LIMIT,
    DEFAULT_HISTORY_QUERY_LIMIT,
    DEFAULT_MAX_DURATION_MINUTES,
    DEFAULT_NEW_LIMIT,
    DEFAULT_TARGET_CARDS,
    PERSISTENCE_TIMEOUT_SECONDS,
    SESSION_HISTORY_LIMIT,
)
from vocab_srs.exceptions import ValidationError
from vocab_srs.models import (
    Assessment,
    Card,
    LearningContext,
    ProgressEvent,
    ProgressUpdate,
    ReviewSession,
    SessionType,
    Statistics,
    UserFeedback,
)
from vocab_srs.persistence import InMemoryGateway, PersistenceGateway, SnapshotWriter
from vocab_srs.progress import NullProgressTracker, ProgressTracker, notify
from vocab_srs.sessions import SessionManager
from vocab_srs.sm2 import parse_assessment
from vocab_srs.statistics import StatisticsAggregator
from util.logging_util import setup_logger, log_card_review

logger = setup_logger(__name__)


def _as_context(context: Union[LearningContext, dict, None]) -> Optional[LearningContext]:
    if context is None or isinstance(context, LearningContext):
        return context
    try:
        return LearningContext(**context)
    except TypeError as e:
        raise ValidationError(f"Invalid learning context: {e}") from e


def _as_feedback(feedback: Union[UserFeedback, dict, None]) -> Optional[UserFeedback]:
    if feedback is None or isinstance(feedback, UserFeedback):
        return feedback
    try:
        return UserFeedback(**feedback)
    except TypeError as e:
        raise ValidationError(f"Invalid user feedback: {e}") from e


class SrsService:

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        progress_tracker: Optional[ProgressTracker] = None,
        clock: Callable[[], datetime] = datetime.now,
        persistence_timeout: float = PERSISTENCE_TIMEOUT_SECONDS,
        history_limit: int = SESSION_HISTORY_LIMIT,
    ):
        self.gateway = gateway if gateway is not None else InMemoryGateway()
        self.progress_tracker = progress_tracker or NullProgressTracker()
        self._clock = clock
        self._writer = SnapshotWriter(self.gateway, timeout=persistence_timeout)

        self.cards = CardStore(self._writer)
        self.sessions = SessionManager(self._writer, history_limit=history_limit)
        self.statistics = StatisticsAggregator(
            self.cards, lambda: self.sessions.get_session_history(limit=None)
        )
        self.reload()

    def reload(self) -> bool:
        """Replace in-memory state with whatever the gateway holds.

        A namespace that cannot be loaded starts empty and its saves are held
        back. The next change to it loads the saved snapshot again and merges
        the two before anything is written.
        """
        cards_loaded = self.cards.reload()
        sessions_loaded = self.sessions.reload()
        return cards_loaded and sessions_loaded

    def close(self):
        self._writer.close()

    # Cards

    def add_card(
        self,
        keyword_id: str,
        word: str,
        translation: str,
        audio_url: str = "",
        context: Union[LearningContext, dict, None] = None,
        image_url: Optional[str] = None,
    ) -> Card:
        return self.cards.add_card(
            keyword_id,
            word,
            translation,
            audio_url,
            context=_as_context(context),
            image_url=image_url,
            now=self._clock(),
        )

    def get_card(self, card_ref: str) -> Optional[Card]:
        return self.cards.get_card(card_ref)

    def get_all_cards(self) -> List[Card]:
        return self.cards.get_all_cards()

    def get_due_cards(self, limit: int = DEFAULT_DUE_LIMIT) -> List[Card]:
        return self.cards.get_due_cards(limit, now=self._clock())

    def get_new_cards(self, limit: int = DEFAULT_NEW_LIMIT) -> List[Card]:
        return self.cards.get_new_cards(limit)

    def suspend_card(self, card_ref: str) -> Card:
        return self.cards.suspend_card(card_ref)

    def resume_card(self, card_ref: str) -> Card:
        return self.cards.resume_card(card_ref)

    # Sessions

    def start_session(
        self,
        user_id: str,
        session_type: Union[SessionType, str] = SessionType.DAILY,
        target_cards: int = DEFAULT_TARGET_CARDS,
        max_duration_minutes: int = DEFAULT_MAX_DURATION_MINUTES,
    ) -> str:
        return self.sessions.start(
            user_id,
            session_type,
            target_cards=target_cards,
            max_duration_minutes=max_duration_minutes,
            now=self._clock(),
        )

    def review_card(
        self,
        session_id: str,
        card_ref: str,
        assessment: Union[Assessment, str],
        response_time_ms: float,
        feedback: Union[UserFeedback, dict, None] = None,
    ) -> Card:
        """Record an answer within an active session and reschedule the card."""
        assessment = parse_assessment(assessment)
        feedback = _as_feedback(feedback)
        user_id = self.sessions.require_active(session_id).user_id

        with self.sessions.user_lock(user_id):
            # The session may have been closed while we waited for the lock
            self.sessions.require_active(session_id)

            before, after = self.cards.apply_review(
                card_ref, assessment, response_time_ms, self._clock(), feedback
            )
            session = self.sessions.record_review(
                session_id, before, after, assessment, response_time_ms
            )

        log_card_review(logger, before, after, assessment, response_time_ms)
        notify(self.progress_tracker, ProgressUpdate(
            event=ProgressEvent.CARD_REVIEWED,
            session_id=session_id,
            card_id=after.id,
            keyword_id=after.keyword_id,
            assessment=assessment,
            interval=after.interval,
            ease_factor=after.ease_factor,
            accuracy=session.accuracy_rate,
            cards_reviewed=session.cards_reviewed,
        ))
        return after

    def end_session(self, session_id: str) -> ReviewSession:
        user_id = self.sessions.require_active(session_id).user_id
        with self.sessions.user_lock(user_id):
            session = self.sessions.end(session_id, now=self._clock())

        notify(self.progress_tracker, ProgressUpdate(
            event=ProgressEvent.SESSION_ENDED,
            session_id=session.id,
            accuracy=session.accuracy_rate,
            cards_reviewed=session.cards_reviewed,
            session_quality=session.session_quality,
        ))
        return session

    def abandon_session(self, session_id: str) -> ReviewSession:
        user_id = self.sessions.require_active(session_id).user_id
        with self.sessions.user_lock(user_id):
            return self.sessions.abandon(session_id, now=self._clock())

    def get_session(self, session_id: str) -> Optional[ReviewSession]:
        return self.sessions.get_session(session_id)

    def get_active_session(self, user_id: str) -> Optional[ReviewSession]:
        return self.sessions.get_active_session(user_id)

    def get_session_history(
        self, limit: int = DEFAULT_HISTORY_QUERY_LIMIT, user_id: Optional[str] = None
    ) -> List[ReviewSession]:
        return self.sessions.get_session_history(limit, user_id=user_id)

    def is_session_over_time(self, session_id: str) -> bool:
        return self.sessions.is_over_time(session_id, self._clock())

    # Statistics

    def get_statistics(self) -> Statistics:
        return self.statistics.get_statistics(self._clock())

    def get_review_calendar(self, year: int, month: int) -> Dict[str, int]:
        return self.statistics.get_review_calendar(year, month)
