"""
Review session management.

A session moves pending -> active -> ended (or abandoned). While active it
accumulates per-review aggregates; end() grades it and moves it into a
bounded history.
"""

import threading
import uuid
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Deque, Dict, List, Optional, Union

from vocab_srs.constants import (
    ACCURACY_WEIGHT,
    AVERAGE_THRESHOLD,
    COMPLETION_WEIGHT,
    DEFAULT_HISTORY_QUERY_LIMIT,
    DEFAULT_MAX_DURATION_MINUTES,
    DEFAULT_TARGET_CARDS,
    ENGAGEMENT_WEIGHT,
    EXCELLENT_THRESHOLD,
    GOOD_THRESHOLD,
    IDEAL_RESPONSE_TIME_MS,
    RESPONSE_TIME_WEIGHT,
    SESSION_HISTORY_LIMIT,
    SESSIONS_NAMESPACE,
)
from vocab_srs.exceptions import StateError, ValidationError
from vocab_srs.models import (
    Card,
    CardStatus,
    ReviewSession,
    SessionQuality,
    SessionState,
    SessionType,
)
from vocab_srs.persistence import InMemoryGateway, SnapshotWriter
from vocab_srs.serialization import dump_sessions, load_sessions
from vocab_srs.sm2 import get_quality, is_passing, parse_assessment
from util.logging_util import setup_logger, log_session_end

logger = setup_logger(__name__)


def get_response_time_closeness(average_response_time: float) -> float:
    """1.0 at the ideal response time, falling linearly to 0 at twice it."""
    distance = abs(average_response_time - IDEAL_RESPONSE_TIME_MS)
    return max(0.0, 1 - distance / IDEAL_RESPONSE_TIME_MS)


def get_quality_score(session: ReviewSession) -> float:

    score = session.accuracy_rate * ACCURACY_WEIGHT
    score += session.completion_rate * COMPLETION_WEIGHT
    score += get_response_time_closeness(session.average_response_time) * RESPONSE_TIME_WEIGHT
    score += session.engagement_score * ENGAGEMENT_WEIGHT

    return score


def get_session_quality(score: float) -> SessionQuality:

    if score >= EXCELLENT_THRESHOLD:
        return SessionQuality.EXCELLENT
    elif score >= GOOD_THRESHOLD:
        return SessionQuality.GOOD
    elif score >= AVERAGE_THRESHOLD:
        return SessionQuality.AVERAGE
    else:
        return SessionQuality.POOR


def get_duration_minutes(session: ReviewSession, now: Optional[datetime] = None) -> int:
    """Whole minutes from start to end (or to `now` for a running session)."""
    end = session.end_time or now
    if end is None:
        return 0
    return round((end - session.start_time).total_seconds() / 60)


class SessionManager:

    def __init__(
        self,
        writer: Optional[SnapshotWriter] = None,
        history_limit: int = SESSION_HISTORY_LIMIT,
    ):
        if history_limit < 1:
            raise ValidationError(f"history_limit must be at least 1, got {history_limit}")
        self._writer = writer if writer is not None else SnapshotWriter(InMemoryGateway())
        self._active: Dict[str, ReviewSession] = {}
        self._active_by_user: Dict[str, str] = {}
        self._history: Deque[ReviewSession] = deque(maxlen=history_limit)
        self._lock = threading.RLock()
        self._user_locks: Dict[str, threading.RLock] = {}

    def user_lock(self, user_id: str) -> threading.RLock:
        """The lock serializing all session work for one user."""
        with self._lock:
            return self._user_locks.setdefault(user_id, threading.RLock())

    def start(
        self,
        user_id: str,
        session_type: Union[SessionType, str] = SessionType.DAILY,
        target_cards: int = DEFAULT_TARGET_CARDS,
        max_duration_minutes: int = DEFAULT_MAX_DURATION_MINUTES,
        now: Optional[datetime] = None,
    ) -> str:
        """Start a review session for a user. Returns the session id."""
        if not user_id:
            raise ValidationError("user_id is required")
        try:
            session_type = SessionType(session_type)
        except ValueError:
            raise ValidationError(f"Invalid session type {session_type!r}") from None
        if target_cards < 1:
            raise ValidationError(f"target_cards must be at least 1, got {target_cards}")
        if max_duration_minutes < 1:
            raise ValidationError(
                f"max_duration_minutes must be at least 1, got {max_duration_minutes}"
            )

        with self.user_lock(user_id), self._lock:
            if user_id in self._active_by_user:
                raise StateError(
                    f"User {user_id} already has an active session "
                    f"({self._active_by_user[user_id]})"
                )

            session = ReviewSession(
                id=f"srs_session_{uuid.uuid4().hex}",
                user_id=user_id,
                start_time=now or datetime.now(),
                session_type=session_type,
                target_cards=target_cards,
                max_duration_minutes=max_duration_minutes,
            )
            session = replace(session, state=SessionState.ACTIVE)
            self._active[session.id] = session
            self._active_by_user[user_id] = session.id

            logger.info(
                "Started %s session %s for user %s (target %d cards, %d min)",
                session_type.value, session.id, user_id, target_cards, max_duration_minutes,
            )
            self._flush()
            return session.id

    def record_review(
        self,
        session_id: str,
        card_before: Card,
        card_after: Card,
        assessment,
        response_time_ms: float,
    ) -> ReviewSession:
        """Fold one reviewed card into the running session aggregates."""
        passed = is_passing(get_quality(parse_assessment(assessment)))

        with self._lock:
            session = self.require_active(session_id)

            cards_reviewed = session.cards_reviewed + 1
            correct_answers = session.correct_answers + (1 if passed else 0)
            average = session.average_response_time

            counters = {}
            if card_before.status == CardStatus.NEW:
                counters["new_cards"] = session.new_cards + 1
            elif card_before.status in (CardStatus.LEARNING, CardStatus.REVIEW):
                counters["review_cards"] = session.review_cards + 1
            elif card_before.status == CardStatus.GRADUATED:
                counters["graduated_cards"] = session.graduated_cards + 1

            session = replace(
                session,
                cards_reviewed=cards_reviewed,
                correct_answers=correct_answers,
                average_response_time=average + (response_time_ms - average) / cards_reviewed,
                accuracy_rate=correct_answers / cards_reviewed * 100,
                completion_rate=cards_reviewed / session.target_cards * 100,
                reviewed_card_ids=session.reviewed_card_ids + (card_after.id,),
                **counters,
            )
            self._active[session_id] = session
            self._flush()
            return session

    def end(self, session_id: str, now: Optional[datetime] = None) -> ReviewSession:
        """Grade and close a session. The returned session is final."""
        with self._lock:
            session = self.require_active(session_id)
            session = replace(session, end_time=now or datetime.now())
            session = replace(
                session,
                state=SessionState.ENDED,
                session_quality=get_session_quality(get_quality_score(session)),
            )
            self._retire(session)
            log_session_end(logger, session, get_duration_minutes(session))
            self._flush()
            return session

    def abandon(self, session_id: str, now: Optional[datetime] = None) -> ReviewSession:
        """Close a session without grading it."""
        with self._lock:
            session = self.require_active(session_id)
            session = replace(
                session,
                state=SessionState.ABANDONED,
                end_time=now or datetime.now(),
            )
            self._retire(session)
            logger.info(
                "Abandoned session %s after %d cards", session.id, session.cards_reviewed
            )
            self._flush()
            return session

    def get_session(self, session_id: str) -> Optional[ReviewSession]:
        """Get an active session or one still in history."""
        with self._lock:
            if session_id in self._active:
                return self._active[session_id]
            for session in self._history:
                if session.id == session_id:
                    return session
            return None

    def require_active(self, session_id: str) -> ReviewSession:
        with self._lock:
            session = self._active.get(session_id)
            if session is not None:
                return session
            if self.get_session(session_id) is not None:
                raise StateError(f"Session {session_id} is no longer active")
            raise ValidationError(f"Session not found: {session_id}")

    def get_active_session(self, user_id: str) -> Optional[ReviewSession]:
        with self._lock:
            session_id = self._active_by_user.get(user_id)
            return self._active.get(session_id) if session_id else None

    def get_session_history(
        self, limit: Optional[int] = DEFAULT_HISTORY_QUERY_LIMIT, user_id: Optional[str] = None
    ) -> List[ReviewSession]:
        """Finished sessions, most recently started first. A limit of None returns all."""
        with self._lock:
            sessions = [s for s in self._history if user_id is None or s.user_id == user_id]
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions[:limit]

    def elapsed_minutes(self, session_id: str, now: datetime) -> float:
        session = self.require_active(session_id)
        return (now - session.start_time).total_seconds() / 60

    def is_over_time(self, session_id: str, now: datetime) -> bool:
        """Whether an active session has run past its maximum duration."""
        session = self.require_active(session_id)
        return self.elapsed_minutes(session_id, now) >= session.max_duration_minutes

    def snapshot(self) -> str:
        with self._lock:
            return dump_sessions(list(self._active.values()), list(self._history))

    def reload(self) -> bool:
        """Replace all sessions with the saved snapshot. Returns False if it could not be loaded."""
        return self._writer.restore(SESSIONS_NAMESPACE, self.restore)

    def restore(self, blob: str):
        """Replace all sessions with a snapshot. Does not flush."""
        active, history = load_sessions(blob)
        with self._lock:
            self._active.clear()
            self._active_by_user.clear()
            self._history.clear()
            for session in active:
                self._active[session.id] = session
                self._active_by_user[session.user_id] = session.id
            self._history.extend(history)
        logger.info("Restored %d active and %d past sessions", len(active), len(history))

    def merge(self, blob: str):
        """Fold a saved snapshot under the sessions in memory. Does not flush.

        Sessions in memory win. A saved active session whose user has started
        another one since is moved to history as abandoned.
        """
        saved_active, saved_history = load_sessions(blob)
        with self._lock:
            known = set(self._active) | {s.id for s in self._history}
            history = [s for s in saved_history if s.id not in known] + list(self._history)
            for session in saved_active:
                if session.id in known:
                    continue
                if session.user_id in self._active_by_user:
                    history.append(replace(
                        session, state=SessionState.ABANDONED, end_time=session.start_time
                    ))
                else:
                    self._active[session.id] = session
                    self._active_by_user[session.user_id] = session.id
            history.sort(key=lambda s: s.start_time)
            self._history.clear()
            self._history.extend(history)
        logger.info(
            "Merged %d saved active and %d past sessions", len(saved_active), len(saved_history)
        )

    def _retire(self, session: ReviewSession):
        del self._active[session.id]
        del self._active_by_user[session.user_id]
        self._history.append(session)

    def _flush(self):
        if self._writer.is_held(SESSIONS_NAMESPACE):
            self._writer.restore(SESSIONS_NAMESPACE, self.merge)
        self._writer.flush(
            SESSIONS_NAMESPACE,
            dump_sessions(list(self._active.values()), list(self._history)),
        )
