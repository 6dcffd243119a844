"""Tests for review session management."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from vocab_srs.exceptions import PersistenceError, StateError, ValidationError
from vocab_srs.models import (
    Card,
    CardStatus,
    ReviewSession,
    SessionQuality,
    SessionState,
    SessionType,
)
from vocab_srs.persistence import InMemoryGateway, SnapshotWriter
from vocab_srs.serialization import load_sessions
from vocab_srs.sessions import (
    SessionManager,
    get_duration_minutes,
    get_quality_score,
    get_response_time_closeness,
    get_session_quality,
)

NOW = datetime(2026, 3, 10, 19, 0)


def make_card(card_id="c1", status=CardStatus.NEW) -> Card:
    return Card(
        id=card_id,
        keyword_id=f"kw-{card_id}",
        word="word",
        translation="translation",
        audio_url="",
        next_review_date=datetime(2026, 3, 10),
        created_at=NOW - timedelta(days=3),
        status=status,
    )


def make_session(**overrides) -> ReviewSession:
    fields = dict(id="s1", user_id="u1", start_time=NOW, state=SessionState.ACTIVE)
    fields.update(overrides)
    return ReviewSession(**fields)


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def manager(gateway):
    writer = SnapshotWriter(gateway, timeout=5)
    yield SessionManager(writer)
    writer.close()


def review(manager, session_id, card_id, assessment, response_time_ms, status=CardStatus.NEW):
    before = make_card(card_id, status)
    after = replace(before, status=CardStatus.LEARNING)
    return manager.record_review(session_id, before, after, assessment, response_time_ms)


class TestQualityScore:

    def test_response_time_closeness(self):
        assert get_response_time_closeness(3000) == 1.0
        assert get_response_time_closeness(1500) == 0.5
        assert get_response_time_closeness(4500) == 0.5
        assert get_response_time_closeness(6000) == 0.0
        assert get_response_time_closeness(20000) == 0.0

    @pytest.mark.parametrize("overrides, expected_score, expected_quality", [
        (dict(accuracy_rate=100, completion_rate=100, average_response_time=3000), 95.0, SessionQuality.EXCELLENT),
        (dict(accuracy_rate=80, completion_rate=50, average_response_time=3000), 72.0, SessionQuality.GOOD),
        (dict(accuracy_rate=50, completion_rate=50, average_response_time=6000), 40.0, SessionQuality.AVERAGE),
        (dict(accuracy_rate=0, completion_rate=5, average_response_time=0), 6.5, SessionQuality.POOR),
    ])
    def test_quality_bands(self, overrides, expected_score, expected_quality):
        session = make_session(**overrides)

        score = get_quality_score(session)

        assert score == pytest.approx(expected_score)
        assert get_session_quality(score) == expected_quality

    def test_band_boundaries(self):
        assert get_session_quality(80) == SessionQuality.EXCELLENT
        assert get_session_quality(79.99) == SessionQuality.GOOD
        assert get_session_quality(65) == SessionQuality.GOOD
        assert get_session_quality(40) == SessionQuality.AVERAGE
        assert get_session_quality(39.99) == SessionQuality.POOR

    def test_duration_minutes(self):
        session = make_session(end_time=NOW + timedelta(minutes=12, seconds=20))
        assert get_duration_minutes(session) == 12
        assert get_duration_minutes(make_session(), NOW + timedelta(minutes=5)) == 5
        assert get_duration_minutes(make_session()) == 0


class TestStartSession:

    def test_start_creates_active_session(self, manager):
        session_id = manager.start("u1", now=NOW)

        session = manager.get_session(session_id)
        assert session_id.startswith("srs_session_")
        assert session.state == SessionState.ACTIVE
        assert session.session_type == SessionType.DAILY
        assert session.target_cards == 20
        assert session.max_duration_minutes == 30
        assert session.start_time == NOW
        assert session.session_quality is None
        assert manager.get_active_session("u1") == session

    def test_start_accepts_type_by_value(self, manager):
        session_id = manager.start("u1", "catch_up", target_cards=5, max_duration_minutes=10, now=NOW)
        assert manager.get_session(session_id).session_type == SessionType.CATCH_UP

    @pytest.mark.parametrize("kwargs", [
        dict(user_id=""),
        dict(user_id="u1", session_type="marathon"),
        dict(user_id="u1", target_cards=0),
        dict(user_id="u1", max_duration_minutes=0),
    ])
    def test_start_validation(self, manager, kwargs):
        with pytest.raises(ValidationError):
            manager.start(now=NOW, **kwargs)

    def test_one_active_session_per_user(self, manager):
        manager.start("u1", now=NOW)

        with pytest.raises(StateError):
            manager.start("u1", now=NOW)

        # Other users are unaffected
        assert manager.start("u2", now=NOW)

    def test_start_again_after_end(self, manager):
        first = manager.start("u1", now=NOW)
        manager.end(first, now=NOW + timedelta(minutes=1))

        second = manager.start("u1", now=NOW + timedelta(minutes=2))
        assert second != first
        assert manager.get_active_session("u1").id == second

    def test_history_limit_validation(self):
        with pytest.raises(ValidationError):
            SessionManager(history_limit=0)


class TestRecordReview:

    def test_aggregates(self, manager):
        session_id = manager.start("u1", target_cards=10, now=NOW)

        review(manager, session_id, "c1", "good", 2000)
        review(manager, session_id, "c2", "forgot", 4000, status=CardStatus.LEARNING)
        review(manager, session_id, "c3", "hard", 3000, status=CardStatus.REVIEW)
        session = review(manager, session_id, "c4", "easy", 1000, status=CardStatus.GRADUATED)

        assert session.cards_reviewed == 4
        assert session.correct_answers == 3
        assert session.accuracy_rate == 75.0
        assert session.completion_rate == 40.0
        assert session.average_response_time == pytest.approx(2500)
        assert session.new_cards == 1
        assert session.review_cards == 2
        assert session.graduated_cards == 1
        assert session.reviewed_card_ids == ("c1", "c2", "c3", "c4")

    def test_completion_can_exceed_target(self, manager):
        session_id = manager.start("u1", target_cards=1, now=NOW)
        review(manager, session_id, "c1", "good", 1000)
        session = review(manager, session_id, "c2", "good", 1000)
        assert session.completion_rate == 200.0

    def test_unknown_session(self, manager):
        with pytest.raises(ValidationError):
            review(manager, "srs_session_missing", "c1", "good", 1000)

    def test_ended_session(self, manager):
        session_id = manager.start("u1", now=NOW)
        manager.end(session_id, now=NOW)

        with pytest.raises(StateError):
            review(manager, session_id, "c1", "good", 1000)


class TestEndSession:

    def test_end_grades_and_moves_to_history(self, manager):
        session_id = manager.start("u1", target_cards=2, now=NOW)
        review(manager, session_id, "c1", "good", 3000)
        review(manager, session_id, "c2", "easy", 3000)

        session = manager.end(session_id, now=NOW + timedelta(minutes=4))

        assert session.state == SessionState.ENDED
        assert session.end_time == NOW + timedelta(minutes=4)
        # 100 * 0.4 + 100 * 0.3 + 20 + 50 * 0.1
        assert session.session_quality == SessionQuality.EXCELLENT
        assert manager.get_active_session("u1") is None
        assert manager.get_session_history() == [session]

    def test_empty_session_is_poor(self, manager):
        session_id = manager.start("u1", now=NOW)
        session = manager.end(session_id, now=NOW)
        assert session.session_quality == SessionQuality.POOR

    def test_end_twice(self, manager):
        session_id = manager.start("u1", now=NOW)
        manager.end(session_id, now=NOW)

        with pytest.raises(StateError):
            manager.end(session_id, now=NOW)

    def test_abandon_keeps_session_ungraded(self, manager):
        session_id = manager.start("u1", now=NOW)
        review(manager, session_id, "c1", "good", 1000)

        session = manager.abandon(session_id, now=NOW + timedelta(minutes=2))

        assert session.state == SessionState.ABANDONED
        assert session.session_quality is None
        assert session.cards_reviewed == 1
        assert manager.get_active_session("u1") is None
        assert manager.get_session(session_id) == session


class TestHistory:

    def test_history_newest_first_and_limited(self, manager):
        for i in range(4):
            session_id = manager.start("u1", now=NOW + timedelta(days=i))
            manager.end(session_id, now=NOW + timedelta(days=i, minutes=5))

        history = manager.get_session_history(limit=3)

        assert [s.start_time for s in history] == [
            NOW + timedelta(days=3), NOW + timedelta(days=2), NOW + timedelta(days=1),
        ]
        assert len(manager.get_session_history(limit=None)) == 4

    def test_history_filtered_by_user(self, manager):
        for user_id in ("u1", "u2", "u1"):
            manager.end(manager.start(user_id, now=NOW), now=NOW)

        assert len(manager.get_session_history(user_id="u1")) == 2
        assert len(manager.get_session_history(user_id="u3")) == 0

    def test_history_is_bounded(self):
        manager = SessionManager(history_limit=2)
        ids = []
        for i in range(3):
            session_id = manager.start("u1", now=NOW + timedelta(hours=i))
            manager.end(session_id, now=NOW + timedelta(hours=i, minutes=1))
            ids.append(session_id)

        assert [s.id for s in manager.get_session_history()] == [ids[2], ids[1]]
        assert manager.get_session(ids[0]) is None


class TestDuration:

    def test_is_over_time(self, manager):
        session_id = manager.start("u1", max_duration_minutes=15, now=NOW)

        assert manager.elapsed_minutes(session_id, NOW + timedelta(minutes=7, seconds=30)) == 7.5
        assert not manager.is_over_time(session_id, NOW + timedelta(minutes=14))
        assert manager.is_over_time(session_id, NOW + timedelta(minutes=15))


class TestSnapshot:

    def test_every_change_is_persisted(self, manager, gateway):
        session_id = manager.start("u1", now=NOW)
        active, history = load_sessions(gateway.load("sessions"))
        assert [s.id for s in active] == [session_id]
        assert history == []

        manager.end(session_id, now=NOW)
        active, history = load_sessions(gateway.load("sessions"))
        assert active == []
        assert [s.id for s in history] == [session_id]

    def test_restore(self, manager):
        ended = manager.start("u1", now=NOW)
        manager.end(ended, now=NOW + timedelta(minutes=3))
        running = manager.start("u1", now=NOW + timedelta(minutes=5))

        fresh = SessionManager()
        fresh.restore(manager.snapshot())

        assert fresh.get_active_session("u1").id == running
        assert fresh.get_session(ended) == manager.get_session(ended)
        with pytest.raises(StateError):
            fresh.start("u1", now=NOW)

    def test_merge_keeps_sessions_in_memory(self, manager):
        ended = manager.start("u1", now=NOW)
        manager.end(ended, now=NOW + timedelta(minutes=3))
        stale = manager.start("u1", now=NOW + timedelta(minutes=5))
        other = manager.start("u2", now=NOW + timedelta(minutes=6))
        saved = manager.snapshot()

        fresh = SessionManager()
        running = fresh.start("u1", now=NOW + timedelta(hours=1))
        fresh.merge(saved)

        assert fresh.get_active_session("u1").id == running
        assert fresh.get_active_session("u2").id == other
        assert [s.id for s in fresh.get_session_history()] == [stale, ended]
        assert fresh.get_session(stale).state == SessionState.ABANDONED
        assert fresh.get_session(stale).end_time == NOW + timedelta(minutes=5)

    def test_restore_unreadable_snapshot(self, manager):
        with pytest.raises(PersistenceError):
            manager.restore("{not json")
