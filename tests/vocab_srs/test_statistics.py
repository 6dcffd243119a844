"""Tests for the statistics aggregator."""

from datetime import date, datetime, timedelta

import pytest

from vocab_srs.card_store import CardStore
from vocab_srs.exceptions import ValidationError
from vocab_srs.models import Card, CardStatus, ReviewSession, SessionState, UpcomingReviews
from vocab_srs.serialization import dump_cards
from vocab_srs.statistics import StatisticsAggregator, get_streaks, get_upcoming_reviews, get_week_end

# A Tuesday
NOW = datetime(2026, 3, 10, 14, 30)


def make_card(card_id, due, status=CardStatus.LEARNING, **overrides) -> Card:
    fields = dict(
        id=card_id,
        keyword_id=f"kw-{card_id}",
        word=card_id,
        translation=card_id,
        audio_url="",
        next_review_date=due,
        created_at=datetime(2026, 2, 1),
        status=status,
    )
    fields.update(overrides)
    return Card(**fields)


def make_session(session_id, start, cards_reviewed=5, state=SessionState.ENDED) -> ReviewSession:
    return ReviewSession(
        id=session_id,
        user_id="u1",
        start_time=start,
        end_time=start + timedelta(minutes=10),
        state=state,
        cards_reviewed=cards_reviewed,
    )


def make_store(cards) -> CardStore:
    store = CardStore()
    store.restore(dump_cards(cards))
    return store


class TestWeekEnd:

    def test_midweek(self):
        assert get_week_end(datetime(2026, 3, 10)) == datetime(2026, 3, 15)

    def test_saturday(self):
        assert get_week_end(datetime(2026, 3, 14)) == datetime(2026, 3, 15)

    def test_sunday_is_a_week_ahead(self):
        assert get_week_end(datetime(2026, 3, 15)) == datetime(2026, 3, 22)


class TestUpcomingReviews:

    def test_buckets(self):
        cards = [
            make_card("overdue", datetime(2026, 3, 8)),
            make_card("today", datetime(2026, 3, 10)),
            make_card("tomorrow", datetime(2026, 3, 11)),
            make_card("saturday", datetime(2026, 3, 14)),
            make_card("next-week", datetime(2026, 3, 20)),
            make_card("far", datetime(2026, 4, 1)),
            make_card("suspended", datetime(2026, 3, 10), status=CardStatus.SUSPENDED),
        ]

        upcoming = get_upcoming_reviews(cards, NOW)

        assert upcoming == UpcomingReviews(overdue=1, today=1, tomorrow=1, this_week=3, next_week=1)

    def test_no_cards(self):
        assert get_upcoming_reviews([], NOW) == UpcomingReviews()


class TestStreaks:

    def test_no_study_days(self):
        assert get_streaks([], date(2026, 3, 10)) == (0, 0)

    def test_current_and_longest(self):
        days = [date(2026, 3, d) for d in (5, 6, 7, 9, 10)]
        assert get_streaks(days, date(2026, 3, 10)) == (2, 3)

    def test_streak_survives_until_end_of_next_day(self):
        days = [date(2026, 3, 8), date(2026, 3, 9)]
        assert get_streaks(days, date(2026, 3, 10)) == (2, 2)

    def test_streak_broken(self):
        assert get_streaks([date(2026, 3, 7)], date(2026, 3, 10)) == (0, 1)

    def test_duplicate_days_count_once(self):
        days = [date(2026, 3, 10), date(2026, 3, 10), date(2026, 3, 9)]
        assert get_streaks(days, date(2026, 3, 10)) == (2, 2)


class TestGetStatistics:

    def test_empty_store(self):
        stats = StatisticsAggregator(CardStore(), lambda: []).get_statistics(NOW)

        assert stats.total_cards == 0
        assert stats.overall_accuracy == 0.0
        assert stats.average_ease_factor == 2.5
        assert stats.current_streak == 0

    def test_counts_and_averages(self):
        cards = [
            make_card("new", datetime(2026, 3, 10), status=CardStatus.NEW),
            make_card(
                "learning", datetime(2026, 3, 11),
                total_reviews=4, correct_reviews=2, average_response_time=2000.0,
                ease_factor=2.1, interval=6,
            ),
            make_card(
                "review", datetime(2026, 3, 30),
                status=CardStatus.REVIEW,
                total_reviews=1, correct_reviews=1, average_response_time=4000.0,
                ease_factor=2.4, interval=30,
            ),
            make_card("suspended", datetime(2026, 3, 1), status=CardStatus.SUSPENDED, ease_factor=2.0),
        ]
        sessions = [
            make_session("s1", datetime(2026, 3, 9, 20)),
            make_session("s2", datetime(2026, 3, 10, 8)),
            make_session("s3", datetime(2026, 3, 10, 12), state=SessionState.ABANDONED),
        ]
        aggregator = StatisticsAggregator(make_store(cards), lambda: sessions)

        stats = aggregator.get_statistics(NOW)

        assert stats.total_cards == 4
        assert stats.new_cards == 1
        assert stats.learning_cards == 1
        assert stats.review_cards == 1
        assert stats.graduated_cards == 0
        assert stats.suspended_cards == 1
        assert stats.total_reviews == 5
        assert stats.overall_accuracy == pytest.approx(75.0)
        assert stats.average_response_time == pytest.approx(3000.0)
        assert stats.average_ease_factor == pytest.approx((2.5 + 2.1 + 2.4 + 2.0) / 4)
        assert stats.average_interval == pytest.approx((1 + 6 + 30 + 1) / 4)
        assert stats.sessions_completed == 2
        assert stats.current_streak == 2
        assert stats.longest_streak == 2
        assert stats.upcoming == UpcomingReviews(today=1, tomorrow=1, this_week=2)

    def test_empty_sessions_do_not_count_as_study_days(self):
        sessions = [make_session("s1", datetime(2026, 3, 10, 8), cards_reviewed=0)]
        stats = StatisticsAggregator(CardStore(), lambda: sessions).get_statistics(NOW)
        assert stats.current_streak == 0
        assert stats.sessions_completed == 1


class TestReviewCalendar:

    def test_cards_per_day(self):
        sessions = [
            make_session("s1", datetime(2026, 3, 2, 9), cards_reviewed=10),
            make_session("s2", datetime(2026, 3, 2, 21), cards_reviewed=4),
            make_session("s3", datetime(2026, 3, 9, 9), cards_reviewed=7),
            make_session("s4", datetime(2026, 2, 28, 9), cards_reviewed=3),
        ]
        aggregator = StatisticsAggregator(CardStore(), lambda: sessions)

        assert aggregator.get_review_calendar(2026, 3) == {"2026-03-02": 14, "2026-03-09": 7}
        assert aggregator.get_review_calendar(2025, 3) == {}

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, month):
        with pytest.raises(ValidationError):
            StatisticsAggregator(CardStore(), lambda: []).get_review_calendar(2026, month)
