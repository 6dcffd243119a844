"""
Point-in-time statistics over the card store and the session history.

Nothing is cached: every call walks all cards once, which is fine for decks
of a few thousand cards and means the numbers are never stale.
"""

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from vocab_srs.card_store import CardStore
from vocab_srs.exceptions import ValidationError
from vocab_srs.models import Card, CardStatus, ReviewSession, SessionState, Statistics, UpcomingReviews
from vocab_srs.sm2 import normalize_to_midnight
from vocab_srs.constants import SM2_INITIAL_EASE_FACTOR


def get_week_end(today: datetime) -> datetime:
    """The coming Sunday at midnight (a week ahead when today is Sunday)."""
    days_since_sunday = (today.weekday() + 1) % 7
    return today + timedelta(days=7 - days_since_sunday)


def get_upcoming_reviews(cards: Iterable[Card], now: datetime) -> UpcomingReviews:
    """Bucket due dates of non-suspended cards relative to `now`.

    `this_week` overlaps `today` and `tomorrow`; the other buckets are disjoint.
    """
    today = normalize_to_midnight(now)
    tomorrow = today + timedelta(days=1)
    day_after = tomorrow + timedelta(days=1)
    week_end = get_week_end(today)
    next_week_end = week_end + timedelta(days=7)

    upcoming = UpcomingReviews()
    for card in cards:
        if card.status == CardStatus.SUSPENDED:
            continue
        due = card.next_review_date
        if due < today:
            upcoming.overdue += 1
        if today <= due < tomorrow:
            upcoming.today += 1
        if tomorrow <= due < day_after:
            upcoming.tomorrow += 1
        if today <= due <= week_end:
            upcoming.this_week += 1
        if week_end < due <= next_week_end:
            upcoming.next_week += 1
    return upcoming


def get_streaks(study_days: Iterable[date], today: date) -> tuple[int, int]:
    """Returns (current streak, longest streak) in consecutive study days.

    The current streak still counts if the last study day was yesterday.
    """
    days = sorted(set(study_days))
    if not days:
        return 0, 0

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    current_streak = 0
    if days[-1] >= today - timedelta(days=1):
        current_streak = 1
        for previous, current in zip(reversed(days[:-1]), reversed(days)):
            if current - previous != timedelta(days=1):
                break
            current_streak += 1

    return current_streak, longest


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class StatisticsAggregator:

    def __init__(self, card_store: CardStore, session_history: Callable[[], List[ReviewSession]]):
        self._card_store = card_store
        self._session_history = session_history

    def get_statistics(self, now: Optional[datetime] = None) -> Statistics:
        now = now or datetime.now()
        cards = self._card_store.get_all_cards()
        sessions = self._session_history()

        status_counts = Counter(card.status for card in cards)
        reviewed = [card for card in cards if card.total_reviews > 0]
        study_days = [s.start_time.date() for s in sessions if s.cards_reviewed > 0]
        current_streak, longest_streak = get_streaks(study_days, now.date())

        return Statistics(
            total_cards=len(cards),
            new_cards=status_counts[CardStatus.NEW],
            learning_cards=status_counts[CardStatus.LEARNING],
            review_cards=status_counts[CardStatus.REVIEW],
            graduated_cards=status_counts[CardStatus.GRADUATED],
            suspended_cards=status_counts[CardStatus.SUSPENDED],
            total_reviews=sum(card.total_reviews for card in cards),
            overall_accuracy=_mean([c.correct_reviews / c.total_reviews for c in reviewed]) * 100,
            average_response_time=_mean([c.average_response_time for c in reviewed]),
            average_ease_factor=(
                _mean([c.ease_factor for c in cards]) if cards else SM2_INITIAL_EASE_FACTOR
            ),
            average_interval=_mean([c.interval for c in cards]),
            sessions_completed=sum(1 for s in sessions if s.state == SessionState.ENDED),
            current_streak=current_streak,
            longest_streak=longest_streak,
            upcoming=get_upcoming_reviews(cards, now),
        )

    def get_review_calendar(self, year: int, month: int) -> Dict[str, int]:
        """Cards reviewed per day of the given month, keyed by ISO date."""
        if not 1 <= month <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {month}")

        calendar: Dict[str, int] = {}
        for session in self._session_history():
            start = session.start_time
            if start.year == year and start.month == month:
                key = start.date().isoformat()
                calendar[key] = calendar.get(key, 0) + session.cards_reviewed
        return calendar
