"""
Priority scoring for cards competing for a slot in a review session.
"""

import math
from datetime import datetime
from typing import Iterable, List

from vocab_srs.constants import (
    BASE_PRIORITY,
    DIFFICULT_CARD_BONUS,
    DIFFICULT_EASE_FACTOR,
    IMPORTANT_CARD_BONUS,
    IMPORTANT_PRIORITY_THRESHOLD,
    MAX_OVERDUE_POINTS,
    MAX_PRIORITY,
    NEW_CARD_BONUS,
    OVERDUE_POINTS_PER_DAY,
)
from vocab_srs.models import Card, CardStatus, PriorityReason, ReviewPriority

SECONDS_PER_DAY = 24 * 60 * 60


def get_days_overdue(card: Card, now: datetime) -> int:
    """Whole days (rounded up) since the card fell due, never negative."""
    seconds_late = (now - card.next_review_date).total_seconds()
    return max(0, math.ceil(seconds_late / SECONDS_PER_DAY))


def score_card(card: Card, now: datetime) -> ReviewPriority:
    """
    Score a card from 0 to 100.

    The reason reported is the last rule that added points, so an important
    card is reported as important even when it is also overdue.
    """
    days_overdue = get_days_overdue(card, now)

    priority = BASE_PRIORITY
    reason = PriorityReason.NEW

    if days_overdue > 0:
        priority += min(days_overdue * OVERDUE_POINTS_PER_DAY, MAX_OVERDUE_POINTS)
        reason = PriorityReason.OVERDUE

    if card.status == CardStatus.NEW:
        priority += NEW_CARD_BONUS
        reason = PriorityReason.NEW

    if card.ease_factor < DIFFICULT_EASE_FACTOR:
        priority += DIFFICULT_CARD_BONUS
        reason = PriorityReason.DIFFICULT

    if card.learning_context.priority > IMPORTANT_PRIORITY_THRESHOLD:
        priority += IMPORTANT_CARD_BONUS
        reason = PriorityReason.IMPORTANT

    return ReviewPriority(
        card_id=card.id,
        priority=min(priority, MAX_PRIORITY),
        reason=reason,
        days_overdue=days_overdue,
    )


def rank_cards(cards: Iterable[Card], now: datetime) -> List[Card]:
    """Order cards by score (highest first), then earliest due date.

    Cards that tie on both keep their input order.
    """
    scored = [(score_card(card, now).priority, card) for card in cards]
    scored.sort(key=lambda pair: (-pair[0], pair[1].next_review_date))
    return [card for _, card in scored]
