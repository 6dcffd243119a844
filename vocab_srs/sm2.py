"""
SuperMemo 2 scheduling for vocabulary cards.

Every function here is pure: the review time is always passed in, so the same
card, assessment and time always produce the same result.
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Union

from vocab_srs.constants import (
    GRADUATION_INTERVAL_THRESHOLD,
    PASSING_QUALITY,
    REVIEW_INTERVAL_THRESHOLD,
    SM2_INITIAL_INTERVAL,
    SM2_MAX_EASE_FACTOR,
    SM2_MIN_EASE_FACTOR,
    SM2_SECOND_INTERVAL,
)
from vocab_srs.exceptions import ValidationError
from vocab_srs.models import Assessment, Card, CardStatus


def parse_assessment(value: Union[Assessment, str]) -> Assessment:
    """Accept an Assessment or its string value ("forgot", "good", ...)."""
    if isinstance(value, Assessment):
        return value
    try:
        return Assessment(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid assessment {value!r}, expected one of {[a.value for a in Assessment]}"
        ) from None


def get_quality(assessment: Assessment) -> int:

    match assessment:
        case Assessment.FORGOT:
            return 0
        case Assessment.HARD:
            return 3
        case Assessment.GOOD:
            return 4
        case Assessment.EASY:
            return 5
        case Assessment.PERFECT:
            return 5


def is_passing(quality: int) -> bool:
    return quality >= PASSING_QUALITY


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_to_midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def get_new_ease_factor(ease_factor: float, quality: int) -> float:
    """Standard SM-2 ease update, applied on pass and fail alike."""

    miss = 5 - quality
    new_ease_factor = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))

    return max(SM2_MIN_EASE_FACTOR, min(SM2_MAX_EASE_FACTOR, new_ease_factor))


def get_new_interval(repetitions: int, interval: int, ease_factor: float) -> int:
    """Interval in days after a passing review.

    `repetitions` is the count including the review being applied.
    """

    if repetitions <= 1:
        return SM2_INITIAL_INTERVAL
    elif repetitions == 2:
        return SM2_SECOND_INTERVAL

    return max(SM2_INITIAL_INTERVAL, round_half_up(interval * ease_factor))


def get_status_for_interval(interval: int) -> CardStatus:

    if interval >= GRADUATION_INTERVAL_THRESHOLD:
        return CardStatus.GRADUATED
    elif interval >= REVIEW_INTERVAL_THRESHOLD:
        return CardStatus.REVIEW
    else:
        return CardStatus.LEARNING


def get_next_status(status: CardStatus, interval: int, passed: bool) -> CardStatus:

    if status == CardStatus.SUSPENDED:
        return status

    if not passed:
        return status if status == CardStatus.NEW else CardStatus.LEARNING

    if status == CardStatus.NEW:
        return CardStatus.LEARNING
    elif status == CardStatus.LEARNING and interval >= REVIEW_INTERVAL_THRESHOLD:
        return CardStatus.REVIEW
    elif status == CardStatus.REVIEW and interval >= GRADUATION_INTERVAL_THRESHOLD:
        return CardStatus.GRADUATED

    return status


def update_card(card: Card, assessment: Union[Assessment, str], now: datetime) -> Card:

    assessment = parse_assessment(assessment)
    quality = get_quality(assessment)
    passed = is_passing(quality)

    if passed:
        repetitions = card.repetitions + 1
        interval = get_new_interval(repetitions, card.interval, card.ease_factor)
        correct_reviews = card.correct_reviews + 1
    else:
        repetitions = 0
        interval = SM2_INITIAL_INTERVAL
        correct_reviews = card.correct_reviews

    return replace(
        card,
        ease_factor=get_new_ease_factor(card.ease_factor, quality),
        interval=interval,
        repetitions=repetitions,
        status=get_next_status(card.status, interval, passed),
        next_review_date=normalize_to_midnight(now + timedelta(days=interval)),
        last_reviewed_at=now,
        total_reviews=card.total_reviews + 1,
        correct_reviews=correct_reviews,
    )
