"""
Card store: the source of truth for every card's lifecycle state.

The public API uses the Card dataclass from models.py. Every successful
mutation writes a snapshot of the whole store through the SnapshotWriter
before returning.
"""

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from vocab_srs.constants import (
    CARDS_NAMESPACE,
    DEFAULT_DUE_LIMIT,
    DEFAULT_NEW_LIMIT,
    MAX_CARD_DIFFICULTY,
    MAX_CARD_PRIORITY,
    MIN_CARD_DIFFICULTY,
    MIN_CARD_PRIORITY,
)
from vocab_srs.exceptions import StateError, ValidationError
from vocab_srs.models import Assessment, Card, CardStatus, LearningContext, UserFeedback
from vocab_srs.persistence import InMemoryGateway, SnapshotWriter
from vocab_srs.priority import rank_cards
from vocab_srs.serialization import dump_cards, load_cards
from vocab_srs.sm2 import get_status_for_interval, normalize_to_midnight, update_card

logger = logging.getLogger(__name__)


def _validate_context(context: LearningContext):
    if not MIN_CARD_DIFFICULTY <= context.difficulty <= MAX_CARD_DIFFICULTY:
        raise ValidationError(
            f"difficulty must be between {MIN_CARD_DIFFICULTY} and {MAX_CARD_DIFFICULTY}, "
            f"got {context.difficulty}"
        )
    if not MIN_CARD_PRIORITY <= context.priority <= MAX_CARD_PRIORITY:
        raise ValidationError(
            f"priority must be between {MIN_CARD_PRIORITY} and {MAX_CARD_PRIORITY}, "
            f"got {context.priority}"
        )


def _merge_feedback(current: UserFeedback, update: Optional[UserFeedback]) -> UserFeedback:
    """Fields set in the update replace the current ones, the rest are kept."""
    if update is None:
        return current
    return UserFeedback(
        difficulty=update.difficulty if update.difficulty is not None else current.difficulty,
        confidence=update.confidence if update.confidence is not None else current.confidence,
        notes=update.notes if update.notes is not None else current.notes,
    )


class CardStore:

    def __init__(self, writer: Optional[SnapshotWriter] = None):
        self._writer = writer if writer is not None else SnapshotWriter(InMemoryGateway())
        self._cards: Dict[str, Card] = {}
        self._ids_by_keyword: Dict[str, str] = {}
        self._lock = threading.RLock()

    def add_card(
        self,
        keyword_id: str,
        word: str,
        translation: str,
        audio_url: str = "",
        context: Optional[LearningContext] = None,
        image_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Card:
        """Add a new card to the store.

        If a card for the keyword already exists it is returned unchanged.
        """
        if not keyword_id:
            raise ValidationError("keyword_id is required")
        if not word:
            raise ValidationError("word is required")

        context = context or LearningContext()
        _validate_context(context)
        now = now or datetime.now()

        with self._lock:
            existing_id = self._ids_by_keyword.get(keyword_id)
            if existing_id is not None:
                return self._cards[existing_id]

            card = Card(
                id=f"srs_{keyword_id}_{uuid.uuid4().hex[:12]}",
                keyword_id=keyword_id,
                word=word,
                translation=translation,
                audio_url=audio_url,
                image_url=image_url,
                next_review_date=normalize_to_midnight(now),
                created_at=now,
                learning_context=context,
            )
            self._put(card)
            logger.info("Added card %s for keyword %s (%s)", card.id, keyword_id, word)
            self._flush()
            return self._cards[self._ids_by_keyword[keyword_id]]

    def get_card(self, card_ref: str) -> Optional[Card]:
        """Get a card by its id or by its keyword id."""
        with self._lock:
            card = self._cards.get(card_ref)
            if card is None and card_ref in self._ids_by_keyword:
                card = self._cards[self._ids_by_keyword[card_ref]]
            return card

    def require_card(self, card_ref: str) -> Card:
        card = self.get_card(card_ref)
        if card is None:
            raise ValidationError(f"Card not found: {card_ref}")
        return card

    def get_all_cards(self) -> List[Card]:
        with self._lock:
            return list(self._cards.values())

    def count_cards(self) -> int:
        with self._lock:
            return len(self._cards)

    def get_due_cards(self, limit: int = DEFAULT_DUE_LIMIT, now: Optional[datetime] = None) -> List[Card]:
        """Get cards due for review, highest priority first."""
        if limit < 0:
            raise ValidationError(f"limit must not be negative, got {limit}")
        now = now or datetime.now()
        with self._lock:
            due = [
                card for card in self._cards.values()
                if card.status != CardStatus.SUSPENDED and card.next_review_date <= now
            ]
        return rank_cards(due, now)[:limit]

    def get_new_cards(self, limit: int = DEFAULT_NEW_LIMIT) -> List[Card]:
        """Get never-reviewed cards, most important and oldest first."""
        if limit < 0:
            raise ValidationError(f"limit must not be negative, got {limit}")
        with self._lock:
            new_cards = [card for card in self._cards.values() if card.status == CardStatus.NEW]
        new_cards.sort(key=lambda card: (-card.learning_context.priority, card.created_at))
        return new_cards[:limit]

    def apply_review(
        self,
        card_ref: str,
        assessment: Union[Assessment, str],
        response_time_ms: float,
        now: datetime,
        feedback: Optional[UserFeedback] = None,
    ) -> Tuple[Card, Card]:
        """Schedule a card after a review.

        Returns the card as it was before the review and as it is now.
        """
        if response_time_ms < 0:
            raise ValidationError(f"response_time_ms must not be negative, got {response_time_ms}")

        with self._lock:
            before = self.require_card(card_ref)
            if before.status == CardStatus.SUSPENDED:
                raise StateError(f"Card {before.id} is suspended")

            after = update_card(before, assessment, now)
            average = before.average_response_time
            after = replace(
                after,
                average_response_time=average + (response_time_ms - average) / after.total_reviews,
                user_feedback=_merge_feedback(before.user_feedback, feedback),
            )
            self._put(after)
            self._flush()
            return before, after

    def suspend_card(self, card_ref: str) -> Card:
        with self._lock:
            card = self.require_card(card_ref)
            if card.status == CardStatus.SUSPENDED:
                return card
            card = replace(card, status=CardStatus.SUSPENDED)
            self._put(card)
            logger.info("Suspended card %s", card.id)
            self._flush()
            return card

    def resume_card(self, card_ref: str) -> Card:
        """Bring a suspended card back into rotation.

        A card that was never reviewed goes back to new; otherwise the status
        follows its current interval.
        """
        with self._lock:
            card = self.require_card(card_ref)
            if card.status != CardStatus.SUSPENDED:
                return card
            if card.total_reviews == 0:
                status = CardStatus.NEW
            else:
                status = get_status_for_interval(card.interval)
            card = replace(card, status=status)
            self._put(card)
            logger.info("Resumed card %s as %s", card.id, status.value)
            self._flush()
            return self._cards[self._ids_by_keyword[card.keyword_id]]

    def snapshot(self) -> str:
        with self._lock:
            return dump_cards(list(self._cards.values()))

    def reload(self) -> bool:
        """Replace the store with the saved snapshot.

        Returns False if it could not be loaded. The store is then left as it
        is and the saved snapshot is merged in on the next successful flush.
        """
        return self._writer.restore(CARDS_NAMESPACE, self.restore)

    def restore(self, blob: str):
        """Replace the contents of the store with a snapshot. Does not flush."""
        cards = load_cards(blob)
        with self._lock:
            self._cards.clear()
            self._ids_by_keyword.clear()
            for card in cards:
                self._put(card)
        logger.info("Restored %d cards", len(cards))

    def merge(self, blob: str):
        """Fold a saved snapshot under the cards in memory. Does not flush.

        A card in memory replaces the saved card with the same keyword, unless
        it is a new, never-reviewed duplicate of a saved card with another id.
        """
        saved = load_cards(blob)
        with self._lock:
            current = list(self._cards.values())
            self._cards.clear()
            self._ids_by_keyword.clear()
            for card in saved:
                self._put(card)
            for card in current:
                saved_id = self._ids_by_keyword.get(card.keyword_id)
                if saved_id is not None and saved_id != card.id:
                    if card.total_reviews == 0 and card.status == CardStatus.NEW:
                        continue
                    del self._cards[saved_id]
                self._put(card)
        logger.info("Merged %d saved cards with %d cards in memory", len(saved), len(current))

    def reset(self):
        """Remove every card. Intended for tests and account resets."""
        with self._lock:
            self._cards.clear()
            self._ids_by_keyword.clear()
            self._flush()

    def _put(self, card: Card):
        self._cards[card.id] = card
        self._ids_by_keyword[card.keyword_id] = card.id

    def _flush(self):
        if self._writer.is_held(CARDS_NAMESPACE):
            self._writer.restore(CARDS_NAMESPACE, self.merge)
        self._writer.flush(CARDS_NAMESPACE, dump_cards(list(self._cards.values())))
