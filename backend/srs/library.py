"""Local card and deck operations.

Every mutation here goes through the dirty tracker so it is stamped and
queued for the next push. The library works the same signed in or out; when
no sync engine is attached, dirty records simply wait.
"""

from __future__ import annotations

import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime

from backend.config import settings, utc_iso
from backend.errors import NotFoundError, ValidationError
from backend.models import Card, Deck
from backend.srs.decks import classify_deck, standard_deck_names
from backend.srs.sm2 import (
    CardState,
    Grade,
    ScheduleResult,
    SM2Scheduler,
    format_interval_label,
    next_level,
    next_review_for,
)
from backend.store import LocalStore
from backend.sync.dirty import DirtyTracker

logger = logging.getLogger(__name__)

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_DECK_NAMESPACE = uuid.UUID("6f1c1f0e-2b4b-4f57-9a37-0d7c5b1e8a41")


def generate_id() -> str:
    """Base-36 millisecond timestamp followed by random base-36 characters."""
    millis = int(time.time() * 1000)
    stamp = ""
    while millis:
        millis, digit = divmod(millis, 36)
        stamp = _ALPHABET[digit] + stamp
    return stamp + "".join(secrets.choice(_ALPHABET) for _ in range(11))


def auto_deck_id(name: str) -> str:
    """Stable id for auto-created decks so every device creates the same record."""
    return f"deck-{uuid.uuid5(_DECK_NAMESPACE, name).hex[:16]}"


def today_string(today: date | None = None) -> str:
    return (today or date.today()).strftime("%Y-%m-%d")


@dataclass
class GradePreview:
    grade: Grade
    result: ScheduleResult
    label: str


class Library:
    """User-facing card/deck operations over the local store."""

    def __init__(
        self,
        store: LocalStore,
        tracker: DirtyTracker,
        scheduler: SM2Scheduler | None = None,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.scheduler = scheduler or SM2Scheduler(
            default_ease_factor=settings.default_ease_factor,
            min_ease_factor=settings.min_ease_factor,
        )

    # --- Cards ---

    async def get_card(self, card_id: str) -> Card:
        card = await self.store.get(Card, card_id)
        if card is None or card.deleted:
            raise NotFoundError(f"Card {card_id} not found")
        return card

    async def list_cards(self, category: str | None = None, search: str | None = None) -> list[Card]:
        """Visible cards, optionally filtered by category and a case-insensitive search."""
        cards = await self.store.list_all(Card)
        if category:
            cards = [c for c in cards if c.category == category]
        if search:
            needle = search.lower()
            cards = [
                c
                for c in cards
                if needle in (c.question or "").lower()
                or needle in (c.answer or "").lower()
                or needle in (c.category or "").lower()
            ]
        return cards

    async def create_card(
        self,
        question: str = "",
        answer: str = "",
        category: str | None = None,
        question_image: str | None = None,
        answer_image: str | None = None,
    ) -> Card:
        """Add a new card due today."""
        question = (question or "").strip()
        answer = (answer or "").strip()
        if not (question or question_image):
            raise ValidationError("A card needs question text or a question image")
        if not (answer or answer_image):
            raise ValidationError("A card needs answer text or an answer image")

        card = Card(
            id=generate_id(),
            question=question,
            answer=answer,
            question_image=question_image,
            answer_image=answer_image,
            category=(category or "").strip() or settings.default_category,
            level=0,
            ease_factor=self.scheduler.default_ease_factor,
            interval=0,
            repetitions=0,
            next_review=today_string(),
            review_history=[],
            deleted=False,
        )
        card.created_at = utc_iso()
        saved = await self.tracker.mark_dirty(card)
        logger.info("Created card %s in %s", card.id, card.category)
        return saved

    async def edit_card(
        self,
        card_id: str,
        question: str | None = None,
        answer: str | None = None,
        category: str | None = None,
    ) -> Card:
        card = await self.get_card(card_id)
        if question is not None:
            card.question = question.strip()
        if answer is not None:
            card.answer = answer.strip()
        if category is not None:
            card.category = category.strip() or settings.default_category
        return await self.tracker.mark_dirty(card)

    async def delete_card(self, card_id: str) -> bool:
        """Soft-delete a card, try to push the tombstone, then drop it locally.

        The local row is only removed once the remote has acknowledged the
        tombstone; until then it stays hidden and queued for push.

        Returns:
            True if the card was hard-removed from the local store.
        """
        card = await self.get_card(card_id)
        card.deleted = True
        await self.tracker.mark_dirty(card)
        return await self._settle_tombstones([card_id])

    # --- Review ---

    def preview(self, card: Card) -> list[GradePreview]:
        """Projected outcome and button label for each grade."""
        state = _state_of(card)
        return [
            GradePreview(
                grade=grade,
                result=result,
                label=format_interval_label(result.interval, result.is_minutes),
            )
            for grade, result in self.scheduler.preview(state).items()
        ]

    async def grade_card(
        self, card_id: str, grade: int, now: datetime | None = None
    ) -> tuple[Card, ScheduleResult]:
        """Apply a grade: reschedule, append to history, persist and mark dirty."""
        if grade not in tuple(Grade):
            raise ValidationError(f"Grade must be 0-3, got {grade!r}")
        now = now or datetime.now()
        card = await self.get_card(card_id)

        result = self.scheduler.compute_next_state(_state_of(card), grade)
        card.ease_factor = result.ease_factor
        card.interval = result.interval
        card.repetitions = result.repetitions
        card.level = next_level(card.level, grade)
        card.next_review = next_review_for(result, now)
        card.review_history = [
            *(card.review_history or []),
            {"date": today_string(now.date()), "quality": int(grade), "correct": grade >= Grade.GOOD},
        ]

        saved = await self.tracker.mark_dirty(card)
        logger.debug(
            "Graded card %s %s: interval=%d%s next=%s",
            card_id,
            Grade(grade).name,
            result.interval,
            "m" if result.is_minutes else "d",
            card.next_review,
        )
        return saved, result

    # --- Decks ---

    async def list_decks(self) -> list[Deck]:
        return await self.store.list_all(Deck)

    async def create_deck(self, name: str) -> Deck:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Deck name is required")
        if await self.store.deck_by_name(name) is not None:
            raise ValidationError(f"A deck named {name!r} already exists")

        deck = Deck(id=generate_id(), name=name, group_name=classify_deck(name), deleted=False)
        deck.created_at = utc_iso()
        saved = await self.tracker.mark_dirty(deck)
        logger.info("Created deck %s", name)
        return saved

    async def delete_deck(self, deck_id: str) -> int:
        """Soft-delete a deck together with every card in it.

        Returns:
            The number of cards deleted with the deck.
        """
        deck = await self.store.get(Deck, deck_id)
        if deck is None or deck.deleted:
            raise NotFoundError(f"Deck {deck_id} not found")

        cards = await self.store.cards_in_category(deck.name)
        for card in cards:
            card.deleted = True
            await self.tracker.mark_dirty(card)
        deck.deleted = True
        await self.tracker.mark_dirty(deck)
        await self._settle_tombstones([deck_id, *(c.id for c in cards)])
        logger.info("Deleted deck %s with %d cards", deck.name, len(cards))
        return len(cards)

    async def ensure_standard_decks(self) -> list[Deck]:
        """Create the standard decks and a deck for every category already in use."""
        existing = {deck.name for deck in await self.store.list_all(Deck)}
        categories = {card.category for card in await self.store.list_all(Card) if card.category}
        wanted = standard_deck_names() + sorted(categories - set(standard_deck_names()))

        created = []
        for name in wanted:
            if name in existing:
                continue
            deck = Deck(id=auto_deck_id(name), name=name, group_name=classify_deck(name), deleted=False)
            deck.created_at = utc_iso()
            created.append(await self.tracker.mark_dirty(deck))
        if created:
            logger.info("Auto-created %d decks", len(created))
        return created

    async def _settle_tombstones(self, ids: list[str]) -> bool:
        """Push pending tombstones now; purge them locally only if the push went through."""
        pushed = await self.tracker.flush()
        if not pushed:
            logger.info("Tombstones for %s queued until the next successful push", ", ".join(ids))
            return False
        return True


def _state_of(card: Card) -> CardState:
    return CardState(
        ease_factor=card.ease_factor,
        interval=card.interval,
        repetitions=card.repetitions,
    )
