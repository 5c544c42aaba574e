"""Review sessions and learner statistics.

Due cards come back in storage order; a session shuffles them so the order
carries no priority. Practice sessions walk the same cards without touching
their schedule.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from backend.config import local_timestamp
from backend.models.card import Card
from backend.srs.library import Library
from backend.srs.sm2 import Grade, ScheduleResult
from backend.store import LocalStore

logger = logging.getLogger(__name__)

MASTERED_REPETITIONS = 3


async def get_due(store: LocalStore, now: datetime | None = None) -> list[Card]:
    """Visible cards due at ``now`` (local time), in storage order."""
    now = now or datetime.now()
    return await store.due_cards(local_timestamp(now))


@dataclass
class SessionStats:
    """Statistics for a review session."""

    cards_reviewed: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.cards_reviewed if self.cards_reviewed else 0.0

    def summary(self) -> str:
        """Closing message scaled to the session accuracy."""
        pct = round(self.accuracy * 100)
        if pct == 100:
            return "Perfect! Outstanding recall."
        if pct >= 80:
            return "Great result. Keep it up!"
        if pct >= 60:
            return "Not bad. Keep reviewing!"
        return "Repetition makes it stick. Keep going!"


@dataclass
class ReviewSession:
    """Walks a shuffled set of cards, committing one grade per card."""

    library: Library | None
    cards: list[Card]
    practice: bool = False
    stats: SessionStats = field(default_factory=SessionStats)
    _index: int = 0

    @property
    def remaining(self) -> int:
        return max(0, len(self.cards) - self._index)

    @property
    def is_complete(self) -> bool:
        return self._index >= len(self.cards)

    @property
    def current_card(self) -> Card | None:
        if self._index < len(self.cards):
            return self.cards[self._index]
        return None

    async def answer(self, grade: int, now: datetime | None = None) -> ScheduleResult | None:
        """Grade the current card and advance.

        In practice mode only the tally changes; the schedule is left alone.
        """
        card = self.current_card
        if card is None:
            return None

        result = None
        if not self.practice and self.library is not None:
            _, result = await self.library.grade_card(card.id, grade, now=now)

        self.stats.cards_reviewed += 1
        if grade >= Grade.GOOD:
            self.stats.correct += 1
        self._index += 1
        return result


async def start_session(
    library: Library,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> ReviewSession:
    """Start a review session over every card due now."""
    cards = await get_due(library.store, now)
    (rng or random).shuffle(cards)
    logger.info("Started review session: %d cards due", len(cards))
    return ReviewSession(library=library, cards=cards)


def start_practice(cards: list[Card], rng: random.Random | None = None) -> ReviewSession:
    """Practice arbitrary cards (e.g. a single card from the list) without rescheduling."""
    cards = list(cards)
    (rng or random).shuffle(cards)
    return ReviewSession(library=None, cards=cards, practice=True)


# --- Statistics ---


@dataclass
class CategoryAccuracy:
    category: str
    correct: int
    total: int

    @property
    def percent(self) -> int:
        return round(self.correct / self.total * 100) if self.total else 0


@dataclass
class LibraryStats:
    total_cards: int
    cards_due: int
    cards_mastered: int
    streak_days: int
    total_reviews: int
    accuracy: list[CategoryAccuracy]
    category_counts: dict[str, int]


async def compute_stats(store: LocalStore, now: datetime | None = None) -> LibraryStats:
    """Dashboard numbers derived from the visible cards and their review history."""
    now = now or datetime.now()
    cards = await store.list_all(Card)
    due = await get_due(store, now)

    review_dates: set[str] = set()
    by_category: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    counts: dict[str, int] = defaultdict(int)
    total_reviews = 0
    for card in cards:
        counts[card.category] += 1
        for entry in card.review_history or []:
            total_reviews += 1
            review_dates.add(entry.get("date", ""))
            tally = by_category[card.category]
            tally[1] += 1
            if entry.get("correct"):
                tally[0] += 1

    accuracy = [
        CategoryAccuracy(category=category, correct=correct, total=total)
        for category, (correct, total) in by_category.items()
        if total > 0
    ]
    accuracy.sort(key=lambda a: a.correct / a.total, reverse=True)

    return LibraryStats(
        total_cards=len(cards),
        cards_due=len(due),
        cards_mastered=sum(1 for c in cards if (c.repetitions or 0) >= MASTERED_REPETITIONS),
        streak_days=calculate_streak(review_dates, now.date()),
        total_reviews=total_reviews,
        accuracy=accuracy,
        category_counts=dict(sorted(counts.items(), key=lambda item: item[1], reverse=True)),
    )


def calculate_streak(review_dates: set[str], today: date) -> int:
    """Consecutive study days ending today, or yesterday if today has no reviews yet."""
    day = today
    if day.isoformat() not in review_dates:
        day = today - timedelta(days=1)
    streak = 0
    while day.isoformat() in review_dates:
        streak += 1
        day -= timedelta(days=1)
    return streak
