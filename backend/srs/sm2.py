"""SM-2 scheduler with Anki-style learning steps.

New and lapsed cards go through short learning steps measured in minutes
before graduating to day-granularity review intervals.

Key concepts:
- Ease factor: per-card multiplier controlling how fast intervals grow.
- Interval: minutes while learning, days once graduated. The unit is not
  stored; it follows from which branch produced the value.
- Grade: 0=Again, 1=Hard, 2=Good, 3=Easy
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import IntEnum

from backend.config import date_string, local_timestamp

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
EASE_STEP = 0.15
HARD_MULTIPLIER = 1.2
EASY_BONUS = 1.3
MAX_LEVEL = 5

# Learning steps in minutes
AGAIN_MINUTES = 1
HARD_LEARNING_MINUTES = 6
GOOD_LEARNING_MINUTES = 10

# Day intervals used before the ease factor takes over
GOOD_GRADUATING_DAYS = 1
EASY_FIRST_DAYS = 4
EASY_SECOND_DAYS = 10


class Grade(IntEnum):
    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3


@dataclass(frozen=True)
class CardState:
    """The scheduling fields of a card."""

    ease_factor: float
    interval: int
    repetitions: int


@dataclass(frozen=True)
class ScheduleResult:
    """Proposed scheduling fields after a grade."""

    ease_factor: float
    interval: int
    repetitions: int
    is_minutes: bool  # True while the card is still in a learning step


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's rounding)."""
    return math.floor(value + 0.5)


class SM2Scheduler:
    """SM-2 variant with minute learning steps."""

    def __init__(
        self,
        default_ease_factor: float = DEFAULT_EASE_FACTOR,
        min_ease_factor: float = MIN_EASE_FACTOR,
    ) -> None:
        self.default_ease_factor = default_ease_factor
        self.min_ease_factor = min_ease_factor

    def compute_next_state(self, state: CardState, grade: int) -> ScheduleResult:
        """Compute the scheduling fields that follow from grading ``state``.

        Pure and side-effect free; the same call drives both the button
        previews and the committed review.

        Args:
            state: Current scheduling fields. A zero ease falls back to the default.
            grade: 0=Again, 1=Hard, 2=Good, 3=Easy.

        Returns:
            The proposed ease, interval, repetitions and interval unit.
        """
        grade = Grade(grade)
        ease = state.ease_factor or self.default_ease_factor
        interval = state.interval or 0
        repetitions = state.repetitions or 0
        is_minutes = False

        if grade == Grade.AGAIN:
            repetitions = 0
            interval = AGAIN_MINUTES
            is_minutes = True
        elif grade == Grade.HARD:
            if repetitions == 0:
                interval = HARD_LEARNING_MINUTES
                is_minutes = True
            else:
                interval = max(1, round_half_up(interval * HARD_MULTIPLIER))
            ease = max(self.min_ease_factor, ease - EASE_STEP)
        elif grade == Grade.GOOD:
            if repetitions == 0:
                interval = GOOD_LEARNING_MINUTES
                is_minutes = True
            elif repetitions == 1:
                interval = GOOD_GRADUATING_DAYS
            else:
                interval = round_half_up(interval * ease)
            repetitions += 1
        else:
            if repetitions == 0:
                interval = EASY_FIRST_DAYS
            elif repetitions == 1:
                interval = EASY_SECOND_DAYS
            else:
                interval = round_half_up(interval * ease * EASY_BONUS)
            ease = max(self.min_ease_factor, ease + EASE_STEP)
            repetitions += 1

        return ScheduleResult(
            ease_factor=round(ease, 4),
            interval=interval,
            repetitions=repetitions,
            is_minutes=is_minutes,
        )

    def preview(self, state: CardState) -> dict[Grade, ScheduleResult]:
        """Project the outcome of every grade without committing any of them."""
        return {grade: self.compute_next_state(state, grade) for grade in Grade}


def next_level(level: int, grade: int) -> int:
    """Display level after a grade: Good/Easy climb, Again resets, Hard holds."""
    if grade >= Grade.GOOD:
        return min((level or 0) + 1, MAX_LEVEL)
    if grade == Grade.AGAIN:
        return 0
    return level or 0


def next_review_for(result: ScheduleResult, now: datetime) -> str:
    """Derive the ``next_review`` value for a schedule result.

    Learning steps get a full local timestamp so the card can come back later
    the same day; graduated intervals get a date-only string.
    """
    if result.is_minutes:
        return local_timestamp(now + timedelta(minutes=result.interval))
    return date_string(now.date() + timedelta(days=result.interval))


def format_interval_label(value: int, is_minutes: bool) -> str:
    """Human-readable interval for grade buttons."""
    if is_minutes:
        if value < 60:
            return _plural(value, "minute")
        return _plural(round_half_up(value / 60), "hour")
    if value <= 0:
        return "<1 day"
    if value < 30:
        return _plural(value, "day")
    if value < 365:
        return _plural(round_half_up(value / 30), "month")
    return f"{value / 365:.1f} years"


def format_next_review(next_review: str, today: date) -> str:
    """Relative description of when a card is next due."""
    if not next_review:
        return "today"
    due_day = date.fromisoformat(next_review[:10])
    days = (due_day - today).days
    if days <= 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"
