"""SM-2 spaced repetition scheduler.

Quality ratings follow the classic SuperMemo 0-5 scale. Learners answer with a
reduced four button subset (Again, Hard, Good, Easy) that already lies on that
scale, so no conversion is needed before applying the update rule:

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))

The ease factor is updated on every review, including lapses. The
``freeze_ease_on_lapse`` switch keeps the previous ease on a lapse instead,
which is the variant some SM-2 implementations ship.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import IntEnum

from vocab_srs.utils.exceptions import InvalidRatingError, ValidationError

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3

FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
LAPSE_INTERVAL_DAYS = 1

CORRECT_THRESHOLD = 3

TZ = dt.timezone.utc


class ReviewRating(IntEnum):
    """Answer buttons mapped onto the SM-2 quality scale."""

    AGAIN = 1
    HARD = 3
    GOOD = 4
    EASY = 5

    @property
    def is_correct(self) -> bool:
        return self >= CORRECT_THRESHOLD


@dataclass(frozen=True, slots=True)
class SchedulerState:
    """Scheduling parameters carried between reviews."""

    ease_factor: float
    interval_days: int
    repetitions: int


@dataclass(frozen=True, slots=True)
class ScheduleResult:
    """Outcome of a single review."""

    ease_factor: float
    interval_days: int
    repetitions: int
    next_review_date: dt.date

    @property
    def state(self) -> SchedulerState:
        return SchedulerState(self.ease_factor, self.interval_days, self.repetitions)


def default_progress() -> SchedulerState:
    """State of an item that has never been reviewed."""

    return SchedulerState(
        ease_factor=DEFAULT_EASE_FACTOR, interval_days=0, repetitions=0
    )


def parse_rating(value: object) -> ReviewRating:
    """Return ``value`` as a :class:`ReviewRating` or raise ``InvalidRatingError``."""

    if isinstance(value, ReviewRating):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRatingError(
            "Rating must be an integer", details={"rating": repr(value)}
        )
    try:
        return ReviewRating(value)
    except ValueError as exc:
        raise InvalidRatingError(
            f"Rating {value} is not one of {[int(r) for r in ReviewRating]}",
            details={"rating": value},
        ) from exc


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (``round`` rounds to even)."""

    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def update_ease_factor(ease_factor: float, quality: int) -> float:
    """Apply the SM-2 ease update and clamp to the 1.3 floor."""

    penalty = 5 - quality
    new_ef = ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02))
    return max(MIN_EASE_FACTOR, new_ef)


def to_review_date(value: dt.datetime | dt.date | None = None) -> dt.date:
    """Return the UTC calendar date for ``value`` (today when omitted)."""

    if value is None:
        return dt.datetime.now(TZ).date()
    if isinstance(value, dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=TZ)
        return value.astimezone(TZ).date()
    return value


def is_due(next_review_date: dt.date | None, now: dt.datetime | dt.date | None = None) -> bool:
    """True when an item scheduled for ``next_review_date`` should be reviewed now."""

    if next_review_date is None:
        return True
    return next_review_date <= to_review_date(now)


def calculate_next_review(
    rating: int,
    ease_factor: float,
    interval_days: int,
    repetitions: int,
    *,
    today: dt.datetime | dt.date | None = None,
    freeze_ease_on_lapse: bool = False,
) -> ScheduleResult:
    """Compute the next scheduling state for an item.

    Args:
        rating: Review quality, one of :class:`ReviewRating`.
        ease_factor: Current ease factor.
        interval_days: Current interval in days (0 for never reviewed items).
        repetitions: Consecutive successful reviews since the last lapse.
        today: Reference date, defaults to the current UTC date.
        freeze_ease_on_lapse: Keep the previous ease factor on a lapse.

    Returns:
        The new ease factor, interval, repetition count and due date.
    """
    quality = parse_rating(rating)
    if interval_days < 0 or repetitions < 0:
        raise ValidationError(
            "Interval and repetitions must be non-negative",
            details={"interval_days": interval_days, "repetitions": repetitions},
        )

    if quality.is_correct:
        new_ease_factor = update_ease_factor(ease_factor, quality)
        new_repetitions = repetitions + 1
        if new_repetitions == 1:
            new_interval = FIRST_INTERVAL_DAYS
        elif new_repetitions == 2:
            new_interval = SECOND_INTERVAL_DAYS
        else:
            new_interval = max(1, round_half_up(interval_days * new_ease_factor))
    else:
        if freeze_ease_on_lapse:
            new_ease_factor = max(MIN_EASE_FACTOR, ease_factor)
        else:
            new_ease_factor = update_ease_factor(ease_factor, quality)
        new_repetitions = 0
        new_interval = LAPSE_INTERVAL_DAYS

    next_review_date = to_review_date(today) + dt.timedelta(days=new_interval)
    return ScheduleResult(
        ease_factor=new_ease_factor,
        interval_days=new_interval,
        repetitions=new_repetitions,
        next_review_date=next_review_date,
    )
