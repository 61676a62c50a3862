"""Spaced repetition core: scheduler, due selection and review sessions."""

from vocab_srs.core.srs.selector import DueItem, calculate_due_items
from vocab_srs.core.srs.session import (
    CardDirection,
    CardState,
    Flashcard,
    ReviewSession,
    SessionState,
    SessionStats,
    StudyMode,
    check_answer,
)
from vocab_srs.core.srs.sm2 import (
    DEFAULT_EASE_FACTOR,
    MIN_EASE_FACTOR,
    ReviewRating,
    ScheduleResult,
    SchedulerState,
    calculate_next_review,
    default_progress,
    is_due,
    parse_rating,
)

__all__ = [
    "DEFAULT_EASE_FACTOR",
    "MIN_EASE_FACTOR",
    "CardDirection",
    "CardState",
    "DueItem",
    "Flashcard",
    "ReviewRating",
    "ReviewSession",
    "ScheduleResult",
    "SchedulerState",
    "SessionState",
    "SessionStats",
    "StudyMode",
    "calculate_due_items",
    "calculate_next_review",
    "check_answer",
    "default_progress",
    "is_due",
    "parse_rating",
]
