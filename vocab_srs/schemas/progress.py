"""Pydantic models for the spaced repetition endpoints."""
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from vocab_srs.config import settings


class ReviewRequest(BaseModel):
    """Payload for submitting a review."""

    vocabulary_id: str = Field(..., min_length=1, max_length=64)
    rating: StrictInt = Field(
        ..., description="Review quality: 1 (again), 3 (hard), 4 (good) or 5 (easy)"
    )
    reviewed_at: datetime | None = Field(
        None, description="When the review happened; defaults to the time of the request"
    )


class BatchReviewRequest(BaseModel):
    """Several reviews submitted together, e.g. after an offline session."""

    reviews: list[ReviewRequest] = Field(
        ..., min_length=1, max_length=settings.SRS_BATCH_REVIEW_MAX
    )


class ProgressRead(BaseModel):
    """Stored scheduling state for one vocabulary item."""

    model_config = ConfigDict(from_attributes=True)

    vocabulary_id: str
    ease_factor: float
    interval_days: int
    repetitions: int
    next_review_date: date
    last_reviewed_at: datetime | None = None
    last_rating: int | None = None
    total_reviews: int = 0
    correct_count: int = 0
    first_reviewed_at: datetime | None = None


class DueItemRead(BaseModel):
    """Vocabulary entry returned in the review queue."""

    vocabulary_id: str
    word: str
    reading: str | None = None
    romaji: str | None = None
    translation: str
    level: int | None = None
    is_new: bool
    next_review_date: date | None = None
    progress: ProgressRead | None = None


class DueItemsResponse(BaseModel):
    items: list[DueItemRead]
    total: int


class BatchReviewItemResult(BaseModel):
    vocabulary_id: str
    success: bool
    progress: ProgressRead | None = None
    error: str | None = None
    status_code: int | None = None


class BatchReviewResponse(BaseModel):
    results: list[BatchReviewItemResult]
    processed: int
    succeeded: int
    failed: int


class StatsResponse(BaseModel):
    """Aggregate progress counts for the learner."""

    due_today: int
    mastered: int
    learning: int
    new: int
    total: int
    average_ease_factor: float
    total_reviews: int
    accuracy_rate: int = Field(..., ge=0, le=100)
