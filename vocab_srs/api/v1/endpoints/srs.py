"""Endpoints for spaced repetition reviews and progress."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from vocab_srs.api.deps import get_current_learner_id, get_progress_service
from vocab_srs.config import settings
from vocab_srs.core.srs.selector import DueItem
from vocab_srs.schemas import (
    BatchReviewItemResult,
    BatchReviewRequest,
    BatchReviewResponse,
    DueItemRead,
    DueItemsResponse,
    ProgressRead,
    ReviewRequest,
    StatsResponse,
)
from vocab_srs.services.progress import ProgressService
from vocab_srs.utils.exceptions import NotFoundError, ValidationError


router = APIRouter(prefix="/srs", tags=["srs"])

MIN_LEVEL = 1
MAX_LEVEL = 5


def parse_levels(raw: str | None) -> set[int] | None:
    """Parse a comma separated level filter such as ``"5,4"``."""

    if not raw:
        return None
    levels: set[int] = set()
    invalid: list[str] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            level = int(part)
        except ValueError:
            invalid.append(part)
            continue
        if MIN_LEVEL <= level <= MAX_LEVEL:
            levels.add(level)
        else:
            invalid.append(part)
    if invalid:
        raise ValidationError(
            f"Levels must be integers between {MIN_LEVEL} and {MAX_LEVEL}",
            details={"invalid": invalid},
        )
    return levels or None


def _due_item_read(entry: DueItem) -> DueItemRead:
    item = entry.item
    return DueItemRead(
        vocabulary_id=entry.vocabulary_id,
        word=item.word,
        reading=item.reading,
        romaji=item.romaji,
        translation=item.translation,
        level=item.level,
        is_new=entry.is_new,
        next_review_date=entry.next_review_date,
        progress=ProgressRead.model_validate(entry.progress) if entry.progress is not None else None,
    )


@router.get("/due", response_model=DueItemsResponse)
def get_due_items(
    *,
    limit: int = Query(
        settings.SRS_DUE_LIMIT_DEFAULT,
        ge=1,
        le=settings.SRS_DUE_LIMIT_MAX,
        description="Maximum number of queue entries to return",
    ),
    level: str | None = Query(None, description="Comma separated levels (1-5) to include"),
    include_new: bool = Query(True, description="Append never reviewed items after due ones"),
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> DueItemsResponse:
    """Return due items, most overdue first, followed by new items."""

    entries = service.get_due_items(
        learner_id, limit=limit, levels=parse_levels(level), include_new=include_new
    )
    items = [_due_item_read(entry) for entry in entries if entry.item is not None]
    return DueItemsResponse(items=items, total=len(items))


@router.post("/review", response_model=ProgressRead)
def submit_review(
    *,
    payload: ReviewRequest,
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> ProgressRead:
    """Register a review and return the updated schedule."""

    progress = service.submit_review(
        learner_id, payload.vocabulary_id, payload.rating, reviewed_at=payload.reviewed_at
    )
    return ProgressRead.model_validate(progress)


@router.post("/batch-review", response_model=BatchReviewResponse)
def submit_batch_review(
    *,
    payload: BatchReviewRequest,
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> BatchReviewResponse:
    """Apply several reviews; each succeeds or fails on its own."""

    batch = service.submit_batch(learner_id, [review.model_dump() for review in payload.reviews])
    results = [
        BatchReviewItemResult(
            vocabulary_id=result.vocabulary_id,
            success=result.success,
            progress=ProgressRead.model_validate(result.progress) if result.progress else None,
            error=result.error,
            status_code=result.status_code,
        )
        for result in batch.results
    ]
    return BatchReviewResponse(
        results=results,
        processed=len(results),
        succeeded=batch.succeeded,
        failed=batch.failed,
    )


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    *,
    level: str | None = Query(None, description="Comma separated levels (1-5) to include"),
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> StatsResponse:
    summary = service.get_stats(learner_id, levels=parse_levels(level))
    return StatsResponse(**summary.as_dict())


@router.get("/progress", response_model=list[ProgressRead])
def list_progress(
    *,
    level: str | None = Query(None, description="Comma separated levels (1-5) to include"),
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> list[ProgressRead]:
    """Return every progress record owned by the learner."""

    records = service.list_progress(learner_id, levels=parse_levels(level))
    return [ProgressRead.model_validate(record) for record in records]


@router.get("/progress/{vocabulary_id}", response_model=ProgressRead)
def get_progress(
    *,
    vocabulary_id: str,
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> ProgressRead:
    progress = service.get_progress(learner_id, vocabulary_id)
    if progress is None:
        raise NotFoundError(
            "Progress not found for vocabulary item", details={"vocabulary_id": vocabulary_id}
        )
    return ProgressRead.model_validate(progress)


@router.delete("/progress/{vocabulary_id}", status_code=status.HTTP_204_NO_CONTENT)
def reset_progress(
    *,
    vocabulary_id: str,
    service: ProgressService = Depends(get_progress_service),
    learner_id: str = Depends(get_current_learner_id),
) -> Response:
    """Forget the learner's progress so the item counts as new again."""

    service.reset_progress(learner_id, vocabulary_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
