"""Business logic for learner vocabulary progress."""
from __future__ import annotations

import datetime as dt
from collections.abc import Collection, Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocab_srs.config import settings
from vocab_srs.core.srs.selector import DueItem, calculate_due_items
from vocab_srs.core.srs.sm2 import (
    TZ,
    calculate_next_review,
    default_progress,
    is_due,
    parse_rating,
    round_half_up,
    to_review_date,
)
from vocab_srs.db.models.progress import ProgressRecord
from vocab_srs.db.progress_store import ProgressStore, ProgressWrite, as_utc
from vocab_srs.services.catalog import VocabularyCatalog
from vocab_srs.utils.cache import build_cache_key, cache_backend
from vocab_srs.utils.exceptions import SRSException, StoreUnavailableError, ValidationError

STATS_CACHE_NAMESPACE = "srs-stats"


@dataclass(slots=True)
class StatsSummary:
    """Aggregate counts for a learner, optionally restricted to levels."""

    due_today: int
    mastered: int
    learning: int
    new: int
    total: int
    average_ease_factor: float
    total_reviews: int
    accuracy_rate: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class BatchItemResult:
    vocabulary_id: str
    success: bool
    progress: ProgressRecord | None = None
    error: str | None = None
    status_code: int | None = None


@dataclass(slots=True)
class BatchResult:
    results: list[BatchItemResult]

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


class ProgressService:
    """High level helper for review, queue and statistics workflows."""

    def __init__(
        self,
        db: Session,
        *,
        store: ProgressStore | None = None,
        catalog: VocabularyCatalog | None = None,
        freeze_ease_on_lapse: bool | None = None,
    ) -> None:
        self.db = db
        self.store = store or ProgressStore(db)
        self.catalog = catalog or VocabularyCatalog(db)
        if freeze_ease_on_lapse is None:
            freeze_ease_on_lapse = settings.SRS_FREEZE_EASE_ON_LAPSE
        self.freeze_ease_on_lapse = freeze_ease_on_lapse

    def _commit(self, operation: str, **context: Any) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Progress commit failed", operation=operation, error=str(exc), **context)
            raise StoreUnavailableError(
                "Progress storage is temporarily unavailable", details={"operation": operation}
            ) from exc

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------
    def _apply_review(
        self,
        learner_id: str,
        vocabulary_id: str,
        rating: Any,
        reviewed_at: dt.datetime,
    ) -> ProgressRecord:
        quality = parse_rating(rating)
        self.catalog.require(vocabulary_id)
        record = self.store.get(learner_id, vocabulary_id)
        state = record.scheduler_state if record is not None else default_progress()

        result = calculate_next_review(
            quality,
            state.ease_factor,
            state.interval_days,
            state.repetitions,
            today=reviewed_at,
            freeze_ease_on_lapse=self.freeze_ease_on_lapse,
        )
        write = ProgressWrite(
            ease_factor=result.ease_factor,
            interval_days=result.interval_days,
            repetitions=result.repetitions,
            next_review_date=result.next_review_date,
            last_reviewed_at=reviewed_at,
            last_rating=int(quality),
            total_reviews=(record.total_reviews if record else 0) + 1,
            correct_count=(record.correct_count if record else 0) + (1 if quality.is_correct else 0),
        )
        progress = self.store.upsert(learner_id, vocabulary_id, write)
        logger.info(
            "Review recorded",
            learner_id=learner_id,
            vocabulary_id=vocabulary_id,
            rating=int(quality),
            interval_days=result.interval_days,
            next_review_date=result.next_review_date.isoformat(),
        )
        return progress

    def submit_review(
        self,
        learner_id: str,
        vocabulary_id: str,
        rating: Any,
        reviewed_at: dt.datetime | None = None,
    ) -> ProgressRecord:
        """Schedule one review, persist it and return the stored record."""

        reviewed_at = as_utc(reviewed_at or dt.datetime.now(TZ))
        try:
            progress = self._apply_review(learner_id, vocabulary_id, rating, reviewed_at)
            self._commit("submit_review", learner_id=learner_id, vocabulary_id=vocabulary_id)
        except SRSException:
            self.db.rollback()
            raise
        self.invalidate_stats(learner_id)
        return progress

    def submit_batch(
        self,
        learner_id: str,
        reviews: Iterable[Mapping[str, Any]],
        reviewed_at: dt.datetime | None = None,
    ) -> BatchResult:
        """Apply several reviews, each atomically on its own.

        Entries for the same vocabulary item collapse to the last one. A failed
        entry is reported in its result and does not undo the others.
        """
        deduplicated: dict[str, Mapping[str, Any]] = {}
        for review in reviews:
            deduplicated.pop(str(review["vocabulary_id"]), None)
            deduplicated[str(review["vocabulary_id"])] = review

        if not deduplicated:
            raise ValidationError("Batch must contain at least one review")
        if len(deduplicated) > settings.SRS_BATCH_REVIEW_MAX:
            raise ValidationError(
                "Batch exceeds the maximum number of reviews",
                details={"max": settings.SRS_BATCH_REVIEW_MAX, "received": len(deduplicated)},
            )

        default_reviewed_at = as_utc(reviewed_at or dt.datetime.now(TZ))
        results: list[BatchItemResult] = []
        for vocabulary_id, review in deduplicated.items():
            item_reviewed_at = review.get("reviewed_at") or default_reviewed_at
            try:
                with self.db.begin_nested():
                    progress = self._apply_review(
                        learner_id, vocabulary_id, review.get("rating"), as_utc(item_reviewed_at)
                    )
            except SRSException as exc:
                logger.warning(
                    "Batch review item failed",
                    learner_id=learner_id,
                    vocabulary_id=vocabulary_id,
                    error=exc.message,
                )
                results.append(
                    BatchItemResult(
                        vocabulary_id=vocabulary_id,
                        success=False,
                        error=exc.message,
                        status_code=exc.status_code,
                    )
                )
                continue
            results.append(BatchItemResult(vocabulary_id=vocabulary_id, success=True, progress=progress))

        self._commit("submit_batch", learner_id=learner_id)
        self.invalidate_stats(learner_id)
        batch = BatchResult(results=results)
        logger.info(
            "Batch review processed",
            learner_id=learner_id,
            succeeded=batch.succeeded,
            failed=batch.failed,
        )
        return batch

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------
    def get_due_items(
        self,
        learner_id: str,
        *,
        limit: int | None = None,
        levels: Collection[int] | None = None,
        include_new: bool = True,
        now: dt.datetime | dt.date | None = None,
    ) -> list[DueItem]:
        """Return due reviewed items followed by never reviewed ones."""

        limit = settings.SRS_DUE_LIMIT_DEFAULT if limit is None else limit
        if limit <= 0:
            return []
        levels = set(levels) if levels else None

        records = self.store.list_due(learner_id, now, levels=levels, limit=limit)
        reviewed = [
            DueItem(
                vocabulary_id=record.vocabulary_id,
                level=record.item.level if record.item is not None else None,
                next_review_date=record.next_review_date,
                progress=record,
                item=record.item,
            )
            for record in records
        ]

        new_items: list[DueItem] = []
        if include_new and len(reviewed) < limit:
            new_items = [
                DueItem(vocabulary_id=item.id, level=item.level, item=item)
                for item in self.catalog.list_new(
                    self.store.reviewed_ids(learner_id),
                    levels=levels,
                    limit=limit - len(reviewed),
                )
            ]

        return calculate_due_items(
            reviewed,
            now,
            limit=limit,
            levels=levels,
            new_items=new_items,
            include_new=include_new,
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    @staticmethod
    def _stats_key(learner_id: str, levels: Collection[int] | None, today: dt.date) -> str:
        digest = build_cache_key(levels=sorted(levels) if levels else None, today=today)
        return f"{learner_id}:{digest}"

    def invalidate_stats(self, learner_id: str) -> None:
        cache_backend.invalidate(STATS_CACHE_NAMESPACE, prefix=f"{learner_id}:")

    def _is_mastered(self, record: ProgressRecord) -> bool:
        return (
            record.repetitions >= settings.SRS_MASTERED_MIN_REPETITIONS
            and record.ease_factor >= settings.SRS_MASTERED_MIN_EASE_FACTOR
        )

    def get_stats(
        self,
        learner_id: str,
        *,
        levels: Collection[int] | None = None,
        now: dt.datetime | dt.date | None = None,
    ) -> StatsSummary:
        """Counts of due, mastered, learning and new items for a learner."""

        levels = set(levels) if levels else None
        today = to_review_date(now)
        cache_key = self._stats_key(learner_id, levels, today)
        cached = cache_backend.get(STATS_CACHE_NAMESPACE, cache_key)
        if cached is not None:
            return StatsSummary(**cached)

        records = self.store.list_for_learner(learner_id, levels=levels)
        mastered = sum(1 for record in records if self._is_mastered(record))
        learning = len(records) - mastered
        new = self.catalog.count_new(self.store.reviewed_ids(learner_id), levels=levels)
        total_reviews = sum(record.total_reviews or 0 for record in records)
        correct = sum(record.correct_count or 0 for record in records)

        summary = StatsSummary(
            due_today=sum(1 for record in records if is_due(record.next_review_date, now)),
            mastered=mastered,
            learning=learning,
            new=new,
            total=new + learning + mastered,
            average_ease_factor=(
                round(sum(record.ease_factor for record in records) / len(records), 2)
                if records
                else 0.0
            ),
            total_reviews=total_reviews,
            accuracy_rate=round_half_up(correct / total_reviews * 100) if total_reviews else 0,
        )
        cache_backend.set(
            STATS_CACHE_NAMESPACE,
            cache_key,
            summary.as_dict(),
            settings.SRS_STATS_CACHE_TTL_SECONDS,
        )
        return summary

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    def get_progress(self, learner_id: str, vocabulary_id: str) -> ProgressRecord | None:
        return self.store.get(learner_id, vocabulary_id)

    def list_progress(
        self, learner_id: str, *, levels: Collection[int] | None = None
    ) -> list[ProgressRecord]:
        return self.store.list_for_learner(learner_id, levels=levels)

    def reset_progress(self, learner_id: str, vocabulary_id: str) -> None:
        """Forget all progress for an item so it is treated as new again."""

        try:
            self.store.delete(learner_id, vocabulary_id)
            self._commit("reset_progress", learner_id=learner_id, vocabulary_id=vocabulary_id)
        except SRSException:
            self.db.rollback()
            raise
        self.invalidate_stats(learner_id)
        logger.info("Progress reset", learner_id=learner_id, vocabulary_id=vocabulary_id)
