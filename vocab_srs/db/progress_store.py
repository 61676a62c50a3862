"""Persistent per-(learner, item) progress store.

Writes are scoped to a single ``(learner_id, vocabulary_id)`` key and gated on
``last_reviewed_at``: a write is applied only when its review timestamp is
strictly newer than the stored one, in a single conditional ``UPDATE``. Retried
or duplicated requests therefore resolve to "already applied" instead of
advancing the schedule twice. The store never invents default state; callers
compute the scheduler input from :func:`default_progress` for absent keys.
"""
from __future__ import annotations

import datetime as dt
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from itertools import islice

from loguru import logger
from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from vocab_srs.config import settings
from vocab_srs.core.srs.sm2 import MIN_EASE_FACTOR, TZ, to_review_date
from vocab_srs.db.models.progress import ProgressRecord
from vocab_srs.db.models.vocabulary import VocabularyItem
from vocab_srs.utils.exceptions import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=TZ)
    return value.astimezone(TZ)


@dataclass(frozen=True, slots=True)
class ProgressWrite:
    """Full replacement values for a progress row."""

    ease_factor: float
    interval_days: int
    repetitions: int
    next_review_date: dt.date
    last_reviewed_at: dt.datetime
    last_rating: int | None = None
    total_reviews: int = 0
    correct_count: int = 0

    def values(self) -> dict:
        data = asdict(self)
        data["last_reviewed_at"] = as_utc(self.last_reviewed_at)
        return data


class ProgressStore:
    """SQLAlchemy backed store keyed by learner and vocabulary identifiers."""

    def __init__(self, db: Session, *, page_size: int | None = None) -> None:
        self.db = db
        self.page_size = page_size or settings.SRS_STORE_PAGE_SIZE

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _guard(self, operation: str, **context) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            # Inside a caller's SAVEPOINT the caller unwinds only its own item.
            if not self.db.in_nested_transaction():
                self.db.rollback()
            logger.error("Progress store failure", operation=operation, error=str(exc), **context)
            raise StoreUnavailableError(
                "Progress storage is temporarily unavailable", details={"operation": operation}
            ) from exc

    @staticmethod
    def _require_ids(learner_id: str, vocabulary_id: str) -> None:
        missing = [
            name
            for name, value in (("learner_id", learner_id), ("vocabulary_id", vocabulary_id))
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValidationError("Missing required identifiers", details={"missing": missing})

    @staticmethod
    def _key(learner_id: str, vocabulary_id: str):
        return and_(
            ProgressRecord.learner_id == learner_id,
            ProgressRecord.vocabulary_id == vocabulary_id,
        )

    def _load(self, learner_id: str, vocabulary_id: str) -> ProgressRecord | None:
        stmt = (
            select(ProgressRecord)
            .options(joinedload(ProgressRecord.item))
            .where(self._key(learner_id, vocabulary_id))
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).first()

    def _conditional_update(self, learner_id: str, vocabulary_id: str, values: dict) -> bool:
        reviewed_at = values["last_reviewed_at"]
        stmt = (
            update(ProgressRecord)
            .where(self._key(learner_id, vocabulary_id))
            .where(
                or_(
                    ProgressRecord.last_reviewed_at.is_(None),
                    ProgressRecord.last_reviewed_at < reviewed_at,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------
    def get(self, learner_id: str, vocabulary_id: str) -> ProgressRecord | None:
        """Return the stored record or ``None`` when the item was never reviewed."""

        self._require_ids(learner_id, vocabulary_id)
        with self._guard("get", learner_id=learner_id, vocabulary_id=vocabulary_id):
            return self._load(learner_id, vocabulary_id)

    def upsert(self, learner_id: str, vocabulary_id: str, write: ProgressWrite) -> ProgressRecord:
        """Create or fully replace the record for a key.

        Raises:
            ConflictError: the stored ``last_reviewed_at`` is not older than
                ``write.last_reviewed_at``.
        """
        self._require_ids(learner_id, vocabulary_id)
        if write.ease_factor < MIN_EASE_FACTOR:
            raise ValidationError(
                "Ease factor below minimum", details={"ease_factor": write.ease_factor}
            )
        values = write.values()
        context = {"learner_id": learner_id, "vocabulary_id": vocabulary_id}

        with self._guard("upsert", **context):
            if self._conditional_update(learner_id, vocabulary_id, values):
                return self._load(learner_id, vocabulary_id)

            existing = self._load(learner_id, vocabulary_id)
            if existing is not None:
                raise self._conflict(existing, values, context)

            try:
                with self.db.begin_nested():
                    record = ProgressRecord(
                        learner_id=learner_id,
                        vocabulary_id=vocabulary_id,
                        first_reviewed_at=values["last_reviewed_at"],
                        **values,
                    )
                    self.db.add(record)
            except IntegrityError:
                # Another request created the row first; fall back to the gated update.
                logger.debug("Insert lost race, retrying as update", **context)
                if self._conditional_update(learner_id, vocabulary_id, values):
                    return self._load(learner_id, vocabulary_id)
                existing = self._load(learner_id, vocabulary_id)
                if existing is None:
                    raise ValidationError("Progress row could not be created", details=context)
                raise self._conflict(existing, values, context)
            return record

    @staticmethod
    def _conflict(existing: ProgressRecord, values: dict, context: dict) -> ConflictError:
        stored = existing.last_reviewed_at
        logger.info(
            "Stale progress write rejected",
            stored_reviewed_at=stored.isoformat() if stored else None,
            incoming_reviewed_at=values["last_reviewed_at"].isoformat(),
            **context,
        )
        return ConflictError(
            "Review already applied; stored progress is not older than this write",
            details={**context, "last_reviewed_at": stored.isoformat() if stored else None},
        )

    def delete(self, learner_id: str, vocabulary_id: str) -> None:
        """Reset an item to "never reviewed" by removing its record."""

        self._require_ids(learner_id, vocabulary_id)
        with self._guard("delete", learner_id=learner_id, vocabulary_id=vocabulary_id):
            result = self.db.execute(
                delete(ProgressRecord)
                .where(self._key(learner_id, vocabulary_id))
                .execution_options(synchronize_session="fetch")
            )
        if result.rowcount == 0:
            raise NotFoundError(
                "Progress not found for vocabulary item",
                details={"vocabulary_id": vocabulary_id},
            )

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------
    def _learner_query(self, learner_id: str, levels: Collection[int] | None) -> Select:
        stmt = (
            select(ProgressRecord)
            .join(VocabularyItem, VocabularyItem.id == ProgressRecord.vocabulary_id)
            .options(joinedload(ProgressRecord.item))
            .where(ProgressRecord.learner_id == learner_id)
        )
        if levels:
            stmt = stmt.where(VocabularyItem.level.in_(sorted(set(levels))))
        return stmt

    def iter_due(
        self,
        learner_id: str,
        now: dt.datetime | dt.date | None = None,
        *,
        levels: Collection[int] | None = None,
    ) -> Iterator[ProgressRecord]:
        """Yield due records oldest first, fetching one page at a time."""

        today = to_review_date(now)
        base = self._learner_query(learner_id, levels).where(
            ProgressRecord.next_review_date <= today
        )
        base = base.order_by(
            ProgressRecord.next_review_date.asc(), ProgressRecord.vocabulary_id.asc()
        )
        last: tuple[dt.date, str] | None = None
        while True:
            stmt = base
            if last is not None:
                last_date, last_id = last
                stmt = stmt.where(
                    or_(
                        ProgressRecord.next_review_date > last_date,
                        and_(
                            ProgressRecord.next_review_date == last_date,
                            ProgressRecord.vocabulary_id > last_id,
                        ),
                    )
                )
            with self._guard("list_due", learner_id=learner_id):
                page = list(self.db.scalars(stmt.limit(self.page_size)))
            yield from page
            if len(page) < self.page_size:
                return
            last = (page[-1].next_review_date, page[-1].vocabulary_id)

    def list_due(
        self,
        learner_id: str,
        now: dt.datetime | dt.date | None = None,
        *,
        levels: Collection[int] | None = None,
        limit: int | None = None,
    ) -> list[ProgressRecord]:
        """Return due records oldest first, reading no more pages than ``limit`` needs."""

        if limit is not None and limit <= 0:
            return []
        return list(islice(self.iter_due(learner_id, now, levels=levels), limit))

    def count_due(
        self,
        learner_id: str,
        now: dt.datetime | dt.date | None = None,
        *,
        levels: Collection[int] | None = None,
    ) -> int:
        """Number of records due on or before ``now``."""

        today = to_review_date(now)
        stmt = (
            select(func.count())
            .select_from(ProgressRecord)
            .join(VocabularyItem, VocabularyItem.id == ProgressRecord.vocabulary_id)
            .where(ProgressRecord.learner_id == learner_id)
            .where(ProgressRecord.next_review_date <= today)
        )
        if levels:
            stmt = stmt.where(VocabularyItem.level.in_(sorted(set(levels))))
        with self._guard("count_due", learner_id=learner_id):
            return int(self.db.scalar(stmt) or 0)

    def list_for_learner(
        self, learner_id: str, *, levels: Collection[int] | None = None
    ) -> list[ProgressRecord]:
        """All records owned by a learner, ordered by vocabulary identifier."""

        stmt = self._learner_query(learner_id, levels).order_by(ProgressRecord.vocabulary_id)
        with self._guard("list_for_learner", learner_id=learner_id):
            return list(self.db.scalars(stmt))

    def reviewed_ids(self, learner_id: str) -> Select:
        """Subquery selecting the vocabulary ids a learner has progress for."""

        return select(ProgressRecord.vocabulary_id).where(ProgressRecord.learner_id == learner_id)
