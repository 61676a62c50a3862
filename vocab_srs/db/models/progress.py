"""Per-learner spaced repetition progress."""
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from vocab_srs.core.srs.sm2 import DEFAULT_EASE_FACTOR, SchedulerState
from vocab_srs.db.base import Base


class ProgressRecord(Base):
    """SM-2 state for one (learner, vocabulary item) pair."""

    __tablename__ = "srs_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "vocabulary_id", name="uq_srs_progress_learner_vocabulary"),
        Index("ix_srs_progress_learner_due", "learner_id", "next_review_date"),
        CheckConstraint("ease_factor >= 1.3", name="ease_floor"),
        CheckConstraint("interval_days >= 0", name="interval"),
        CheckConstraint("repetitions >= 0", name="repetitions"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    learner_id = Column(String(64), nullable=False, index=True)
    vocabulary_id = Column(
        String(64), ForeignKey("vocabulary_items.id", ondelete="CASCADE"), nullable=False
    )

    ease_factor = Column(Float, nullable=False, default=DEFAULT_EASE_FACTOR)
    interval_days = Column(Integer, nullable=False, default=0)
    repetitions = Column(Integer, nullable=False, default=0)
    next_review_date = Column(Date, nullable=False)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    last_rating = Column(Integer, nullable=True)
    total_reviews = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    first_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    item = relationship("VocabularyItem")

    @property
    def scheduler_state(self) -> SchedulerState:
        """Scheduler input derived from the stored row."""

        return SchedulerState(
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
        )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"<ProgressRecord learner={self.learner_id!r} vocabulary={self.vocabulary_id!r} "
            f"reps={self.repetitions} interval={self.interval_days} due={self.next_review_date}>"
        )
