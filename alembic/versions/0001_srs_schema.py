"""Create vocabulary catalog and SRS progress tables"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_srs_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "vocabulary_items",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("word", sa.String(length=255), nullable=False),
        sa.Column("reading", sa.String(length=255), nullable=True),
        sa.Column("romaji", sa.String(length=255), nullable=True),
        sa.Column("translation", sa.Text(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    )
    op.create_index("ix_vocabulary_items_level", "vocabulary_items", ["level"], unique=False)

    op.create_table(
        "srs_progress",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("learner_id", sa.String(length=64), nullable=False),
        sa.Column(
            "vocabulary_id",
            sa.String(length=64),
            sa.ForeignKey("vocabulary_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ease_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column("interval_days", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("repetitions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("next_review_date", sa.Date(), nullable=False),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_rating", sa.Integer(), nullable=True),
        sa.Column("total_reviews", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("correct_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("first_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
        sa.UniqueConstraint("learner_id", "vocabulary_id", name="uq_srs_progress_learner_vocabulary"),
        sa.CheckConstraint("ease_factor >= 1.3", name="ck_srs_progress_ease_floor"),
        sa.CheckConstraint("interval_days >= 0", name="ck_srs_progress_interval"),
        sa.CheckConstraint("repetitions >= 0", name="ck_srs_progress_repetitions"),
    )
    op.create_index("ix_srs_progress_learner_id", "srs_progress", ["learner_id"], unique=False)
    op.create_index(
        "ix_srs_progress_learner_due", "srs_progress", ["learner_id", "next_review_date"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_srs_progress_learner_due", table_name="srs_progress")
    op.drop_index("ix_srs_progress_learner_id", table_name="srs_progress")
    op.drop_table("srs_progress")
    op.drop_index("ix_vocabulary_items_level", table_name="vocabulary_items")
    op.drop_table("vocabulary_items")
