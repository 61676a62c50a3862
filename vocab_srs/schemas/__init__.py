"""Pydantic schemas package."""

from vocab_srs.schemas.auth import TokenPayload
from vocab_srs.schemas.progress import (
    BatchReviewItemResult,
    BatchReviewRequest,
    BatchReviewResponse,
    DueItemRead,
    DueItemsResponse,
    ProgressRead,
    ReviewRequest,
    StatsResponse,
)

__all__ = [
    "TokenPayload",
    "BatchReviewItemResult",
    "BatchReviewRequest",
    "BatchReviewResponse",
    "DueItemRead",
    "DueItemsResponse",
    "ProgressRead",
    "ReviewRequest",
    "StatsResponse",
]
