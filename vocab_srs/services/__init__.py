"""Service layer composing the catalog, progress store and scheduler."""

from vocab_srs.services.catalog import VocabularyCatalog
from vocab_srs.services.progress import BatchItemResult, BatchResult, ProgressService, StatsSummary
from vocab_srs.services.review_session import ReviewSessionController

__all__ = [
    "BatchItemResult",
    "BatchResult",
    "ProgressService",
    "ReviewSessionController",
    "StatsSummary",
    "VocabularyCatalog",
]
