"""Database models package."""
from vocab_srs.db.models.vocabulary import VocabularyItem
from vocab_srs.db.models.progress import ProgressRecord

__all__ = [
    "VocabularyItem",
    "ProgressRecord",
]
