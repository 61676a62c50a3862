"""Vocabulary catalog model (owned by the content service, read-only here)."""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from vocab_srs.db.base import Base


class VocabularyItem(Base):
    """A catalog entry that learners review."""

    __tablename__ = "vocabulary_items"

    id = Column(String(64), primary_key=True)
    word = Column(String(255), nullable=False)  # native script form
    reading = Column(String(255))  # phonetic reading, e.g. kana
    romaji = Column(String(255))
    translation = Column(Text, nullable=False)
    level = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<VocabularyItem id={self.id!r} word={self.word!r} level={self.level!r}>"
