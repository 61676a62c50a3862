"""Read-only access to the vocabulary catalog."""
from __future__ import annotations

from collections.abc import Collection

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from vocab_srs.db.models.vocabulary import VocabularyItem
from vocab_srs.utils.exceptions import NotFoundError


class VocabularyCatalog:
    """Lookups against ``vocabulary_items``; the SRS core never writes here."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _level_filter(self, stmt, levels: Collection[int] | None):
        if levels:
            stmt = stmt.where(VocabularyItem.level.in_(sorted(set(levels))))
        return stmt

    def get(self, vocabulary_id: str) -> VocabularyItem | None:
        return self.db.get(VocabularyItem, vocabulary_id)

    def require(self, vocabulary_id: str) -> VocabularyItem:
        """Return the item or raise ``NotFoundError``."""

        item = self.get(vocabulary_id)
        if item is None:
            raise NotFoundError(
                "Vocabulary item not found", details={"vocabulary_id": vocabulary_id}
            )
        return item

    def get_many(self, vocabulary_ids: Collection[str]) -> dict[str, VocabularyItem]:
        if not vocabulary_ids:
            return {}
        stmt = select(VocabularyItem).where(VocabularyItem.id.in_(list(vocabulary_ids)))
        return {item.id: item for item in self.db.scalars(stmt)}

    def list_by_levels(self, levels: Collection[int] | None = None) -> list[VocabularyItem]:
        stmt = self._level_filter(select(VocabularyItem), levels)
        stmt = stmt.order_by(VocabularyItem.level, VocabularyItem.id)
        return list(self.db.scalars(stmt))

    @staticmethod
    def _unreviewed(stmt, reviewed_ids: Select):
        return stmt.where(VocabularyItem.id.not_in(reviewed_ids))

    def list_new(
        self,
        reviewed_ids: Select,
        *,
        levels: Collection[int] | None = None,
        limit: int | None = None,
    ) -> list[VocabularyItem]:
        """Items outside ``reviewed_ids``, easiest level first.

        ``reviewed_ids`` is a subquery such as :meth:`ProgressStore.reviewed_ids`.
        """

        stmt = self._unreviewed(self._level_filter(select(VocabularyItem), levels), reviewed_ids)
        stmt = stmt.order_by(VocabularyItem.level, VocabularyItem.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt))

    def count_new(self, reviewed_ids: Select, *, levels: Collection[int] | None = None) -> int:
        stmt = select(func.count()).select_from(VocabularyItem)
        stmt = self._unreviewed(self._level_filter(stmt, levels), reviewed_ids)
        return int(self.db.scalar(stmt) or 0)
