"""Turn persisted progress into a prioritized review queue."""
from __future__ import annotations

import datetime as dt
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from typing import Any

from vocab_srs.core.srs.sm2 import to_review_date


@dataclass(frozen=True, slots=True)
class DueItem:
    """Queue entry: a progress snapshot joined with catalog identifiers.

    ``next_review_date`` is ``None`` for items the learner has never reviewed.
    ``progress`` and ``item`` carry the underlying store row and catalog entry
    for callers that need more than the identifiers.
    """

    vocabulary_id: str
    level: int | None = None
    next_review_date: dt.date | None = None
    progress: Any = None
    item: Any = None

    @property
    def is_new(self) -> bool:
        return self.next_review_date is None


def _matches_level(entry: DueItem, levels: Collection[int] | None) -> bool:
    if levels is None:
        return True
    return entry.level is not None and entry.level in levels


def calculate_due_items(
    records: Iterable[DueItem],
    now: dt.datetime | dt.date | None = None,
    *,
    limit: int | None = None,
    levels: Collection[int] | None = None,
    new_items: Iterable[DueItem] = (),
    include_new: bool = True,
) -> list[DueItem]:
    """Select the entries due for review, most overdue first.

    Reviewed entries due on or before ``now`` are ordered by due date with
    ties broken by vocabulary identifier. Never reviewed entries follow in the
    order supplied unless ``include_new`` is false. An identifier is returned
    at most once and ``limit`` is applied after ordering.
    """
    if limit is not None and limit <= 0:
        return []

    today = to_review_date(now)
    level_set = frozenset(levels) if levels is not None else None
    seen: set[str] = set()

    reviewed: list[DueItem] = []
    for entry in records:
        if entry.vocabulary_id in seen:
            continue
        seen.add(entry.vocabulary_id)
        if entry.next_review_date is None or entry.next_review_date > today:
            continue
        if not _matches_level(entry, level_set):
            continue
        reviewed.append(entry)
    reviewed.sort(key=lambda entry: (entry.next_review_date, entry.vocabulary_id))

    queue = reviewed
    if include_new and (limit is None or len(queue) < limit):
        for entry in new_items:
            if entry.vocabulary_id in seen:
                continue
            seen.add(entry.vocabulary_id)
            if not _matches_level(entry, level_set):
                continue
            queue.append(entry)
            if limit is not None and len(queue) >= limit:
                break

    if limit is not None:
        return queue[:limit]
    return queue
