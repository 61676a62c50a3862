"""Drive a review session against the progress service."""
from __future__ import annotations

import datetime as dt
import random
from collections.abc import Iterable
from typing import Any

from loguru import logger

from vocab_srs.config import settings
from vocab_srs.core.srs import session as transitions
from vocab_srs.core.srs.session import (
    CardDirection,
    ReviewSession,
    SessionState,
    SessionStats,
    StudyMode,
)
from vocab_srs.core.srs.sm2 import parse_rating
from vocab_srs.services.catalog import VocabularyCatalog
from vocab_srs.services.progress import ProgressService
from vocab_srs.utils.exceptions import ConflictError, SessionStateError, SRSException


class ReviewSessionController:
    """Owns one learner's :class:`ReviewSession` and persists each rating.

    A rating is written through the progress service before the session
    advances. When the write fails the card stays flipped with statistics
    untouched, so the same rating can be retried. A write rejected because a
    newer review is already stored is treated as applied.
    """

    def __init__(
        self,
        service: ProgressService,
        learner_id: str,
        *,
        catalog: VocabularyCatalog | None = None,
        rng: random.Random | None = None,
        limit: int | None = None,
    ) -> None:
        self.service = service
        self.learner_id = learner_id
        self.catalog = catalog or service.catalog
        self.rng = rng or random.Random()
        self.limit = limit or settings.SRS_DUE_LIMIT_DEFAULT
        self.session = ReviewSession()
        self._write_pending = False

    @property
    def stats(self) -> SessionStats:
        return self.session.stats

    def configure(
        self,
        *,
        mode: StudyMode | None = None,
        direction: CardDirection | None = None,
        levels: Iterable[int] | None = None,
    ) -> ReviewSession:
        self.session = transitions.configure(
            self.session, mode=mode, direction=direction, levels=levels
        )
        return self.session

    def _queue(self, now: dt.datetime | None) -> list[Any]:
        levels = self.session.levels or None
        if self.session.mode is StudyMode.CRAM:
            items = self.catalog.list_by_levels(levels)
            self.rng.shuffle(items)
            return items[: self.limit]
        due = self.service.get_due_items(
            self.learner_id, limit=self.limit, levels=levels, now=now
        )
        return [entry.item for entry in due if entry.item is not None]

    def start(self, now: dt.datetime | None = None) -> ReviewSession:
        """Snapshot the queue and begin reviewing."""

        items = self._queue(now)
        self.session = transitions.start(self.session, items, now)
        logger.info(
            "Review session started",
            learner_id=self.learner_id,
            mode=self.session.mode.value,
            direction=self.session.direction.value,
            cards=len(items),
        )
        return self.session

    def flip(self) -> ReviewSession:
        self.session = transitions.flip(self.session)
        return self.session

    def submit_answer(self, answer: str) -> bool:
        self.session, correct = transitions.submit_answer(self.session, answer)
        return correct

    def rate(self, rating: Any, now: dt.datetime | None = None) -> ReviewSession:
        """Persist ``rating`` for the current card, then advance."""

        quality = parse_rating(rating)
        if self._write_pending:
            raise SessionStateError("A review is still being recorded")

        card = self.session.current_card
        advanced = transitions.rate(self.session, quality, now)
        if advanced is self.session or card is None:
            return self.session

        self._write_pending = True
        try:
            self.service.submit_review(
                self.learner_id, card.vocabulary_id, quality, reviewed_at=now
            )
        except ConflictError as exc:
            # A newer review is already stored; the card counts as done.
            logger.info(
                "Review superseded by a newer write",
                learner_id=self.learner_id,
                vocabulary_id=card.vocabulary_id,
                error=exc.message,
            )
        except SRSException as exc:
            logger.warning(
                "Review not recorded; card left for retry",
                learner_id=self.learner_id,
                vocabulary_id=card.vocabulary_id,
                error=exc.message,
            )
            raise
        finally:
            self._write_pending = False

        self.session = advanced
        if self.session.state is SessionState.COMPLETE:
            self._log_complete()
        return self.session

    def abandon(self, now: dt.datetime | None = None) -> ReviewSession:
        """End early; ratings already recorded stay applied."""

        self.session = transitions.abandon(self.session, now)
        self._log_complete()
        return self.session

    def reset(self) -> ReviewSession:
        self.session = transitions.reset(self.session)
        return self.session

    def _log_complete(self) -> None:
        stats = self.session.stats
        logger.info(
            "Review session complete",
            learner_id=self.learner_id,
            cards_reviewed=stats.cards_reviewed,
            accuracy=stats.accuracy,
            duration_seconds=stats.duration_seconds(),
        )
