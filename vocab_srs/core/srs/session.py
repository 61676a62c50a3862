"""Review session state machine.

A session moves ``SETUP -> ACTIVE -> COMPLETE``. While active, each card goes
``UNSEEN -> FLIPPED -> RATED`` before the cursor advances. Sessions are
immutable values: every transition returns a new :class:`ReviewSession`, so a
failed side effect (such as a store write) can simply keep the previous value.
"""
from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from vocab_srs.core.srs.sm2 import TZ, ReviewRating, parse_rating, round_half_up
from vocab_srs.utils.exceptions import CardOrderError, SessionStateError


class SessionState(str, Enum):
    SETUP = "setup"
    ACTIVE = "active"
    COMPLETE = "complete"


class CardState(str, Enum):
    UNSEEN = "unseen"
    FLIPPED = "flipped"
    RATED = "rated"


class StudyMode(str, Enum):
    """``srs`` reviews the due queue, ``cram`` drills matching items regardless of schedule."""

    SRS = "srs"
    CRAM = "cram"


class CardDirection(str, Enum):
    """``forward`` shows the term, ``reverse`` asks the learner to type it."""

    FORWARD = "forward"
    REVERSE = "reverse"


def _normalize_answer(value: str) -> str:
    return value.strip().casefold()


def accepted_forms(item: Any) -> list[str]:
    """Surface forms a learner may type for ``item``: word, reading and romaji."""

    forms = (getattr(item, attr, None) for attr in ("word", "reading", "romaji"))
    return [_normalize_answer(form) for form in forms if form and form.strip()]


def check_answer(answer: str | None, item: Any) -> bool:
    """True when ``answer`` matches one of the item's accepted forms."""

    if answer is None:
        return False
    normalized = _normalize_answer(answer)
    if not normalized:
        return False
    return normalized in accepted_forms(item)


def _empty_rating_counts() -> Mapping[ReviewRating, int]:
    return MappingProxyType({rating: 0 for rating in ReviewRating})


@dataclass(frozen=True, slots=True)
class SessionStats:
    """Running aggregate for one session."""

    cards_reviewed: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    rating_counts: Mapping[ReviewRating, int] = field(default_factory=_empty_rating_counts)
    started_at: dt.datetime | None = None
    ended_at: dt.datetime | None = None

    @property
    def accuracy(self) -> int:
        if self.cards_reviewed == 0:
            return 0
        return round_half_up(self.correct_count / self.cards_reviewed * 100)

    def duration_seconds(self, now: dt.datetime | None = None) -> int:
        if self.started_at is None:
            return 0
        end = self.ended_at or now or dt.datetime.now(TZ)
        return max(0, round((end - self.started_at).total_seconds()))

    def record(self, rating: ReviewRating, correct: bool) -> "SessionStats":
        counts = dict(self.rating_counts)
        counts[rating] = counts.get(rating, 0) + 1
        return replace(
            self,
            cards_reviewed=self.cards_reviewed + 1,
            correct_count=self.correct_count + (1 if correct else 0),
            incorrect_count=self.incorrect_count + (0 if correct else 1),
            rating_counts=MappingProxyType(counts),
        )


@dataclass(frozen=True, slots=True)
class Flashcard:
    """A queued vocabulary item and its transient per-card state."""

    item: Any
    state: CardState = CardState.UNSEEN
    rating: ReviewRating | None = None
    answer: str | None = None
    is_correct: bool | None = None

    @property
    def vocabulary_id(self) -> str:
        return str(self.item.id)


@dataclass(frozen=True, slots=True)
class ReviewSession:
    state: SessionState = SessionState.SETUP
    mode: StudyMode = StudyMode.SRS
    direction: CardDirection = CardDirection.FORWARD
    levels: tuple[int, ...] = ()
    cards: tuple[Flashcard, ...] = ()
    index: int = 0
    stats: SessionStats = field(default_factory=SessionStats)

    @property
    def current_card(self) -> Flashcard | None:
        if self.state is not SessionState.ACTIVE:
            return None
        if 0 <= self.index < len(self.cards):
            return self.cards[self.index]
        return None

    @property
    def has_more_cards(self) -> bool:
        return self.index < len(self.cards) - 1

    @property
    def progress_percent(self) -> int:
        if not self.cards:
            return 0
        position = min(self.index + 1, len(self.cards))
        return round_half_up(position / len(self.cards) * 100)

    @property
    def is_reverse(self) -> bool:
        return self.direction is CardDirection.REVERSE

    def _with_current(self, **changes: Any) -> "ReviewSession":
        cards = list(self.cards)
        cards[self.index] = replace(cards[self.index], **changes)
        return replace(self, cards=tuple(cards))


def _now(now: dt.datetime | None) -> dt.datetime:
    return now or dt.datetime.now(TZ)


def configure(
    session: ReviewSession,
    *,
    mode: StudyMode | None = None,
    direction: CardDirection | None = None,
    levels: Iterable[int] | None = None,
) -> ReviewSession:
    """Change mode, direction or level filter before the session starts."""

    if session.state is not SessionState.SETUP:
        raise SessionStateError(
            "Session options can only change during setup", details={"state": session.state.value}
        )
    return replace(
        session,
        mode=mode if mode is not None else session.mode,
        direction=direction if direction is not None else session.direction,
        levels=tuple(sorted(set(levels))) if levels is not None else session.levels,
    )


def start(session: ReviewSession, items: Sequence[Any], now: dt.datetime | None = None) -> ReviewSession:
    """Snapshot ``items`` as the queue and begin the session."""

    if session.state is not SessionState.SETUP:
        raise SessionStateError(
            "Session has already been started", details={"state": session.state.value}
        )
    started_at = _now(now)
    started = replace(
        session,
        state=SessionState.ACTIVE,
        cards=tuple(Flashcard(item=item) for item in items),
        index=0,
        stats=SessionStats(started_at=started_at),
    )
    if not started.cards:
        return finish(started, started_at)
    return started


def _require_active(session: ReviewSession) -> Flashcard:
    card = session.current_card
    if card is None:
        raise SessionStateError(
            "No active card", details={"state": session.state.value, "index": session.index}
        )
    return card


def flip(session: ReviewSession) -> ReviewSession:
    """Reveal the answer side of the current card."""

    card = _require_active(session)
    if card.state is CardState.FLIPPED:
        return session
    if card.state is CardState.RATED:
        raise CardOrderError("Card has already been rated", details={"index": session.index})
    return session._with_current(state=CardState.FLIPPED)


def submit_answer(session: ReviewSession, answer: str) -> tuple[ReviewSession, bool]:
    """Record a typed answer for the current card and whether it is correct."""

    card = _require_active(session)
    if card.state is CardState.RATED:
        raise CardOrderError("Card has already been rated", details={"index": session.index})
    correct = check_answer(answer, card.item)
    return session._with_current(answer=answer, is_correct=correct), correct


def rate(session: ReviewSession, rating: int, now: dt.datetime | None = None) -> ReviewSession:
    """Rate the current card, update statistics and advance the cursor.

    Rating once the queue is exhausted is a no-op. In the reverse direction
    correctness comes from the submitted answer; a card rated without an
    answer counts as incorrect.
    """
    quality = parse_rating(rating)
    if session.state is SessionState.SETUP:
        raise SessionStateError("Session has not been started", details={"state": session.state.value})
    if session.state is SessionState.COMPLETE or session.index >= len(session.cards):
        return session
    card = _require_active(session)
    if card.state is not CardState.FLIPPED:
        raise CardOrderError(
            "Card must be flipped before it is rated",
            details={"index": session.index, "card_state": card.state.value},
        )

    if session.is_reverse:
        correct = bool(card.is_correct)
    else:
        correct = quality.is_correct

    rated = session._with_current(state=CardState.RATED, rating=quality)
    rated = replace(rated, stats=rated.stats.record(quality, correct))
    if rated.has_more_cards:
        return replace(rated, index=rated.index + 1)
    return finish(replace(rated, index=len(rated.cards)), now)


def finish(session: ReviewSession, now: dt.datetime | None = None) -> ReviewSession:
    """Move the session to ``COMPLETE`` and freeze its statistics."""

    if session.state is SessionState.COMPLETE:
        return session
    if session.state is not SessionState.ACTIVE:
        raise SessionStateError(
            "Only an active session can be completed", details={"state": session.state.value}
        )
    return replace(
        session,
        state=SessionState.COMPLETE,
        stats=replace(session.stats, ended_at=_now(now)),
    )


def abandon(session: ReviewSession, now: dt.datetime | None = None) -> ReviewSession:
    """End the session early; reviews already recorded stay applied."""

    return finish(session, now)


def reset(session: ReviewSession) -> ReviewSession:
    """Return to setup keeping the chosen mode, direction and levels."""

    return ReviewSession(mode=session.mode, direction=session.direction, levels=session.levels)
