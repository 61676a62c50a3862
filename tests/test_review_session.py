"""Tests for the review session state machine and its controller."""
from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from vocab_srs.core.srs import session as review
from vocab_srs.core.srs.selector import DueItem
from vocab_srs.core.srs.session import (
    CardDirection,
    CardState,
    ReviewSession,
    SessionState,
    StudyMode,
    check_answer,
)
from vocab_srs.core.srs.sm2 import ReviewRating
from vocab_srs.services.progress import ProgressService
from vocab_srs.services.review_session import ReviewSessionController
from vocab_srs.utils.exceptions import (
    CardOrderError,
    InvalidRatingError,
    SessionStateError,
    StoreUnavailableError,
)

STARTED = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_items(count: int = 5) -> list[SimpleNamespace]:
    words = [("犬", "いぬ", "inu"), ("猫", "ねこ", "neko"), ("水", "みず", "mizu"), ("山", "やま", "yama"), ("川", "かわ", "kawa")]
    return [
        SimpleNamespace(id=f"v-{romaji}", word=word, reading=reading, romaji=romaji)
        for word, reading, romaji in words[:count]
    ]


def flip_and_rate(session: ReviewSession, rating: int, now: datetime | None = None) -> ReviewSession:
    return review.rate(review.flip(session), rating, now)


def test_five_card_session_reports_accuracy() -> None:
    session = review.start(ReviewSession(), make_items(), STARTED)

    for rating in (ReviewRating.GOOD, ReviewRating.AGAIN, ReviewRating.EASY, ReviewRating.HARD):
        session = flip_and_rate(session, rating)
        assert session.state is SessionState.ACTIVE
    session = flip_and_rate(session, ReviewRating.GOOD, STARTED + timedelta(minutes=3))

    assert session.state is SessionState.COMPLETE
    assert session.stats.cards_reviewed == 5
    assert session.stats.correct_count == 4
    assert session.stats.incorrect_count == 1
    assert session.stats.accuracy == 80
    assert session.stats.rating_counts[ReviewRating.GOOD] == 2
    assert session.stats.rating_counts[ReviewRating.AGAIN] == 1
    assert session.stats.duration_seconds() == 180
    assert session.progress_percent == 100


def test_accuracy_is_full_when_nothing_was_missed() -> None:
    session = review.start(ReviewSession(), make_items(2), STARTED)
    session = flip_and_rate(session, ReviewRating.HARD)
    session = flip_and_rate(session, ReviewRating.EASY)

    assert session.stats.incorrect_count == 0
    assert session.stats.accuracy == 100


def test_rating_before_flip_is_rejected() -> None:
    session = review.start(ReviewSession(), make_items(2), STARTED)

    with pytest.raises(CardOrderError):
        review.rate(session, ReviewRating.GOOD)


def test_flip_is_idempotent() -> None:
    session = review.flip(review.start(ReviewSession(), make_items(2), STARTED))

    assert review.flip(session) is session
    assert session.current_card.state is CardState.FLIPPED


def test_rating_after_completion_is_a_no_op() -> None:
    session = flip_and_rate(review.start(ReviewSession(), make_items(1), STARTED), ReviewRating.GOOD)

    assert session.state is SessionState.COMPLETE
    assert review.rate(session, ReviewRating.EASY) is session
    assert session.stats.cards_reviewed == 1


def test_rating_in_setup_is_rejected() -> None:
    with pytest.raises(SessionStateError):
        review.rate(ReviewSession(), ReviewRating.GOOD)


def test_invalid_rating_leaves_session_unchanged() -> None:
    session = review.flip(review.start(ReviewSession(), make_items(2), STARTED))

    with pytest.raises(InvalidRatingError):
        review.rate(session, 2)
    assert session.current_card.state is CardState.FLIPPED
    assert session.stats.cards_reviewed == 0


def test_empty_queue_completes_immediately() -> None:
    session = review.start(ReviewSession(), [], STARTED)

    assert session.state is SessionState.COMPLETE
    assert session.stats.accuracy == 0
    assert session.current_card is None


def test_configure_only_during_setup() -> None:
    session = review.configure(ReviewSession(), mode=StudyMode.CRAM, levels=[5, 4, 5])

    assert session.mode is StudyMode.CRAM
    assert session.levels == (4, 5)

    started = review.start(session, make_items(1), STARTED)
    with pytest.raises(SessionStateError):
        review.configure(started, direction=CardDirection.REVERSE)


def test_reverse_direction_uses_typed_answer() -> None:
    session = review.configure(ReviewSession(), direction=CardDirection.REVERSE)
    session = review.start(session, make_items(3), STARTED)

    session, correct = review.submit_answer(session, "  INU ")
    assert correct
    session = flip_and_rate(session, ReviewRating.AGAIN)

    session, correct = review.submit_answer(session, "dog")
    assert not correct
    session = flip_and_rate(session, ReviewRating.EASY)

    # No answer submitted: counted as incorrect.
    session = flip_and_rate(session, ReviewRating.GOOD)

    assert session.stats.correct_count == 1
    assert session.stats.incorrect_count == 2
    assert session.stats.correct_count + session.stats.incorrect_count == session.stats.cards_reviewed


def test_check_answer_accepts_word_reading_or_romaji() -> None:
    item = make_items(1)[0]

    assert check_answer("犬", item)
    assert check_answer("いぬ", item)
    assert check_answer("Inu", item)
    assert not check_answer("", item)
    assert not check_answer(None, item)


def test_abandon_and_reset() -> None:
    session = flip_and_rate(review.start(ReviewSession(), make_items(3), STARTED), ReviewRating.GOOD)

    ended = review.abandon(session, STARTED + timedelta(seconds=30))
    assert ended.state is SessionState.COMPLETE
    assert ended.stats.cards_reviewed == 1

    fresh = review.reset(ended)
    assert fresh.state is SessionState.SETUP
    assert fresh.cards == ()


class FakeService:
    """Stands in for the progress service to control write outcomes."""

    def __init__(self, items, error: Exception | None = None) -> None:
        self.items = items
        self.error = error
        self.calls: list[tuple[str, str, int]] = []
        self.on_submit = None

    def get_due_items(self, learner_id, *, limit=None, levels=None, now=None):
        return [DueItem(vocabulary_id=item.id, item=item) for item in self.items]

    def submit_review(self, learner_id, vocabulary_id, rating, reviewed_at=None):
        if self.on_submit is not None:
            self.on_submit()
        if self.error is not None:
            raise self.error
        self.calls.append((learner_id, vocabulary_id, int(rating)))


def test_controller_keeps_card_when_write_fails() -> None:
    service = FakeService(make_items(2), error=StoreUnavailableError("database down"))
    controller = ReviewSessionController(service, "learner-1", catalog=SimpleNamespace())
    controller.start(STARTED)
    controller.flip()

    with pytest.raises(StoreUnavailableError):
        controller.rate(ReviewRating.GOOD)

    assert controller.session.index == 0
    assert controller.session.current_card.state is CardState.FLIPPED
    assert controller.stats.cards_reviewed == 0

    service.error = None
    controller.rate(ReviewRating.GOOD)
    assert controller.session.index == 1
    assert service.calls == [("learner-1", "v-inu", 4)]


def test_controller_rejects_reentrant_rating() -> None:
    service = FakeService(make_items(2))
    controller = ReviewSessionController(service, "learner-1", catalog=SimpleNamespace())
    controller.start(STARTED)
    controller.flip()
    service.on_submit = lambda: controller.rate(ReviewRating.EASY)

    with pytest.raises(SessionStateError):
        controller.rate(ReviewRating.GOOD)

    assert controller.session.index == 0
    assert service.calls == []


def test_controller_does_not_write_out_of_order_ratings() -> None:
    service = FakeService(make_items(2))
    controller = ReviewSessionController(service, "learner-1", catalog=SimpleNamespace())
    controller.start(STARTED)

    with pytest.raises(CardOrderError):
        controller.rate(ReviewRating.GOOD)
    assert service.calls == []


def test_controller_persists_reviews_through_the_store(db_session, vocabulary) -> None:
    service = ProgressService(db_session)
    controller = ReviewSessionController(service, "learner-1", limit=3)
    controller.configure(levels=[5])
    controller.start(STARTED)

    assert [card.vocabulary_id for card in controller.session.cards] == ["v-inu", "v-mizu", "v-neko"]

    for offset, rating in enumerate((ReviewRating.GOOD, ReviewRating.AGAIN, ReviewRating.EASY)):
        controller.flip()
        controller.rate(rating, STARTED + timedelta(seconds=offset))

    assert controller.session.state is SessionState.COMPLETE
    assert controller.stats.accuracy == 67
    inu = service.get_progress("learner-1", "v-inu")
    assert inu.repetitions == 1
    assert inu.next_review_date == STARTED.date() + timedelta(days=1)
    assert service.get_progress("learner-1", "v-mizu").repetitions == 0


def test_cram_mode_shuffles_catalog_items(db_session, vocabulary) -> None:
    service = ProgressService(db_session)
    controller = ReviewSessionController(service, "learner-1", rng=random.Random(7))
    controller.configure(mode=StudyMode.CRAM, levels=[5, 4])
    controller.start(STARTED)

    queued = sorted(card.vocabulary_id for card in controller.session.cards)
    assert queued == ["v-inu", "v-mizu", "v-neko", "v-taberu"]


def test_controller_advances_past_superseded_review(db_session, vocabulary) -> None:
    service = ProgressService(db_session)
    service.submit_review(
        "learner-1", "v-benkyou", ReviewRating.EASY, reviewed_at=STARTED + timedelta(hours=1)
    )
    controller = ReviewSessionController(service, "learner-1")
    controller.configure(mode=StudyMode.CRAM, levels=[3])
    controller.start(STARTED)
    controller.flip()

    controller.rate(ReviewRating.GOOD, STARTED)

    assert controller.session.state is SessionState.COMPLETE
    assert controller.stats.cards_reviewed == 1
    stored = service.get_progress("learner-1", "v-benkyou")
    assert stored.last_rating == ReviewRating.EASY
    assert stored.total_reviews == 1
