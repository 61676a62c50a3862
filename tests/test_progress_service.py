"""Tests for transaction handling in the progress service."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from vocab_srs.services.progress import STATS_CACHE_NAMESPACE, ProgressService
from vocab_srs.utils.cache import cache_backend
from vocab_srs.utils.exceptions import StoreUnavailableError, error_payload

REVIEWED_AT = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def broken_commit() -> None:
    raise OperationalError("COMMIT", {}, Exception("connection lost"))


def test_commit_failure_is_retryable_and_rolled_back(db_session, vocabulary, monkeypatch) -> None:
    service = ProgressService(db_session)
    monkeypatch.setattr(db_session, "commit", broken_commit)

    with pytest.raises(StoreUnavailableError) as excinfo:
        service.submit_review("learner-1", "v-inu", 4, reviewed_at=REVIEWED_AT)

    assert error_payload(excinfo.value)["retryable"] is True
    monkeypatch.undo()
    assert service.get_progress("learner-1", "v-inu") is None

    progress = service.submit_review("learner-1", "v-inu", 4, reviewed_at=REVIEWED_AT)
    assert progress.repetitions == 1


def test_batch_commit_failure_is_retryable(db_session, vocabulary, monkeypatch) -> None:
    service = ProgressService(db_session)
    monkeypatch.setattr(db_session, "commit", broken_commit)

    with pytest.raises(StoreUnavailableError):
        service.submit_batch("learner-1", [{"vocabulary_id": "v-inu", "rating": 4}], REVIEWED_AT)

    monkeypatch.undo()
    assert service.list_progress("learner-1") == []


def test_reset_commit_failure_keeps_record(db_session, vocabulary, monkeypatch) -> None:
    service = ProgressService(db_session)
    service.submit_review("learner-1", "v-inu", 4, reviewed_at=REVIEWED_AT)
    monkeypatch.setattr(db_session, "commit", broken_commit)

    with pytest.raises(StoreUnavailableError):
        service.reset_progress("learner-1", "v-inu")

    monkeypatch.undo()
    assert service.get_progress("learner-1", "v-inu") is not None


def test_stats_use_the_utc_day_of_now(db_session, vocabulary) -> None:
    service = ProgressService(db_session)
    service.submit_review("learner-1", "v-inu", 4, reviewed_at=REVIEWED_AT)  # due 2026-03-11
    late_evening_west = datetime(2026, 3, 10, 22, 30, tzinfo=timezone(timedelta(hours=-5)))

    stats = service.get_stats("learner-1", now=late_evening_west)

    assert stats.due_today == 1
    cached = cache_backend.get(
        STATS_CACHE_NAMESPACE, ProgressService._stats_key("learner-1", None, date(2026, 3, 11))
    )
    assert cached == stats.as_dict()
