"""Tests for the in-process response cache."""
from __future__ import annotations

from datetime import date
from fnmatch import fnmatch

from vocab_srs.utils.cache import CacheBackend, build_cache_key


def test_cache_key_ignores_argument_order() -> None:
    first = build_cache_key(levels=[4, 5], today=date(2026, 3, 10))
    second = build_cache_key(today=date(2026, 3, 10), levels=[4, 5])

    assert first == second
    assert first != build_cache_key(levels=[5], today=date(2026, 3, 10))


def test_prefix_invalidation_only_drops_matching_learner() -> None:
    cache = CacheBackend()
    cache.set("stats", "learner-1:a", {"new": 1}, ttl_seconds=60)
    cache.set("stats", "learner-1:b", {"new": 2}, ttl_seconds=60)
    cache.set("stats", "learner-10:a", {"new": 3}, ttl_seconds=60)

    cache.invalidate("stats", prefix="learner-1:")

    assert cache.get("stats", "learner-1:a") is None
    assert cache.get("stats", "learner-1:b") is None
    assert cache.get("stats", "learner-10:a") == {"new": 3}


def test_non_positive_ttl_disables_caching() -> None:
    cache = CacheBackend()
    cache.set("stats", "key", {"new": 1}, ttl_seconds=0)

    assert cache.get("stats", "key") is None


class FakeRedis:
    """Minimal client with the commands the cache uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.scanned: list[str] = []

    def get(self, name):
        return self.values.get(name)

    def set(self, name, value, ex=None):
        self.values[name] = value

    def delete(self, *names):
        for name in names:
            self.values.pop(name, None)

    def scan_iter(self, match=None):
        self.scanned.append(match)
        return iter([name for name in list(self.values) if fnmatch(name, match)])


def test_prefix_invalidation_scans_redis_keys() -> None:
    cache = CacheBackend()
    cache._redis = FakeRedis()
    cache.set("stats", "learner-1:a", {"new": 1}, ttl_seconds=60)
    cache.set("stats", "learner-10:a", {"new": 3}, ttl_seconds=60)

    cache.invalidate("stats", prefix="learner-1:")

    assert cache._redis.scanned == ["stats:learner-1:*"]
    assert set(cache._redis.values) == {"stats:learner-10:a"}
