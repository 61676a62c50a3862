"""Response cache with an in-process store and optional Redis mirror.

Entries are JSON documents addressed by ``namespace:key``. Keys that start with
a learner identifier followed by ``:`` can be dropped together with
:meth:`CacheBackend.invalidate` and ``prefix=f"{learner_id}:"``.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Iterator

from loguru import logger

from vocab_srs.config import settings


def _encode(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value)!r} is not JSON serializable")


def build_cache_key(**components: Any) -> str:
    """Digest of ``components``; argument order and set ordering do not matter."""

    payload = json.dumps(components, sort_keys=True, default=_encode)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


_redis_module = None
if importlib.util.find_spec("redis") is not None:
    _redis_module = importlib.import_module("redis")


@dataclass(slots=True)
class _Entry:
    payload: str
    expires_at: float

    @property
    def expired(self) -> bool:
        return self.expires_at < time.monotonic()


class CacheBackend:
    """TTL cache; Redis is used when configured and dropped after its first error."""

    def __init__(self, redis_url: str | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._redis = None
        if redis_url and _redis_module is not None:
            self._redis = _redis_module.Redis.from_url(redis_url, decode_responses=True)

    def _redis_call(self, operation: str, *args: Any) -> Any:
        if self._redis is None:
            return None
        try:
            return getattr(self._redis, operation)(*args)
        except Exception as exc:
            self._disable_redis(operation, exc)
            return None

    def _disable_redis(self, operation: str, exc: Exception) -> None:
        logger.warning("Redis cache disabled after error", operation=operation, error=str(exc))
        self._redis = None

    def _redis_matching(self, pattern: str) -> list[str]:
        if self._redis is None:
            return []
        try:
            return list(self._redis.scan_iter(match=pattern))
        except Exception as exc:
            self._disable_redis("scan_iter", exc)
            return []

    def _matching(self, prefix: str) -> Iterator[str]:
        return (name for name in list(self._entries) if name.startswith(prefix))

    def get(self, namespace: str, key: str) -> Any | None:
        name = f"{namespace}:{key}"
        remote = self._redis_call("get", name)
        if remote is not None:
            return json.loads(remote)
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return None
            if entry.expired:
                del self._entries[name]
                return None
            return json.loads(entry.payload)

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` for ``ttl_seconds``; a non-positive TTL disables caching."""

        if ttl_seconds <= 0:
            return
        name = f"{namespace}:{key}"
        payload = json.dumps(value, default=_encode)
        self._redis_call("set", name, payload, ttl_seconds)
        with self._lock:
            self._entries[name] = _Entry(payload=payload, expires_at=time.monotonic() + ttl_seconds)

    def invalidate(self, namespace: str, *, key: str | None = None, prefix: str | None = None) -> None:
        """Drop one entry (``key``) or every entry whose key starts with ``prefix``."""

        if key is not None:
            name = f"{namespace}:{key}"
            self._redis_call("delete", name)
            with self._lock:
                self._entries.pop(name, None)
            return
        if prefix is None:
            return

        pattern = f"{namespace}:{prefix}"
        remote_keys = self._redis_matching(f"{pattern}*")
        if remote_keys:
            self._redis_call("delete", *remote_keys)
        with self._lock:
            for name in self._matching(pattern):
                del self._entries[name]

    def clear(self) -> None:
        """Reset the in-process store; used by tests."""

        with self._lock:
            self._entries.clear()


cache_backend = CacheBackend(str(settings.REDIS_URL) if settings.REDIS_URL else None)


__all__ = ["cache_backend", "CacheBackend", "build_cache_key"]
