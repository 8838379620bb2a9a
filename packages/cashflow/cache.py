"""In-process insight cache keyed by user.

Entries hold an :class:`~cashflow.models.InsightResult` together with the
time it was stored. An entry is stale once ``now - created_at >= ttl``; stale
entries are dropped lazily on ``get``. Writes are last-write-wins.

The clock is injectable so expiry can be tested without sleeping.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .logging_setup import get_logger
from .models import InsightResult

DEFAULT_TTL = dt.timedelta(hours=24)

type Clock = Callable[[], dt.datetime]

_logger = get_logger("cashflow.cache")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    result: InsightResult
    created_at: dt.datetime


class InsightCache:
    """Thread-safe mapping of ``user_key -> CacheEntry`` with a fixed TTL."""

    def __init__(self, ttl: dt.timedelta = DEFAULT_TTL, clock: Clock = _utcnow) -> None:
        if ttl <= dt.timedelta(0):
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> dt.timedelta:
        return self._ttl

    def get(self, user_key: str) -> InsightResult | None:
        """Return the fresh cached result for ``user_key`` marked ``cached=True``."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(user_key)
            if entry is None:
                return None
            if now - entry.created_at >= self._ttl:
                del self._entries[user_key]
                _logger.debug("cache:expired user_key=%s", user_key)
                return None
        return dataclasses.replace(entry.result, cached=True)

    def put(self, user_key: str, result: InsightResult) -> None:
        entry = CacheEntry(result=dataclasses.replace(result, cached=False), created_at=self._clock())
        with self._lock:
            self._entries[user_key] = entry

    def clear(self, user_key: str | None = None) -> None:
        """Drop one user's entry, or every entry when ``user_key`` is ``None``."""

        with self._lock:
            if user_key is None:
                self._entries.clear()
            else:
                self._entries.pop(user_key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_cache: InsightCache | None = None
_default_lock = threading.Lock()


def get_insight_cache() -> InsightCache:
    """Return the process-wide cache, created on first use from settings."""

    global _default_cache
    with _default_lock:
        if _default_cache is None:
            from .config import load_settings

            _default_cache = InsightCache(ttl=load_settings().insight_ttl)
        return _default_cache


__all__ = ["CacheEntry", "DEFAULT_TTL", "InsightCache", "get_insight_cache"]
