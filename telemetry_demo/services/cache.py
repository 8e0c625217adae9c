from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from telemetry_demo.observability.logging import StructuredLogger

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[K, V]):
    key: K
    value: V
    created_at: float
    expires_at: float


class TTLCache(Generic[K, V]):
    """In-memory key/value store with per-entry TTL (seconds) and hit/miss stats.

    Expired entries are dropped lazily by ``get`` and actively by ``cleanup``.
    There is no size bound: callers that never delete rely on ``cleanup``.
    Given a ``logger``, hits, misses, expiries, sets and deletes are logged at debug.
    """

    def __init__(
        self,
        default_ttl: float = 60.0,
        clock: Callable[[], float] = time.time,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.default_ttl = default_ttl
        self.logger = logger
        self._clock = clock
        self._lock = Lock()
        self._entries: dict[K, CacheEntry[K, V]] = {}
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.deletes = 0

    def _debug(self, message: str, **context: Any) -> None:
        if self.logger is not None:
            self.logger.log("debug", message, context=context)

    def get(self, key: K, default: V | None = None) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                outcome = "Cache miss"
            elif self._clock() >= entry.expires_at:
                self._entries.pop(key, None)
                self.misses += 1
                outcome = "Cache entry expired"
            else:
                self.hits += 1
                outcome = "Cache hit"

        # Log outside the lock.
        self._debug(outcome, key=key)
        if outcome != "Cache hit":
            return default
        return entry.value

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        if ttl is None or ttl <= 0:
            ttl = self.default_ttl
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
            self.sets += 1
        self._debug("Cache set", key=key, ttl=ttl)

    def delete(self, key: K) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.deletes += 1
        if removed:
            self._debug("Cache delete", key=key)
        return removed

    def cleanup(self) -> int:
        """Remove every entry already past its expiry; return how many went."""

        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._reset_stats()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "entries": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": round(self.hits / lookups * 100, 2) if lookups > 0 else 0,
                "sets": self.sets,
                "deletes": self.deletes,
            }


class CacheSweeper:
    """Runs ``cache.cleanup()`` on a fixed interval as an asyncio task."""

    def __init__(self, cache: TTLCache[Any, Any], interval_seconds: float, logger: StructuredLogger) -> None:
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.logger = logger
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.sweep_once()

    def sweep_once(self) -> int:
        try:
            removed = self.cache.cleanup()
        except Exception as exc:  # noqa: BLE001
            # A failed tick only skips this round.
            self.logger.log_error("Cache cleanup failed", exc, {"operation": "cache_cleanup"})
            return 0

        if removed:
            self.logger.log(
                "info",
                "Cache cleanup completed",
                context={"cleaned_entries": removed, "remaining_entries": len(self.cache)},
            )
        return removed
