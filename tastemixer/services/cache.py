"""Time-bounded memoisation of catalog query results."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
import time
from typing import Any, Awaitable, Callable, Mapping

from tastemixer.config import DEFAULT_CACHE_TTL_SECONDS
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event

__all__ = ["CacheEntry", "ResultCache", "make_cache_key"]

logger = get_logger(__name__)

TimeProvider = Callable[[], float]


def make_cache_key(kind: str, params: Any) -> str:
    """Return ``kind`` joined with a stable serialisation of ``params``.

    Mapping keys are sorted so equivalent queries collide regardless of the
    order in which their parameters were assembled. Callers sort list values
    (e.g. artist ids) themselves when order is not significant.
    """

    serialised = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return f"{kind}:{serialised}"


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float

    def is_valid(self, now: float, ttl: float) -> bool:
        return now - self.stored_at < ttl


class ResultCache:
    """In-memory TTL cache; losing it only costs redundant requests.

    Entries are purged lazily on read and by :meth:`sweep`, which the
    background sweeper invokes once per TTL interval. Writers are not
    serialised: the last write for a key wins, which is harmless because a
    cached value depends only on its key.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        time_func: TimeProvider | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._now: TimeProvider = time_func or time.time
        self._entries: dict[str, CacheEntry] = {}
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self._log_operation("miss", key=key)
            return None
        now = self._now()
        if not entry.is_valid(now, self._ttl):
            self._entries.pop(key, None)
            self._log_operation("expired", key=key, age_s=round(now - entry.stored_at, 3))
            return None
        self._log_operation("hit", key=key)
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._now())
        self._log_operation("store", key=key)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self, now: float | None = None) -> int:
        """Remove every expired entry and return how many were dropped."""

        reference = self._now() if now is None else now
        expired = [
            key
            for key, entry in self._entries.items()
            if not entry.is_valid(reference, self._ttl)
        ]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            self._log_operation("sweep", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        *,
        should_store: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Return the cached value for ``key`` or await ``fetch`` and store it."""

        cached = self.get(key)
        if cached is not None:
            return cached
        value = await fetch()
        if value is not None and (should_store is None or should_store(value)):
            self.set(key, value)
        return value

    def start_sweeper(self) -> asyncio.Task[None]:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task = self._sweeper
        self._sweeper = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._ttl)
            self.sweep()

    def _log_operation(self, operation: str, **fields: Any) -> None:
        level = logging.DEBUG if operation in {"hit", "miss", "store"} else logging.INFO
        log_event(logger, f"cache.{operation}", level=level, **fields)

    def snapshot(self) -> Mapping[str, Any]:
        return {"entries": len(self._entries), "ttl_s": self._ttl}
