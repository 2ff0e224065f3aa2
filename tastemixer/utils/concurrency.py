"""Concurrency primitives shared across Taste Mixer services."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

__all__ = ["SingleFlight"]

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Coalesce concurrent calls for the same key into one in-flight task.

    Callers arriving while a task for ``key`` is running await that task's
    outcome (result or exception) instead of starting another one. The slot is
    released as soon as the task settles, so the next call after completion
    starts a fresh operation. A cancelled waiter does not cancel the shared
    task.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task[T]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._execute(key, factory))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _execute(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            self._inflight.pop(key, None)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        keys: list[Any] = list(self._inflight)
        return f"SingleFlight(inflight={keys!r})"
