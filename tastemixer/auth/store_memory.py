"""In-memory state store for tests and single-process sessions."""

from __future__ import annotations

from threading import Lock
from typing import Iterable, Mapping

from .store import StateStore

__all__ = ["MemoryStateStore"]


class MemoryStateStore(StateStore):
    """Thread-safe in-memory implementation of :class:`StateStore`."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = str(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._values)

    def describe(self) -> dict[str, object]:
        return {"backend": "memory", "entries": len(self._values)}
