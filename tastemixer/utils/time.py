"""Clock helpers used for token expiry and cache bookkeeping."""

from __future__ import annotations

from typing import Callable
import time as _time

__all__ = ["Clock", "now_ms", "now_s"]

Clock = Callable[[], float]


def now_s() -> float:
    """Return the current UNIX timestamp in seconds."""

    return _time.time()


def now_ms() -> int:
    """Return the current UNIX timestamp in milliseconds."""

    return int(_time.time() * 1000)
