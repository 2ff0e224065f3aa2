"""Bounded retry helpers for outbound calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryDirective:
    """Instruction returned from ``classify_err`` for ``with_retry``."""

    retry: bool
    delay_override_ms: int | None = None
    error: Exception | None = None


AsyncFactory = Callable[[], Awaitable[T]]
Classifier = Callable[[Exception], RetryDirective | bool]
RetryHook = Callable[[int, Exception, int], None]


def fixed_backoff_delays(base_ms: int, max_attempts: int) -> list[int]:
    """Return a constant backoff schedule of ``max_attempts`` delays."""

    return [max(0, int(base_ms))] * max(0, int(max_attempts))


def _resolve_directive(result: RetryDirective | bool, error: Exception) -> RetryDirective:
    if isinstance(result, RetryDirective):
        resolved_error = result.error if result.error is not None else error
        return RetryDirective(
            retry=bool(result.retry),
            delay_override_ms=(
                max(0, int(result.delay_override_ms))
                if result.delay_override_ms is not None
                else None
            ),
            error=resolved_error,
        )
    if isinstance(result, bool):
        return RetryDirective(retry=result, error=error, delay_override_ms=None)
    msg = "classify_err must return a boolean or RetryDirective"
    raise TypeError(msg)


async def with_retry(
    async_fn: AsyncFactory[T],
    *,
    attempts: int,
    base_ms: int,
    classify_err: Classifier,
    on_retry: RetryHook | None = None,
) -> T:
    """Execute ``async_fn`` at most ``attempts`` times.

    Each failure is passed to ``classify_err``; a non-retryable directive, or
    an exhausted budget, re-raises the (possibly substituted) error. Retries
    wait ``base_ms`` unless the directive carries ``delay_override_ms``.
    Waits use :func:`asyncio.sleep` so concurrent callers are never blocked.
    """

    max_attempts = max(1, int(attempts))
    delays = fixed_backoff_delays(base_ms, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            return await async_fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            directive = _resolve_directive(classify_err(exc), exc)
            should_retry = directive.retry and attempt < max_attempts
            if not should_retry:
                if directive.error is exc:
                    raise
                raise directive.error from exc

            delay_ms = directive.delay_override_ms
            if delay_ms is None:
                delay_ms = delays[attempt - 1]
            if on_retry is not None:
                on_retry(attempt, exc, delay_ms)
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000.0)
    # ``for`` loop must return or raise before reaching here.
    raise RuntimeError("Retry loop exited unexpectedly")


__all__ = [
    "RetryDirective",
    "fixed_backoff_delays",
    "with_retry",
]
