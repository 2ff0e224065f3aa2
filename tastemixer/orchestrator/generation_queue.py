"""Debounced, superseding execution of playlist generation requests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, Sequence

from tastemixer.errors import MixerError
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import FilterPreferences, Track

__all__ = ["GenerationOutcome", "GenerationQueue"]

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0

GenerationRunner = Callable[[FilterPreferences], Awaitable[Sequence[Track]]]
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class GenerationOutcome:
    ticket: int
    tracks: tuple[Track, ...] = ()
    error: MixerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def user_message(self) -> str | None:
        return self.error.user_message if self.error is not None else None


class GenerationQueue:
    """Run only the newest of rapidly submitted generation requests.

    Every :meth:`submit` takes a new ticket and waits for the debounce
    delay. A ticket that has been superseded by then returns ``None``
    without generating; a ticket superseded while generating has its result
    discarded and also returns ``None``. Callers apply only non-``None``
    outcomes to displayed state.
    """

    def __init__(
        self,
        runner: GenerationRunner,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._runner = runner
        self._debounce = max(0.0, float(debounce_seconds))
        self._sleep = sleep
        self._ticket = 0

    @property
    def latest_ticket(self) -> int:
        return self._ticket

    def supersede(self) -> int:
        """Invalidate every pending submission and return the new ticket."""

        self._ticket += 1
        return self._ticket

    def is_current(self, ticket: int) -> bool:
        return ticket == self._ticket

    async def submit(self, preferences: FilterPreferences) -> GenerationOutcome | None:
        ticket = self.supersede()
        if self._debounce:
            await self._sleep(self._debounce)
        if not self.is_current(ticket):
            log_event(logger, "generation.superseded", level=logging.DEBUG, ticket=ticket)
            return None

        try:
            tracks = await self._runner(preferences)
        except MixerError as exc:
            outcome = GenerationOutcome(ticket=ticket, error=exc)
            log_event(
                logger,
                "generation.failed",
                level=logging.WARNING,
                ticket=ticket,
                error_code=exc.code.value,
            )
        else:
            outcome = GenerationOutcome(ticket=ticket, tracks=tuple(tracks))

        if not self.is_current(ticket):
            log_event(logger, "generation.discarded", level=logging.DEBUG, ticket=ticket)
            return None
        return outcome
