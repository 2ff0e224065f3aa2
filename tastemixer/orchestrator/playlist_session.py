"""State of the playlist currently displayed to the user."""

from __future__ import annotations

import asyncio
from datetime import date
import logging
from typing import Callable

from tastemixer.core.spotify_client import SpotifyCatalog
from tastemixer.errors import MixerError, PlaylistMutationError
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import FilterPreferences, RemotePlaylist, Track
from tastemixer.orchestrator.generation_queue import (
    DEFAULT_DEBOUNCE_SECONDS,
    GenerationOutcome,
    GenerationQueue,
    SleepFunc,
)
from tastemixer.services.playlist_generator import PlaylistGenerator
from tastemixer.services.playlist_mutator import PlaylistMutator

__all__ = ["PlaylistSession"]

logger = get_logger(__name__)

PLAYLIST_NAME_PREFIX = "Taste Mixer"


class PlaylistSession:
    """Hold the displayed playlist and apply filter changes to it.

    Filter updates are debounced through a :class:`GenerationQueue`; a
    refresh or "add more" request supersedes any pending update so an older
    generation can never overwrite newer state.
    """

    def __init__(
        self,
        generator: PlaylistGenerator,
        mutator: PlaylistMutator,
        catalog: SpotifyCatalog,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        sleep: SleepFunc | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._generator = generator
        self._mutator = mutator
        self._catalog = catalog
        self._queue = GenerationQueue(
            self._generate,
            debounce_seconds=debounce_seconds,
            sleep=sleep or asyncio.sleep,
        )
        self._today = today
        self._preferences = FilterPreferences()
        self._tracks: list[Track] = []
        self.last_error: str | None = None

    @property
    def preferences(self) -> FilterPreferences:
        return self._preferences

    @property
    def tracks(self) -> list[Track]:
        return list(self._tracks)

    @property
    def track_ids(self) -> list[str]:
        return [track.id for track in self._tracks]

    async def _generate(self, preferences: FilterPreferences) -> list[Track]:
        return await self._generator.generate(preferences)

    async def update_filters(self, preferences: FilterPreferences) -> GenerationOutcome | None:
        self._preferences = preferences
        if not preferences.has_seeds:
            ticket = self._queue.supersede()
            self._tracks = []
            self.last_error = None
            return GenerationOutcome(ticket=ticket)
        outcome = await self._queue.submit(preferences)
        if outcome is not None:
            self._apply(outcome, replace=True)
        return outcome

    async def refresh(self) -> GenerationOutcome:
        """Regenerate with the current filters, avoiding the displayed tracks."""

        ticket = self._queue.supersede()
        if not self._preferences.has_seeds:
            return GenerationOutcome(ticket=ticket, tracks=tuple(self._tracks))
        try:
            tracks = await self._generator.generate(
                self._preferences, self.track_ids, force_refresh=True
            )
        except MixerError as exc:
            outcome = GenerationOutcome(ticket=ticket, error=exc)
        else:
            outcome = GenerationOutcome(ticket=ticket, tracks=tuple(tracks))
        if self._queue.is_current(ticket):
            self._apply(outcome, replace=True)
        return outcome

    async def add_more(self, count: int | None = None) -> GenerationOutcome:
        """Append fresh tracks that are not already displayed."""

        ticket = self._queue.supersede()
        if not self._preferences.has_seeds:
            return GenerationOutcome(ticket=ticket)
        try:
            tracks = await self._generator.generate_more(self._preferences, self.track_ids, count)
        except MixerError as exc:
            outcome = GenerationOutcome(ticket=ticket, error=exc)
        else:
            outcome = GenerationOutcome(ticket=ticket, tracks=tuple(tracks))
        if self._queue.is_current(ticket):
            self._apply(outcome, replace=False)
        return outcome

    def remove_track(self, track_id: str) -> bool:
        remaining = [track for track in self._tracks if track.id != track_id]
        removed = len(remaining) != len(self._tracks)
        self._tracks = remaining
        return removed

    def default_playlist_name(self) -> str:
        return f"{PLAYLIST_NAME_PREFIX} - {self._today().isoformat()}"

    async def save_to_spotify(self, name: str | None = None) -> RemotePlaylist:
        if not self._tracks:
            raise PlaylistMutationError("There are no tracks to save")
        profile = await self._catalog.current_user()
        user_id = profile.get("id")
        if not user_id:
            raise PlaylistMutationError("Could not determine the current user")
        playlist = await self._mutator.create_remote_playlist(
            str(user_id), list(self._tracks), name or self.default_playlist_name()
        )
        log_event(logger, "session.saved", playlist_id=playlist.id, track_count=len(self._tracks))
        return playlist

    def _apply(self, outcome: GenerationOutcome, *, replace: bool) -> None:
        if not outcome.ok:
            self.last_error = outcome.user_message
            log_event(
                logger,
                "session.generation.failed",
                level=logging.WARNING,
                ticket=outcome.ticket,
            )
            return
        self.last_error = None
        if replace:
            self._tracks = list(outcome.tracks)
        else:
            self._tracks.extend(outcome.tracks)
