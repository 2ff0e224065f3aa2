"""Favorite tracks persisted in the client state store."""

from __future__ import annotations

import json
import logging

from tastemixer.auth.store import FAVORITES_KEY, StateStore
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import Track

__all__ = ["FavoritesService"]

logger = get_logger(__name__)


class FavoritesService:
    """JSON array of tracks under the ``favorites`` key."""

    def __init__(self, state: StateStore) -> None:
        self._state = state

    def list(self) -> list[Track]:
        raw = self._state.get(FAVORITES_KEY)
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            log_event(logger, "favorites.corrupt", level=logging.WARNING)
            return []
        if not isinstance(payload, list):
            log_event(logger, "favorites.corrupt", level=logging.WARNING)
            return []
        try:
            return Track.from_payloads(payload)
        except (KeyError, TypeError, ValueError):
            log_event(logger, "favorites.corrupt", level=logging.WARNING)
            return []

    def is_favorite(self, track_id: str) -> bool:
        return any(track.id == track_id for track in self.list())

    def toggle(self, track: Track) -> bool:
        """Add or remove ``track``; return whether it is now a favorite."""

        favorites = self.list()
        remaining = [item for item in favorites if item.id != track.id]
        if len(remaining) != len(favorites):
            self._write(remaining)
            log_event(logger, "favorites.removed", track_id=track.id)
            return False
        remaining.append(track)
        self._write(remaining)
        log_event(logger, "favorites.added", track_id=track.id)
        return True

    def remove(self, track_id: str) -> bool:
        favorites = self.list()
        remaining = [item for item in favorites if item.id != track_id]
        if len(remaining) == len(favorites):
            return False
        self._write(remaining)
        return True

    def clear(self) -> None:
        self._state.delete(FAVORITES_KEY)

    def _write(self, tracks: list[Track]) -> None:
        self._state.set(FAVORITES_KEY, json.dumps([track.to_dict() for track in tracks]))
