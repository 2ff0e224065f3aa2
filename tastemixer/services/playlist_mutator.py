"""Persist generated playlists to the user's account."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from tastemixer.core.spotify_client import PLAYLIST_DESCRIPTION, SpotifyCatalog
from tastemixer.errors import CREDENTIAL_ERRORS, HttpError, PlaylistMutationError
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import RemotePlaylist, Track

__all__ = ["PlaylistMutator"]

logger = get_logger(__name__)


class PlaylistMutator:
    """Create a private playlist and attach tracks in one follow-up call.

    When attaching fails after the playlist was created the error carries
    the orphaned playlist id; with ``rollback_on_failure`` the empty playlist
    is unfollowed first.
    """

    def __init__(
        self,
        catalog: SpotifyCatalog,
        *,
        description: str = PLAYLIST_DESCRIPTION,
        rollback_on_failure: bool = False,
    ) -> None:
        self._catalog = catalog
        self._description = description
        self._rollback = rollback_on_failure

    async def create_remote_playlist(
        self,
        user_id: str,
        tracks: Sequence[Track],
        name: str,
    ) -> RemotePlaylist:
        try:
            playlist = await self._catalog.create_playlist(
                user_id, name, description=self._description, public=False
            )
        except CREDENTIAL_ERRORS:
            raise
        except HttpError as exc:
            log_event(
                logger,
                "playlist.create.failed",
                level=logging.ERROR,
                status_code=exc.status_code,
            )
            raise PlaylistMutationError(
                "Error creating playlist", status_code=exc.status_code
            ) from exc

        uris = [track.spotify_uri for track in tracks]
        if uris:
            try:
                await self._catalog.add_tracks_to_playlist(playlist.id, uris)
            except (HttpError, *CREDENTIAL_ERRORS) as exc:
                log_event(
                    logger,
                    "playlist.attach.failed",
                    level=logging.ERROR,
                    playlist_id=playlist.id,
                    track_count=len(uris),
                    status_code=getattr(exc, "status_code", None),
                )
                if self._rollback:
                    await self._rollback_playlist(playlist.id)
                if isinstance(exc, CREDENTIAL_ERRORS):
                    raise
                raise PlaylistMutationError(
                    "Playlist created but tracks could not be added",
                    playlist_id=None if self._rollback else playlist.id,
                    status_code=exc.status_code,
                ) from exc

        log_event(
            logger,
            "playlist.create.completed",
            playlist_id=playlist.id,
            track_count=len(uris),
        )
        return playlist

    async def _rollback_playlist(self, playlist_id: str) -> None:
        try:
            await self._catalog.unfollow_playlist(playlist_id)
        except (HttpError, *CREDENTIAL_ERRORS) as exc:
            log_event(
                logger,
                "playlist.rollback.failed",
                level=logging.WARNING,
                playlist_id=playlist_id,
                error=exc.__class__.__name__,
            )
        else:
            log_event(logger, "playlist.rollback.completed", playlist_id=playlist_id)
