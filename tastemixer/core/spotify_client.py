"""Typed wrappers over the catalog endpoints used by Taste Mixer."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any, Dict, List, Optional

from tastemixer.errors import CREDENTIAL_ERRORS, HttpError
from tastemixer.integrations.request_gateway import RequestGateway
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import Artist, RemotePlaylist, Track
from tastemixer.services.cache import ResultCache, make_cache_key

__all__ = ["AUDIO_FEATURES_BATCH_SIZE", "SpotifyCatalog"]

logger = get_logger(__name__)

AUDIO_FEATURES_BATCH_SIZE = 50
PLAYLIST_DESCRIPTION = "Created with Spotify Taste Mixer"


class SpotifyCatalog:
    """Catalog operations routed through the :class:`RequestGateway`."""

    def __init__(self, gateway: RequestGateway, cache: ResultCache | None = None) -> None:
        self._gateway = gateway
        self._cache = cache

    @property
    def gateway(self) -> RequestGateway:
        return self._gateway

    @staticmethod
    def _format_query_field(field: str, value: Optional[str]) -> str:
        if not value:
            return ""
        value = str(value).strip()
        if not value:
            return ""
        if " " in value:
            return f'{field}:"{value}"'
        return f"{field}:{value}"

    def build_search_query(
        self,
        query: str = "",
        *,
        genre: Optional[str] = None,
        artist: Optional[str] = None,
        year_from: Optional[int] = None,
        year_to: Optional[int] = None,
    ) -> str:
        terms = [query.strip() if query else ""]
        terms.append(self._format_query_field("genre", genre))
        terms.append(self._format_query_field("artist", artist))
        if year_from is not None and year_to is not None:
            terms.append(f"year:{year_from}-{year_to}")
        elif year_from is not None:
            terms.append(f"year:{year_from}-")
        elif year_to is not None:
            terms.append(f"year:-{year_to}")
        return " ".join(term for term in terms if term)

    async def current_user(self) -> Dict[str, Any]:
        payload = await self._gateway.call("/me")
        return payload if isinstance(payload, dict) else {}

    async def user_market(self, default: str) -> str:
        """Return the user's country, or ``default`` when the lookup fails.

        Credential failures still propagate; everything else degrades.
        """

        try:
            profile = await self.current_user()
        except CREDENTIAL_ERRORS:
            raise
        except HttpError as exc:
            log_event(
                logger,
                "catalog.market.fallback",
                level=logging.WARNING,
                status_code=exc.status_code,
                market=default,
            )
            return default
        country = profile.get("country")
        return str(country) if country else default

    async def search_tracks(self, query: str, *, limit: int = 50, offset: int = 0) -> List[Track]:
        payload = await self._gateway.call(
            "/search",
            params={"q": query, "type": "track", "limit": limit, "offset": offset},
        )
        items = ((payload or {}).get("tracks") or {}).get("items") or []
        return Track.from_payloads(items)

    async def search_artists(self, query: str, *, limit: int = 10) -> List[Artist]:
        term = (query or "").strip()
        if len(term) < 2:
            return []

        async def _fetch() -> List[Artist]:
            payload = await self._gateway.call(
                "/search",
                params={"q": term, "type": "artist", "limit": limit},
            )
            items = ((payload or {}).get("artists") or {}).get("items") or []
            return [Artist.from_payload(item) for item in items if isinstance(item, dict)]

        if self._cache is None:
            return await _fetch()
        key = make_cache_key("search_artists", {"q": term, "limit": limit})
        return await self._cache.get_or_fetch(key, _fetch)

    async def artist_top_tracks(self, artist_id: str, *, market: str) -> List[Track]:
        payload = await self._gateway.call(
            f"/artists/{artist_id}/top-tracks", params={"market": market}
        )
        return Track.from_payloads((payload or {}).get("tracks") or [])

    async def related_artists(self, artist_id: str) -> List[Artist]:
        payload = await self._gateway.call(f"/artists/{artist_id}/related-artists")
        items = (payload or {}).get("artists") or []
        return [Artist.from_payload(item) for item in items if isinstance(item, dict)]

    async def audio_features(self, track_ids: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        """Return features index-aligned with ``track_ids``.

        Batches are requested one after another so the concatenated result
        keeps the input order; missing entries are ``None``.
        """

        features: List[Optional[Dict[str, Any]]] = []
        ids = list(track_ids)
        for start in range(0, len(ids), AUDIO_FEATURES_BATCH_SIZE):
            batch = ids[start : start + AUDIO_FEATURES_BATCH_SIZE]
            payload = await self._gateway.call(
                "/audio-features", params={"ids": ",".join(batch)}
            )
            entries = (payload or {}).get("audio_features") or []
            for index in range(len(batch)):
                entry = entries[index] if index < len(entries) else None
                features.append(entry if isinstance(entry, dict) else None)
        return features

    async def track_features(self, track_id: str) -> Optional[Dict[str, Any]]:
        payload = await self._gateway.call(f"/audio-features/{track_id}")
        return payload if isinstance(payload, dict) else None

    async def available_genre_seeds(self) -> List[str]:
        async def _fetch() -> List[str]:
            payload = await self._gateway.call("/recommendations/available-genre-seeds")
            genres = (payload or {}).get("genres") or []
            return [str(genre) for genre in genres]

        if self._cache is None:
            return await _fetch()
        return await self._cache.get_or_fetch(make_cache_key("genres", {}), _fetch)

    async def create_playlist(
        self,
        user_id: str,
        name: str,
        *,
        description: str = PLAYLIST_DESCRIPTION,
        public: bool = False,
    ) -> RemotePlaylist:
        payload = await self._gateway.call(
            f"/users/{user_id}/playlists",
            method="POST",
            json={"name": name, "description": description, "public": public},
        )
        if not isinstance(payload, dict) or not payload.get("id"):
            raise HttpError(502, "Playlist creation returned no id", url=f"/users/{user_id}/playlists")
        return RemotePlaylist.from_payload(payload)

    async def add_tracks_to_playlist(self, playlist_id: str, uris: Sequence[str]) -> Dict[str, Any]:
        payload = await self._gateway.call(
            f"/playlists/{playlist_id}/tracks",
            method="POST",
            json={"uris": list(uris)},
        )
        return payload if isinstance(payload, dict) else {}

    async def unfollow_playlist(self, playlist_id: str) -> None:
        await self._gateway.call(f"/playlists/{playlist_id}/followers", method="DELETE")
