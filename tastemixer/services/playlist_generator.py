"""Fan-out playlist generation over artist and genre seeds."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
import logging
import random
from typing import Any

from tastemixer.config import GeneratorConfig
from tastemixer.core.spotify_client import SpotifyCatalog
from tastemixer.errors import CREDENTIAL_ERRORS, GenerationError, HttpError
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import Artist, FilterPreferences, Track
from tastemixer.services.cache import ResultCache, make_cache_key
from tastemixer.services.ranking import PopularityRanking, RankingStrategy
from tastemixer.services.track_filters import (
    dedupe_tracks,
    filter_by_decades,
    filter_by_popularity,
)

__all__ = ["PlaylistGenerator"]

logger = get_logger(__name__)


class PlaylistGenerator:
    """Build ranked playlists from the user's filter preferences.

    Artist and genre branches run concurrently. A failing artist or genre
    contributes no tracks instead of failing its siblings; credential errors
    always propagate and any other failure of the pipeline as a whole is
    raised as :class:`GenerationError`.
    """

    def __init__(
        self,
        catalog: SpotifyCatalog,
        cache: ResultCache,
        *,
        config: GeneratorConfig | None = None,
        ranking: RankingStrategy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._catalog = catalog
        self._cache = cache
        self._config = config or GeneratorConfig()
        self._ranking: RankingStrategy = ranking or PopularityRanking()
        self._rng = rng or random.Random()

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    async def resolve_market(self) -> str:
        return await self._catalog.user_market(self._config.default_market)

    async def generate(
        self,
        preferences: FilterPreferences,
        exclude_ids: Iterable[str] = (),
        *,
        force_refresh: bool = False,
    ) -> list[Track]:
        """Return up to ``max_tracks`` unique tracks sorted by popularity.

        With ``force_refresh`` the caller passes the ids currently on display
        as ``exclude_ids`` so the new playlist is disjoint from the old one.
        """

        excluded = set(exclude_ids)
        try:
            market = await self.resolve_market()
            artist_tracks, genre_tracks = await asyncio.gather(
                self._artist_branch(preferences.artists, market),
                self._genre_branch(preferences.genres),
            )
            candidates = [*artist_tracks, *genre_tracks]
            used_fallback = not candidates
            if used_fallback:
                candidates = await self._fallback_candidates()

            filtered = filter_by_decades(candidates, preferences.decades)
            filtered = filter_by_popularity(filtered, preferences.popularity_range)
            unique = dedupe_tracks(filtered, excluded)
            ranked = await self._ranking.rank(unique, preferences.audio_features)
        except CREDENTIAL_ERRORS:
            raise
        except HttpError as exc:
            log_event(
                logger,
                "generator.failed",
                level=logging.ERROR,
                status_code=exc.status_code,
                error_code=exc.code.value,
            )
            raise GenerationError() from exc
        except Exception as exc:
            logger.exception("Unexpected error while generating playlist")
            raise GenerationError() from exc

        playlist = ranked[: self._config.max_tracks]
        log_event(
            logger,
            "generator.completed",
            market=market,
            candidates=len(candidates),
            unique=len(unique),
            returned=len(playlist),
            excluded=len(excluded),
            fallback=used_fallback,
            force_refresh=force_refresh,
        )
        return playlist

    async def generate_more(
        self,
        preferences: FilterPreferences,
        exclude_ids: Iterable[str],
        count: int | None = None,
    ) -> list[Track]:
        """Return up to ``count`` fresh tracks in random order.

        Artists are expanded through related artists, falling back to a
        search on the artist name at a random offset; genres are searched at
        one random offset shared by every genre of the call.
        """

        limit = self._config.more_count if count is None else max(0, int(count))
        excluded = set(exclude_ids)
        if limit == 0 or not preferences.has_seeds:
            return []
        try:
            market = await self.resolve_market()
            genre_offset = self._rng.randrange(max(1, self._config.genre_offset_ceiling))
            artist_batches, genre_batches = await asyncio.gather(
                asyncio.gather(
                    *(self._more_from_artist(artist, market) for artist in preferences.artists)
                ),
                asyncio.gather(
                    *(
                        self._isolated(
                            "genre",
                            genre,
                            lambda genre=genre: self._search_genre(
                                genre,
                                limit=self._config.more_search_limit,
                                offset=genre_offset,
                            ),
                        )
                        for genre in preferences.genres
                    )
                ),
            )
            candidates = _flatten(artist_batches) + _flatten(
                tracks for _, tracks in genre_batches
            )
            filtered = filter_by_decades(candidates, preferences.decades)
            filtered = filter_by_popularity(filtered, preferences.popularity_range)
            unique = dedupe_tracks(filtered, excluded)
        except CREDENTIAL_ERRORS:
            raise
        except HttpError as exc:
            raise GenerationError("Error generating more tracks") from exc
        except Exception as exc:
            logger.exception("Unexpected error while generating more tracks")
            raise GenerationError("Error generating more tracks") from exc

        self._rng.shuffle(unique)
        selection = unique[:limit]
        log_event(
            logger,
            "generator.more.completed",
            candidates=len(candidates),
            unique=len(unique),
            returned=len(selection),
            genre_offset=genre_offset,
        )
        return selection

    async def _artist_branch(self, artists: Sequence[Artist], market: str) -> list[Track]:
        artist_ids = [artist.id for artist in artists if artist.id]
        if not artist_ids:
            return []
        key = make_cache_key("artists", {"ids": sorted(artist_ids), "market": market})
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        results = await asyncio.gather(
            *(
                self._isolated(
                    "artist",
                    artist_id,
                    lambda artist_id=artist_id: self._catalog.artist_top_tracks(
                        artist_id, market=market
                    ),
                )
                for artist_id in artist_ids
            )
        )
        tracks: list[Track] = []
        complete = True
        for ok, batch in results:
            complete = complete and ok
            tracks.extend(batch)
        if complete:
            self._cache.set(key, tuple(tracks))
        return tracks

    async def _genre_branch(self, genres: Sequence[str]) -> list[Track]:
        if not genres:
            return []

        async def _cached_genre(genre: str) -> list[Track]:
            key = make_cache_key("genre", {"genre": genre})
            cached = await self._cache.get_or_fetch(
                key,
                lambda: self._search_genre(genre, limit=self._config.search_limit),
                should_store=bool,
            )
            return list(cached)

        results = await asyncio.gather(
            *(
                self._isolated("genre", genre, lambda genre=genre: _cached_genre(genre))
                for genre in genres
            )
        )
        return _flatten(batch for _, batch in results)

    async def _search_genre(self, genre: str, *, limit: int, offset: int = 0) -> list[Track]:
        query = self._catalog.build_search_query(genre=genre)
        tracks = await self._catalog.search_tracks(query, limit=limit, offset=offset)
        if tracks:
            return tracks
        return await self._catalog.search_tracks(genre, limit=limit, offset=offset)

    async def _fallback_candidates(self) -> list[Track]:
        key = make_cache_key("fallback", {"q": self._config.fallback_query})
        return list(
            await self._cache.get_or_fetch(
                key,
                lambda: self._catalog.search_tracks(
                    self._config.fallback_query, limit=self._config.search_limit
                ),
                should_store=bool,
            )
        )

    async def _more_from_artist(self, artist: Artist, market: str) -> list[Track]:
        tracks: list[Track] = []
        if artist.id:
            _, related = await self._isolated(
                "related_artists", artist.id, lambda: self._catalog.related_artists(artist.id)
            )
            picked = [item for item in related if item.id][: self._config.related_artist_limit]
            batches = await asyncio.gather(
                *(
                    self._isolated(
                        "artist",
                        item.id,
                        lambda item=item: self._catalog.artist_top_tracks(item.id, market=market),
                    )
                    for item in picked
                )
            )
            tracks = _flatten(batch for _, batch in batches)
        if tracks or not artist.name:
            return tracks

        offset = self._rng.randrange(max(1, self._config.artist_offset_ceiling))
        query = self._catalog.build_search_query(artist=artist.name)
        _, tracks = await self._isolated(
            "artist_search",
            artist.id or artist.name,
            lambda: self._catalog.search_tracks(
                query, limit=self._config.more_search_limit, offset=offset
            ),
        )
        return tracks

    async def _isolated(
        self,
        branch: str,
        label: str,
        fetch: Callable[[], Awaitable[Any]],
    ) -> tuple[bool, list[Any]]:
        """Run one fan-out fetch, turning non-credential failures into ``[]``."""

        try:
            return True, list(await fetch())
        except CREDENTIAL_ERRORS:
            raise
        except HttpError as exc:
            log_event(
                logger,
                "generator.branch.failed",
                level=logging.WARNING,
                branch=branch,
                label=label,
                status_code=exc.status_code,
                error_code=exc.code.value,
            )
            return False, []


def _flatten(batches: Iterable[Iterable[Track]]) -> list[Track]:
    return [track for batch in batches for track in batch]
