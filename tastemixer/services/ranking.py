"""Ranking strategies for generated playlists."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any, Awaitable, Callable, Protocol

from tastemixer.errors import CREDENTIAL_ERRORS, HttpError
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.models import Track

__all__ = [
    "AudioFeatureRanking",
    "FeatureLookup",
    "PopularityRanking",
    "RankingStrategy",
]

logger = get_logger(__name__)

FeatureLookup = Callable[[Sequence[str]], Awaitable[Sequence[Mapping[str, Any] | None]]]

SCORE_THRESHOLD = 0.3
FALLBACK_SIZE = 20


class RankingStrategy(Protocol):
    async def rank(
        self, tracks: Sequence[Track], target_features: Mapping[str, float] | None
    ) -> list[Track]:
        ...


class PopularityRanking:
    """Stable sort by descending popularity."""

    async def rank(
        self, tracks: Sequence[Track], target_features: Mapping[str, float] | None = None
    ) -> list[Track]:
        return sorted(tracks, key=lambda track: track.popularity, reverse=True)


class AudioFeatureRanking:
    """Score tracks by closeness of their audio features to the targets.

    Each track scores ``mean(1 - |feature - target|)`` over the requested
    features. Tracks at or below the threshold are dropped; if that empties
    the list the first ``FALLBACK_SIZE`` tracks are returned unscored. Without
    any feature data the input order is kept. When no targets are given, or
    the lookup fails, ranking is delegated to ``fallback``.
    """

    def __init__(
        self,
        lookup: FeatureLookup,
        *,
        fallback: RankingStrategy | None = None,
        threshold: float = SCORE_THRESHOLD,
    ) -> None:
        self._lookup = lookup
        self._fallback = fallback or PopularityRanking()
        self._threshold = threshold

    async def rank(
        self, tracks: Sequence[Track], target_features: Mapping[str, float] | None
    ) -> list[Track]:
        if not target_features or not tracks:
            return await self._fallback.rank(tracks, target_features)
        try:
            features = await self._lookup([track.id for track in tracks])
        except CREDENTIAL_ERRORS:
            raise
        except HttpError as exc:
            log_event(
                logger,
                "ranking.features.unavailable",
                level=logging.WARNING,
                status_code=exc.status_code,
            )
            return await self._fallback.rank(tracks, target_features)

        scored: list[tuple[float, Track]] = []
        any_scored = False
        for track, entry in zip(tracks, features):
            score = _score(entry, target_features) if entry else None
            if score is None:
                continue
            any_scored = True
            if score > self._threshold:
                scored.append((score, track))
        if not any_scored:
            return list(tracks)
        if not scored:
            return list(tracks[:FALLBACK_SIZE])
        scored.sort(key=lambda item: item[0], reverse=True)
        return [track for _, track in scored]


def _score(entry: Mapping[str, Any], targets: Mapping[str, float]) -> float | None:
    distances: list[float] = []
    for name, target in targets.items():
        value = entry.get(name)
        if isinstance(value, (int, float)):
            distances.append(1.0 - abs(float(value) - float(target)))
    if not distances:
        return None
    return sum(distances) / len(distances)
