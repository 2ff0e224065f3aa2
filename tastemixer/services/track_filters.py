"""Pure filtering steps applied to generated candidate tracks."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from tastemixer.models import Track

__all__ = ["dedupe_tracks", "filter_by_decades", "filter_by_popularity"]


def filter_by_decades(tracks: Iterable[Track], decades: Sequence[int]) -> list[Track]:
    """Keep tracks released in ``[decade, decade + 10)`` for any selected decade.

    Tracks without a parseable release year are dropped while a decade filter
    is active. An empty ``decades`` disables the filter.
    """

    if not decades:
        return list(tracks)
    kept: list[Track] = []
    for track in tracks:
        year = track.release_year
        if year is None:
            continue
        if any(start <= year < start + 10 for start in decades):
            kept.append(track)
    return kept


def filter_by_popularity(
    tracks: Iterable[Track], popularity_range: tuple[int, int] | None
) -> list[Track]:
    if popularity_range is None:
        return list(tracks)
    low, high = popularity_range
    return [track for track in tracks if low <= track.popularity <= high]


def dedupe_tracks(tracks: Iterable[Track], exclude_ids: Iterable[str] = ()) -> list[Track]:
    """Return first occurrences in discovery order, skipping excluded ids."""

    seen: set[str] = set(exclude_ids)
    unique: list[Track] = []
    for track in tracks:
        if track.id in seen:
            continue
        seen.add(track.id)
        unique.append(track)
    return unique
