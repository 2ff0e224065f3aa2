"""Domain models shared by the generator, favorites and playlist mutator."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "Album",
    "Artist",
    "FilterPreferences",
    "RemotePlaylist",
    "Track",
]


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _image_urls(payload: Any) -> tuple[str, ...]:
    if not isinstance(payload, list):
        return ()
    urls: list[str] = []
    for entry in payload:
        if isinstance(entry, Mapping) and entry.get("url"):
            urls.append(str(entry["url"]))
        elif isinstance(entry, str) and entry:
            urls.append(entry)
    return tuple(urls)


def _external_url(payload: Mapping[str, Any]) -> str | None:
    urls = payload.get("external_urls")
    if isinstance(urls, Mapping) and urls.get("spotify"):
        return str(urls["spotify"])
    return None


@dataclass(slots=True, frozen=True)
class Artist:
    """Artist reference as selected in the filters or attached to a track."""

    id: str | None
    name: str
    genres: tuple[str, ...] = ()
    popularity: int | None = None
    images: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Artist:
        genres = payload.get("genres")
        popularity = payload.get("popularity")
        return cls(
            id=str(payload["id"]) if payload.get("id") else None,
            name=str(payload.get("name") or ""),
            genres=tuple(str(g) for g in genres) if isinstance(genres, list) else (),
            popularity=_as_int(popularity) if popularity is not None else None,
            images=_image_urls(payload.get("images")),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.genres:
            payload["genres"] = list(self.genres)
        if self.popularity is not None:
            payload["popularity"] = self.popularity
        if self.images:
            payload["images"] = [{"url": url} for url in self.images]
        return payload


@dataclass(slots=True, frozen=True)
class Album:
    name: str = ""
    release_date: str | None = None
    images: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> Album:
        if not isinstance(payload, Mapping):
            return cls()
        release_date = payload.get("release_date")
        return cls(
            name=str(payload.get("name") or ""),
            release_date=str(release_date) if release_date else None,
            images=_image_urls(payload.get("images")),
        )

    @property
    def release_year(self) -> int | None:
        """Year parsed from ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD`` dates."""

        if not self.release_date:
            return None
        head = self.release_date.strip()[:4]
        if len(head) != 4 or not head.isdigit():
            return None
        return int(head)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "release_date": self.release_date,
            "images": [{"url": url} for url in self.images],
        }


@dataclass(slots=True, frozen=True)
class Track:
    """Catalog track; two tracks with the same ``id`` are the same track."""

    id: str
    name: str
    artists: tuple[Artist, ...] = ()
    album: Album = field(default_factory=Album)
    duration_ms: int = 0
    popularity: int = 0
    explicit: bool = False
    preview_url: str | None = None
    external_url: str | None = None
    uri: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Track:
        artists = payload.get("artists")
        preview = payload.get("preview_url")
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            artists=tuple(
                Artist.from_payload(entry) for entry in artists if isinstance(entry, Mapping)
            )
            if isinstance(artists, list)
            else (),
            album=Album.from_payload(payload.get("album")),
            duration_ms=_as_int(payload.get("duration_ms")),
            popularity=max(0, min(100, _as_int(payload.get("popularity")))),
            explicit=bool(payload.get("explicit", False)),
            preview_url=str(preview) if preview else None,
            external_url=_external_url(payload),
            uri=str(payload["uri"]) if payload.get("uri") else None,
        )

    @classmethod
    def from_payloads(cls, payloads: Iterable[Any]) -> list[Track]:
        """Parse a list of payloads, skipping ``null`` entries and ones without id."""

        tracks: list[Track] = []
        for payload in payloads or ():
            if isinstance(payload, Mapping) and payload.get("id"):
                tracks.append(cls.from_payload(payload))
        return tracks

    @property
    def release_year(self) -> int | None:
        return self.album.release_year

    @property
    def spotify_uri(self) -> str:
        return self.uri or f"spotify:track:{self.id}"

    @property
    def artist_names(self) -> str:
        return ", ".join(artist.name for artist in self.artists if artist.name)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "artists": [artist.to_dict() for artist in self.artists],
            "album": self.album.to_dict(),
            "duration_ms": self.duration_ms,
            "popularity": self.popularity,
            "explicit": self.explicit,
            "preview_url": self.preview_url,
            "uri": self.spotify_uri,
        }
        if self.external_url:
            payload["external_urls"] = {"spotify": self.external_url}
        return payload


def _normalise_decade(value: Any) -> int:
    text = str(value).strip().lower().rstrip("s")
    try:
        year = int(text)
    except ValueError as exc:
        raise ValueError(f"invalid decade: {value!r}") from exc
    return year - (year % 10)


def _unique(values: Iterable[Any]) -> tuple[Any, ...]:
    seen: set[Any] = set()
    ordered: list[Any] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


@dataclass(slots=True, frozen=True)
class FilterPreferences:
    """User taste filters; rebuilt whenever the selection changes.

    ``decades`` holds decade start years (``1990`` stands for 1990-1999),
    ``popularity_range`` is an inclusive ``(min, max)`` pair within 0-100.
    """

    artists: tuple[Artist, ...] = ()
    genres: tuple[str, ...] = ()
    decades: tuple[int, ...] = ()
    popularity_range: tuple[int, int] | None = None
    audio_features: Mapping[str, float] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "artists", _unique_artists(self.artists))
        object.__setattr__(
            self,
            "genres",
            _unique(genre.strip() for genre in self.genres if genre and genre.strip()),
        )
        object.__setattr__(self, "decades", _unique(_normalise_decade(d) for d in self.decades))
        if self.popularity_range is not None:
            low, high = (int(bound) for bound in self.popularity_range)
            if not (0 <= low <= high <= 100):
                raise ValueError("popularity_range must satisfy 0 <= min <= max <= 100")
            object.__setattr__(self, "popularity_range", (low, high))
        if self.audio_features is not None:
            features = {str(k): float(v) for k, v in self.audio_features.items()}
            for name, target in features.items():
                if not 0.0 <= target <= 1.0:
                    raise ValueError(f"audio feature {name!r} must be within [0, 1]")
            object.__setattr__(self, "audio_features", features)

    @property
    def has_seeds(self) -> bool:
        """Whether any artist or genre is selected."""

        return bool(self.artists or self.genres)

    @property
    def artist_ids(self) -> tuple[str, ...]:
        return tuple(artist.id for artist in self.artists if artist.id)


def _unique_artists(artists: Iterable[Artist]) -> tuple[Artist, ...]:
    seen: set[str] = set()
    ordered: list[Artist] = []
    for artist in artists:
        key = artist.id or artist.name
        if key in seen:
            continue
        seen.add(key)
        ordered.append(artist)
    return tuple(ordered)


@dataclass(slots=True, frozen=True)
class RemotePlaylist:
    id: str
    external_url: str | None = None
    name: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemotePlaylist:
        return cls(
            id=str(payload["id"]),
            external_url=_external_url(payload),
            name=str(payload["name"]) if payload.get("name") else None,
        )
