from __future__ import annotations

import random
import re
from typing import Any

import httpx
import pytest

from tastemixer.config import GatewayPolicy, GeneratorConfig
from tastemixer.core.spotify_client import SpotifyCatalog
from tastemixer.errors import AuthFailedError, GenerationError
from tastemixer.integrations.request_gateway import RequestGateway
from tastemixer.models import Artist, FilterPreferences
from tastemixer.services.cache import ResultCache
from tastemixer.services.playlist_generator import PlaylistGenerator

_TOP_TRACKS = re.compile(r"^/v1/artists/([^/]+)/top-tracks$")
_RELATED = re.compile(r"^/v1/artists/([^/]+)/related-artists$")


def _track(
    track_id: str,
    popularity: int = 50,
    release_date: str | None = "2015-06-01",
    artist: str = "Someone",
) -> dict[str, Any]:
    return {
        "id": track_id,
        "name": f"Track {track_id}",
        "artists": [{"id": f"artist-{artist}", "name": artist}],
        "album": {"name": "LP", "release_date": release_date, "images": []},
        "duration_ms": 180_000,
        "popularity": popularity,
        "explicit": False,
        "preview_url": None,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


class CatalogStub:
    """Route catalog requests to canned payloads; an ``int`` is an error status."""

    def __init__(self) -> None:
        self.profile: dict[str, Any] | int = {"id": "user-1", "country": "US"}
        self.top_tracks: dict[str, list[dict[str, Any]] | int] = {}
        self.related: dict[str, list[dict[str, Any]] | int] = {}
        self.searches: dict[str, list[dict[str, Any]] | int] = {}
        self.requests: list[httpx.Request] = []

    def calls(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def search_calls(self) -> list[dict[str, str]]:
        return [dict(request.url.params) for request in self.calls("/v1/search")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/me":
            return self._respond(self.profile, lambda value: value)
        match = _TOP_TRACKS.match(path)
        if match:
            return self._respond(
                self.top_tracks.get(match.group(1), []), lambda value: {"tracks": value}
            )
        match = _RELATED.match(path)
        if match:
            return self._respond(
                self.related.get(match.group(1), 404), lambda value: {"artists": value}
            )
        if path == "/v1/search":
            query = request.url.params["q"]
            return self._respond(
                self.searches.get(query, []), lambda value: {"tracks": {"items": value}}
            )
        return httpx.Response(404)

    @staticmethod
    def _respond(value: Any, wrap: Any) -> httpx.Response:
        if isinstance(value, int):
            return httpx.Response(value)
        return httpx.Response(200, json=wrap(value))


async def _token() -> str:
    return "token"


def _generator(
    stub: CatalogStub, *, rng: random.Random | None = None, **config: Any
) -> PlaylistGenerator:
    gateway = RequestGateway(
        _token,
        base_url="https://api.test/v1",
        policy=GatewayPolicy(max_retries=0),
        transport=httpx.MockTransport(stub),
    )
    cache = ResultCache(ttl_seconds=300)
    return PlaylistGenerator(
        SpotifyCatalog(gateway, cache),
        cache,
        config=GeneratorConfig(**config),
        rng=rng or random.Random(7),
    )


def _ids(tracks: list[Any]) -> list[str]:
    return [track.id for track in tracks]


@pytest.mark.asyncio
async def test_jazz_playlist_is_sorted_by_popularity() -> None:
    stub = CatalogStub()
    stub.searches["genre:jazz"] = [
        _track("1", 30),
        _track("2", 50),
        _track("3", 70),
        _track("4", 90),
        _track("5", 10),
    ]
    preferences = FilterPreferences(genres=("jazz",), popularity_range=(0, 100))

    tracks = await _generator(stub).generate(preferences)

    assert _ids(tracks) == ["4", "3", "2", "1", "5"]
    assert [track.popularity for track in tracks] == [90, 70, 50, 30, 10]


@pytest.mark.asyncio
async def test_output_is_unique_and_disjoint_from_excluded_ids() -> None:
    stub = CatalogStub()
    stub.top_tracks["a1"] = [_track("x", 80), _track("y", 70), _track("x", 80)]
    stub.top_tracks["a2"] = [_track("y", 70), _track("z", 60), _track("old", 99)]
    stub.searches["genre:rock"] = [_track("z", 60), _track("w", 10)]
    preferences = FilterPreferences(
        artists=(Artist(id="a1", name="One"), Artist(id="a2", name="Two")),
        genres=("rock",),
    )

    tracks = await _generator(stub).generate(preferences, exclude_ids=["old"])

    assert _ids(tracks) == ["x", "y", "z", "w"]


@pytest.mark.asyncio
async def test_decade_filter_boundaries() -> None:
    stub = CatalogStub()
    stub.searches["genre:grunge"] = [
        _track("start", 50, "1990-01-01"),
        _track("end", 40, "1999-12-31"),
        _track("next", 30, "2000-01-01"),
        _track("year-only", 20, "1995"),
        _track("undated", 10, None),
    ]
    preferences = FilterPreferences(genres=("grunge",), decades=(1990,))

    tracks = await _generator(stub).generate(preferences)

    assert _ids(tracks) == ["start", "end", "year-only"]


@pytest.mark.asyncio
async def test_popularity_range_is_inclusive() -> None:
    stub = CatalogStub()
    stub.searches["genre:pop"] = [
        _track("39", 39),
        _track("40", 40),
        _track("60", 60),
        _track("61", 61),
    ]
    preferences = FilterPreferences(genres=("pop",), popularity_range=(40, 60))

    tracks = await _generator(stub).generate(preferences)

    assert _ids(tracks) == ["60", "40"]


@pytest.mark.asyncio
async def test_failing_artist_does_not_abort_siblings() -> None:
    stub = CatalogStub()
    stub.top_tracks["a1"] = [_track("one", 10)]
    stub.top_tracks["a2"] = 500
    stub.top_tracks["a3"] = [_track("three", 30)]
    preferences = FilterPreferences(
        artists=tuple(Artist(id=f"a{index}", name=f"A{index}") for index in (1, 2, 3))
    )
    generator = _generator(stub)

    tracks = await generator.generate(preferences)
    assert _ids(tracks) == ["three", "one"]

    await generator.generate(preferences)
    assert len(stub.calls("/v1/artists/a1/top-tracks")) == 2


@pytest.mark.asyncio
async def test_artist_results_are_cached_by_sorted_ids() -> None:
    stub = CatalogStub()
    stub.top_tracks["a1"] = [_track("one", 10)]
    stub.top_tracks["a2"] = [_track("two", 20)]
    generator = _generator(stub)

    await generator.generate(
        FilterPreferences(artists=(Artist(id="a1", name="A"), Artist(id="a2", name="B")))
    )
    tracks = await generator.generate(
        FilterPreferences(artists=(Artist(id="a2", name="B"), Artist(id="a1", name="A")))
    )

    assert _ids(tracks) == ["two", "one"]
    assert len(stub.calls("/v1/artists/a1/top-tracks")) == 1
    assert len(stub.calls("/v1/artists/a2/top-tracks")) == 1


@pytest.mark.asyncio
async def test_genre_falls_back_to_plain_search() -> None:
    stub = CatalogStub()
    stub.searches["genre:lofi"] = []
    stub.searches["lofi"] = [_track("chill", 42)]

    tracks = await _generator(stub).generate(FilterPreferences(genres=("lofi",)))

    assert _ids(tracks) == ["chill"]
    assert [call["q"] for call in stub.search_calls()] == ["genre:lofi", "lofi"]


@pytest.mark.asyncio
async def test_multi_word_genre_is_quoted() -> None:
    stub = CatalogStub()
    stub.searches['genre:"hip hop"'] = [_track("hh", 77)]

    tracks = await _generator(stub).generate(FilterPreferences(genres=("hip hop",)))

    assert _ids(tracks) == ["hh"]


@pytest.mark.asyncio
async def test_empty_branches_use_generic_fallback_query() -> None:
    stub = CatalogStub()
    stub.top_tracks["gone"] = 404
    stub.searches["year:2020-2024"] = [_track("recent", 88), _track("older", 20)]

    tracks = await _generator(stub).generate(
        FilterPreferences(artists=(Artist(id="gone", name="Gone"),))
    )

    assert _ids(tracks) == ["recent", "older"]


@pytest.mark.asyncio
async def test_fallback_failure_is_a_generation_error() -> None:
    stub = CatalogStub()
    stub.searches["year:2020-2024"] = 503

    with pytest.raises(GenerationError):
        await _generator(stub).generate(FilterPreferences())


@pytest.mark.asyncio
async def test_output_is_truncated_to_max_tracks() -> None:
    stub = CatalogStub()
    stub.searches["genre:ambient"] = [_track(str(index), index) for index in range(80)]

    tracks = await _generator(stub).generate(FilterPreferences(genres=("ambient",)))

    assert len(tracks) == 50
    assert tracks[0].popularity == 79


@pytest.mark.asyncio
async def test_market_comes_from_profile() -> None:
    stub = CatalogStub()
    stub.top_tracks["a1"] = [_track("one")]

    await _generator(stub).generate(FilterPreferences(artists=(Artist(id="a1", name="A"),)))

    (request,) = stub.calls("/v1/artists/a1/top-tracks")
    assert request.url.params["market"] == "US"


@pytest.mark.asyncio
async def test_market_lookup_failure_uses_default_market() -> None:
    stub = CatalogStub()
    stub.profile = 500
    stub.top_tracks["a1"] = [_track("one")]

    tracks = await _generator(stub).generate(
        FilterPreferences(artists=(Artist(id="a1", name="A"),))
    )

    assert _ids(tracks) == ["one"]
    (request,) = stub.calls("/v1/artists/a1/top-tracks")
    assert request.url.params["market"] == "ES"


@pytest.mark.asyncio
async def test_authentication_failure_propagates() -> None:
    stub = CatalogStub()
    stub.top_tracks["a1"] = 401

    with pytest.raises(AuthFailedError):
        await _generator(stub).generate(FilterPreferences(artists=(Artist(id="a1", name="A"),)))


@pytest.mark.asyncio
async def test_generate_more_uses_related_artists() -> None:
    stub = CatalogStub()
    stub.related["a1"] = [
        {"id": "r1", "name": "Related One"},
        {"id": "r2", "name": "Related Two"},
        {"id": "r3", "name": "Related Three"},
        {"id": "r4", "name": "Related Four"},
    ]
    stub.top_tracks["r1"] = [_track("m1"), _track("seen")]
    stub.top_tracks["r2"] = [_track("m2")]
    stub.top_tracks["r3"] = [_track("m3"), _track("m1")]
    stub.top_tracks["r4"] = [_track("m4")]
    preferences = FilterPreferences(artists=(Artist(id="a1", name="Seed"),))

    tracks = await _generator(stub).generate_more(preferences, ["seen"], count=10)

    assert sorted(_ids(tracks)) == ["m1", "m2", "m3"]
    assert stub.calls("/v1/artists/r4/top-tracks") == []


@pytest.mark.asyncio
async def test_generate_more_falls_back_to_artist_search() -> None:
    stub = CatalogStub()
    stub.searches['artist:"Seed Artist"'] = [_track("s1"), _track("s2"), _track("s3")]
    preferences = FilterPreferences(artists=(Artist(id="a1", name="Seed Artist"),))

    tracks = await _generator(stub).generate_more(preferences, [], count=2)

    assert len(tracks) == 2
    assert set(_ids(tracks)) <= {"s1", "s2", "s3"}
    (search,) = stub.search_calls()
    assert search["limit"] == "30"
    assert 0 <= int(search["offset"]) < 20


@pytest.mark.asyncio
async def test_generate_more_shares_one_genre_offset() -> None:
    stub = CatalogStub()
    stub.searches["genre:jazz"] = [_track("j1", release_date="1995-01-01")]
    stub.searches["genre:soul"] = [_track("s1", release_date="2005-01-01")]
    preferences = FilterPreferences(genres=("jazz", "soul"), decades=(1990,))

    tracks = await _generator(stub).generate_more(preferences, [])

    assert _ids(tracks) == ["j1"]
    offsets = {call["offset"] for call in stub.search_calls()}
    assert len(offsets) == 1
    assert 0 <= int(offsets.pop()) < 30


@pytest.mark.asyncio
async def test_generate_more_without_seeds_returns_nothing() -> None:
    stub = CatalogStub()

    assert await _generator(stub).generate_more(FilterPreferences(), []) == []
    assert stub.requests == []


class MalformedSearchStub(CatalogStub):
    """Answer searches with a ``tracks`` list instead of a paging object."""

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/search":
            self.requests.append(request)
            return httpx.Response(200, json={"tracks": ["not-a-page"]})
        return super().__call__(request)


@pytest.mark.asyncio
async def test_unexpected_payload_becomes_generation_error() -> None:
    stub = MalformedSearchStub()

    with pytest.raises(GenerationError) as excinfo:
        await _generator(stub).generate(FilterPreferences(genres=("jazz",)))

    assert isinstance(excinfo.value.__cause__, AttributeError)


@pytest.mark.asyncio
async def test_generate_more_wraps_unexpected_payload() -> None:
    stub = MalformedSearchStub()

    with pytest.raises(GenerationError, match="more tracks"):
        await _generator(stub).generate_more(FilterPreferences(genres=("jazz",)), [])
