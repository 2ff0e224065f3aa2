from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from tastemixer.auth.credential_store import CredentialStore
from tastemixer.auth.credentials import CredentialRecord
from tastemixer.errors import NoCredentialError, RefreshFailedError
from tastemixer.services.token_refresher import CredentialRefresher

REFRESH_URL = "http://proxy.test/api/token-refresh"
MINUTE_MS = 60 * 1000


class ProxyStub:
    def __init__(self, *responses: httpx.Response | Exception, delay: float = 0.0) -> None:
        self._responses = list(responses)
        self.delay = delay
        self.requests: list[dict[str, Any]] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(result, Exception):
            raise result
        return result


def _refresher(
    store: CredentialStore, proxy: ProxyStub, clock: Any
) -> CredentialRefresher:
    transport = httpx.MockTransport(proxy)
    return CredentialRefresher(
        store,
        refresh_url=REFRESH_URL,
        http_client_factory=lambda: httpx.AsyncClient(transport=transport),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_exchange(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock() + MINUTE_MS))
    proxy = ProxyStub(
        httpx.Response(200, json={"access_token": "new", "expires_in": 3600}),
        delay=0.01,
    )
    refresher = _refresher(credential_store, proxy, ms_clock)

    tokens = await asyncio.gather(*(refresher.ensure_valid_access_token() for _ in range(5)))

    assert tokens == ["new"] * 5
    assert len(proxy.requests) == 1
    assert proxy.requests[0] == {"refresh_token": "refresh-1"}
    assert not refresher.refresh_in_flight


@pytest.mark.asyncio
async def test_token_inside_margin_is_refreshed(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock() + 4 * MINUTE_MS))
    proxy = ProxyStub(httpx.Response(200, json={"access_token": "new", "expires_in": 3600}))
    refresher = _refresher(credential_store, proxy, ms_clock)

    token = await refresher.ensure_valid_access_token()

    assert token == "new"
    assert len(proxy.requests) == 1
    record = credential_store.load()
    assert record is not None
    assert record.expires_at_ms == ms_clock() + 3_600_000


@pytest.mark.asyncio
async def test_token_outside_margin_is_returned_without_network(
    credential_store, ms_clock
) -> None:
    credential_store.save(CredentialRecord("current", "refresh-1", ms_clock() + 10 * MINUTE_MS))
    proxy = ProxyStub(httpx.Response(500))
    refresher = _refresher(credential_store, proxy, ms_clock)

    assert await refresher.ensure_valid_access_token() == "current"
    assert proxy.requests == []


@pytest.mark.asyncio
async def test_missing_refresh_token_in_response_keeps_previous(
    credential_store, ms_clock
) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock()))
    proxy = ProxyStub(httpx.Response(200, json={"access_token": "new", "expires_in": 3600}))
    refresher = _refresher(credential_store, proxy, ms_clock)

    await refresher.ensure_valid_access_token()

    assert credential_store.refresh_token() == "refresh-1"


@pytest.mark.asyncio
async def test_rotated_refresh_token_is_stored(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock()))
    proxy = ProxyStub(
        httpx.Response(
            200,
            json={"access_token": "new", "expires_in": 3600, "refresh_token": "refresh-2"},
        )
    )
    refresher = _refresher(credential_store, proxy, ms_clock)

    await refresher.ensure_valid_access_token()

    assert credential_store.refresh_token() == "refresh-2"


@pytest.mark.asyncio
async def test_rejected_refresh_clears_credentials(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock()))
    credential_store.state.set("spotify_auth_state", "nonce")
    proxy = ProxyStub(httpx.Response(400, json={"error": "invalid_grant"}))
    refresher = _refresher(credential_store, proxy, ms_clock)

    with pytest.raises(RefreshFailedError) as excinfo:
        await refresher.ensure_valid_access_token()

    assert excinfo.value.status_code == 400
    assert credential_store.load() is None
    assert credential_store.refresh_token() is None
    assert credential_store.state.get("spotify_auth_state") is None


@pytest.mark.asyncio
async def test_transport_failure_is_a_refresh_failure(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock()))
    proxy = ProxyStub(httpx.ConnectError("proxy down"))
    refresher = _refresher(credential_store, proxy, ms_clock)

    with pytest.raises(RefreshFailedError):
        await refresher.ensure_valid_access_token()

    assert credential_store.load() is None


@pytest.mark.asyncio
async def test_missing_stored_refresh_token_forces_logout(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", None, ms_clock()))
    proxy = ProxyStub(httpx.Response(200, json={"access_token": "new", "expires_in": 3600}))
    refresher = _refresher(credential_store, proxy, ms_clock)

    with pytest.raises(RefreshFailedError):
        await refresher.ensure_valid_access_token()

    assert proxy.requests == []
    assert credential_store.load() is None


@pytest.mark.asyncio
async def test_no_stored_token_raises_no_credential(credential_store, ms_clock) -> None:
    refresher = _refresher(credential_store, ProxyStub(httpx.Response(200)), ms_clock)

    with pytest.raises(NoCredentialError):
        await refresher.ensure_valid_access_token()


@pytest.mark.asyncio
async def test_concurrent_failure_is_shared_by_all_waiters(credential_store, ms_clock) -> None:
    credential_store.save(CredentialRecord("old", "refresh-1", ms_clock()))
    proxy = ProxyStub(httpx.Response(401), delay=0.01)
    refresher = _refresher(credential_store, proxy, ms_clock)

    results = await asyncio.gather(
        *(refresher.ensure_valid_access_token() for _ in range(3)),
        return_exceptions=True,
    )

    assert all(isinstance(result, RefreshFailedError) for result in results)
    assert len(proxy.requests) == 1
