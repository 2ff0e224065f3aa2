"""Keep the stored access token valid with at most one refresh in flight."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Callable

import httpx

from tastemixer.auth.credential_store import CredentialStore
from tastemixer.auth.credentials import CredentialRecord
from tastemixer.config import DEFAULT_REFRESH_MARGIN_SECONDS
from tastemixer.errors import NoCredentialError, RefreshFailedError
from tastemixer.logging import get_logger
from tastemixer.logging_events import fingerprint, log_event
from tastemixer.utils.concurrency import SingleFlight
from tastemixer.utils.time import now_ms

__all__ = ["CredentialRefresher"]

logger = get_logger(__name__)

_REFRESH_KEY = "refresh"


class CredentialRefresher:
    """Exchange the refresh token for a new access token via the token proxy.

    Concurrent callers that find the token near expiry share a single
    exchange; the provider invalidates a refresh token once consumed, so two
    overlapping exchanges would log the user out.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        refresh_url: str,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
        margin_ms: int = DEFAULT_REFRESH_MARGIN_SECONDS * 1000,
        timeout_seconds: float = 10.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._refresh_url = refresh_url
        self._http_client_factory = http_client_factory
        self._margin_ms = max(0, int(margin_ms))
        self._timeout = timeout_seconds
        self._clock = clock
        self._flight: SingleFlight[str] = SingleFlight()

    @property
    def refresh_in_flight(self) -> bool:
        return self._flight.in_flight(_REFRESH_KEY)

    def _build_http_client(self) -> httpx.AsyncClient:
        if self._http_client_factory is not None:
            return self._http_client_factory()
        return httpx.AsyncClient(timeout=self._timeout)

    async def ensure_valid_access_token(self) -> str:
        record = self._store.load()
        if record is None:
            raise NoCredentialError()
        if not record.expires_within(self._margin_ms, self._clock()):
            return record.access_token
        return await self.refresh()

    async def refresh(self) -> str:
        """Force an exchange, joining one that is already running."""

        return await self._flight.run(_REFRESH_KEY, self._exchange)

    async def _exchange(self) -> str:
        refresh_token = self._store.refresh_token()
        if not refresh_token:
            self._fail("no refresh token stored")
            raise RefreshFailedError("No refresh token available")

        log_event(
            logger,
            "token.refresh.started",
            refresh_fp=fingerprint(refresh_token),
        )
        try:
            async with self._build_http_client() as client:
                response = await client.post(
                    self._refresh_url,
                    json={"refresh_token": refresh_token},
                )
        except httpx.HTTPError as exc:
            self._fail(f"transport error: {exc.__class__.__name__}")
            raise RefreshFailedError() from exc

        if response.status_code >= 400:
            self._fail("intermediary rejected refresh", status_code=response.status_code)
            raise RefreshFailedError(status_code=response.status_code)

        payload = _json_mapping(response)
        access_token = payload.get("access_token") if payload else None
        if not isinstance(access_token, str) or not access_token:
            self._fail("refresh response without access token")
            raise RefreshFailedError("Unexpected token response")

        new_refresh = payload.get("refresh_token")
        record = CredentialRecord.issued(
            access_token=access_token,
            refresh_token=new_refresh if isinstance(new_refresh, str) and new_refresh else refresh_token,
            expires_in=_as_seconds(payload.get("expires_in")),
            issued_at_ms=self._clock(),
        )
        self._store.save(record)
        log_event(
            logger,
            "token.refresh.completed",
            token_fp=fingerprint(record.access_token),
            refresh_rotated=record.refresh_token != refresh_token,
            expires_at_ms=record.expires_at_ms,
        )
        return record.access_token

    def _fail(self, reason: str, *, status_code: int | None = None) -> None:
        self._store.clear()
        log_event(
            logger,
            "token.refresh.failed",
            level=logging.WARNING,
            reason=reason,
            status_code=status_code,
        )


def _json_mapping(response: httpx.Response) -> Mapping[str, Any] | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, Mapping) else None


def _as_seconds(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0
