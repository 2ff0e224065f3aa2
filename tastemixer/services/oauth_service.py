"""Authorization-code handshake against the provider and the token proxy."""

from __future__ import annotations

from collections.abc import Mapping
import logging
import secrets
import string
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from tastemixer.auth.credential_store import CredentialStore
from tastemixer.auth.credentials import CredentialRecord
from tastemixer.auth.store import AUTH_STATE_KEY
from tastemixer.config import SpotifyConfig, TokenProxyConfig
from tastemixer.errors import AuthFailedError, OAuthStateError
from tastemixer.logging import get_logger
from tastemixer.logging_events import fingerprint, log_event
from tastemixer.utils.time import now_ms

__all__ = ["OAuthService"]

logger = get_logger(__name__)

_STATE_ALPHABET = string.ascii_letters + string.digits
_STATE_LENGTH = 16


class OAuthService:
    def __init__(
        self,
        *,
        spotify: SpotifyConfig,
        token_proxy: TokenProxyConfig,
        credentials: CredentialStore,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._spotify = spotify
        self._token_proxy = token_proxy
        self._credentials = credentials
        self._http_client_factory = http_client_factory
        self._clock = clock

    def _generate_state(self) -> str:
        return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(_STATE_LENGTH))

    def _build_http_client(self) -> httpx.AsyncClient:
        if self._http_client_factory is not None:
            return self._http_client_factory()
        return httpx.AsyncClient(timeout=self._token_proxy.timeout_seconds)

    def authorization_url(self) -> str:
        """Persist a fresh CSRF state and return the provider authorize URL."""

        if not self._spotify.client_id:
            raise ValueError("Spotify client id missing; OAuth disabled")
        state = self._generate_state()
        self._credentials.state.set(AUTH_STATE_KEY, state)
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self._spotify.client_id,
                "scope": self._spotify.scope,
                "redirect_uri": self._spotify.redirect_uri,
                "state": state,
            }
        )
        log_event(logger, "oauth.start", state_fp=fingerprint(state))
        return f"{self._spotify.authorize_url}?{query}"

    async def complete(self, *, code: str, state: str | None) -> CredentialRecord:
        stored_state = self._credentials.state.get(AUTH_STATE_KEY)
        if not state or not stored_state or not secrets.compare_digest(state, stored_state):
            log_event(
                logger,
                "oauth.state.mismatch",
                level=logging.WARNING,
                state_fp=fingerprint(state),
            )
            raise OAuthStateError()
        self._credentials.state.delete(AUTH_STATE_KEY)

        try:
            async with self._build_http_client() as client:
                response = await client.post(
                    self._token_proxy.exchange_url,
                    json={"code": code},
                )
        except httpx.HTTPError as exc:
            log_event(
                logger,
                "oauth.token_exchange.failed",
                level=logging.ERROR,
                reason=exc.__class__.__name__,
            )
            raise AuthFailedError("Token exchange failed") from exc

        if response.status_code >= 400:
            log_event(
                logger,
                "oauth.token_exchange.failed",
                level=logging.ERROR,
                status_code=response.status_code,
            )
            raise AuthFailedError("Token exchange failed")

        payload = _json_mapping(response)
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise AuthFailedError("Unexpected token response")
        refresh_token = payload.get("refresh_token")
        record = CredentialRecord.issued(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            expires_in=_as_seconds(payload.get("expires_in")),
            issued_at_ms=self._clock(),
        )
        self._credentials.save(record)
        log_event(
            logger,
            "oauth.token_exchange.completed",
            token_fp=fingerprint(record.access_token),
            expires_at_ms=record.expires_at_ms,
        )
        return record

    def is_authenticated(self) -> bool:
        record = self._credentials.load()
        return record is not None and not record.is_expired(self._clock())

    def logout(self) -> None:
        self._credentials.clear()
        log_event(logger, "oauth.logout")


def _json_mapping(response: httpx.Response) -> Mapping[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, Mapping) else {}


def _as_seconds(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0
