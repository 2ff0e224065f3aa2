"""FastAPI token intermediary holding the Spotify client secret."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Callable

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
import httpx
from pydantic import BaseModel

from tastemixer.config import MixerConfig, TokenProxyConfig, load_config
from tastemixer.logging import configure_logging, get_logger
from tastemixer.logging_events import log_event

__all__ = ["TokenExchangeRequest", "TokenRefreshRequest", "create_token_proxy_app"]

logger = get_logger(__name__)


class TokenExchangeRequest(BaseModel):
    code: str | None = None


class TokenRefreshRequest(BaseModel):
    refresh_token: str | None = None


class UpstreamTokenError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_token_proxy_app(
    config: MixerConfig | None = None,
    *,
    http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> FastAPI:
    """Build the intermediary exposing ``/token-exchange`` and ``/token-refresh``.

    The routes are mounted relative to the path of ``TokenProxyConfig.base_url``
    so the client-side configuration and the server agree on the URLs.
    """

    resolved = config or load_config()
    configure_logging(resolved.logging)
    spotify = resolved.spotify
    proxy: TokenProxyConfig = resolved.token_proxy

    app = FastAPI(
        title="Taste Mixer Token Proxy",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    def _build_http_client() -> httpx.AsyncClient:
        if http_client_factory is not None:
            return http_client_factory()
        return httpx.AsyncClient(timeout=proxy.timeout_seconds)

    async def _request_token(form: Mapping[str, str], *, grant_type: str) -> dict[str, Any]:
        if not spotify.client_id or not spotify.client_secret:
            raise UpstreamTokenError(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "Spotify credentials are not configured"
            )
        async with _build_http_client() as client:
            response = await client.post(
                spotify.token_url,
                data=dict(form),
                auth=(spotify.client_id, spotify.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        if response.status_code >= 400:
            message = str(
                payload.get("error_description") or payload.get("error") or "Token request failed"
            )
            log_event(
                logger,
                "token_proxy.upstream.failed",
                level=logging.WARNING,
                grant_type=grant_type,
                status_code=response.status_code,
            )
            raise UpstreamTokenError(response.status_code, message)
        return payload

    async def _handle(form: Mapping[str, str], *, grant_type: str) -> dict[str, Any] | JSONResponse:
        try:
            return await _request_token(form, grant_type=grant_type)
        except UpstreamTokenError as exc:
            return _error(exc.status_code, exc.message)
        except httpx.HTTPError as exc:
            log_event(
                logger,
                "token_proxy.upstream.unreachable",
                level=logging.ERROR,
                grant_type=grant_type,
                reason=exc.__class__.__name__,
            )
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.exception_handler(Exception)
    async def _unexpected_error(_request: Any, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unexpected token proxy failure",
            extra={"event": "token_proxy.error", "error": exc.__class__.__name__},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    prefix = httpx.URL(proxy.base_url).path.rstrip("/")

    @app.post(f"{prefix}{proxy.exchange_path}")
    async def token_exchange(body: TokenExchangeRequest | None = None) -> Any:
        code = body.code if body else None
        if not code:
            return _error(status.HTTP_400_BAD_REQUEST, "Authorization code is required")
        result = await _handle(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": spotify.redirect_uri,
            },
            grant_type="authorization_code",
        )
        if isinstance(result, JSONResponse):
            return result
        log_event(logger, "token_proxy.exchange.completed")
        return {
            "access_token": result.get("access_token"),
            "refresh_token": result.get("refresh_token"),
            "expires_in": result.get("expires_in"),
        }

    @app.post(f"{prefix}{proxy.refresh_path}")
    async def token_refresh(body: TokenRefreshRequest | None = None) -> Any:
        refresh_token = body.refresh_token if body else None
        if not refresh_token:
            return _error(status.HTTP_400_BAD_REQUEST, "Refresh token is required")
        result = await _handle(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            grant_type="refresh_token",
        )
        if isinstance(result, JSONResponse):
            return result
        log_event(
            logger,
            "token_proxy.refresh.completed",
            refresh_rotated=bool(result.get("refresh_token")),
        )
        return {
            "access_token": result.get("access_token"),
            "expires_in": result.get("expires_in"),
            "refresh_token": result.get("refresh_token") or refresh_token,
        }

    return app
