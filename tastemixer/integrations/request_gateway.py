"""Authenticated, retrying access to the catalog API."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
from typing import Any, Awaitable, Callable

import httpx

from tastemixer.config import GatewayPolicy
from tastemixer.errors import (
    AuthFailedError,
    HttpError,
    NotFoundError,
    RateLimitedError,
    TransientHttpError,
)
from tastemixer.logging import get_logger
from tastemixer.logging_events import log_event
from tastemixer.utils.retry import RetryDirective, with_retry

__all__ = ["RequestGateway", "TokenProvider"]

logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class RequestGateway:
    """Issue catalog requests with bearer auth and bounded retries.

    The access token is resolved through ``token_provider`` before every
    attempt so a refresh triggered by one call is observed by the retries of
    another. HTTP 429 waits for ``Retry-After`` (or the policy default);
    other failures back off by a fixed delay. 401 and 404 are never retried.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: str,
        policy: GatewayPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.policy = policy or GatewayPolicy()
        self.transport = transport
        self._semaphore = asyncio.Semaphore(max(1, self.policy.max_concurrency))

    def _build_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.policy.timeout_ms / 1000.0)

    async def call(
        self,
        url: str,
        *,
        method: str = "GET",
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """Perform a request and return the decoded JSON body.

        ``url`` may be absolute or relative to the API base URL. Empty
        response bodies decode to ``None``.
        """

        retries = self.policy.max_retries if max_retries is None else max(0, int(max_retries))
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        async def _perform_request() -> Any:
            token = await self._token_provider()
            request_headers["Authorization"] = f"Bearer {token}"
            try:
                async with self._semaphore:
                    async with httpx.AsyncClient(
                        base_url=self.base_url,
                        timeout=self._build_timeout(),
                        headers=request_headers,
                        transport=self.transport,
                    ) as client:
                        response = await client.request(
                            method,
                            url,
                            params=params,
                            json=json,
                        )
            except httpx.TimeoutException as exc:
                raise TransientHttpError(0, "Spotify API request timed out", url=url) from exc
            except httpx.HTTPError as exc:
                raise TransientHttpError(
                    0, f"Spotify API request failed: {exc.__class__.__name__}", url=url
                ) from exc

            if response.is_success:
                return _decode_body(response)
            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                raise RateLimitedError(
                    retry_after_s=_parse_retry_after_s(
                        response.headers, default=self.policy.default_retry_after_s
                    ),
                    url=url,
                )
            if response.status_code == httpx.codes.UNAUTHORIZED:
                raise AuthFailedError()
            if response.status_code == httpx.codes.NOT_FOUND:
                raise NotFoundError(url=url)
            raise TransientHttpError(response.status_code, url=url)

        def _classify(error: Exception) -> RetryDirective:
            if isinstance(error, RateLimitedError):
                return RetryDirective(
                    retry=True,
                    delay_override_ms=int(error.retry_after_s * 1000),
                    error=error,
                )
            if isinstance(error, HttpError):
                return RetryDirective(retry=error.retryable, error=error)
            return RetryDirective(retry=False, error=error)

        def _on_retry(attempt: int, error: Exception, delay_ms: int) -> None:
            log_event(
                logger,
                "gateway.retry",
                level=logging.WARNING,
                method=method,
                url=url,
                attempt=attempt,
                delay_ms=delay_ms,
                status_code=getattr(error, "status_code", None),
            )

        return await with_retry(
            _perform_request,
            attempts=retries + 1,
            base_ms=self.policy.backoff_ms,
            classify_err=_classify,
            on_retry=_on_retry,
        )


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _parse_retry_after_s(
    headers: Mapping[str, Any],
    *,
    default: float,
    now: datetime | None = None,
) -> float:
    """Read ``Retry-After`` as delta-seconds or an HTTP-date."""

    value = headers.get("Retry-After") if isinstance(headers, Mapping) else None
    if value is None:
        return default
    text = str(value).strip()
    try:
        return max(0.0, float(text))
    except ValueError:
        pass
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    reference = now or datetime.now(timezone.utc)
    return max(0.0, (parsed - reference).total_seconds())
