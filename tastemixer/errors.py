"""Error taxonomy shared by the Taste Mixer client and token proxy."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers and the UI layer."""

    NO_CREDENTIAL = "NO_CREDENTIAL"
    REFRESH_FAILED = "REFRESH_FAILED"
    AUTH_FAILED = "AUTH_FAILED"
    OAUTH_STATE_MISMATCH = "OAUTH_STATE_MISMATCH"
    RATE_LIMITED = "RATE_LIMITED"
    HTTP_ERROR = "HTTP_ERROR"
    NOT_FOUND = "NOT_FOUND"
    GENERATION_FAILED = "GENERATION_FAILED"
    PLAYLIST_MUTATION_FAILED = "PLAYLIST_MUTATION_FAILED"


_USER_MESSAGES: Mapping[ErrorCode, str] = {
    ErrorCode.NO_CREDENTIAL: "You are not logged in. Please log in with Spotify.",
    ErrorCode.REFRESH_FAILED: "Your session expired. Please log in again.",
    ErrorCode.AUTH_FAILED: "Spotify rejected the request. Please log in again.",
    ErrorCode.OAUTH_STATE_MISMATCH: "The login attempt could not be verified. Please try again.",
    ErrorCode.RATE_LIMITED: "Spotify is busy right now. Please try again in a moment.",
    ErrorCode.HTTP_ERROR: "Spotify could not be reached. Please try again.",
    ErrorCode.NOT_FOUND: "The requested Spotify resource does not exist.",
    ErrorCode.GENERATION_FAILED: "The playlist could not be generated. Please try again.",
    ErrorCode.PLAYLIST_MUTATION_FAILED: "The playlist could not be saved to Spotify. Please try again.",
}


class MixerError(Exception):
    """Base exception for Taste Mixer specific failures."""

    __slots__ = ("message", "code", "http_status", "meta")

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.meta = meta

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.code, self.message)

    def as_response(self) -> JSONResponse:
        """Serialise the exception into the canonical error envelope."""

        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.meta:
            error["meta"] = dict(self.meta)
        return JSONResponse(
            status_code=self.http_status,
            content={"ok": False, "error": error},
        )


class NoCredentialError(MixerError):
    """Raised when no access or refresh token is stored."""

    def __init__(self, message: str = "No access token available. Please log in again.") -> None:
        super().__init__(
            message,
            code=ErrorCode.NO_CREDENTIAL,
            http_status=status.HTTP_401_UNAUTHORIZED,
        )


class RefreshFailedError(MixerError):
    """Raised when the refresh exchange was rejected; credentials are cleared."""

    def __init__(
        self,
        message: str = "Failed to refresh token",
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.REFRESH_FAILED,
            http_status=status.HTTP_401_UNAUTHORIZED,
            meta={"upstream_status": status_code} if status_code is not None else None,
        )
        self.status_code = status_code


class AuthFailedError(MixerError):
    """Raised when the catalog API answered 401 for a freshly validated token."""

    def __init__(self, message: str = "Authentication failed. Please log in again.") -> None:
        super().__init__(
            message,
            code=ErrorCode.AUTH_FAILED,
            http_status=status.HTTP_401_UNAUTHORIZED,
        )


class OAuthStateError(MixerError):
    """Raised when the OAuth callback state does not match the stored nonce."""

    def __init__(self, message: str = "OAuth state mismatch") -> None:
        super().__init__(
            message,
            code=ErrorCode.OAUTH_STATE_MISMATCH,
            http_status=status.HTTP_400_BAD_REQUEST,
        )


class HttpError(MixerError):
    """Raised when the catalog API returned a non-success status."""

    retryable = False

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        *,
        url: str | None = None,
        code: ErrorCode = ErrorCode.HTTP_ERROR,
    ) -> None:
        super().__init__(
            message or f"Spotify API error: {status_code}",
            code=code,
            http_status=status.HTTP_502_BAD_GATEWAY,
            meta={"upstream_status": status_code},
        )
        self.status_code = status_code
        self.url = url


class TransientHttpError(HttpError):
    """Non-2xx response (other than 401/404) that is worth retrying."""

    retryable = True


class RateLimitedError(HttpError):
    """HTTP 429; recovered transparently unless the retry budget is exhausted."""

    retryable = True

    def __init__(self, *, retry_after_s: float, url: str | None = None) -> None:
        super().__init__(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Spotify API rate limited the request",
            url=url,
            code=ErrorCode.RATE_LIMITED,
        )
        self.retry_after_s = retry_after_s


class NotFoundError(HttpError):
    """HTTP 404; the sub-query genuinely has no data and is never retried."""

    def __init__(self, *, url: str | None = None) -> None:
        super().__init__(
            status.HTTP_404_NOT_FOUND,
            "Spotify API error: 404",
            url=url,
            code=ErrorCode.NOT_FOUND,
        )


class GenerationError(MixerError):
    """Raised when the playlist pipeline as a whole could not produce a result."""

    def __init__(self, message: str = "Error generating playlist") -> None:
        super().__init__(message, code=ErrorCode.GENERATION_FAILED)


class PlaylistMutationError(HttpError):
    """Raised when persisting a playlist failed, possibly after it was created.

    ``status_code`` is the upstream status that caused the failure, or ``0``
    when the request was never sent.
    """

    def __init__(
        self,
        message: str,
        *,
        playlist_id: str | None = None,
        status_code: int = 0,
    ) -> None:
        super().__init__(status_code, message, code=ErrorCode.PLAYLIST_MUTATION_FAILED)
        meta: dict[str, Any] = {}
        if playlist_id:
            meta["playlist_id"] = playlist_id
        if status_code:
            meta["upstream_status"] = status_code
        self.meta = meta or None
        self.playlist_id = playlist_id


CREDENTIAL_ERRORS: tuple[type[MixerError], ...] = (
    NoCredentialError,
    RefreshFailedError,
    AuthFailedError,
)


__all__ = [
    "AuthFailedError",
    "CREDENTIAL_ERRORS",
    "ErrorCode",
    "GenerationError",
    "HttpError",
    "MixerError",
    "NoCredentialError",
    "NotFoundError",
    "OAuthStateError",
    "PlaylistMutationError",
    "RateLimitedError",
    "RefreshFailedError",
    "TransientHttpError",
]
