"""Key/value protocol for durable client-side state."""

from __future__ import annotations

from typing import Iterable, Protocol

__all__ = [
    "ACCESS_TOKEN_KEY",
    "AUTH_STATE_KEY",
    "EXPIRATION_KEY",
    "FAVORITES_KEY",
    "REFRESH_TOKEN_KEY",
    "StateStore",
    "StateStoreError",
]

ACCESS_TOKEN_KEY = "spotify_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRATION_KEY = "spotify_token_expiration"
AUTH_STATE_KEY = "spotify_auth_state"
FAVORITES_KEY = "favorites"


class StateStoreError(RuntimeError):
    """Raised when the backing storage cannot be read or written."""


class StateStore(Protocol):
    """Protocol describing a string key/value store that survives restarts.

    Values are plain strings, mirroring browser ``localStorage`` semantics;
    callers serialise structured values themselves.
    """

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self) -> Iterable[str]:
        ...
