"""Map :class:`CredentialRecord` values onto a :class:`StateStore`."""

from __future__ import annotations

import logging

from tastemixer.logging import get_logger
from tastemixer.logging_events import fingerprint, log_event

from .credentials import CredentialRecord
from .store import (
    ACCESS_TOKEN_KEY,
    AUTH_STATE_KEY,
    EXPIRATION_KEY,
    REFRESH_TOKEN_KEY,
    StateStore,
)

__all__ = ["CredentialStore"]

logger = get_logger(__name__)

_CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRATION_KEY, AUTH_STATE_KEY)


class CredentialStore:
    """Pure data access for the persisted credential triple."""

    def __init__(self, state: StateStore) -> None:
        self._state = state

    @property
    def state(self) -> StateStore:
        return self._state

    def load(self) -> CredentialRecord | None:
        access_token = self._state.get(ACCESS_TOKEN_KEY)
        raw_expiry = self._state.get(EXPIRATION_KEY)
        if not access_token or raw_expiry is None:
            return None
        try:
            expires_at_ms = int(raw_expiry)
        except ValueError:
            log_event(logger, "credentials.corrupt_expiry", level=logging.WARNING)
            return None
        return CredentialRecord(
            access_token=access_token,
            refresh_token=self._state.get(REFRESH_TOKEN_KEY) or None,
            expires_at_ms=expires_at_ms,
        )

    def refresh_token(self) -> str | None:
        return self._state.get(REFRESH_TOKEN_KEY) or None

    def save(self, record: CredentialRecord) -> None:
        self._state.set(ACCESS_TOKEN_KEY, record.access_token)
        self._state.set(EXPIRATION_KEY, str(record.expires_at_ms))
        if record.refresh_token:
            self._state.set(REFRESH_TOKEN_KEY, record.refresh_token)
        else:
            self._state.delete(REFRESH_TOKEN_KEY)
        log_event(
            logger,
            "credentials.saved",
            token_fp=fingerprint(record.access_token),
            expires_at_ms=record.expires_at_ms,
        )

    def clear(self) -> None:
        for key in _CREDENTIAL_KEYS:
            self._state.delete(key)
        log_event(logger, "credentials.cleared")
