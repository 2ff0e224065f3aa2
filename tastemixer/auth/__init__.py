"""Client-persisted state: credentials, CSRF nonce and favorites."""

from .credential_store import CredentialStore
from .credentials import CredentialRecord
from .store import (
    ACCESS_TOKEN_KEY,
    AUTH_STATE_KEY,
    EXPIRATION_KEY,
    FAVORITES_KEY,
    REFRESH_TOKEN_KEY,
    StateStore,
    StateStoreError,
)
from .store_factory import build_state_store
from .store_fs import FsStateStore
from .store_memory import MemoryStateStore

__all__ = [
    "ACCESS_TOKEN_KEY",
    "AUTH_STATE_KEY",
    "CredentialRecord",
    "CredentialStore",
    "EXPIRATION_KEY",
    "FAVORITES_KEY",
    "FsStateStore",
    "MemoryStateStore",
    "REFRESH_TOKEN_KEY",
    "StateStore",
    "StateStoreError",
    "build_state_store",
]
