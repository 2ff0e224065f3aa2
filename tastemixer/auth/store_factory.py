"""Factory selecting the configured state store backend."""

from __future__ import annotations

from tastemixer.config import StorageConfig
from tastemixer.logging import get_logger

from .store import StateStore
from .store_fs import FsStateStore
from .store_memory import MemoryStateStore

__all__ = ["build_state_store"]

logger = get_logger(__name__)


def build_state_store(config: StorageConfig) -> StateStore:
    if config.backend == "memory":
        store: StateStore = MemoryStateStore()
    else:
        store = FsStateStore(config.state_path)
    logger.debug(
        "State store initialised",
        extra={"event": "state_store.initialised", "backend": config.backend},
    )
    return store
