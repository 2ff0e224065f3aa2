"""Filesystem-backed state store with atomic writes."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from threading import RLock
from typing import Any, Iterable

from tastemixer.logging import get_logger

from .store import StateStore, StateStoreError

__all__ = ["FsStateStore"]

_JSON_VERSION = 1

logger = get_logger(__name__)


class FsStateStore(StateStore):
    """Persist all keys in a single JSON document.

    Every mutation rewrites the document through a temporary file followed by
    :func:`os.replace`, so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path).expanduser().resolve()
        self._lock = RLock()
        self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StateStoreError(f"unable to read state file {self._path}") from exc
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(
                "State file is not valid JSON; starting empty",
                extra={"event": "state_store.decode_failed", "path": str(self._path)},
            )
            return {}
        values = payload.get("values") if isinstance(payload, Mapping) else None
        if not isinstance(values, Mapping):
            return {}
        return {str(key): str(value) for key, value in values.items()}

    def _write(self, values: Mapping[str, Any]) -> None:
        record = {"ver": _JSON_VERSION, "values": dict(values)}
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.stem}.",
            suffix=".tmp",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(record, handle, separators=(",", ":"), sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StateStoreError(f"unable to write state file {self._path}") from exc

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            values = self._read()
            values[key] = str(value)
            self._write(values)

    def delete(self, key: str) -> None:
        with self._lock:
            values = self._read()
            if key not in values:
                return
            values.pop(key)
            self._write(values)

    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._read())

    def describe(self) -> dict[str, object]:
        return {"backend": "fs", "path": str(self._path)}
