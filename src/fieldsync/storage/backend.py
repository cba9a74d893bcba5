"""Durable on-device key/value medium.

The record store, the sync queue and the daily-sync marker all persist
through one backend so a single user's state lives side by side.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from fieldsync.exceptions import LocalStorageCorruptError

_logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Structural storage interface used by the stores.

    ``save`` must not return before the value is durable.
    """

    def load(self, key: str) -> Any | None:
        ...

    def save(self, key: str, value: Any) -> None:
        ...


class JsonFileBackend:
    """One JSON file per key under a per-user directory.

    Writes go to a temporary file that is fsynced and then atomically
    renamed over the previous version, so a crash leaves either the old
    or the new content on disk, never a torn file.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise ValueError(f"invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    def load(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise LocalStorageCorruptError(f"Cannot read {path}: {exc}", key=key) from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise LocalStorageCorruptError(f"Invalid JSON in {path}: {exc}", key=key) from exc

    def save(self, key: str, value: Any) -> None:
        path = self._path(key)
        self._root.mkdir(parents=True, exist_ok=True)
        data = json.dumps(value, separators=(",", ":"), sort_keys=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self._root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        _logger.debug("Persisted %s (%d bytes)", path, len(data))


class MemoryBackend:
    """Process-local backend for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise LocalStorageCorruptError(f"Invalid JSON for {key}", key=key) from exc

    def save(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers see the same types as on disk.
        self._data[key] = json.dumps(copy.deepcopy(value), separators=(",", ":"))

    def put_raw(self, key: str, raw: str) -> None:
        """Store *raw* text unchanged (used to simulate corrupt state)."""
        self._data[key] = raw
