"""Tests for the on-device storage backends."""

from __future__ import annotations

from pathlib import Path

import pytest

from fieldsync.exceptions import LocalStorageCorruptError
from fieldsync.storage import JsonFileBackend, MemoryBackend


def test_missing_key_loads_none(tmp_path: Path) -> None:
    assert JsonFileBackend(tmp_path / "nobody").load("local_records") is None
    assert MemoryBackend().load("local_records") is None


def test_save_replaces_atomically(tmp_path: Path) -> None:
    backend = JsonFileBackend(tmp_path / "user-1")
    backend.save("sync_queue", [{"recordId": "2026_10:1"}])
    backend.save("sync_queue", [])

    assert backend.load("sync_queue") == []
    assert sorted(path.name for path in (tmp_path / "user-1").iterdir()) == ["sync_queue.json"]


def test_invalid_json_raises_corrupt(tmp_path: Path) -> None:
    (tmp_path / "sync_queue.json").write_text("[1, 2", encoding="utf-8")
    with pytest.raises(LocalStorageCorruptError) as excinfo:
        JsonFileBackend(tmp_path).load("sync_queue")
    assert excinfo.value.key == "sync_queue"


@pytest.mark.parametrize("key", ["", "../escape", ".hidden"])
def test_rejects_unsafe_keys(tmp_path: Path, key: str) -> None:
    with pytest.raises(ValueError):
        JsonFileBackend(tmp_path).save(key, {})


def test_memory_backend_copies_values() -> None:
    backend = MemoryBackend()
    value = {"lastDailySync": "2026-10-15T00:00:00+00:00"}
    backend.save("last_daily_sync", value)
    value["lastDailySync"] = "changed"

    assert backend.load("last_daily_sync") == {"lastDailySync": "2026-10-15T00:00:00+00:00"}


def test_memory_backend_raw_corruption() -> None:
    backend = MemoryBackend()
    backend.put_raw("local_records", "\x00garbage")
    with pytest.raises(LocalStorageCorruptError):
        backend.load("local_records")
