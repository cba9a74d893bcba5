"""Tests for environment-driven configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from fieldsync.config import SyncConfig
from fieldsync.exceptions import FieldSyncConfigError
from fieldsync.sync.retry import RetryPolicy


def test_defaults() -> None:
    config = SyncConfig()
    assert config.sync_interval == 60
    assert config.batch_size == 20
    assert config.resolved_health_url == "http://localhost:8080/health"


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FIELDSYNC_BASE_URL", "https://attendance.example/api/")
    monkeypatch.setenv("FIELDSYNC_API_TOKEN", "secret")
    monkeypatch.setenv("FIELDSYNC_SYNC_INTERVAL", "30")
    monkeypatch.setenv("FIELDSYNC_MAX_RETRIES", "5")
    monkeypatch.setenv("FIELDSYNC_STORAGE_DIR", "/var/lib/fieldsync")

    config = SyncConfig.from_env()

    assert config.base_url == "https://attendance.example/api/"
    assert config.resolved_health_url == "https://attendance.example/api/health"
    assert config.api_token == "secret"
    assert config.sync_interval == 30.0
    assert config.max_retries == 5
    assert config.storage_dir == Path("/var/lib/fieldsync")


def test_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FIELDSYNC_BATCH_SIZE", "5")
    monkeypatch.setenv("FIELDSYNC_HEALTH_URL", "https://status.example/ping")

    config = SyncConfig.from_env(batch_size=50, storage_dir="state")

    assert config.batch_size == 50
    assert config.storage_dir == Path("state")
    assert config.resolved_health_url == "https://status.example/ping"


def test_invalid_numbers_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FIELDSYNC_REQUEST_TIMEOUT", "soon")
    with pytest.raises(FieldSyncConfigError):
        SyncConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [{"batch_size": 0}, {"max_retries": 0}, {"conflict_retries": -1}, {"probe_interval": 0}],
)
def test_validation(kwargs: dict[str, float]) -> None:
    with pytest.raises(FieldSyncConfigError):
        SyncConfig(**kwargs)


def test_retry_policy() -> None:
    policy = SyncConfig(max_retries=4, base_backoff=2, max_backoff=10).retry_policy()

    assert policy.max_retries == 4
    assert not policy.is_exhausted(3)
    assert policy.is_exhausted(4)
    assert [policy.backoff_delay(n) for n in range(5)] == [2, 4, 8, 10, 10]


def test_backoff_delay_caps_huge_attempts() -> None:
    assert RetryPolicy(base_delay=15, max_delay=300).backoff_delay(10_000) == 300
