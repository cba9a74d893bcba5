"""Engine configuration for fieldsync."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from fieldsync._constants import (
    DEFAULT_BASE_BACKOFF,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONFLICT_RETRIES,
    DEFAULT_DAILY_CHECK_INTERVAL,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SYNC_INTERVAL,
)
from fieldsync.exceptions import FieldSyncConfigError
from fieldsync.sync.retry import RetryPolicy


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Engine configuration.

    Parameters
    ----------
    base_url : str
        Base URL of the remote document store.
    health_url : str or None
        URL probed by the network monitor. Defaults to ``{base_url}/health``.
    storage_dir : Path
        Directory holding per-user persisted state.
    api_token : str or None
        Bearer token sent to the remote store, if any.
    sync_interval : float
        Seconds between sync ticks.
    probe_interval : float
        Seconds between reachability probes.
    daily_check_interval : float
        Seconds between checks for the once-per-day reconciliation.
    request_timeout : float
        Upper bound in seconds for every remote call. Expiry is treated
        as the store being unavailable.
    batch_size : int
        Maximum number of queue entries dispatched in one batch.
    max_retries : int
        Consecutive failed attempts after which a record is marked Failed.
    base_backoff : float
        First backoff delay in seconds after an unavailable remote.
    max_backoff : float
        Cap for the exponential backoff delay.
    conflict_retries : int
        Extra fetch, merge, write cycles attempted on a version conflict.
    """

    base_url: str = "http://localhost:8080"
    health_url: str | None = None
    storage_dir: Path = dataclasses.field(default_factory=lambda: Path(".fieldsync"))
    api_token: str | None = None
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    probe_interval: float = DEFAULT_PROBE_INTERVAL
    daily_check_interval: float = DEFAULT_DAILY_CHECK_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    base_backoff: float = DEFAULT_BASE_BACKOFF
    max_backoff: float = DEFAULT_MAX_BACKOFF
    conflict_retries: int = DEFAULT_CONFLICT_RETRIES

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise FieldSyncConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_retries < 1:
            raise FieldSyncConfigError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.conflict_retries < 0:
            raise FieldSyncConfigError(f"conflict_retries must be >= 0, got {self.conflict_retries}")
        for name in ("sync_interval", "probe_interval", "daily_check_interval", "request_timeout"):
            if getattr(self, name) <= 0:
                raise FieldSyncConfigError(f"{name} must be positive")

    @property
    def resolved_health_url(self) -> str:
        return self.health_url or f"{self.base_url.rstrip('/')}/health"

    def retry_policy(self) -> RetryPolicy:
        """Build the shared retry policy from this configuration."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_backoff,
            max_delay=self.max_backoff,
            conflict_retries=self.conflict_retries,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``FIELDSYNC_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FIELDSYNC_BASE_URL": "base_url",
            "FIELDSYNC_HEALTH_URL": "health_url",
            "FIELDSYNC_API_TOKEN": "api_token",
        }
        _ENV_FLOAT_MAP = {
            "FIELDSYNC_SYNC_INTERVAL": "sync_interval",
            "FIELDSYNC_PROBE_INTERVAL": "probe_interval",
            "FIELDSYNC_DAILY_CHECK_INTERVAL": "daily_check_interval",
            "FIELDSYNC_REQUEST_TIMEOUT": "request_timeout",
            "FIELDSYNC_BASE_BACKOFF": "base_backoff",
            "FIELDSYNC_MAX_BACKOFF": "max_backoff",
        }
        _ENV_INT_MAP = {
            "FIELDSYNC_BATCH_SIZE": "batch_size",
            "FIELDSYNC_MAX_RETRIES": "max_retries",
            "FIELDSYNC_CONFLICT_RETRIES": "conflict_retries",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise FieldSyncConfigError(f"Invalid numeric FIELDSYNC_* value: {exc}") from exc

        storage_env = env.get("FIELDSYNC_STORAGE_DIR")
        if storage_env is not None:
            config_kwargs["storage_dir"] = Path(storage_env)

        config_kwargs.update(overrides)
        if isinstance(config_kwargs.get("storage_dir"), str):
            config_kwargs["storage_dir"] = Path(config_kwargs["storage_dir"])

        return cls(**config_kwargs)
