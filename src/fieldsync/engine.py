"""High-level offline-first sync engine for one signed-in user."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from fieldsync._transport import HttpTransport
from fieldsync.config import SyncConfig
from fieldsync.exceptions import FieldSyncConfigError
from fieldsync.models._base import utcnow
from fieldsync.models.period import Period
from fieldsync.models.record import Record, RecordPayload
from fieldsync.remote import HttpRemoteGateway, RemoteGateway
from fieldsync.storage.backend import JsonFileBackend, StorageBackend
from fieldsync.storage.queue import SyncQueue
from fieldsync.storage.records import LocalRecordStore, RecordListener
from fieldsync.sync.network import NetworkMonitor, Probe, http_probe
from fieldsync.sync.scheduler import StatusListener, SyncReport, SyncScheduler, SyncStatus

_logger = logging.getLogger(__name__)


class FieldSyncEngine:
    """Capture API, read model and background sync for one user.

    Usage::

        async with FieldSyncEngine(config, user_id) as engine:
            engine.upsert("15", RecordPayload.from_punches("09:00", "18:00"))
            await engine.sync_now()

    The local store is usable as soon as the engine is constructed;
    entering the context creates the HTTP session (unless one was
    passed in) and starts the timers.
    """

    def __init__(
        self,
        config: SyncConfig,
        user_id: str,
        *,
        session: aiohttp.ClientSession | None = None,
        backend: StorageBackend | None = None,
        gateway: RemoteGateway | None = None,
        probe: Probe | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        user_id = user_id.strip()
        if not user_id or "/" in user_id:
            raise FieldSyncConfigError(f"invalid user id: {user_id!r}")
        self._config = config
        self._user_id = user_id
        self._external_session = session is not None
        self._http_session = session
        self._gateway = gateway
        self._probe = probe
        self._clock = clock

        self._backend = backend if backend is not None else JsonFileBackend(config.storage_dir / user_id)
        policy = config.retry_policy()
        self.records = LocalRecordStore(self._backend, clock=clock)
        self.queue = SyncQueue(self._backend, self.records, policy=policy, clock=clock)
        self.network: NetworkMonitor | None = None
        self._scheduler: SyncScheduler | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FieldSyncEngine:
        await self.open()
        self.scheduler.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def open(self) -> None:
        """Build the network-facing components without starting timers."""
        if self._scheduler is not None:
            return
        gateway = self._gateway
        probe = self._probe
        if gateway is None or probe is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = HttpTransport(self._config.base_url, self._http_session, api_token=self._config.api_token)
            if gateway is None:
                gateway = HttpRemoteGateway(transport, timeout=self._config.request_timeout)
            if probe is None:
                probe = http_probe(transport, self._config.resolved_health_url, timeout=self._config.request_timeout)

        self.network = NetworkMonitor(probe)
        self._scheduler = SyncScheduler(
            user_id=self._user_id,
            records=self.records,
            queue=self.queue,
            gateway=gateway,
            network=self.network,
            backend=self._backend,
            policy=self.queue.policy,
            clock=self._clock,
            batch_size=self._config.batch_size,
            sync_interval=self._config.sync_interval,
            probe_interval=self._config.probe_interval,
            daily_check_interval=self._config.daily_check_interval,
        )

    async def close(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    @property
    def scheduler(self) -> SyncScheduler:
        if self._scheduler is None:
            raise FieldSyncConfigError("Engine not opened. Use 'async with FieldSyncEngine(...) as engine:'")
        return self._scheduler

    @property
    def user_id(self) -> str:
        return self._user_id

    # ------------------------------------------------------------------
    # Capture and read model
    # ------------------------------------------------------------------

    def upsert(
        self,
        natural_key: str,
        payload: RecordPayload,
        *,
        period: Period | None = None,
        captured_at: datetime | None = None,
    ) -> Record:
        """Capture an event: durable locally, then queued for upload."""
        record = self.records.upsert(natural_key, payload, period=period, captured_at=captured_at)
        self.queue.enqueue(record.record_id)
        return record

    def list_all(self, *, period: Period | None = None) -> list[Record]:
        return self.records.list_all(period=period)

    def subscribe_records(self, listener: RecordListener) -> Callable[[], None]:
        return self.records.subscribe(listener)

    @property
    def status(self) -> SyncStatus:
        if self._scheduler is None:
            return SyncStatus.IDLE
        return self._scheduler.status

    def subscribe_status(self, listener: StatusListener) -> Callable[[], None]:
        return self.scheduler.subscribe(listener)

    # ------------------------------------------------------------------
    # Sync triggers
    # ------------------------------------------------------------------

    async def sync_now(self) -> SyncReport | None:
        """User-triggered sync; also retries records that previously failed."""
        return await self.scheduler.sync_now()

    async def sign_out(self) -> SyncReport | None:
        """Best-effort flush of the queue, then stop all timers."""
        report = await self.scheduler.flush()
        if report is not None and (report.requeued or report.unavailable):
            _logger.info("Sign-out left %d record(s) queued for next launch", len(self.queue))
        await self.close()
        return report
