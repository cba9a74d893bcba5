"""Timer-driven sync state machine.

States: ``Idle -> Syncing -> Idle`` on success, ``Syncing -> Backoff`` when
the remote store is unavailable, ``Backoff -> Idle`` once the backoff
interval has elapsed. Every gateway error is caught here and turned into
queue/record transitions; callers only ever see :class:`SyncStatus`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from fieldsync._constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DAILY_CHECK_INTERVAL,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_SYNC_INTERVAL,
    LAST_DAILY_SYNC_KEY,
)
from fieldsync.exceptions import (
    LocalStorageCorruptError,
    RemoteConflictError,
    RemoteGatewayError,
    RemotePermissionError,
    TransientNetworkError,
)
from fieldsync.models._base import parse_timestamp, utcnow
from fieldsync.models.aggregate import PeriodAggregate
from fieldsync.models.period import Period
from fieldsync.models.record import Record, SyncState, split_record_id
from fieldsync.remote import RemoteGateway
from fieldsync.storage.backend import StorageBackend
from fieldsync.storage.queue import SyncQueue
from fieldsync.storage.records import LocalRecordStore
from fieldsync.sync.merge import ConflictMerger
from fieldsync.sync.network import NetworkMonitor
from fieldsync.sync.retry import RetryPolicy

_logger = logging.getLogger(__name__)


class SchedulerState(enum.StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    BACKOFF = "backoff"


class SyncStatus(enum.StrEnum):
    """Aggregate status exposed to the UI."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


StatusListener = Callable[[SyncStatus], None]


@dataclass(slots=True)
class SyncReport:
    """Outcome counters of one sync pass."""

    batches: int = 0
    acked: int = 0
    requeued: int = 0
    failed: int = 0
    reconciled: int = 0
    reconcile_failed: bool = False
    unavailable: bool = False


class SyncScheduler:
    """Orchestrates queue, merger and gateway for one user.

    All timer state lives on the instance. ``tick``, ``probe_network`` and
    ``check_daily`` are the timer callbacks; tests drive them directly with
    a fake clock instead of calling :meth:`start`.
    """

    def __init__(
        self,
        *,
        user_id: str,
        records: LocalRecordStore,
        queue: SyncQueue,
        gateway: RemoteGateway,
        network: NetworkMonitor,
        backend: StorageBackend,
        policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        batch_size: int = DEFAULT_BATCH_SIZE,
        sync_interval: float = DEFAULT_SYNC_INTERVAL,
        probe_interval: float = DEFAULT_PROBE_INTERVAL,
        daily_check_interval: float = DEFAULT_DAILY_CHECK_INTERVAL,
    ) -> None:
        self._user_id = user_id
        self._records = records
        self._queue = queue
        self._gateway = gateway
        self._network = network
        self._backend = backend
        self._policy = policy or queue.policy
        self._clock = clock
        self._merger = ConflictMerger(clock=clock)
        self._batch_size = batch_size
        self._sync_interval = sync_interval
        self._probe_interval = probe_interval
        self._daily_check_interval = daily_check_interval

        self._state = SchedulerState.IDLE
        self._status = SyncStatus.IDLE
        self._backoff_until: datetime | None = None
        self._consecutive_unavailable = 0
        self._last_error: RemoteGatewayError | None = None
        self._listeners: list[StatusListener] = []
        self._tasks: list[asyncio.Task[None]] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def backoff_until(self) -> datetime | None:
        return self._backoff_until

    @property
    def last_error(self) -> RemoteGatewayError | None:
        return self._last_error

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call *listener* whenever the aggregate status changes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: SchedulerState) -> None:
        if state != self._state:
            _logger.info("Sync state %s -> %s", self._state, state)
            self._state = state
        if state == SchedulerState.SYNCING:
            status = SyncStatus.SYNCING
        elif state == SchedulerState.BACKOFF or self._records.list_by_state(SyncState.FAILED):
            status = SyncStatus.ERROR
        else:
            status = SyncStatus.IDLE
        if status == self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                _logger.debug("Status listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    async def tick(self) -> SyncReport | None:
        """Sync tick: run a pass when idle, online and something is queued."""
        if self._state == SchedulerState.SYNCING:
            _logger.debug("Tick ignored, sync already in progress")
            return None
        if self._state == SchedulerState.BACKOFF:
            if self._backoff_until is not None and self._clock() < self._backoff_until:
                return None
            self._backoff_until = None
            self._set_state(SchedulerState.IDLE)
        if not self._network.is_online:
            return None
        self._collect_pending()
        if not self._queue.has_dispatchable():
            return None
        return await self._run_pass()

    async def probe_network(self) -> bool:
        """Probe reachability; an offline to online transition syncs immediately."""
        was_online = self._network.is_online
        online = await self._network.probe()
        if online and not was_online and self._state != SchedulerState.SYNCING:
            _logger.info("Connectivity restored, syncing now")
            self._leave_backoff()
            self._collect_pending()
            if self._queue.has_dispatchable():
                await self._run_pass()
        return online

    async def check_daily(self) -> SyncReport | None:
        """Once per calendar day, pull remote changes and push the queue."""
        today = self._clock().date()
        last = self.last_daily_sync()
        if last is not None and last.date() >= today:
            return None
        if self._state == SchedulerState.SYNCING or not self._network.is_online:
            return None
        self._leave_backoff()
        report = await self._run_pass(reconcile_days=(today,))
        if not report.unavailable and not report.reconcile_failed:
            self._save_last_daily_sync(self._clock())
        return report

    # ------------------------------------------------------------------
    # User-triggered entry points
    # ------------------------------------------------------------------

    async def sync_now(self) -> SyncReport | None:
        """Manual sync: give Failed records a fresh retry budget and run a pass."""
        if self._state == SchedulerState.SYNCING:
            return None
        for record in self._records.list_by_state(SyncState.FAILED):
            self._records.update_state(record.record_id, SyncState.PENDING, retry_count=0)
            self._queue.enqueue(record.record_id)
        self._last_error = None
        self._leave_backoff()
        return await self._run_pass()

    async def flush(self) -> SyncReport | None:
        """Best-effort upload of the whole queue (sign-out); never raises."""
        if self._state == SchedulerState.SYNCING:
            return None
        try:
            self._leave_backoff()
            return await self._run_pass()
        except Exception:
            _logger.warning("Flush failed", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the sync, probe and daily timers on the running loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(self._probe_interval, self.probe_network, immediate=True)),
            asyncio.create_task(self._every(self._sync_interval, self.tick)),
            asyncio.create_task(self._every(self._daily_check_interval, self.check_daily, immediate=True)),
        ]

    async def stop(self) -> None:
        """Cancel timers. Unstarted batches stay queued for the next launch."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._queue.release_all()
        if self._state == SchedulerState.SYNCING:
            self._set_state(SchedulerState.IDLE)

    async def _every(self, interval: float, callback: Callable[[], Awaitable[object]], *, immediate: bool = False) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            try:
                await callback()
            except Exception:
                _logger.warning("Timer callback %s failed", getattr(callback, "__name__", callback), exc_info=True)
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Daily reconciliation marker
    # ------------------------------------------------------------------

    def last_daily_sync(self) -> datetime | None:
        try:
            raw = self._backend.load(LAST_DAILY_SYNC_KEY)
        except LocalStorageCorruptError as exc:
            _logger.warning("Daily sync marker unreadable: %s", exc)
            return None
        if not isinstance(raw, dict) or not raw.get("lastDailySync"):
            return None
        try:
            return parse_timestamp(raw["lastDailySync"])
        except (TypeError, ValueError):
            _logger.warning("Daily sync marker has invalid timestamp %r", raw["lastDailySync"])
            return None

    def _save_last_daily_sync(self, when: datetime) -> None:
        self._backend.save(LAST_DAILY_SYNC_KEY, {"lastDailySync": when.isoformat()})

    # ------------------------------------------------------------------
    # Sync pass
    # ------------------------------------------------------------------

    def _leave_backoff(self) -> None:
        if self._state == SchedulerState.BACKOFF:
            self._backoff_until = None
            self._set_state(SchedulerState.IDLE)

    def _collect_pending(self) -> None:
        # Records written straight to the store still get uploaded.
        for record in self._records.list_by_state(SyncState.PENDING):
            self._queue.enqueue(record.record_id)

    def _enter_backoff(self) -> None:
        delay = self._policy.backoff_delay(self._consecutive_unavailable)
        self._consecutive_unavailable += 1
        self._backoff_until = self._clock() + timedelta(seconds=delay)
        _logger.info("Remote unavailable, backing off for %.0fs", delay)
        self._set_state(SchedulerState.BACKOFF)

    async def _run_pass(self, *, reconcile_days: tuple[date, ...] = ()) -> SyncReport:
        report = SyncReport()
        # Each id goes out at most once per pass; nacked and re-enqueued
        # ids wait for the next one.
        dispatched: set[str] = set()
        self._set_state(SchedulerState.SYNCING)
        try:
            self._collect_pending()
            if reconcile_days:
                await self._reconcile(reconcile_days, report)
            while not report.unavailable:
                batch = self._queue.dequeue_batch(self._batch_size, skip=dispatched)
                if not batch:
                    break
                dispatched.update(batch)
                report.batches += 1
                await self._process_batch(batch, report)
        except TransientNetworkError as exc:
            self._last_error = exc
            report.unavailable = True
        except BaseException:
            self._queue.release_all()
            self._set_state(SchedulerState.IDLE)
            raise

        if report.unavailable:
            self._enter_backoff()
        else:
            self._consecutive_unavailable = 0
            if report.failed == 0 and report.requeued == 0 and not report.reconcile_failed:
                self._last_error = None
            self._set_state(SchedulerState.IDLE)
        _logger.debug("Sync pass done: %s", report)
        return report

    async def _reconcile(self, days: tuple[date, ...], report: SyncReport) -> None:
        """Pull the monthly and weekly documents covering *days* into the store.

        An unavailable store aborts the pass; any other gateway error is
        recorded on *report* and the queue is still pushed.
        """
        periods: dict[Period, None] = {}
        for day in days:
            periods.setdefault(Period.containing(day), None)
            periods.setdefault(Period.week_containing(day), None)
        for period in periods:
            try:
                remote = await self._gateway.fetch_period_document(self._user_id, period)
            except TransientNetworkError:
                raise
            except RemoteGatewayError as exc:
                _logger.warning("Reconciliation of %s failed: %s", period, exc)
                self._last_error = exc
                report.reconcile_failed = True
                continue
            if remote is not None:
                report.reconciled += self._records.apply_remote(period, remote.records)

    async def _process_batch(self, batch: list[str], report: SyncReport) -> None:
        period = split_record_id(batch[0])[0]
        sent: list[Record] = []
        for record_id in batch:
            record = self._records.update_state(record_id, SyncState.SYNCING)
            if record is None:
                # Nothing left to upload for this id.
                self._queue.ack(record_id)
                continue
            sent.append(record)
        if not sent:
            return

        try:
            await self._write_merged(period, sent)
        except TransientNetworkError as exc:
            _logger.info("Batch for %s unavailable: %s", period, exc)
            self._last_error = exc
            report.unavailable = True
            self._nack_all(sent, report)
        except RemotePermissionError as exc:
            _logger.warning("Batch for %s rejected: %s", period, exc)
            self._last_error = exc
            for record in sent:
                self._queue.drop(record.record_id)
                report.failed += 1
        except RemoteGatewayError as exc:
            # Conflicts that outlived their retries and malformed responses.
            _logger.warning("Batch for %s failed: %s", period, exc)
            self._last_error = exc
            self._nack_all(sent, report)
        else:
            self._ack_all(sent, report)

    def _nack_all(self, sent: list[Record], report: SyncReport) -> None:
        for record in sent:
            if self._queue.nack(record.record_id):
                report.failed += 1
            else:
                report.requeued += 1

    def _ack_all(self, sent: list[Record], report: SyncReport) -> None:
        for record in sent:
            self._queue.ack(record.record_id)
            current = self._records.get_by_id(record.record_id)
            if current is not None and (current.payload, current.captured_at) != (record.payload, record.captured_at):
                # Re-captured while the write was in flight: upload again.
                self._queue.enqueue(record.record_id)
                continue
            self._records.update_state(record.record_id, SyncState.SYNCED)
            report.acked += 1

    async def _write_merged(self, period: Period, sent: list[Record]) -> PeriodAggregate:
        last_conflict: RemoteConflictError | None = None
        attempts = self._policy.conflict_retries + 1
        for attempt in range(1, attempts + 1):
            remote = await self._gateway.fetch_period_document(self._user_id, period)
            aggregate = self._merger.merge(sent, remote, user_id=self._user_id, period=period)
            try:
                return await self._gateway.write_period_document(
                    self._user_id,
                    period,
                    aggregate,
                    expected_version=remote.version if remote is not None else None,
                )
            except RemoteConflictError as exc:
                last_conflict = exc
                _logger.info("Conflict writing %s (attempt %d/%d), refetching", period, attempt, attempts)

        assert last_conflict is not None  # noqa: S101
        raise last_conflict
