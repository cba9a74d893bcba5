"""Durable on-device store of captured records."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from fieldsync._constants import LOCAL_RECORDS_KEY
from fieldsync.exceptions import LocalStorageCorruptError
from fieldsync.models._base import utcnow
from fieldsync.models.period import Period, natural_key_order
from fieldsync.models.record import Record, RecordOrigin, RecordPayload, SyncState, make_record_id
from fieldsync.storage.backend import StorageBackend

_logger = logging.getLogger(__name__)

RecordListener = Callable[[list[Record]], None]


def _sort_key(record: Record) -> tuple[Any, ...]:
    period = record.period
    return (period.year, period.month, period.week or 0, natural_key_order(record.natural_key))


class LocalRecordStore:
    """Keyed storage of capture events for one user.

    Every mutating method persists the full collection before it returns
    and contains no awaits, so under a single event loop each mutation
    runs to completion without interleaving.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._records: dict[str, Record] = self._load()
        self._listeners: list[RecordListener] = []

    def _load(self) -> dict[str, Record]:
        try:
            raw = self._backend.load(LOCAL_RECORDS_KEY)
        except LocalStorageCorruptError as exc:
            _logger.warning("Local records unreadable, starting empty: %s", exc)
            return {}
        if raw is None:
            return {}
        if not isinstance(raw, list):
            _logger.warning("Local records have unexpected shape %s, starting empty", type(raw).__name__)
            return {}

        records: dict[str, Record] = {}
        for item in raw:
            try:
                record = Record.model_validate(item)
            except ValidationError as exc:
                _logger.warning("Dropping undecodable local record: %s", exc.errors()[:1])
                continue
            records[record.record_id] = record
        return records

    def _persist(self) -> None:
        ordered = sorted(self._records.values(), key=_sort_key)
        self._backend.save(LOCAL_RECORDS_KEY, [record.to_wire() for record in ordered])
        snapshot = list(ordered)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.debug("Record listener failed", exc_info=True)

    def _resolve_period(self, period: Period | None) -> Period:
        if period is not None:
            return period
        return Period.containing(self._clock().date())

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def upsert(
        self,
        natural_key: str,
        payload: RecordPayload,
        *,
        period: Period | None = None,
        captured_at: datetime | None = None,
    ) -> Record:
        """Store a capture event, replacing any record with the same key.

        The record becomes a local, pending record and is durable when
        this returns.
        """
        captured_at = captured_at or self._clock()
        if period is None:
            period = Period.containing(captured_at.date())
        record = Record(
            natural_key=natural_key,
            period=period,
            captured_at=captured_at,
            payload=payload,
            origin=RecordOrigin.LOCAL,
            sync_state=SyncState.PENDING,
            retry_count=0,
        )
        self._records[record.record_id] = record
        self._persist()
        _logger.debug("Upserted %s (%s)", record.record_id, payload.status)
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, natural_key: str, *, period: Period | None = None) -> Record | None:
        key = str(natural_key).strip()
        if key.isdigit():
            key = str(int(key))
        return self._records.get(make_record_id(self._resolve_period(period), key))

    def get_by_id(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def list_all(self, *, period: Period | None = None) -> list[Record]:
        """All records ordered by period, then natural key."""
        records: Iterable[Record] = self._records.values()
        if period is not None:
            records = (record for record in records if record.period == period)
        return sorted(records, key=_sort_key)

    def list_by_state(self, state: SyncState) -> list[Record]:
        return [record for record in self.list_all() if record.sync_state == state]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # ------------------------------------------------------------------
    # Sync state transitions
    # ------------------------------------------------------------------

    def update_state(self, record_id: str, state: SyncState, *, retry_count: int | None = None) -> Record | None:
        """Move a record to *state*; unknown ids are ignored."""
        record = self._records.get(record_id)
        if record is None:
            _logger.debug("State update for unknown record %s ignored", record_id)
            return None
        changes: dict[str, Any] = {}
        if retry_count is not None:
            changes["retry_count"] = retry_count
        if state == SyncState.SYNCED:
            changes["retry_count"] = 0
        updated = record.with_state(state, **changes)
        self._records[record_id] = updated
        self._persist()
        return updated

    def mark_synced(self, natural_key: str, *, period: Period | None = None) -> Record | None:
        return self._mark(natural_key, period, SyncState.SYNCED)

    def mark_failed(self, natural_key: str, *, period: Period | None = None) -> Record | None:
        return self._mark(natural_key, period, SyncState.FAILED)

    def mark_syncing(self, natural_key: str, *, period: Period | None = None) -> Record | None:
        return self._mark(natural_key, period, SyncState.SYNCING)

    def _mark(self, natural_key: str, period: Period | None, state: SyncState) -> Record | None:
        record = self.get(natural_key, period=period)
        if record is None:
            return None
        return self.update_state(record.record_id, state)

    # ------------------------------------------------------------------
    # Remote-to-local propagation
    # ------------------------------------------------------------------

    def apply_remote(self, period: Period, records: Iterable[Record]) -> int:
        """Adopt remote records for *period*.

        Only keys that are absent locally or already synced are replaced;
        anything captured locally and not yet synced wins. Returns the
        number of records changed.
        """
        changed = 0
        for remote in records:
            adopted = remote.model_copy(
                update={"period": period, "origin": RecordOrigin.REMOTE, "sync_state": SyncState.SYNCED, "retry_count": 0}
            )
            local = self._records.get(adopted.record_id)
            if local is not None and local.sync_state != SyncState.SYNCED:
                continue
            if local is not None and local.payload == adopted.payload:
                continue
            self._records[adopted.record_id] = adopted
            changed += 1
        if changed:
            self._persist()
            _logger.info("Adopted %d remote record(s) for %s", changed, period)
        return changed

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: RecordListener) -> Callable[[], None]:
        """Call *listener* with the full ordered record list after each change."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
