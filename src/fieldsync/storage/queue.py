"""Durable, deduplicated queue of record ids awaiting upload."""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from datetime import datetime

from pydantic import ValidationError

from fieldsync._constants import SYNC_QUEUE_KEY
from fieldsync.exceptions import LocalStorageCorruptError
from fieldsync.models._base import utcnow
from fieldsync.models.period import Period
from fieldsync.models.queue import SyncQueueEntry
from fieldsync.models.record import SyncState
from fieldsync.storage.backend import StorageBackend
from fieldsync.storage.records import LocalRecordStore
from fieldsync.sync.retry import RetryPolicy

_logger = logging.getLogger(__name__)


class SyncQueue:
    """Pending record ids with retry bookkeeping.

    Entries are kept in enqueue order. Dispatched entries are tracked as
    in flight (in memory only) so a record never appears in two batches
    at once; after a restart everything is dispatchable again.
    """

    def __init__(
        self,
        backend: StorageBackend,
        records: LocalRecordStore,
        *,
        policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._records = records
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._entries: dict[str, SyncQueueEntry] = self._load()
        self._in_flight: set[str] = set()

    def _load(self) -> dict[str, SyncQueueEntry]:
        try:
            raw = self._backend.load(SYNC_QUEUE_KEY)
        except LocalStorageCorruptError as exc:
            _logger.warning("Sync queue unreadable, starting empty: %s", exc)
            return {}
        if not isinstance(raw, list):
            if raw is not None:
                _logger.warning("Sync queue has unexpected shape %s, starting empty", type(raw).__name__)
            return {}

        entries: dict[str, SyncQueueEntry] = {}
        for item in raw:
            try:
                entry = SyncQueueEntry.model_validate(item)
            except ValidationError as exc:
                _logger.warning("Dropping undecodable queue entry: %s", exc)
                continue
            entries.setdefault(entry.record_id, entry)
        return entries

    def _persist(self) -> None:
        self._backend.save(SYNC_QUEUE_KEY, [entry.to_wire() for entry in self._entries.values()])

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._entries

    def pending_ids(self) -> list[str]:
        return list(self._entries)

    def entry(self, record_id: str) -> SyncQueueEntry | None:
        return self._entries.get(record_id)

    def has_dispatchable(self) -> bool:
        return any(record_id not in self._in_flight for record_id in self._entries)

    def periods(self) -> list[Period]:
        """Distinct periods with queued entries, in queue order."""
        seen: dict[Period, None] = {}
        for entry in self._entries.values():
            seen.setdefault(entry.period, None)
        return list(seen)

    def enqueue(self, record_id: str) -> bool:
        """Add *record_id*; returns False if it was already queued."""
        if record_id in self._entries:
            return False
        self._entries[record_id] = SyncQueueEntry(record_id=record_id, enqueued_at=self._clock())
        self._persist()
        _logger.debug("Enqueued %s (queue size %d)", record_id, len(self._entries))
        return True

    def dequeue_batch(self, max_size: int, *, skip: Collection[str] = ()) -> list[str]:
        """Take up to *max_size* ids that all belong to the oldest queued period.

        Entries stay queued until acked or nacked; they are only marked
        as in flight. Ids in *skip* are passed over.
        """
        if max_size < 1:
            raise ValueError("max_size must be >= 1")

        batch: list[str] = []
        batch_period: Period | None = None
        for record_id, entry in self._entries.items():
            if record_id in self._in_flight or record_id in skip:
                continue
            if batch_period is None:
                batch_period = entry.period
            elif entry.period != batch_period:
                continue
            batch.append(record_id)
            if len(batch) >= max_size:
                break

        self._in_flight.update(batch)
        return batch

    def ack(self, record_id: str) -> None:
        """Remove a successfully uploaded entry."""
        self._in_flight.discard(record_id)
        if self._entries.pop(record_id, None) is not None:
            self._persist()

    def nack(self, record_id: str) -> bool:
        """Count a failed attempt.

        Returns True when the retry budget is exhausted: the entry is then
        dropped and the record marked Failed. It will not be retried until
        it is re-enqueued explicitly.
        """
        self._in_flight.discard(record_id)
        entry = self._entries.get(record_id)
        if entry is None:
            return False

        retry_count = entry.retry_count + 1
        if self._policy.is_exhausted(retry_count):
            del self._entries[record_id]
            self._persist()
            self._records.update_state(record_id, SyncState.FAILED, retry_count=retry_count)
            _logger.warning("Giving up on %s after %d attempts", record_id, retry_count)
            return True

        self._entries[record_id] = entry.model_copy(update={"retry_count": retry_count})
        self._persist()
        self._records.update_state(record_id, SyncState.PENDING, retry_count=retry_count)
        _logger.info("Attempt %d/%d failed for %s", retry_count, self._policy.max_retries, record_id)
        return False

    def drop(self, record_id: str) -> None:
        """Remove an entry after a terminal failure and mark its record Failed."""
        self._in_flight.discard(record_id)
        if self._entries.pop(record_id, None) is not None:
            self._persist()
        self._records.update_state(record_id, SyncState.FAILED)

    def release(self, record_id: str) -> None:
        """Make an in-flight entry dispatchable again without counting an attempt."""
        self._in_flight.discard(record_id)

    def release_all(self) -> None:
        self._in_flight.clear()
