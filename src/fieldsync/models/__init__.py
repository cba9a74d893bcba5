"""Data models for fieldsync records and remote documents."""

from fieldsync.models._base import FieldSyncModel, UtcTimestamp, parse_timestamp
from fieldsync.models.aggregate import PeriodAggregate, Statistics
from fieldsync.models.period import Period, natural_key_order
from fieldsync.models.queue import SyncQueueEntry
from fieldsync.models.record import (
    AttendanceStatus,
    Record,
    RecordOrigin,
    RecordPayload,
    SyncState,
    derive_status,
    make_record_id,
    split_record_id,
    worked_hours_between,
)

__all__ = [
    "AttendanceStatus",
    "FieldSyncModel",
    "Period",
    "PeriodAggregate",
    "Record",
    "RecordOrigin",
    "RecordPayload",
    "Statistics",
    "SyncQueueEntry",
    "SyncState",
    "UtcTimestamp",
    "derive_status",
    "make_record_id",
    "natural_key_order",
    "parse_timestamp",
    "split_record_id",
    "worked_hours_between",
]
