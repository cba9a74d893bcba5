"""fieldsync - Async offline-first sync engine for field attendance records."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fieldsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fieldsync.config import SyncConfig
from fieldsync.engine import FieldSyncEngine
from fieldsync.exceptions import (
    FieldSyncConfigError,
    FieldSyncError,
    LocalStorageCorruptError,
    RemoteConflictError,
    RemoteGatewayError,
    RemotePermissionError,
    TransientNetworkError,
)
from fieldsync.models import (
    AttendanceStatus,
    Period,
    PeriodAggregate,
    Record,
    RecordOrigin,
    RecordPayload,
    Statistics,
    SyncQueueEntry,
    SyncState,
)
from fieldsync.remote import HttpRemoteGateway, RemoteGateway
from fieldsync.storage import JsonFileBackend, LocalRecordStore, MemoryBackend, SyncQueue
from fieldsync.sync.network import NetworkMonitor
from fieldsync.sync.retry import RetryPolicy
from fieldsync.sync.scheduler import SchedulerState, SyncReport, SyncScheduler, SyncStatus

__all__ = [
    "__version__",
    "AttendanceStatus",
    "FieldSyncConfigError",
    "FieldSyncEngine",
    "FieldSyncError",
    "HttpRemoteGateway",
    "JsonFileBackend",
    "LocalRecordStore",
    "LocalStorageCorruptError",
    "MemoryBackend",
    "NetworkMonitor",
    "Period",
    "PeriodAggregate",
    "Record",
    "RecordOrigin",
    "RecordPayload",
    "RemoteConflictError",
    "RemoteGateway",
    "RemoteGatewayError",
    "RemotePermissionError",
    "RetryPolicy",
    "SchedulerState",
    "Statistics",
    "SyncConfig",
    "SyncQueue",
    "SyncQueueEntry",
    "SyncReport",
    "SyncScheduler",
    "SyncState",
    "SyncStatus",
    "TransientNetworkError",
]
