"""Durable on-device state: captured records and the upload queue."""

from fieldsync.storage.backend import JsonFileBackend, MemoryBackend, StorageBackend
from fieldsync.storage.queue import SyncQueue
from fieldsync.storage.records import LocalRecordStore

__all__ = [
    "JsonFileBackend",
    "LocalRecordStore",
    "MemoryBackend",
    "StorageBackend",
    "SyncQueue",
]
