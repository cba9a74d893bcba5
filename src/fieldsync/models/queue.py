"""Sync queue entry model."""

from __future__ import annotations

from pydantic import Field, field_validator

from fieldsync.models._base import FieldSyncModel, UtcTimestamp, utcnow
from fieldsync.models.period import Period
from fieldsync.models.record import split_record_id


class SyncQueueEntry(FieldSyncModel):
    record_id: str
    enqueued_at: UtcTimestamp = Field(default_factory=utcnow)
    retry_count: int = Field(default=0, ge=0)

    @field_validator("record_id")
    @classmethod
    def _check_record_id(cls, value: str) -> str:
        split_record_id(value)
        return value

    @property
    def period(self) -> Period:
        return split_record_id(self.record_id)[0]
