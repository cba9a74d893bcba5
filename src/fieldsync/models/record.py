"""Capture record models."""

from __future__ import annotations

import enum
from datetime import date
from typing import Any

from pydantic import Field, field_validator

from fieldsync._constants import FULL_DAY_MIN_HOURS, HALF_DAY_MIN_HOURS
from fieldsync.models._base import FieldSyncModel, UtcTimestamp, utcnow
from fieldsync.models.period import Period


class AttendanceStatus(enum.StrEnum):
    """Attendance status as shown on the capture screens."""

    PRESENT = "Present"
    HALF_DAY = "Half Day"
    ON_LEAVE = "On Leave"

    @classmethod
    def _missing_(cls, value: object) -> AttendanceStatus | None:
        # Older builds stored snake_case statuses ("half_day", "on_leave").
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", " ")
            for member in cls:
                if member.value.lower() == normalized:
                    return member
        return None


class RecordOrigin(enum.StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class SyncState(enum.StrEnum):
    PENDING = "Pending"
    SYNCING = "Syncing"
    SYNCED = "Synced"
    FAILED = "Failed"


def _parse_clock(value: str) -> int:
    """``"HH:MM"`` to minutes after midnight."""
    hours, _, minutes = value.strip().partition(":")
    total = int(hours) * 60 + int(minutes or 0)
    if not 0 <= total < 24 * 60:
        raise ValueError(f"time out of range: {value!r}")
    return total


def worked_hours_between(punch_in: str, punch_out: str) -> float:
    """Hours between two ``"HH:MM"`` times, wrapping past midnight."""
    start = _parse_clock(punch_in)
    end = _parse_clock(punch_out)
    if end < start:
        end += 24 * 60
    return (end - start) / 60


def derive_status(punch_in: str | None, punch_out: str | None) -> AttendanceStatus:
    """Attendance status implied by the punch times of one day.

    A punch-in without a punch-out counts as present (the shift is still
    open); otherwise the worked duration decides.
    """
    if not punch_in:
        return AttendanceStatus.ON_LEAVE
    if not punch_out:
        return AttendanceStatus.PRESENT
    hours = worked_hours_between(punch_in, punch_out)
    if hours < HALF_DAY_MIN_HOURS:
        return AttendanceStatus.ON_LEAVE
    if hours < FULL_DAY_MIN_HOURS:
        return AttendanceStatus.HALF_DAY
    return AttendanceStatus.PRESENT


class RecordPayload(FieldSyncModel):
    """What the user captured for one day.

    Parameters
    ----------
    status : AttendanceStatus
        Attendance status for the day.
    punch_in : str or None
        Punch-in time as ``"HH:MM"``.
    punch_out : str or None
        Punch-out time as ``"HH:MM"``.
    total_hours : float or None
        Worked hours when supplied by the capture screen; otherwise
        derived from the punch times.
    location_name : str or None
        Human readable location of the punch.
    photo_url : str or None
        Uploaded selfie for the punch.
    notes : dict
        Free-form meeting or daily report details.
    """

    status: AttendanceStatus
    punch_in: str | None = None
    punch_out: str | None = None
    total_hours: float | None = Field(default=None, ge=0)
    location_name: str | None = None
    photo_url: str | None = None
    notes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("punch_in", "punch_out")
    @classmethod
    def _validate_clock(cls, value: str | None) -> str | None:
        if value is None:
            return value
        minutes = _parse_clock(value)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @classmethod
    def from_punches(cls, punch_in: str | None, punch_out: str | None = None, **extra: Any) -> RecordPayload:
        """Build a payload whose status is derived from the punch times."""
        return cls(status=derive_status(punch_in, punch_out), punch_in=punch_in, punch_out=punch_out, **extra)

    def worked_hours(self) -> float:
        if self.total_hours is not None:
            return self.total_hours
        if self.punch_in and self.punch_out:
            return worked_hours_between(self.punch_in, self.punch_out)
        return 0.0


def make_record_id(period: Period, natural_key: str) -> str:
    return f"{period.key}:{natural_key}"


def split_record_id(record_id: str) -> tuple[Period, str]:
    """Inverse of :func:`make_record_id`."""
    period_key, sep, natural_key = record_id.partition(":")
    if not sep or not natural_key:
        raise ValueError(f"invalid record id: {record_id!r}")
    return Period.from_key(period_key), natural_key


class Record(FieldSyncModel):
    """One captured event, unique per (user, period, natural key)."""

    natural_key: str = Field(min_length=1)
    period: Period
    captured_at: UtcTimestamp = Field(default_factory=utcnow)
    payload: RecordPayload
    origin: RecordOrigin = RecordOrigin.LOCAL
    sync_state: SyncState = SyncState.PENDING
    retry_count: int = Field(default=0, ge=0)

    @field_validator("natural_key", mode="before")
    @classmethod
    def _normalize_key(cls, value: Any) -> str:
        key = str(value).strip()
        # "05" and "5" name the same day.
        return str(int(key)) if key.isdigit() else key

    @property
    def record_id(self) -> str:
        return make_record_id(self.period, self.natural_key)

    @property
    def day(self) -> date | None:
        return self.period.date_for(self.natural_key)

    @property
    def status(self) -> AttendanceStatus:
        return self.payload.status

    def with_state(self, state: SyncState, **changes: Any) -> Record:
        return self.model_copy(update={"sync_state": state, **changes})

    def to_document(self) -> dict[str, Any]:
        """Remote representation, without local bookkeeping fields."""
        return self.to_wire(exclude={"period", "origin", "sync_state", "retry_count"})

    @classmethod
    def from_document(cls, data: dict[str, Any], period: Period) -> Record:
        return cls.model_validate(
            {
                **data,
                "period": period,
                "origin": RecordOrigin.REMOTE,
                "sync_state": SyncState.SYNCED,
                "retry_count": 0,
            }
        )