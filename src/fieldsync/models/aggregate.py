"""Remote period aggregate document models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from fieldsync.models._base import FieldSyncModel, UtcTimestamp, utcnow
from fieldsync.models.period import Period
from fieldsync.models.record import Record


class Statistics(FieldSyncModel):
    """Period statistics. Always recomputed from the record set, never patched."""

    present_days: int = 0
    half_days: int = 0
    leave_days: int = 0
    """Days explicitly recorded as on leave."""
    absent_days: int = 0
    """Past weekdays in the period without any record."""
    working_days: int = 0
    total_hours: float = 0.0
    present_percentage: float = 0.0
    half_day_percentage: float = 0.0
    leave_percentage: float = 0.0
    attendance_percentage: float = 0.0

    @property
    def total_leave_days(self) -> int:
        return self.leave_days + self.absent_days


class PeriodAggregate(FieldSyncModel):
    """Canonical per-user, per-period document in the remote store.

    ``version`` is the store's opaque revision tag (HTTP ``ETag``); it is
    never part of the document body.
    """

    user_id: str
    period: Period
    records: tuple[Record, ...] = ()
    statistics: Statistics = Field(default_factory=Statistics)
    last_updated: UtcTimestamp = Field(default_factory=utcnow)
    version: str | None = None

    @property
    def document_id(self) -> str:
        return self.period.document_id(self.user_id)

    def record_for(self, natural_key: str) -> Record | None:
        for record in self.records:
            if record.natural_key == natural_key:
                return record
        return None

    def to_document(self) -> dict[str, Any]:
        """Whole-document body written on every sync."""
        body: dict[str, Any] = {
            "userId": self.user_id,
            "year": self.period.year,
            "month": self.period.month,
        }
        if self.period.week is not None:
            body["week"] = self.period.week
        body["records"] = [record.to_document() for record in self.records]
        body["statistics"] = self.statistics.to_wire()
        body["lastUpdated"] = self.last_updated.isoformat()
        return body

    @classmethod
    def from_document(cls, data: dict[str, Any], *, version: str | None = None) -> PeriodAggregate:
        period = Period(year=data["year"], month=data["month"], week=data.get("week"))
        raw_records = data.get("records") or []
        records = tuple(Record.from_document(item, period) for item in raw_records if isinstance(item, dict))
        return cls.model_validate(
            {
                "user_id": data["userId"],
                "period": period,
                "records": records,
                "statistics": data.get("statistics") or {},
                "last_updated": data.get("lastUpdated") or utcnow(),
                "version": version,
            }
        )
