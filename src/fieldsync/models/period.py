"""Calendar periods under which records are aggregated remotely."""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from datetime import date, timedelta

from pydantic import Field, ValidationError, model_validator

from fieldsync.models._base import FieldSyncModel


def natural_key_order(natural_key: str) -> tuple[int, str]:
    """Sort key placing numeric natural keys in numeric order ("2" before "10")."""
    stripped = natural_key.strip()
    if stripped.isdigit():
        return (int(stripped), "")
    return (1 << 30, stripped)


class Period(FieldSyncModel):
    """A calendar month, or an ISO week when ``week`` is set.

    Inside a monthly period natural keys are day-of-month strings
    (``"1"``..``"31"``). Inside a weekly period they are ISO weekday
    strings (``"1"`` Monday .. ``"7"`` Sunday). ``month`` of a weekly
    period is the month its Monday falls in and only affects naming.
    """

    year: int = Field(ge=1970, le=9999)
    month: int = Field(ge=1, le=12)
    week: int | None = Field(default=None, ge=1, le=53)

    @model_validator(mode="after")
    def _check_week(self) -> Period:
        if self.week is not None:
            # Raises ValueError for week 53 in 52-week years.
            date.fromisocalendar(self.year, self.week, 1)
        return self

    @classmethod
    def containing(cls, day: date) -> Period:
        """Monthly period that contains *day*."""
        return cls(year=day.year, month=day.month)

    @classmethod
    def week_containing(cls, day: date) -> Period:
        iso_year, iso_week, iso_weekday = day.isocalendar()
        monday = day - timedelta(days=iso_weekday - 1)
        return cls(year=iso_year, month=monday.month, week=iso_week)

    @classmethod
    def from_key(cls, key: str) -> Period:
        """Inverse of :attr:`key`."""
        parts = key.split("_")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise ValueError(f"invalid period key: {key!r}")
        week = int(parts[2]) if len(parts) == 3 else None
        try:
            return cls(year=int(parts[0]), month=int(parts[1]), week=week)
        except ValidationError as exc:
            raise ValueError(f"invalid period key: {key!r}") from exc

    @property
    def key(self) -> str:
        if self.week is not None:
            return f"{self.year}_{self.month}_{self.week}"
        return f"{self.year}_{self.month}"

    @property
    def is_weekly(self) -> bool:
        return self.week is not None

    def document_id(self, user_id: str) -> str:
        """Remote document ID: ``{userId}_{year}_{month}`` (or ``_{week}``)."""
        return f"{user_id}_{self.key}"

    def first_day(self) -> date:
        if self.week is not None:
            return date.fromisocalendar(self.year, self.week, 1)
        return date(self.year, self.month, 1)

    def days(self) -> Iterator[date]:
        """Every calendar date in the period, ascending."""
        start = self.first_day()
        length = 7 if self.week is not None else calendar.monthrange(self.year, self.month)[1]
        for offset in range(length):
            yield start + timedelta(days=offset)

    def date_for(self, natural_key: str) -> date | None:
        """Calendar date a natural key refers to, or ``None`` if it is not a day key."""
        stripped = natural_key.strip()
        if not stripped.isdigit():
            return None
        index = int(stripped)
        if self.week is not None:
            if not 1 <= index <= 7:
                return None
            return date.fromisocalendar(self.year, self.week, index)
        if not 1 <= index <= calendar.monthrange(self.year, self.month)[1]:
            return None
        return date(self.year, self.month, index)

    def natural_key_for(self, day: date) -> str:
        if self.week is not None:
            return str(day.isoweekday())
        return str(day.day)

    def __contains__(self, day: object) -> bool:
        if not isinstance(day, date):
            return False
        if self.week is not None:
            iso_year, iso_week, _ = day.isocalendar()
            return (iso_year, iso_week) == (self.year, self.week)
        return (day.year, day.month) == (self.year, self.month)

    def __str__(self) -> str:
        return self.key
