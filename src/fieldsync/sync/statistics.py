"""Period statistics, recomputed from scratch on every merge.

Nothing in here accumulates across calls: feeding the same record set
twice yields the same snapshot, and input order never matters.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import date

from fieldsync.models.aggregate import Statistics
from fieldsync.models.period import Period
from fieldsync.models.record import AttendanceStatus, Record


def _is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def _percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    value = round(count * 100.0 / total, 1)
    return min(100.0, max(0.0, value))


def working_days(period: Period, today: date) -> list[date]:
    """Weekdays of *period* up to and including *today*."""
    return [day for day in period.days() if day <= today and not _is_weekend(day)]


def compute(records: Iterable[Record], *, period: Period, today: date) -> Statistics:
    """Tally *records* of *period* as of *today*.

    Records dated after *today* (or whose natural key does not name a day
    of the period) are ignored. Weekdays up to *today* with no record
    count as absent.
    """
    counts = {status: 0 for status in AttendanceStatus}
    hours: list[float] = []
    recorded: set[date] = set()

    for record in records:
        day = period.date_for(record.natural_key)
        if day is None or day > today:
            continue
        recorded.add(day)
        counts[record.status] += 1
        hours.append(record.payload.worked_hours())

    workdays = working_days(period, today)
    absent = sum(1 for day in workdays if day not in recorded)
    total = len(workdays)

    present = counts[AttendanceStatus.PRESENT]
    half = counts[AttendanceStatus.HALF_DAY]
    leave = counts[AttendanceStatus.ON_LEAVE]

    return Statistics(
        present_days=present,
        half_days=half,
        leave_days=leave,
        absent_days=absent,
        working_days=total,
        # fsum is exact, so the total does not depend on summation order.
        total_hours=round(math.fsum(hours), 2),
        present_percentage=_percentage(present, total),
        half_day_percentage=_percentage(half, total),
        leave_percentage=_percentage(leave + absent, total),
        attendance_percentage=_percentage(present + half, total),
    )
