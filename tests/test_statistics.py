"""Tests for period statistics."""

from __future__ import annotations

import random
from datetime import date

from _support import OCTOBER, make_record

from fieldsync.models import AttendanceStatus, Period, Record
from fieldsync.sync import statistics

TODAY = date(2026, 10, 15)


def _sample() -> list[Record]:
    return [
        make_record("1"),
        make_record("2", AttendanceStatus.HALF_DAY, total_hours=5),
        make_record("3"),  # Saturday
        make_record("5", AttendanceStatus.ON_LEAVE, punch_in=None, punch_out=None),
        make_record("20"),  # after today
    ]


def test_working_days_are_past_weekdays() -> None:
    days = statistics.working_days(OCTOBER, TODAY)
    assert len(days) == 11
    assert date(2026, 10, 3) not in days
    assert days[-1] == TODAY


def test_counts_and_percentages() -> None:
    stats = statistics.compute(_sample(), period=OCTOBER, today=TODAY)

    assert stats.present_days == 2
    assert stats.half_days == 1
    assert stats.leave_days == 1
    assert stats.absent_days == 8
    assert stats.total_leave_days == 9
    assert stats.working_days == 11
    assert stats.total_hours == 23.0
    assert stats.present_percentage == 18.2
    assert stats.half_day_percentage == 9.1
    assert stats.leave_percentage == 81.8
    assert stats.attendance_percentage == 27.3


def test_input_order_does_not_matter() -> None:
    records = _sample()
    expected = statistics.compute(records, period=OCTOBER, today=TODAY)
    rng = random.Random(7)
    for _ in range(10):
        rng.shuffle(records)
        assert statistics.compute(records, period=OCTOBER, today=TODAY) == expected


def test_recomputing_same_set_is_stable() -> None:
    records = _sample()
    first = statistics.compute(records, period=OCTOBER, today=TODAY)
    second = statistics.compute(records, period=OCTOBER, today=TODAY)
    assert first == second


def test_percentages_clamped_when_weekends_are_worked() -> None:
    records = [make_record(str(day)) for day in range(1, 32)]
    stats = statistics.compute(records, period=OCTOBER, today=date(2026, 10, 31))

    assert stats.present_days == 31
    assert stats.working_days == 22
    assert stats.present_percentage == 100.0
    assert stats.attendance_percentage == 100.0
    assert stats.absent_days == 0


def test_period_in_the_future_has_no_working_days() -> None:
    stats = statistics.compute([make_record("1")], period=OCTOBER, today=date(2026, 9, 30))

    assert stats.working_days == 0
    assert stats.present_days == 0
    assert stats.attendance_percentage == 0.0


def test_non_day_keys_are_ignored() -> None:
    stats = statistics.compute([make_record("offsite-meeting")], period=OCTOBER, today=TODAY)
    assert stats.present_days == 0
    assert stats.absent_days == 11


def test_weekly_period() -> None:
    week = Period.week_containing(TODAY)
    records = [make_record("1", period=week), make_record("2", AttendanceStatus.HALF_DAY, period=week, total_hours=4.5)]
    stats = statistics.compute(records, period=week, today=TODAY)

    # Monday through Thursday have elapsed.
    assert stats.working_days == 4
    assert stats.present_days == 1
    assert stats.half_days == 1
    assert stats.absent_days == 2
    assert stats.total_hours == 13.5
