"""Deterministic local-wins merge of pending records into a period document.

This is precedence-based, not vector-clock reconciliation: it assumes a
single authoring device per user, whose captures are authoritative for
the keys they touch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime

from fieldsync.models._base import utcnow
from fieldsync.models.aggregate import PeriodAggregate
from fieldsync.models.period import Period, natural_key_order
from fieldsync.models.record import Record, RecordOrigin
from fieldsync.sync import statistics


def _local_order(record: Record) -> tuple[tuple[int, str], datetime, str]:
    # Latest capture of a duplicated key is applied last and wins; the
    # payload JSON breaks exact ties so input order never matters.
    return (natural_key_order(record.natural_key), record.captured_at, record.payload.model_dump_json())


def merge(
    local_records: Iterable[Record],
    remote: PeriodAggregate | None,
    *,
    user_id: str,
    period: Period,
    now: datetime,
    today: date,
) -> PeriodAggregate:
    """Combine *local_records* with the *remote* document for *period*.

    Returns a new aggregate whose records are unique by natural key and
    sorted ascending, with freshly computed statistics. ``version`` is
    carried over from *remote* for the conditional write.
    """
    merged: dict[str, Record] = {}
    if remote is not None:
        for record in remote.records:
            merged[record.natural_key] = record

    for record in sorted(local_records, key=_local_order):
        if record.period != period:
            raise ValueError(f"record {record.record_id} does not belong to period {period}")
        merged[record.natural_key] = record.model_copy(update={"origin": RecordOrigin.LOCAL})

    ordered = tuple(sorted(merged.values(), key=lambda record: natural_key_order(record.natural_key)))

    return PeriodAggregate(
        user_id=user_id,
        period=period,
        records=ordered,
        statistics=statistics.compute(ordered, period=period, today=today),
        last_updated=now,
        version=remote.version if remote is not None else None,
    )


class ConflictMerger:
    """Clock-bound wrapper around :func:`merge` used by the scheduler."""

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def merge(
        self,
        local_records: Iterable[Record],
        remote: PeriodAggregate | None,
        *,
        user_id: str,
        period: Period,
    ) -> PeriodAggregate:
        now = self._clock()
        return merge(local_records, remote, user_id=user_id, period=period, now=now, today=now.date())
