"""Builders shared by the fieldsync tests."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from fieldsync._transport import JsonResponse
from fieldsync.models import AttendanceStatus, Period, PeriodAggregate, Record, RecordPayload

OCTOBER = Period(year=2026, month=10)
# Thursday, mid-month.
NOW = datetime(2026, 10, 15, 9, 30, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock for deterministic timer logic."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_record(
    key: str,
    status: AttendanceStatus = AttendanceStatus.PRESENT,
    *,
    period: Period = OCTOBER,
    captured_at: datetime = NOW,
    punch_in: str | None = "09:00",
    punch_out: str | None = "18:00",
    total_hours: float | None = None,
) -> Record:
    return Record(
        natural_key=key,
        period=period,
        captured_at=captured_at,
        payload=RecordPayload(status=status, punch_in=punch_in, punch_out=punch_out, total_hours=total_hours),
    )




class Switch:
    """Reachability probe whose answer the test flips by hand."""

    def __init__(self, online: bool = True) -> None:
        self.online = online
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.online


class DocumentStoreTransport:
    """In-memory stand-in for the remote document API.

    GET/PUT on ``/users/{user}/periods/{doc}`` with integer ETags and
    ``If-Match`` checks. ``down`` makes every request hang until the
    caller's timeout fires; ``reject_writes`` answers every PUT with
    that status; ``gate`` holds requests until it is set;
    ``before_write`` runs once just before the next PUT is applied.
    """

    def __init__(self) -> None:
        self.documents: dict[str, tuple[dict[str, Any], int]] = {}
        self.calls: list[tuple[str, str]] = []
        self.down = False
        self.reject_writes: int | None = None
        self.gate: asyncio.Event | None = None
        self.before_write: Callable[[], None] | None = None

    @staticmethod
    def path(user_id: str, period: Period) -> str:
        return f"/users/{user_id}/periods/{period.document_id(user_id)}"

    def document(self, user_id: str, period: Period) -> dict[str, Any] | None:
        stored = self.documents.get(self.path(user_id, period))
        return stored[0] if stored else None

    def put_document(self, aggregate: PeriodAggregate) -> None:
        """Write directly, as another device would."""
        path = self.path(aggregate.user_id, aggregate.period)
        version = self.documents[path][1] + 1 if path in self.documents else 1
        self.documents[path] = (aggregate.to_document(), version)

    def count(self, method: str) -> int:
        return sum(1 for call_method, _ in self.calls if call_method == method)

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> JsonResponse:
        self.calls.append((method, path))
        if self.down:
            await asyncio.sleep(3600)
        if self.gate is not None:
            await self.gate.wait()

        stored = self.documents.get(path)
        if method == "GET":
            if stored is None:
                return JsonResponse(status=404, body={"message": "no such document"})
            return JsonResponse(status=200, body=copy.deepcopy(stored[0]), etag=f'"{stored[1]}"')

        if method == "PUT" and body is not None:
            if self.reject_writes is not None:
                return JsonResponse(status=self.reject_writes, body={"message": "rejected"})
            if self.before_write is not None:
                hook, self.before_write = self.before_write, None
                hook()
                stored = self.documents.get(path)
            expected = (headers or {}).get("If-Match")
            if stored is not None and expected is not None and expected != f'"{stored[1]}"':
                return JsonResponse(status=412, body={"message": "version mismatch"})
            version = stored[1] + 1 if stored is not None else 1
            self.documents[path] = (copy.deepcopy(dict(body)), version)
            return JsonResponse(status=200, body=None, etag=f'"{version}"')

        return JsonResponse(status=405, body=None)
