"""Tests for the reachability monitor."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from fieldsync._transport import JsonResponse
from fieldsync.exceptions import TransientNetworkError
from fieldsync.sync.network import NetworkMonitor, http_probe


class _Probe:
    def __init__(self, *results: bool | Exception) -> None:
        self.results = list(results)

    async def __call__(self) -> bool:
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class _StatusTransport:
    def __init__(self, status: int) -> None:
        self.status = status
        self.urls: list[str] = []

    async def request(self, method: str, path: str, *, body: Mapping[str, Any] | None = None, **kwargs: Any) -> JsonResponse:
        self.urls.append(path)
        return JsonResponse(status=self.status, body=None)


@pytest.mark.asyncio
async def test_listeners_hear_transitions_only() -> None:
    monitor = NetworkMonitor(_Probe(True, True, False, False, True))
    transitions: list[bool] = []
    monitor.subscribe(transitions.append)

    for _ in range(5):
        await monitor.probe()

    assert transitions == [True, False, True]
    assert monitor.is_online


@pytest.mark.asyncio
async def test_probe_errors_count_as_offline() -> None:
    monitor = NetworkMonitor(_Probe(TransientNetworkError("dns failure")), initially_online=True)

    assert await monitor.probe() is False
    assert not monitor.is_online


@pytest.mark.asyncio
async def test_unsubscribe() -> None:
    monitor = NetworkMonitor(_Probe(True, False))
    transitions: list[bool] = []
    unsubscribe = monitor.subscribe(transitions.append)

    await monitor.probe()
    unsubscribe()
    await monitor.probe()

    assert transitions == [True]


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "online"), [(200, True), (204, True), (302, True), (503, False), (404, False)])
async def test_http_probe(status: int, online: bool) -> None:
    transport = _StatusTransport(status)
    probe = http_probe(transport, "http://store.local/health", timeout=1.0)

    assert await probe() is online
    assert transport.urls == ["http://store.local/health"]
