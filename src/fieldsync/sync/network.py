"""Periodic reachability probe."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from fieldsync._transport import Transport

_logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]
ConnectivityListener = Callable[[bool], None]


def http_probe(transport: Transport, health_url: str, *, timeout: float) -> Probe:
    """Probe that GETs *health_url* and reports any 2xx/3xx as online."""

    async def _probe() -> bool:
        response = await asyncio.wait_for(transport.request("GET", health_url), timeout)
        return 200 <= response.status < 400

    return _probe


class NetworkMonitor:
    """Tracks whether the remote store is reachable.

    ``probe`` is any coroutine function returning a bool; errors and
    timeouts inside it count as offline. Listeners only hear about
    transitions, not every probe.
    """

    def __init__(self, probe: Probe, *, initially_online: bool = False) -> None:
        self._probe = probe
        self._online = initially_online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    async def probe(self) -> bool:
        try:
            online = bool(await self._probe())
        except Exception:
            _logger.debug("Reachability probe failed", exc_info=True)
            online = False
        self._set(online)
        return online

    def _set(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        _logger.info("Network %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                _logger.debug("Connectivity listener failed", exc_info=True)

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
