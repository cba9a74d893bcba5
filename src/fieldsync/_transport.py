"""JSON-over-HTTP transport for the remote document store."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from fieldsync._constants import USER_AGENT
from fieldsync._redact import redact_for_log
from fieldsync.exceptions import RemoteGatewayError, TransientNetworkError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JsonResponse:
    """Decoded response: status, JSON body (``None`` when empty) and ETag."""

    status: int
    body: Any
    etag: str | None = None


class Transport(Protocol):
    """Structural transport interface used by the remote gateway.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> JsonResponse:
        ...


class HttpTransport:
    """aiohttp transport that adds auth headers and decodes JSON bodies.

    Non-2xx statuses are returned, not raised; mapping them onto the
    failure taxonomy is the gateway's job.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        api_token: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._api_token = api_token

    def _headers(self, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if self._api_token:
            headers["authorization"] = f"Bearer {self._api_token}"
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> JsonResponse:
        url = path if path.startswith(("http://", "https://")) else f"{self._base_url}{path}"
        data = json.dumps(body, separators=(",", ":")) if body is not None else None

        _logger.debug("%s %s body=%s", method, url, redact_for_log(body))

        try:
            async with self._http.request(method, url, data=data, headers=self._headers(headers)) as resp:
                text = await resp.text()
                status = resp.status
                etag = resp.headers.get("ETag")
        except aiohttp.ClientError as exc:
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc

        _logger.debug("%s %s -> HTTP %d", method, url, status)

        if not text.strip():
            return JsonResponse(status=status, body=None, etag=etag)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            if status >= 400:
                # Error pages are often HTML; keep the status, drop the body.
                return JsonResponse(status=status, body=None, etag=etag)
            raise RemoteGatewayError(
                f"Invalid JSON from {path}: {text[:200]}",
                status_code=status,
            ) from exc
        return JsonResponse(status=status, body=parsed, etag=etag)
