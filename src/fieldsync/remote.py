"""Atomic read/write of per-user, per-period aggregate documents."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import quote

from pydantic import ValidationError

from fieldsync._constants import (
    CONFLICT_STATUSES,
    DEFAULT_REQUEST_TIMEOUT,
    PERMISSION_STATUSES,
    TRANSIENT_STATUSES,
)
from fieldsync._transport import JsonResponse, Transport
from fieldsync.exceptions import (
    RemoteConflictError,
    RemoteGatewayError,
    RemotePermissionError,
    TransientNetworkError,
)
from fieldsync.models.aggregate import PeriodAggregate
from fieldsync.models.period import Period

_logger = logging.getLogger(__name__)


class RemoteGateway(Protocol):
    """Canonical store of period aggregates.

    Implementations raise :class:`TransientNetworkError`,
    :class:`RemotePermissionError` or :class:`RemoteConflictError`.
    """

    async def fetch_period_document(self, user_id: str, period: Period) -> PeriodAggregate | None:
        ...

    async def write_period_document(
        self,
        user_id: str,
        period: Period,
        aggregate: PeriodAggregate,
        *,
        expected_version: str | None = None,
    ) -> PeriodAggregate:
        ...


def _raise_for_status(response: JsonResponse, *, document_id: str, action: str) -> None:
    status = response.status
    if 200 <= status < 300:
        return
    message = f"{action} {document_id} failed: HTTP {status}"
    if isinstance(response.body, Mapping) and response.body.get("message"):
        message = f"{message} ({response.body['message']})"

    if status in PERMISSION_STATUSES:
        raise RemotePermissionError(message, status_code=status, document_id=document_id)
    if status in CONFLICT_STATUSES:
        raise RemoteConflictError(message, status_code=status, document_id=document_id)
    if status in TRANSIENT_STATUSES or status >= 500:
        raise TransientNetworkError(message, status_code=status, document_id=document_id)
    raise RemoteGatewayError(message, status_code=status, document_id=document_id)


class HttpRemoteGateway:
    """Remote gateway over a JSON document API.

    Documents live at ``/users/{userId}/periods/{documentId}``. Writes are
    whole-document ``PUT``s, made conditional (``If-Match``) on the version
    read by the preceding fetch when the store reported one.
    """

    def __init__(self, transport: Transport, *, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self._transport = transport
        self._timeout = timeout

    @staticmethod
    def _path(user_id: str, period: Period) -> str:
        document_id = period.document_id(user_id)
        return f"/users/{quote(user_id, safe='')}/periods/{quote(document_id, safe='')}"

    async def _call(
        self,
        method: str,
        path: str,
        *,
        document_id: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> JsonResponse:
        try:
            return await asyncio.wait_for(
                self._transport.request(method, path, body=body, headers=headers),
                self._timeout,
            )
        except TimeoutError as exc:
            raise TransientNetworkError(
                f"{method} {document_id} timed out after {self._timeout:.1f}s",
                document_id=document_id,
            ) from exc
        except TransientNetworkError as exc:
            exc.document_id = exc.document_id or document_id
            raise

    async def fetch_period_document(self, user_id: str, period: Period) -> PeriodAggregate | None:
        """Fetch the aggregate for *period*, or ``None`` if it was never written."""
        document_id = period.document_id(user_id)
        response = await self._call("GET", self._path(user_id, period), document_id=document_id)
        if response.status == 404:
            _logger.debug("Document %s does not exist yet", document_id)
            return None
        _raise_for_status(response, document_id=document_id, action="Fetch")

        if not isinstance(response.body, dict):
            raise RemoteGatewayError(
                f"Document {document_id} body is not an object",
                status_code=response.status,
                document_id=document_id,
            )
        try:
            return PeriodAggregate.from_document(response.body, version=response.etag)
        except (KeyError, ValidationError) as exc:
            raise RemoteGatewayError(
                f"Document {document_id} is malformed: {exc}",
                status_code=response.status,
                document_id=document_id,
            ) from exc

    async def write_period_document(
        self,
        user_id: str,
        period: Period,
        aggregate: PeriodAggregate,
        *,
        expected_version: str | None = None,
    ) -> PeriodAggregate:
        """Replace the whole document for *period*.

        Once started the request is shielded from cancellation so a
        shutdown cannot abandon it halfway.
        """
        document_id = period.document_id(user_id)
        headers = {"If-Match": expected_version} if expected_version else None
        request = asyncio.ensure_future(
            self._call(
                "PUT",
                self._path(user_id, period),
                document_id=document_id,
                body=aggregate.to_document(),
                headers=headers,
            )
        )
        response = await asyncio.shield(request)
        _raise_for_status(response, document_id=document_id, action="Write")

        _logger.debug("Wrote %s with %d record(s)", document_id, len(aggregate.records))
        return aggregate.model_copy(update={"version": response.etag})
