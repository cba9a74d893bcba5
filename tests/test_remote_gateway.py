"""Tests for the HTTP remote gateway and its error mapping."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest
from _support import NOW, OCTOBER, make_record

from fieldsync._transport import JsonResponse
from fieldsync.exceptions import (
    RemoteConflictError,
    RemoteGatewayError,
    RemotePermissionError,
    TransientNetworkError,
)
from fieldsync.models import PeriodAggregate
from fieldsync.remote import HttpRemoteGateway


class _ScriptedTransport:
    """Returns queued responses and records every request."""

    def __init__(self, *responses: JsonResponse) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> JsonResponse:
        self.calls.append({"method": method, "path": path, "body": body, "headers": headers})
        return self.responses.pop(0)


class _HangingTransport:
    async def request(self, method: str, path: str, **kwargs: Any) -> JsonResponse:
        await asyncio.sleep(10)
        raise AssertionError("unreachable")


def _document() -> dict[str, Any]:
    return PeriodAggregate(
        user_id="user-1", period=OCTOBER, records=(make_record("2"), make_record("1")), last_updated=NOW
    ).to_document()


def _aggregate() -> PeriodAggregate:
    return PeriodAggregate(user_id="user-1", period=OCTOBER, records=(make_record("1"),), last_updated=NOW)


@pytest.mark.asyncio
async def test_fetch_missing_document_returns_none() -> None:
    transport = _ScriptedTransport(JsonResponse(status=404, body={"message": "not found"}))
    gateway = HttpRemoteGateway(transport)

    assert await gateway.fetch_period_document("user-1", OCTOBER) is None
    assert transport.calls[0]["method"] == "GET"
    assert transport.calls[0]["path"] == "/users/user-1/periods/user-1_2026_10"


@pytest.mark.asyncio
async def test_fetch_decodes_document_and_version() -> None:
    transport = _ScriptedTransport(JsonResponse(status=200, body=_document(), etag='"v3"'))
    gateway = HttpRemoteGateway(transport)

    aggregate = await gateway.fetch_period_document("user-1", OCTOBER)

    assert aggregate is not None
    assert aggregate.version == '"v3"'
    assert [record.natural_key for record in aggregate.records] == ["2", "1"]


@pytest.mark.asyncio
async def test_user_id_is_path_quoted() -> None:
    transport = _ScriptedTransport(JsonResponse(status=404, body=None))
    await HttpRemoteGateway(transport).fetch_period_document("a b", OCTOBER)
    assert transport.calls[0]["path"] == "/users/a%20b/periods/a%20b_2026_10"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (401, RemotePermissionError),
        (403, RemotePermissionError),
        (409, RemoteConflictError),
        (412, RemoteConflictError),
        (429, TransientNetworkError),
        (503, TransientNetworkError),
        (507, TransientNetworkError),
    ],
)
async def test_status_mapping(status: int, error_type: type[RemoteGatewayError]) -> None:
    gateway = HttpRemoteGateway(_ScriptedTransport(JsonResponse(status=status, body={"message": "nope"})))

    with pytest.raises(error_type) as excinfo:
        await gateway.fetch_period_document("user-1", OCTOBER)

    assert excinfo.value.status_code == status
    assert excinfo.value.document_id == "user-1_2026_10"
    assert "nope" in str(excinfo.value)


@pytest.mark.asyncio
async def test_other_client_errors_are_not_transient() -> None:
    gateway = HttpRemoteGateway(_ScriptedTransport(JsonResponse(status=400, body=None)))

    with pytest.raises(RemoteGatewayError) as excinfo:
        await gateway.fetch_period_document("user-1", OCTOBER)

    assert type(excinfo.value) is RemoteGatewayError


@pytest.mark.asyncio
async def test_malformed_document_raises() -> None:
    gateway = HttpRemoteGateway(_ScriptedTransport(JsonResponse(status=200, body={"userId": "user-1"})))
    with pytest.raises(RemoteGatewayError, match="malformed"):
        await gateway.fetch_period_document("user-1", OCTOBER)

    gateway = HttpRemoteGateway(_ScriptedTransport(JsonResponse(status=200, body=["not", "a", "dict"])))
    with pytest.raises(RemoteGatewayError, match="not an object"):
        await gateway.fetch_period_document("user-1", OCTOBER)


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    gateway = HttpRemoteGateway(_HangingTransport(), timeout=0.01)

    with pytest.raises(TransientNetworkError, match="timed out"):
        await gateway.fetch_period_document("user-1", OCTOBER)


@pytest.mark.asyncio
async def test_write_is_conditional_on_expected_version() -> None:
    transport = _ScriptedTransport(JsonResponse(status=200, body=None, etag='"v4"'))
    gateway = HttpRemoteGateway(transport)

    written = await gateway.write_period_document("user-1", OCTOBER, _aggregate(), expected_version='"v3"')

    call = transport.calls[0]
    assert call["method"] == "PUT"
    assert call["headers"] == {"If-Match": '"v3"'}
    assert call["body"]["userId"] == "user-1"
    assert call["body"]["records"][0]["naturalKey"] == "1"
    assert "version" not in call["body"]
    assert written.version == '"v4"'


@pytest.mark.asyncio
async def test_first_write_has_no_precondition() -> None:
    transport = _ScriptedTransport(JsonResponse(status=201, body=None, etag='"v1"'))
    await HttpRemoteGateway(transport).write_period_document("user-1", OCTOBER, _aggregate())
    assert transport.calls[0]["headers"] is None


@pytest.mark.asyncio
async def test_write_conflict() -> None:
    transport = _ScriptedTransport(JsonResponse(status=412, body=None))
    with pytest.raises(RemoteConflictError):
        await HttpRemoteGateway(transport).write_period_document(
            "user-1", OCTOBER, _aggregate(), expected_version='"v1"'
        )
