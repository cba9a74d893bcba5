"""Custom exception hierarchy for fieldsync."""

from __future__ import annotations


class FieldSyncError(Exception):
    """Base exception for all fieldsync errors."""


class FieldSyncConfigError(FieldSyncError):
    """Invalid or missing configuration."""


class LocalStorageCorruptError(FieldSyncError):
    """Persisted local state could not be decoded.

    The local cache is advisory (the remote store is canonical), so the
    record store and queue catch this, log it and continue with an empty
    collection instead of crashing.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class RemoteGatewayError(FieldSyncError):
    """Remote document store returned an unexpected response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        document_id: str = "",
    ) -> None:
        self.status_code = status_code
        self.document_id = document_id
        super().__init__(message)


class TransientNetworkError(RemoteGatewayError):
    """Remote store unreachable (timeout, no connectivity, 5xx).

    The batch is requeued unchanged and the scheduler backs off.
    """


class RemotePermissionError(RemoteGatewayError):
    """Remote store rejected the caller (401/403).

    Terminal: records in the batch are marked Failed and the error is
    surfaced to the user through the aggregate sync status.
    """


class RemoteConflictError(RemoteGatewayError):
    """Remote document changed between fetch and write (409/412).

    Handled by re-running the fetch, merge, write cycle a bounded number
    of times.
    """
