"""Shared retry and backoff policy.

One policy instance is shared by the sync queue (retry bound) and the
scheduler (backoff timing, conflict retries) so the numbers live in one
place.
"""

from __future__ import annotations

import dataclasses

from fieldsync._constants import (
    DEFAULT_BASE_BACKOFF,
    DEFAULT_CONFLICT_RETRIES,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
)


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """Retry bound and exponential backoff.

    Parameters
    ----------
    max_retries : int
        Failed attempts after which a queue entry is dropped.
    base_delay : float
        Backoff delay in seconds after the first failure.
    max_delay : float
        Upper bound for the backoff delay.
    conflict_retries : int
        Extra fetch, merge, write cycles on a version conflict.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_BACKOFF
    max_delay: float = DEFAULT_MAX_BACKOFF
    conflict_retries: int = DEFAULT_CONFLICT_RETRIES

    def is_exhausted(self, retry_count: int) -> bool:
        return retry_count >= self.max_retries

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the next attempt, doubling per consecutive failure."""
        attempt = max(0, attempt)
        # Cap the exponent so huge attempt counts cannot overflow.
        return min(self.base_delay * (2 ** min(attempt, 32)), self.max_delay)
