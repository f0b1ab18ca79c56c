"""
Idempotency policy — checkout deduplication configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# On Cache Error — Safety Decision
# ═══════════════════════════════════════════════════════════════════════════════


class OnCacheError(Enum):
    """
    What to do when the shared cache cannot be reached at checkout.

    FAIL_CLOSED: Reject the checkout with CACHE_UNAVAILABLE.
                 No order is created, so no duplicate financial intent.

    FAIL_OPEN: Proceed without deduplication.
               Checkout keeps working during a cache outage; a double tap
               in that window may create two orders.
    """

    FAIL_CLOSED = "fail_closed"
    FAIL_OPEN = "fail_open"


FAIL_CLOSED = OnCacheError.FAIL_CLOSED
FAIL_OPEN = OnCacheError.FAIL_OPEN


# ═══════════════════════════════════════════════════════════════════════════════
# Policy — Checkout Deduplication Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Policy:
    """
    How long checkouts are deduplicated and what happens when the cache is down.

    Example:
        policy = (
            Policy()
            .with_ttl(seconds=60)
            .with_cache_timeout(seconds=2)
            .with_on_cache_error(FAIL_OPEN)
        )

    Note: Frozen; every with_* call returns a copy.
    """

    ttl: timedelta = timedelta(seconds=60)
    cache_timeout: timedelta = timedelta(seconds=2)
    pending_wait_timeout: timedelta = timedelta(seconds=10)
    poll_interval: timedelta = timedelta(milliseconds=100)
    on_cache_error: OnCacheError = OnCacheError.FAIL_CLOSED

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        Set how long a reservation blocks duplicates.

        Example:
            .with_ttl(seconds=60)
        """
        ttl = delta if delta is not None else timedelta(seconds=seconds or 60)
        return replace(self, ttl=ttl)

    def with_cache_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """Bound every cache round trip. A timeout counts as cache failure."""
        timeout = delta if delta is not None else timedelta(seconds=seconds or 2)
        return replace(self, cache_timeout=timeout)

    def with_wait(
        self,
        *,
        seconds: float | None = None,
        poll_seconds: float | None = None,
    ) -> Policy:
        """
        Set how long a duplicate waits for the first request to finish.

        Example:
            .with_wait(seconds=5, poll_seconds=0.05)
        """
        return replace(
            self,
            pending_wait_timeout=timedelta(seconds=seconds or 10),
            poll_interval=(
                timedelta(seconds=poll_seconds)
                if poll_seconds
                else self.poll_interval
            ),
        )

    def with_on_cache_error(self, strategy: OnCacheError) -> Policy:
        return replace(self, on_cache_error=strategy)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OnCacheError",
    "FAIL_CLOSED",
    "FAIL_OPEN",
    "Policy",
)
