"""
IdempotencyGuard — one financial intent per checkout fingerprint.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from datetime import timedelta

import structlog
from kungfu import Result, Ok, Error

from orderflow._errors import OrderError, OrderErrors
from orderflow.domain import CheckoutReceipt
from orderflow.idempotency._cache import Cache
from orderflow.idempotency._policy import Policy, OnCacheError
from orderflow.idempotency._types import (
    CacheError,
    CacheErrorKind,
    Reservation,
    ReservationRecord,
)

log = structlog.get_logger(__name__)

KEY_PREFIX = "orderflow:idempotency:"


class IdempotencyGuard:
    """
    Deduplicates checkout requests through a shared cache.

    Example:
        guard = IdempotencyGuard(RedisCache.from_url(url), Policy().with_ttl(seconds=60))

        match await guard.reserve(fingerprint, order_id=new_id):
            case Ok(r) if r.is_first:
                ...  # create the order, then guard.complete(r, receipt)
            case Ok(r):
                ...  # r.prior names the order created by the first request
            case Error(e):
                ...  # CACHE_UNAVAILABLE under FAIL_CLOSED
    """

    def __init__(
        self,
        cache: Cache,
        policy: Policy | None = None,
        prefix: str = KEY_PREFIX,
    ) -> None:
        self._cache = cache
        self._policy = policy if policy is not None else Policy()
        self._prefix = prefix

    @property
    def policy(self) -> Policy:
        return self._policy

    def key_for(self, fingerprint: str) -> str:
        return f"{self._prefix}{fingerprint}"

    # ───────────────────────────────────────────────────────────────────────────
    # reserve
    # ───────────────────────────────────────────────────────────────────────────

    async def reserve(
        self,
        fingerprint: str,
        order_id: str,
        ttl: timedelta | None = None,
    ) -> Result[Reservation, OrderError]:
        """
        Claim the fingerprint for order_id, or report who already holds it.

        The pending record (with order_id) is written by the same atomic
        set-if-absent that performs the check.
        """
        key = self.key_for(fingerprint)
        record = ReservationRecord.pending(order_id)
        ttl = ttl if ttl is not None else self._policy.ttl

        # Two passes: the holder may expire between our SETNX and our GET.
        for _ in range(2):
            acquired = await self._call(
                self._cache.set_if_absent(key, record.encode(), ttl)
            )
            match acquired:
                case Error(err):
                    return self._unavailable(key, order_id, err)
                case Ok(True):
                    log.debug("idempotency reserved", key=key, order_id=order_id)
                    return Ok(Reservation(key=key, order_id=order_id, is_first=True))
                case Ok(_):
                    pass

            existing = await self._read(key)
            match existing:
                case Error(err):
                    return self._unavailable(key, order_id, err)
                case Ok(None):
                    continue
                case Ok(prior):
                    log.info(
                        "duplicate checkout collapsed",
                        key=key,
                        order_id=prior.order_id,
                        state=prior.state.value,
                    )
                    return Ok(
                        Reservation(
                            key=key,
                            order_id=prior.order_id,
                            is_first=False,
                            prior=prior,
                        )
                    )

        return Error(OrderErrors.duplicate_request(key))

    # ───────────────────────────────────────────────────────────────────────────
    # complete / release / wait_for
    # ───────────────────────────────────────────────────────────────────────────

    async def complete(
        self, reservation: Reservation, receipt: CheckoutReceipt
    ) -> Result[None, OrderError]:
        """
        Replace the pending record with the finished receipt (same TTL).

        Note: Only while the key still holds this reservation's pending
        record. After it expired and another request claimed the key, the
        newer holder's record stays untouched.
        """
        if reservation.degraded:
            return Ok(None)
        stored = await self._call(
            self._cache.replace_if_equals(
                reservation.key,
                ReservationRecord.pending(reservation.order_id).encode(),
                ReservationRecord.completed(receipt).encode(),
                self._policy.ttl,
            )
        )
        match stored:
            case Error(err):
                return Error(OrderErrors.cache_unavailable(err.message, err.cause))
            case Ok(False):
                log.warning(
                    "idempotency reservation lost before completion",
                    key=reservation.key,
                    order_id=reservation.order_id,
                )
                return Ok(None)
            case Ok(_):
                return Ok(None)

    async def release(self, reservation: Reservation) -> Result[bool, OrderError]:
        """
        Drop the reservation so a failed checkout can be retried at once.

        Ok(False) when the key no longer holds this reservation.
        """
        if reservation.degraded:
            return Ok(False)
        deleted = await self._call(
            self._cache.delete_if_equals(
                reservation.key,
                ReservationRecord.pending(reservation.order_id).encode(),
            )
        )
        match deleted:
            case Error(err):
                return Error(OrderErrors.cache_unavailable(err.message, err.cause))
            case Ok(existed):
                return Ok(existed)

    async def wait_for(
        self, reservation: Reservation
    ) -> Result[CheckoutReceipt, OrderError]:
        """
        Poll until the first request stores its receipt.

        Note: Returns DUPLICATE_REQUEST if the holder never completes inside
        the wait window, or released its key (it failed; client may retry).
        """
        if reservation.prior is not None and reservation.prior.receipt is not None:
            return Ok(reservation.prior.receipt)

        timeout = self._policy.pending_wait_timeout.total_seconds()
        interval = self._policy.poll_interval.total_seconds()
        elapsed = 0.0

        while elapsed < timeout:
            await asyncio.sleep(interval)
            elapsed += interval

            current = await self._read(reservation.key)
            match current:
                case Error(err):
                    return Error(OrderErrors.cache_unavailable(err.message, err.cause))
                case Ok(None):
                    break
                case Ok(record) if record.is_completed and record.receipt is not None:
                    return Ok(record.receipt)
                case Ok(_):
                    pass  # Still pending, continue waiting

        return Error(OrderErrors.duplicate_request(reservation.key))

    # ───────────────────────────────────────────────────────────────────────────
    # Internals
    # ───────────────────────────────────────────────────────────────────────────

    async def _call[T](
        self, op: Awaitable[Result[T, CacheError]]
    ) -> Result[T, CacheError]:
        try:
            async with asyncio.timeout(self._policy.cache_timeout.total_seconds()):
                return await op
        except TimeoutError as e:
            return Error(CacheError(CacheErrorKind.TIMEOUT, "cache call timed out", e))

    async def _read(self, key: str) -> Result[ReservationRecord | None, CacheError]:
        raw = await self._call(self._cache.get(key))
        match raw:
            case Error(err):
                return Error(err)
            case Ok(None):
                return Ok(None)
            case Ok(value):
                try:
                    return Ok(ReservationRecord.decode(value))
                except ValueError as e:
                    return Error(
                        CacheError(CacheErrorKind.SERIALIZATION, str(e), e)
                    )

    def _unavailable(
        self, key: str, order_id: str, err: CacheError
    ) -> Result[Reservation, OrderError]:
        if self._policy.on_cache_error == OnCacheError.FAIL_OPEN:
            log.warning(
                "idempotency cache unavailable, proceeding without dedup",
                key=key,
                error_kind=err.kind.name,
                error=err.message,
            )
            return Ok(
                Reservation(key=key, order_id=order_id, is_first=True, degraded=True)
            )

        log.error(
            "idempotency cache unavailable, rejecting checkout",
            key=key,
            error_kind=err.kind.name,
            error=err.message,
        )
        return Error(OrderErrors.cache_unavailable(err.message, err.cause))


__all__ = ("IdempotencyGuard", "KEY_PREFIX")
