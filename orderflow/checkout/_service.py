"""
CheckoutService — the operations a client can call.

create_order:
    fingerprint → reserve ─┬─ first ──► price cart → insert → gateway order
                           │             → AWAITING_PAYMENT → complete(receipt)
                           └─ duplicate ► wait_for(receipt of the first request)

verify_payment:
    signature → reconcile_payment (same path the webhook uses)
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

import structlog
from kungfu import Result, Ok, Error

from orderflow._errors import OrderError
from orderflow.domain import CartLine, CheckoutReceipt, Order, PaymentConfirmation
from orderflow.idempotency import (
    IdempotencyGuard,
    Reservation,
    cart_fingerprint,
    token_fingerprint,
)
from orderflow.lifecycle import OrderStatus
from orderflow.orders import DEFAULT_PAGE, ConcurrencyController
from orderflow.payments import PaymentGateway, PaymentVerifier

log = structlog.get_logger(__name__)


class CheckoutService:
    def __init__(
        self,
        controller: ConcurrencyController,
        guard: IdempotencyGuard,
        gateway: PaymentGateway,
        verifier: PaymentVerifier,
    ) -> None:
        self._controller = controller
        self._guard = guard
        self._gateway = gateway
        self._verifier = verifier

    # ───────────────────────────────────────────────────────────────────────────
    # create_order
    # ───────────────────────────────────────────────────────────────────────────

    async def create_order(
        self,
        user_id: str,
        cart_lines: Sequence[CartLine],
        idempotency_key: str | None = None,
    ) -> Result[CheckoutReceipt, OrderError]:
        """
        One financial intent per cart (or per client key) inside the TTL.

        A duplicate gets the receipt of the first request, never a new order.
        """
        fingerprint = (
            token_fingerprint(user_id, idempotency_key)
            if idempotency_key
            else cart_fingerprint(user_id, cart_lines)
        )

        with structlog.contextvars.bound_contextvars(user_id=user_id):
            match await self._guard.reserve(fingerprint, order_id=str(uuid.uuid4())):
                case Error(e):
                    return Error(e)
                case Ok(reservation) if not reservation.is_first:
                    log.info("returning receipt of first request", order_id=reservation.order_id)
                    return await self._guard.wait_for(reservation)
                case Ok(reservation):
                    pass

            result = await self._checkout(user_id, cart_lines, reservation)
            match result:
                case Ok(receipt):
                    match await self._guard.complete(reservation, receipt):
                        case Error(e):
                            # The order exists; only duplicate detection is weakened.
                            log.warning(
                                "could not store checkout receipt",
                                order_id=receipt.order_id,
                                error=e.message,
                            )
                        case Ok(_):
                            pass
                case Error(_):
                    await self._guard.release(reservation)
            return result

    async def _checkout(
        self,
        user_id: str,
        cart_lines: Sequence[CartLine],
        reservation: Reservation,
    ) -> Result[CheckoutReceipt, OrderError]:
        match await self._controller.create_order(
            user_id, cart_lines, order_id=reservation.order_id
        ):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass

        match await self._gateway.create_order(
            order.total_amount, order.currency, order.id
        ):
            case Error(e):
                log.error("gateway order creation failed", order_id=order.id, error=e.message)
                return Error(e)
            case Ok(remote):
                pass

        match await self._controller.set_gateway_order_id(
            order.id, remote.id, order.version
        ):
            case Error(e):
                return Error(e)
            case Ok(order):
                return Ok(
                    CheckoutReceipt(
                        order_id=order.id,
                        gateway_order_id=remote.id,
                        amount=order.total_amount,
                        currency=order.currency,
                    )
                )

    # ───────────────────────────────────────────────────────────────────────────
    # verify_payment
    # ───────────────────────────────────────────────────────────────────────────

    async def verify_payment(
        self,
        order_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str | None,
    ) -> Result[PaymentConfirmation, OrderError]:
        match await self._verifier.verify(
            order_id, gateway_order_id, gateway_payment_id, signature
        ):
            case Error(e):
                return Error(e)
            case Ok(_):
                pass

        match await self._controller.reconcile_payment(order_id, gateway_payment_id):
            case Error(e):
                return Error(e)
            case Ok(commit):
                return Ok(
                    PaymentConfirmation(
                        success=True,
                        order_id=order_id,
                        message=(
                            "Payment verified successfully"
                            if commit.applied
                            else "Payment already recorded"
                        ),
                    )
                )

    # ───────────────────────────────────────────────────────────────────────────
    # Queries & admin
    # ───────────────────────────────────────────────────────────────────────────

    async def get_order(self, order_id: str) -> Result[Order, OrderError]:
        return await self._controller.get_order(order_id)

    async def list_user_orders(self, user_id: str) -> Result[list[Order], OrderError]:
        return await self._controller.list_user_orders(user_id)

    async def list_orders(
        self, limit: int = DEFAULT_PAGE, offset: int = 0
    ) -> Result[list[Order], OrderError]:
        return await self._controller.list_orders(limit, offset)

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        expected_version: int | None = None,
    ) -> Result[Order, OrderError]:
        """Without expected_version the current one is read first."""
        if expected_version is None:
            match await self._controller.get_order(order_id):
                case Error(e):
                    return Error(e)
                case Ok(order):
                    expected_version = order.version
        return await self._controller.update_status(order_id, status, expected_version)


__all__ = ("CheckoutService",)
