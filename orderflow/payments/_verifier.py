"""
PaymentVerifier — the only trusted proof of a client-reported payment.
"""

from __future__ import annotations

import structlog
from kungfu import Result, Ok, Error

from orderflow._errors import OrderError, OrderErrors
from orderflow.domain import Order
from orderflow.orders import ConcurrencyController
from orderflow.payments._signature import payment_signature, signatures_match

log = structlog.get_logger(__name__)


class PaymentVerifier:
    """
    Checks a client callback against the merchant key secret.

    A "success" flag from the client is never enough: the signature must
    cover both gateway ids, and the gateway order id must be the one this
    order was created with.

    Example:
        verifier = PaymentVerifier(settings.razorpay_key_secret.get_secret_value(), controller)

        match await verifier.verify(order_id, "order_X", "pay_Y", signature):
            case Ok(order):
                ...  # safe to commit_payment
            case Error(e):
                ...  # SIGNATURE_INVALID or NOT_FOUND
    """

    def __init__(self, key_secret: str, controller: ConcurrencyController) -> None:
        if not key_secret:
            raise ValueError("key_secret must not be empty")
        self._secret = key_secret
        self._controller = controller

    def matches(
        self, gateway_order_id: str, gateway_payment_id: str, signature: str | None
    ) -> bool:
        expected = payment_signature(self._secret, gateway_order_id, gateway_payment_id)
        return signatures_match(expected, signature)

    async def verify(
        self,
        order_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str | None,
    ) -> Result[Order, OrderError]:
        match await self._controller.get_order(order_id):
            case Error(e):
                return Error(e)
            case Ok(order):
                pass

        if order.gateway_order_id is None or order.gateway_order_id != gateway_order_id:
            log.warning("gateway order mismatch on verify", order_id=order_id)
            return Error(OrderErrors.signature_invalid())

        if not self.matches(gateway_order_id, gateway_payment_id, signature):
            log.warning("payment signature rejected", order_id=order_id)
            return Error(OrderErrors.signature_invalid())

        return Ok(order)


__all__ = ("PaymentVerifier",)
