"""
Checkout — the client-facing operations, composed from the engine parts.

    service = CheckoutService(controller, guard, gateway, verifier)

    receipt = await service.create_order(user_id, lines, idempotency_key="tap-1")
    confirmation = await service.verify_payment(order_id, "order_X", "pay_Y", signature)
"""

from orderflow.checkout._service import CheckoutService

__all__ = ("CheckoutService",)
