"""
Payments — signature verification and the gateway client.

    from orderflow import payments as P

    P.payment_signature(secret, "order_X", "pay_Y")    # hex HMAC-SHA256
    verifier = P.PaymentVerifier(secret, controller)
    gateway = P.RazorpayGateway.connect(key_id, key_secret)
"""

from orderflow.payments._signature import (
    sign,
    payment_signature,
    signatures_match,
)
from orderflow.payments._verifier import PaymentVerifier
from orderflow.payments._gateway import (
    GatewayOrder,
    PaymentGateway,
    RazorpayGateway,
)

__all__ = (
    # Signatures
    "sign",
    "payment_signature",
    "signatures_match",
    # Verifier
    "PaymentVerifier",
    # Gateway
    "GatewayOrder",
    "PaymentGateway",
    "RazorpayGateway",
)
