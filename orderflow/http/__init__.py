"""
HTTP surface (FastAPI).

    POST  /orders                          create_order (Idempotency-Key header optional)
    POST  /payments/verify                 verify_payment
    POST  /webhooks/razorpay               ingest (X-Razorpay-Signature header)
    GET   /orders/{order_id}               get_order
    GET   /users/{user_id}/orders          list_user_orders
    GET   /admin/orders?limit=&offset=     list_orders
    PATCH /admin/orders/{order_id}/status  update_status
    GET   /health

Errors render as {"error": kind, "message": ...}; see STATUS_BY_KIND.
"""

from orderflow.http._app import Components, create_app, open_components
from orderflow.http._errors import STATUS_BY_KIND, error_response
from orderflow.http._routes import SIGNATURE_HEADER, router
from orderflow.http._schemas import (
    CartLineIn,
    ConfirmationOut,
    CreateOrderIn,
    ErrorOut,
    OrderLineOut,
    OrderOut,
    ReceiptOut,
    StatusUpdateIn,
    VerifyPaymentIn,
    WebhookAckOut,
)

__all__ = (
    "Components",
    "create_app",
    "open_components",
    "STATUS_BY_KIND",
    "error_response",
    "SIGNATURE_HEADER",
    "router",
    "CartLineIn",
    "ConfirmationOut",
    "CreateOrderIn",
    "ErrorOut",
    "OrderLineOut",
    "OrderOut",
    "ReceiptOut",
    "StatusUpdateIn",
    "VerifyPaymentIn",
    "WebhookAckOut",
)
