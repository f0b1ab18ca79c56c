"""
Routes — thin: decode, call CheckoutService / WebhookReconciler, encode.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from kungfu import Ok, Error

from orderflow.checkout import CheckoutService
from orderflow.http._errors import error_response
from orderflow.http._schemas import (
    ConfirmationOut,
    CreateOrderIn,
    OrderOut,
    ReceiptOut,
    StatusUpdateIn,
    VerifyPaymentIn,
    WebhookAckOut,
)
from orderflow.orders import DEFAULT_PAGE, MAX_PAGE
from orderflow.webhooks import WebhookReconciler

router = APIRouter()

SIGNATURE_HEADER = "X-Razorpay-Signature"


def get_service(request: Request) -> CheckoutService:
    return request.app.state.components.service


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.components.reconciler


Service = Annotated[CheckoutService, Depends(get_service)]
Reconciler = Annotated[WebhookReconciler, Depends(get_reconciler)]


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


@router.post("/orders", status_code=status.HTTP_201_CREATED, response_model=ReceiptOut)
async def create_order(
    body: CreateOrderIn,
    service: Service,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    match await service.create_order(body.user_id, body.to_domain(), idempotency_key):
        case Ok(receipt):
            return ReceiptOut.from_domain(receipt)
        case Error(e):
            return error_response(e)


@router.post("/payments/verify", response_model=ConfirmationOut)
async def verify_payment(body: VerifyPaymentIn, service: Service):
    match await service.verify_payment(
        body.order_id, body.gateway_order_id, body.gateway_payment_id, body.signature
    ):
        case Ok(confirmation):
            return ConfirmationOut.from_domain(confirmation)
        case Error(e):
            return error_response(e)


@router.post("/webhooks/razorpay", response_model=WebhookAckOut)
async def razorpay_webhook(
    request: Request,
    response: Response,
    reconciler: Reconciler,
    signature: Annotated[str | None, Header(alias=SIGNATURE_HEADER)] = None,
):
    outcome = await reconciler.ingest(await request.body(), signature)
    if not outcome.accepted:
        response.status_code = status.HTTP_401_UNAUTHORIZED
    return WebhookAckOut.from_domain(outcome)


# ═══════════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/orders/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, service: Service):
    match await service.get_order(order_id):
        case Ok(order):
            return OrderOut.from_domain(order)
        case Error(e):
            return error_response(e)


@router.get("/users/{user_id}/orders", response_model=list[OrderOut])
async def list_user_orders(user_id: str, service: Service):
    match await service.list_user_orders(user_id):
        case Ok(orders):
            return [OrderOut.from_domain(order) for order in orders]
        case Error(e):
            return error_response(e)


# ═══════════════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/admin/orders", response_model=list[OrderOut])
async def list_orders(
    service: Service,
    limit: Annotated[int, Query()] = DEFAULT_PAGE,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    # Out-of-range limits are clamped, not rejected.
    match await service.list_orders(min(max(limit, 1), MAX_PAGE), offset):
        case Ok(orders):
            return [OrderOut.from_domain(order) for order in orders]
        case Error(e):
            return error_response(e)


@router.patch("/admin/orders/{order_id}/status", response_model=OrderOut)
async def update_status(order_id: str, body: StatusUpdateIn, service: Service):
    match await service.update_status(order_id, body.status, body.version):
        case Ok(order):
            return OrderOut.from_domain(order)
        case Error(e):
            return error_response(e)


__all__ = ("router", "SIGNATURE_HEADER")
