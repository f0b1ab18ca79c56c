"""
HTTP codecs — pydantic models with to_domain() / from_domain().

Request models drop any client-sent price or total: extra fields are ignored.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from orderflow.domain import (
    CartLine,
    CheckoutReceipt,
    Order,
    OrderLine,
    PaymentConfirmation,
)
from orderflow.lifecycle import OrderStatus
from orderflow.webhooks import WebhookOutcome


# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════


class CartLineIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item_id: str
    quantity: int

    def to_domain(self) -> CartLine:
        return CartLine(item_id=self.item_id, quantity=self.quantity)


class CreateOrderIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    items: list[CartLineIn]

    def to_domain(self) -> tuple[CartLine, ...]:
        return tuple(item.to_domain() for item in self.items)


class VerifyPaymentIn(BaseModel):
    order_id: str
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


class StatusUpdateIn(BaseModel):
    status: OrderStatus
    version: int | None = Field(default=None, ge=1)


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════


class ReceiptOut(BaseModel):
    order_id: str
    gateway_order_id: str
    amount: int
    currency: str

    @classmethod
    def from_domain(cls, dom: CheckoutReceipt) -> "ReceiptOut":
        return cls(
            order_id=dom.order_id,
            gateway_order_id=dom.gateway_order_id,
            amount=dom.amount,
            currency=dom.currency,
        )


class ConfirmationOut(BaseModel):
    success: bool
    order_id: str
    message: str

    @classmethod
    def from_domain(cls, dom: PaymentConfirmation) -> "ConfirmationOut":
        return cls(success=dom.success, order_id=dom.order_id, message=dom.message)


class OrderLineOut(BaseModel):
    id: str
    item_id: str
    name: str
    price: int
    quantity: int
    subtotal: int

    @classmethod
    def from_domain(cls, dom: OrderLine) -> "OrderLineOut":
        return cls(
            id=dom.id,
            item_id=dom.item_id,
            name=dom.name,
            price=dom.price,
            quantity=dom.quantity,
            subtotal=dom.subtotal,
        )


class OrderOut(BaseModel):
    id: str
    user_id: str
    status: OrderStatus
    total_amount: int
    currency: str
    gateway_order_id: str | None
    gateway_payment_id: str | None
    version: int
    items: list[OrderLineOut]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, dom: Order) -> "OrderOut":
        return cls(
            id=dom.id,
            user_id=dom.user_id,
            status=dom.status,
            total_amount=dom.total_amount,
            currency=dom.currency,
            gateway_order_id=dom.gateway_order_id,
            gateway_payment_id=dom.gateway_payment_id,
            version=dom.version,
            items=[OrderLineOut.from_domain(line) for line in dom.lines],
            created_at=dom.created_at,
            updated_at=dom.updated_at,
        )


class WebhookAckOut(BaseModel):
    status: str
    processed: bool

    @classmethod
    def from_domain(cls, dom: WebhookOutcome) -> "WebhookAckOut":
        return cls(status="ok" if dom.accepted else "rejected", processed=dom.processed)


class ErrorOut(BaseModel):
    error: str
    message: str


__all__ = (
    "CartLineIn",
    "CreateOrderIn",
    "VerifyPaymentIn",
    "StatusUpdateIn",
    "ReceiptOut",
    "ConfirmationOut",
    "OrderLineOut",
    "OrderOut",
    "WebhookAckOut",
    "ErrorOut",
)
