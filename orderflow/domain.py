"""
Domain models.

All amounts are integer minor units (paisa, cents). No floats anywhere.
"""

from dataclasses import dataclass
from datetime import datetime

from orderflow.lifecycle import OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog / Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CatalogItem:
    id: str
    name: str
    price: int
    category: str
    is_available: bool = True


@dataclass(frozen=True, slots=True)
class CartLine:
    """What the client sends. Prices and totals are never taken from here."""

    item_id: str
    quantity: int


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderLine:
    """Snapshot of a catalog item at order time. Never mutated."""

    id: str
    item_id: str
    name: str
    price: int
    quantity: int

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    user_id: str
    status: OrderStatus
    total_amount: int
    currency: str
    gateway_order_id: str | None
    gateway_payment_id: str | None
    version: int
    lines: tuple[OrderLine, ...]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class PaymentCommit:
    """
    Outcome of commit_payment.

    applied is True only for the single call that performed the write.
    Every other caller sees the already-paid order with applied=False.
    """

    order: Order
    applied: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Webhook Audit
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class AuditDraft:
    """Everything known about a delivery before its outcome."""

    source: str
    event_type: str
    payload: bytes
    signature_valid: bool


@dataclass(frozen=True, slots=True)
class WebhookAuditEntry:
    id: str
    source: str
    event_type: str
    payload: bytes
    signature_valid: bool
    processed: bool
    processing_error: str | None
    order_id: str | None
    created_at: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout Results
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutReceipt:
    order_id: str
    gateway_order_id: str
    amount: int
    currency: str


@dataclass(frozen=True, slots=True)
class PaymentConfirmation:
    success: bool
    order_id: str
    message: str


__all__ = (
    "CatalogItem",
    "CartLine",
    "OrderLine",
    "Order",
    "PaymentCommit",
    "AuditDraft",
    "WebhookAuditEntry",
    "CheckoutReceipt",
    "PaymentConfirmation",
)
