"""
Idempotency types — reservation records and cache errors.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum, auto

from orderflow.domain import CheckoutReceipt


# ═══════════════════════════════════════════════════════════════════════════════
# Reservation State — Checkout Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class ReservationState(Enum):
    """
    State of a checkout reservation.

    Lifecycle:
        PENDING → COMPLETED (receipt stored)
                → (released / expired)
    """

    PENDING = "pending"
    COMPLETED = "completed"


# ═══════════════════════════════════════════════════════════════════════════════
# Reservation Record — Stored Value
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ReservationRecord:
    """
    The value stored under an idempotency key.

    Note: order_id is allocated before the set-if-absent, so the very first
    write already names the order. A duplicate never has to guess.
    """

    state: ReservationState
    order_id: str
    receipt: CheckoutReceipt | None = None

    @classmethod
    def pending(cls, order_id: str) -> ReservationRecord:
        return cls(state=ReservationState.PENDING, order_id=order_id)

    @classmethod
    def completed(cls, receipt: CheckoutReceipt) -> ReservationRecord:
        return cls(
            state=ReservationState.COMPLETED,
            order_id=receipt.order_id,
            receipt=receipt,
        )

    @property
    def is_completed(self) -> bool:
        return self.state == ReservationState.COMPLETED and self.receipt is not None

    def encode(self) -> str:
        data: dict[str, object] = {"state": self.state.value, "order_id": self.order_id}
        if self.receipt is not None:
            data["receipt"] = {
                "order_id": self.receipt.order_id,
                "gateway_order_id": self.receipt.gateway_order_id,
                "amount": self.receipt.amount,
                "currency": self.receipt.currency,
            }
        return json.dumps(data, separators=(",", ":"))

    @classmethod
    def decode(cls, raw: str) -> ReservationRecord:
        """Raises ValueError on anything that is not a record we wrote."""
        try:
            data = json.loads(raw)
            receipt_data = data.get("receipt")
            receipt = (
                CheckoutReceipt(
                    order_id=str(receipt_data["order_id"]),
                    gateway_order_id=str(receipt_data["gateway_order_id"]),
                    amount=int(receipt_data["amount"]),
                    currency=str(receipt_data["currency"]),
                )
                if receipt_data
                else None
            )
            return cls(
                state=ReservationState(data["state"]),
                order_id=str(data["order_id"]),
                receipt=receipt,
            )
        except (KeyError, TypeError, AttributeError, json.JSONDecodeError) as e:
            raise ValueError(f"unreadable reservation record: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Reservation — Result of reserve()
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Reservation:
    """
    Result of IdempotencyGuard.reserve().

    is_first: this request owns the key and must create the order.
    prior: what the owner stored (None when is_first).
    degraded: the cache was unreachable and the policy is FAIL_OPEN —
    no deduplication happened for this request.
    """

    key: str
    order_id: str
    is_first: bool
    prior: ReservationRecord | None = None
    degraded: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CacheErrorKind(Enum):
    """Cache error kinds."""

    CONNECTION = auto()
    TIMEOUT = auto()
    SERIALIZATION = auto()


@dataclass(frozen=True, slots=True)
class CacheError:
    """Cache operation error."""

    kind: CacheErrorKind
    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ReservationState",
    "ReservationRecord",
    "Reservation",
    "CacheErrorKind",
    "CacheError",
)
