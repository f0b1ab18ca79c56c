"""
Order lifecycle — statuses and the fixed transition table.

Pure: no I/O, no clocks. Every mutating caller validates here first.
"""

from __future__ import annotations

from enum import Enum

from kungfu import Result, Ok, Error

from orderflow._errors import OrderError, OrderErrors


# ═══════════════════════════════════════════════════════════════════════════════
# Order Status
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(str, Enum):
    """
    Status of an order.

    Lifecycle:
        PENDING → AWAITING_PAYMENT → PAID → ACCEPTED → DELIVERED
                                   → PAYMENT_FAILED → AWAITING_PAYMENT (retry)
    """

    PENDING = "PENDING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAID = "PAID"
    ACCEPTED = "ACCEPTED"
    DELIVERED = "DELIVERED"

    def __str__(self) -> str:
        return self.value


INITIAL = OrderStatus.PENDING

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.AWAITING_PAYMENT}),
    OrderStatus.AWAITING_PAYMENT: frozenset(
        {OrderStatus.PAID, OrderStatus.PAYMENT_FAILED}
    ),
    OrderStatus.PAYMENT_FAILED: frozenset({OrderStatus.AWAITING_PAYMENT}),
    OrderStatus.PAID: frozenset({OrderStatus.ACCEPTED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
}

# PAID and everything after it.
_SETTLED = frozenset({OrderStatus.PAID, OrderStatus.ACCEPTED, OrderStatus.DELIVERED})

# A capture may land on a failed attempt: the customer retried inside the
# same gateway order before the retry was recorded here. The retry edge is
# walked first, so PAYMENT_FAILED never jumps straight to PAID.
_CAPTURE_ROUTES: dict[OrderStatus, tuple[OrderStatus, ...]] = {
    OrderStatus.PAYMENT_FAILED: (OrderStatus.AWAITING_PAYMENT, OrderStatus.PAID),
}


# ═══════════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════════


def allowed_next(status: OrderStatus) -> frozenset[OrderStatus]:
    return TRANSITIONS.get(status, frozenset())


def is_valid_transition(current: OrderStatus, next_: OrderStatus) -> bool:
    """
    Check a single step against the table.

    Example:
        is_valid_transition(OrderStatus.PAID, OrderStatus.ACCEPTED)     # True
        is_valid_transition(OrderStatus.DELIVERED, OrderStatus.PENDING) # False
    """
    return next_ in allowed_next(current)


def ensure_transition(
    current: OrderStatus, next_: OrderStatus
) -> Result[OrderStatus, OrderError]:
    """Result form of is_valid_transition. Ok carries the target status."""
    if is_valid_transition(current, next_):
        return Ok(next_)
    return Error(OrderErrors.invalid_transition(current, next_))


def is_paid(status: OrderStatus) -> bool:
    """True for PAID or any later status."""
    return status in _SETTLED


def capture_steps(status: OrderStatus) -> Result[tuple[OrderStatus, ...], OrderError]:
    """
    Table edges a capture walks from `status` to PAID, one write each.

    Example:
        capture_steps(OrderStatus.AWAITING_PAYMENT)  # Ok((PAID,))
        capture_steps(OrderStatus.PAYMENT_FAILED)    # Ok((AWAITING_PAYMENT, PAID))
        capture_steps(OrderStatus.PENDING)           # Error(INVALID_TRANSITION)
    """
    steps = _CAPTURE_ROUTES.get(status, (OrderStatus.PAID,))
    current = status
    for step in steps:
        match ensure_transition(current, step):
            case Error(e):
                return Error(e)
            case Ok(_):
                current = step
    return Ok(steps)


def is_terminal(status: OrderStatus) -> bool:
    return not allowed_next(status)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OrderStatus",
    "INITIAL",
    "TRANSITIONS",
    "allowed_next",
    "is_valid_transition",
    "ensure_transition",
    "is_paid",
    "capture_steps",
    "is_terminal",
)
