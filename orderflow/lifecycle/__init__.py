"""
Lifecycle — the order state machine.

    from orderflow import lifecycle as LC

    LC.is_valid_transition(LC.OrderStatus.PAID, LC.OrderStatus.ACCEPTED)  # True
    LC.ensure_transition(order.status, LC.OrderStatus.DELIVERED)          # Result

Table:

    PENDING ──► AWAITING_PAYMENT ──► PAID ──► ACCEPTED ──► DELIVERED
                      ▲    │
                      │    ▼
                   PAYMENT_FAILED
"""

from orderflow.lifecycle._machine import (
    OrderStatus,
    INITIAL,
    TRANSITIONS,
    allowed_next,
    is_valid_transition,
    ensure_transition,
    is_paid,
    capture_steps,
    is_terminal,
)

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
