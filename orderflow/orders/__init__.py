"""
Orders — optimistic concurrency over the order row.

    from orderflow.orders import ConcurrencyController

    controller = ConcurrencyController(session_factory, catalog, currency="INR")

Write path of a payment:

    commit_payment(order_id, payment_id, expected_version)
         │
         ▼
    SELECT ... FOR UPDATE (SERIALIZABLE)
         │
         ├── already PAID or later ──► Ok(applied=False), no write
         ├── version moved ──────────► Error(VERSION_CONFLICT)
         └── UPDATE ... WHERE version = expected
                  │
                  ▼
             Ok(applied=True)
"""

from orderflow.orders._controller import (
    ConcurrencyController,
    DEFAULT_PAGE,
    MAX_PAGE,
)

__all__ = (
    "ConcurrencyController",
    "DEFAULT_PAGE",
    "MAX_PAGE",
)
