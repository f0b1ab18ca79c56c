"""
orderflow — order lifecycle and payment reconciliation.

    from orderflow import lifecycle as LC     # Order state machine
    from orderflow import idempotency as I    # Duplicate-checkout guard
    from orderflow import orders as O         # Versioned order writes
    from orderflow import payments as P       # Signatures & gateway client
    from orderflow import webhooks as W       # Gateway notification pipeline
    from orderflow import checkout            # Client-facing operations
    from orderflow.http import create_app     # FastAPI surface
"""

from orderflow import lifecycle
from orderflow import idempotency
from orderflow import store
from orderflow import orders
from orderflow import payments
from orderflow import webhooks
from orderflow import checkout
from orderflow._errors import (
    OrderError,
    OrderErrorKind,
    OrderErrors,
    ConfigError,
)
from orderflow._log import configure_logging

__version__ = "0.1.0"

__all__ = (
    "lifecycle",
    "idempotency",
    "store",
    "orders",
    "payments",
    "webhooks",
    "checkout",
    "OrderError",
    "OrderErrorKind",
    "OrderErrors",
    "ConfigError",
    "configure_logging",
)
