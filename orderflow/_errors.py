"""
Error taxonomy — every failure an operation can return.

Operations return kungfu.Result; the error side is always OrderError.
Callers branch on `kind`, never on message text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


# ═══════════════════════════════════════════════════════════════════════════════
# Error Kinds
# ═══════════════════════════════════════════════════════════════════════════════


class OrderErrorKind(Enum):
    """Kinds of engine errors."""

    VALIDATION = auto()  # Bad cart contents
    NOT_FOUND = auto()
    VERSION_CONFLICT = auto()  # Retryable: re-read and decide
    INVALID_TRANSITION = auto()  # Outside the lifecycle table
    SIGNATURE_INVALID = auto()  # Never expose crypto detail
    DUPLICATE_REQUEST = auto()  # Reservation held by a request that never finished
    TRANSIENT_STORE = auto()  # Store failure or timeout
    CACHE_UNAVAILABLE = auto()  # Idempotency cache failure or timeout
    GATEWAY = auto()  # Remote payment gateway failure

    @property
    def retryable(self) -> bool:
        return self in (
            OrderErrorKind.VERSION_CONFLICT,
            OrderErrorKind.TRANSIENT_STORE,
            OrderErrorKind.CACHE_UNAVAILABLE,
            OrderErrorKind.GATEWAY,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Error Value
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderError:
    """
    Engine error.

    Note: cause keeps the underlying library exception (if any) for logs.
    It is never rendered into a client-facing response.
    """

    kind: OrderErrorKind
    message: str
    cause: Exception | None = None

    def __str__(self) -> str:
        return f"{self.kind.name}: {self.message}"


class OrderErrors:
    """Constructors for the common errors."""

    @staticmethod
    def validation(msg: str) -> OrderError:
        return OrderError(OrderErrorKind.VALIDATION, msg)

    @staticmethod
    def not_found(entity: str, key: str) -> OrderError:
        return OrderError(OrderErrorKind.NOT_FOUND, f"{entity} {key} not found")

    @staticmethod
    def version_conflict(order_id: str, expected: int) -> OrderError:
        return OrderError(
            OrderErrorKind.VERSION_CONFLICT,
            f"order {order_id} moved past version {expected}",
        )

    @staticmethod
    def invalid_transition(current: object, next_: object) -> OrderError:
        return OrderError(
            OrderErrorKind.INVALID_TRANSITION,
            f"invalid status transition from {current} to {next_}",
        )

    @staticmethod
    def signature_invalid() -> OrderError:
        return OrderError(OrderErrorKind.SIGNATURE_INVALID, "signature verification failed")

    @staticmethod
    def duplicate_request(key: str) -> OrderError:
        return OrderError(
            OrderErrorKind.DUPLICATE_REQUEST,
            f"request {key} is already being processed",
        )

    @staticmethod
    def store(msg: str, cause: Exception | None = None) -> OrderError:
        return OrderError(OrderErrorKind.TRANSIENT_STORE, msg, cause)

    @staticmethod
    def cache_unavailable(msg: str, cause: Exception | None = None) -> OrderError:
        return OrderError(OrderErrorKind.CACHE_UNAVAILABLE, msg, cause)

    @staticmethod
    def gateway(msg: str, cause: Exception | None = None) -> OrderError:
        return OrderError(OrderErrorKind.GATEWAY, msg, cause)


class ConfigError(ValueError):
    """Raised when required settings are missing or malformed."""


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "OrderErrorKind",
    "OrderError",
    "OrderErrors",
    "ConfigError",
)
