"""
OrderError → HTTP response.

Store, cache and gateway failures render a fixed message; their causes go to
the log only. A bad signature never says what was wrong with it.
"""

from fastapi import status
from fastapi.responses import JSONResponse

from orderflow._errors import OrderError, OrderErrorKind
from orderflow.http._schemas import ErrorOut


STATUS_BY_KIND: dict[OrderErrorKind, int] = {
    OrderErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    OrderErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OrderErrorKind.VERSION_CONFLICT: status.HTTP_409_CONFLICT,
    OrderErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    OrderErrorKind.SIGNATURE_INVALID: status.HTTP_400_BAD_REQUEST,
    OrderErrorKind.DUPLICATE_REQUEST: status.HTTP_409_CONFLICT,
    OrderErrorKind.TRANSIENT_STORE: status.HTTP_503_SERVICE_UNAVAILABLE,
    OrderErrorKind.CACHE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    OrderErrorKind.GATEWAY: status.HTTP_502_BAD_GATEWAY,
}

_FIXED_MESSAGES: dict[OrderErrorKind, str] = {
    OrderErrorKind.SIGNATURE_INVALID: "Payment verification failed",
    OrderErrorKind.TRANSIENT_STORE: "Service temporarily unavailable",
    OrderErrorKind.CACHE_UNAVAILABLE: "Service temporarily unavailable",
    OrderErrorKind.GATEWAY: "Payment gateway unavailable",
}


def error_response(error: OrderError) -> JSONResponse:
    body = ErrorOut(
        error=error.kind.name.lower(),
        message=_FIXED_MESSAGES.get(error.kind, error.message),
    )
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=body.model_dump(),
    )


__all__ = ("STATUS_BY_KIND", "error_response")
