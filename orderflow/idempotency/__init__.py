"""
Idempotency — checkout deduplication through a shared cache.

    from orderflow import idempotency as I

    guard = I.IdempotencyGuard(
        I.RedisCache.from_url("redis://localhost:6379/0"),
        I.Policy().with_ttl(seconds=60).with_on_cache_error(I.FAIL_CLOSED),
    )

    fingerprint = I.cart_fingerprint(user_id, cart_lines)
    match await guard.reserve(fingerprint, order_id=new_id):
        case Ok(r) if r.is_first:
            ...                               # create order
            await guard.complete(r, receipt)  # or guard.release(r) on failure
        case Ok(r):
            receipt = await guard.wait_for(r) # same order as the first request
        case Error(e):
            ...                               # CACHE_UNAVAILABLE

Reservation value (JSON, stored by one SET NX PX):

    pending   {"state": "pending",   "order_id": "..."}
        │
        ▼
    completed {"state": "completed", "order_id": "...", "receipt": {...}}
"""

from orderflow.idempotency._types import (
    ReservationState,
    ReservationRecord,
    Reservation,
    CacheError,
    CacheErrorKind,
)
from orderflow.idempotency._cache import (
    Cache,
    RedisCache,
    MemoryCache,
)
from orderflow.idempotency._policy import (
    Policy,
    OnCacheError,
    FAIL_CLOSED,
    FAIL_OPEN,
)
from orderflow.idempotency._fingerprint import (
    normalize_cart,
    cart_fingerprint,
    token_fingerprint,
)
from orderflow.idempotency._guard import (
    IdempotencyGuard,
    KEY_PREFIX,
)

__all__ = (
    # Types
    "ReservationState",
    "ReservationRecord",
    "Reservation",
    "CacheError",
    "CacheErrorKind",
    # Cache
    "Cache",
    "RedisCache",
    "MemoryCache",
    # Policy
    "Policy",
    "OnCacheError",
    "FAIL_CLOSED",
    "FAIL_OPEN",
    # Fingerprints
    "normalize_cart",
    "cart_fingerprint",
    "token_fingerprint",
    # Guard
    "IdempotencyGuard",
    "KEY_PREFIX",
)
