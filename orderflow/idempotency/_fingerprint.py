"""
Fingerprints — deterministic keys for checkout requests.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from orderflow.domain import CartLine


def normalize_cart(lines: Iterable[CartLine]) -> tuple[CartLine, ...]:
    """
    Merge lines for the same item and sort by item id.

    [A×1, B×1, A×1] and [B×1, A×2] normalize to the same tuple.
    """
    merged: dict[str, int] = {}
    for line in lines:
        merged[line.item_id] = merged.get(line.item_id, 0) + line.quantity
    return tuple(CartLine(item_id, qty) for item_id, qty in sorted(merged.items()))


def cart_fingerprint(user_id: str, lines: Iterable[CartLine]) -> str:
    canonical = ";".join(f"{l.item_id}x{l.quantity}" for l in normalize_cart(lines))
    return _digest("cart", user_id, canonical)


def token_fingerprint(user_id: str, token: str) -> str:
    """Client-supplied Idempotency-Key, scoped to the user."""
    return _digest("token", user_id, token.strip())


def _digest(*parts: str) -> str:
    return hashlib.sha256("\x1f".join(parts).encode()).hexdigest()


__all__ = ("normalize_cart", "cart_fingerprint", "token_fingerprint")
