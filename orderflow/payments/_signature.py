"""
Signatures — HMAC-SHA256, hex encoded, constant-time comparison.

Client callback:  HMAC(key_secret,     f"{gateway_order_id}|{gateway_payment_id}")
Webhook body:     HMAC(webhook_secret, raw_body)
"""

from __future__ import annotations

import hashlib
import hmac


def sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    return sign(secret, f"{gateway_order_id}|{gateway_payment_id}".encode())


def signatures_match(expected: str, given: str | None) -> bool:
    if not given:
        return False
    # compare_digest rejects non-ASCII str; such a value can never match hex.
    if not given.isascii():
        return False
    return hmac.compare_digest(expected.lower(), given.strip().lower())


__all__ = ("sign", "payment_signature", "signatures_match")
