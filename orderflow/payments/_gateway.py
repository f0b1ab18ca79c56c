"""
Payment gateway — remote order creation.

The gateway decides how money moves; this module only asks it for an
order reference to pay against.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Protocol

import httpx
from combinators import lift as L
from kungfu import LazyCoroResult, Result

from orderflow._errors import OrderError, OrderErrors


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: str
    status: str


class PaymentGateway(Protocol):
    def create_order(
        self, amount: int, currency: str, receipt: str
    ) -> Awaitable[Result[GatewayOrder, OrderError]]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Razorpay
# ═══════════════════════════════════════════════════════════════════════════════


class RazorpayGateway:
    """
    Razorpay Orders API over httpx.

    Example:
        gateway = RazorpayGateway.connect(key_id, key_secret, timeout=10)
        match await gateway.create_order(13000, "INR", receipt=order.id):
            case Ok(remote):
                remote.id   # "order_..."

    Note: The client is injected, so tests hand in an httpx.MockTransport.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def connect(
        cls,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com",
        timeout: float = 10.0,
    ) -> RazorpayGateway:
        return cls(
            httpx.AsyncClient(
                base_url=base_url,
                auth=(key_id, key_secret),
                timeout=httpx.Timeout(timeout),
            )
        )

    def create_order(
        self, amount: int, currency: str, receipt: str
    ) -> LazyCoroResult[GatewayOrder, OrderError]:
        async def _post() -> GatewayOrder:
            response = await self._client.post(
                "/v1/orders",
                json={"amount": amount, "currency": currency, "receipt": receipt},
            )
            response.raise_for_status()
            data = response.json()
            return GatewayOrder(
                id=str(data["id"]),
                amount=int(data.get("amount", amount)),
                currency=str(data.get("currency", currency)),
                receipt=str(data.get("receipt", receipt)),
                status=str(data.get("status", "created")),
            )

        return L.catching_async(_post, on_error=_gateway_error)

    async def aclose(self) -> None:
        await self._client.aclose()


def _gateway_error(e: Exception) -> OrderError:
    match e:
        case httpx.HTTPStatusError(response=response):
            return OrderErrors.gateway(
                f"gateway rejected order creation ({response.status_code})", e
            )
        case httpx.TimeoutException():
            return OrderErrors.gateway("gateway timed out", e)
        case httpx.HTTPError():
            return OrderErrors.gateway("gateway unreachable", e)
        case _:
            return OrderErrors.gateway("unexpected gateway response", e)


__all__ = ("GatewayOrder", "PaymentGateway", "RazorpayGateway")
