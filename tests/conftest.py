"""
Shared fixtures: a file-backed SQLite store (separate connections per
session, so concurrent writers really race), a seeded catalog, an in-memory
cache and a scripted gateway.
"""

import asyncio
import itertools
from collections.abc import Coroutine
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

import pytest
from kungfu import Ok, Error, Result

from orderflow._errors import OrderError, OrderErrors
from orderflow.checkout import CheckoutService
from orderflow.idempotency import (
    CacheError,
    CacheErrorKind,
    IdempotencyGuard,
    MemoryCache,
    Policy,
)
from orderflow.orders import ConcurrencyController
from orderflow.payments import GatewayOrder, PaymentVerifier
from orderflow.store import AuditJournal, CatalogItemRow, SQLCatalog, create_database
from orderflow.webhooks import WebhookReconciler

KEY_SECRET = "key-secret"
WEBHOOK_SECRET = "webhook-secret"


def run[T](coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


# ═══════════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════════


class FakeGateway:
    """Hands out order_test_1, order_test_2, ... or fails when told to."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.calls: list[tuple[int, str, str]] = []
        self._ids = itertools.count(1)

    async def create_order(
        self, amount: int, currency: str, receipt: str
    ) -> Result[GatewayOrder, OrderError]:
        self.calls.append((amount, currency, receipt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            return Error(OrderErrors.gateway("gateway down"))
        return Ok(
            GatewayOrder(
                id=f"order_test_{next(self._ids)}",
                amount=amount,
                currency=currency,
                receipt=receipt,
                status="created",
            )
        )


class BrokenCache:
    """Every call fails as if Redis were unreachable."""

    def _down(self) -> Error:
        return Error(CacheError(CacheErrorKind.CONNECTION, "connection refused"))

    async def get(self, key):
        return self._down()

    async def set(self, key, value, ttl):
        return self._down()

    async def set_if_absent(self, key, value, ttl):
        return self._down()

    async def delete(self, key):
        return self._down()

    async def replace_if_equals(self, key, expected, value, ttl):
        return self._down()

    async def delete_if_equals(self, key, expected):
        return self._down()


# ═══════════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════════


CATALOG = (
    CatalogItemRow(id="biryani", name="Chicken Biryani", price=2500, category="main"),
    CatalogItemRow(id="lassi", name="Mango Lassi", price=1500, category="drinks"),
    CatalogItemRow(id="naan", name="Butter Naan", price=500, category="bread"),
    CatalogItemRow(id="thali", name="Veg Thali", price=4000, category="main"),
    CatalogItemRow(id="platter", name="Tandoori Platter", price=5000, category="main"),
    CatalogItemRow(
        id="kulfi", name="Kulfi", price=900, category="dessert", is_available=False
    ),
)


async def _open(url: str):
    session_factory, engine = await create_database(url)
    async with session_factory() as session, session.begin():
        session.add_all(
            CatalogItemRow(
                id=row.id,
                name=row.name,
                price=row.price,
                category=row.category,
                is_available=row.is_available,
            )
            for row in CATALOG
        )
    return session_factory, engine


class Engine:
    """Everything wired against one database file."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.cache = MemoryCache()
        self.gateway = FakeGateway()

    @asynccontextmanager
    async def opened(self, policy: Policy | None = None, cache=None):
        await self.open(policy, cache)
        try:
            yield self
        finally:
            await self.close()

    async def open(self, policy: Policy | None = None, cache=None) -> "Engine":
        self.session_factory, self.engine = await _open(self.url)
        self.controller = ConcurrencyController(
            self.session_factory,
            SQLCatalog(self.session_factory),
            timeout=timedelta(seconds=10),
        )
        self.journal = AuditJournal(self.session_factory)
        self.guard = IdempotencyGuard(
            cache if cache is not None else self.cache,
            policy or Policy().with_wait(seconds=2, poll_seconds=0.01),
        )
        self.verifier = PaymentVerifier(KEY_SECRET, self.controller)
        self.service = CheckoutService(
            self.controller, self.guard, self.gateway, self.verifier
        )
        self.reconciler = WebhookReconciler(self.controller, self.journal, WEBHOOK_SECRET)
        return self

    async def close(self) -> None:
        await self.engine.dispose()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path}/orders.db"


@pytest.fixture
def engine(db_url) -> Engine:
    """Not opened: each test opens it inside its own event loop."""
    return Engine(db_url)
