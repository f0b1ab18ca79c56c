"""
Application factory — wires Settings into the engine and mounts the routes.

    app = create_app(settings=Settings.from_env())

Tests hand in ready-made Components (SQLite, MemoryCache, fake gateway):

    app = create_app(components=Components(service, reconciler))
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field

import fastapi
import structlog

from orderflow._log import configure_logging
from orderflow.checkout import CheckoutService
from orderflow.config import Settings
from orderflow.http._routes import router
from orderflow.idempotency import IdempotencyGuard, RedisCache
from orderflow.orders import ConcurrencyController
from orderflow.payments import PaymentVerifier, RazorpayGateway
from orderflow.store import AuditJournal, SQLCatalog, create_database
from orderflow.webhooks import WebhookReconciler

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class Components:
    service: CheckoutService
    reconciler: WebhookReconciler
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for close in reversed(self.closers):
            await close()


@asynccontextmanager
async def open_components(settings: Settings) -> AsyncIterator[Components]:
    """Open store, cache and gateway from settings; close them on exit."""
    async with AsyncExitStack() as stack:
        session_factory, engine = await create_database(settings.database_url)
        stack.push_async_callback(engine.dispose)

        cache = RedisCache.from_url(settings.redis_url, timeout=settings.cache_timeout_seconds)
        stack.push_async_callback(cache.close)

        gateway = RazorpayGateway.connect(
            settings.razorpay_key_id,
            settings.razorpay_key_secret.get_secret_value(),
            base_url=settings.gateway_base_url,
            timeout=settings.gateway_timeout_seconds,
        )
        stack.push_async_callback(gateway.aclose)

        controller = ConcurrencyController(
            session_factory,
            SQLCatalog(session_factory),
            currency=settings.currency,
            timeout=settings.store_timeout,
        )
        service = CheckoutService(
            controller,
            IdempotencyGuard(cache, settings.idempotency_policy()),
            gateway,
            PaymentVerifier(settings.razorpay_key_secret.get_secret_value(), controller),
        )
        reconciler = WebhookReconciler(
            controller,
            AuditJournal(session_factory),
            settings.webhook_secret,
        )

        log.info("components opened", currency=settings.currency)
        yield Components(service, reconciler)


def create_app(
    components: Components | None = None,
    settings: Settings | None = None,
) -> fastapi.FastAPI:
    if components is None and settings is None:
        raise ValueError("create_app needs components or settings")

    if settings is not None:
        configure_logging(settings.log_level, json=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
        if components is not None:
            app.state.components = components
            try:
                yield
            finally:
                await components.aclose()
            return

        assert settings is not None
        async with open_components(settings) as opened:
            app.state.components = opened
            yield
        log.info("components closed")

    app = fastapi.FastAPI(title="orderflow", lifespan=lifespan)
    app.include_router(router)
    return app


__all__ = ("Components", "open_components", "create_app")
