"""
WebhookReconciler — entry point for gateway notifications.
"""

from __future__ import annotations

import structlog

from orderflow._graph import Pipeline
from orderflow.orders import ConcurrencyController
from orderflow.store import AuditJournal
from orderflow.webhooks._graph import (
    Delivery,
    ReconcileDeps,
    WebhookOutcome,
    WebhookResultNode,
)

log = structlog.get_logger(__name__)


class WebhookReconciler:
    """
    Verify, journal and apply one delivery.

    Example:
        reconciler = WebhookReconciler(controller, journal, webhook_secret)
        outcome = await reconciler.ingest(raw_body, request.headers.get("X-Razorpay-Signature"))
        status = 200 if outcome.accepted else 401

    Redelivery of the same event leaves the order unchanged and adds one more
    audit row.
    """

    def __init__(
        self,
        controller: ConcurrencyController,
        journal: AuditJournal,
        webhook_secret: str | None,
        source: str = "razorpay",
    ) -> None:
        if not webhook_secret:
            log.warning("webhook secret not configured, every delivery will be rejected")
        self._deps = ReconcileDeps(
            controller=controller,
            journal=journal,
            webhook_secret=webhook_secret,
            source=source,
        )
        self._pipeline = Pipeline.compile(WebhookResultNode)

    async def ingest(
        self, raw_payload: bytes, header_signature: str | None
    ) -> WebhookOutcome:
        result = await self._pipeline.run(
            Delivery(raw_payload, header_signature), self._deps
        )
        outcome = result.outcome

        log.info(
            "webhook ingested",
            source=self._deps.source,
            event_type=outcome.event_type,
            accepted=outcome.accepted,
            processed=outcome.processed,
            order_id=outcome.order_id,
            detail=outcome.detail,
        )
        return outcome


__all__ = ("WebhookReconciler",)
