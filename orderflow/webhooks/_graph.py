"""
Webhook graph — signature, parsing and routing as nodnod nodes.

Architecture:
    Delivery + ReconcileDeps (injected)
         │
         ├──────────────────┐
         ▼                  ▼
    SignatureNode       EventNode (pydantic parse, never fails)
         │                  │
         └────────┬─────────┘
                  │
         ┌────────┴───────────┐
         ▼                    ▼
    VerifiedNode          RejectedNode
         │                    │
         ├── captured ────────┤
         ├── failed ──────────┤
         ├── unsupported ─────┼── ReconcileOutcome (@polymorphic)
         └── malformed ───────┘            │
                                           ▼
                                    WebhookResultNode

Note: НЕ используем 'from __future__ import annotations' потому что
nodnod использует type hints в runtime для dependency resolution.
"""

from dataclasses import dataclass

import structlog
from kungfu import Ok, Error
from nodnod import NodeError, polymorphic, case

from orderflow._graph import node
from orderflow.domain import AuditDraft
from orderflow.orders import ConcurrencyController
from orderflow.payments import sign, signatures_match
from orderflow.store import AuditJournal
from orderflow.webhooks._events import EventKind, ParsedEvent, parse_event

log = structlog.get_logger(__name__)

_NO_PAYMENT = "payment entity missing"


# ═══════════════════════════════════════════════════════════════════════════════
# Inputs (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Delivery:
    raw: bytes
    signature: str | None


@dataclass(frozen=True, slots=True)
class ReconcileDeps:
    controller: ConcurrencyController
    journal: AuditJournal
    webhook_secret: str | None
    source: str = "razorpay"


@dataclass(frozen=True, slots=True)
class WebhookOutcome:
    """
    accepted is False only for a bad signature.
    processed mirrors the audit row.
    """

    accepted: bool
    processed: bool
    event_type: str
    order_id: str | None = None
    detail: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Signature & Parsing
# ═══════════════════════════════════════════════════════════════════════════════


@node
class SignatureNode:
    """HMAC over the raw body. An unconfigured secret rejects everything."""

    def __init__(self, valid: bool) -> None:
        self.valid = valid

    @classmethod
    def __compose__(cls, delivery: Delivery, deps: ReconcileDeps) -> "SignatureNode":
        if not deps.webhook_secret:
            return cls(False)
        expected = sign(deps.webhook_secret, delivery.raw)
        return cls(signatures_match(expected, delivery.signature))


@node
class EventNode:
    def __init__(self, parsed: ParsedEvent, draft: AuditDraft) -> None:
        self.parsed = parsed
        self.draft = draft

    @classmethod
    def __compose__(
        cls, delivery: Delivery, deps: ReconcileDeps, signature: SignatureNode
    ) -> "EventNode":
        parsed = parse_event(delivery.raw)
        draft = AuditDraft(
            source=deps.source,
            event_type=parsed.event_type,
            payload=delivery.raw,
            signature_valid=signature.valid,
        )
        return cls(parsed, draft)


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes
# ═══════════════════════════════════════════════════════════════════════════════


@node
class VerifiedNode:
    """Validates: signature matched."""

    def __init__(self, event: EventNode, deps: ReconcileDeps) -> None:
        self.parsed = event.parsed
        self.draft = event.draft
        self.deps = deps

    @classmethod
    def __compose__(
        cls, signature: SignatureNode, event: EventNode, deps: ReconcileDeps
    ) -> "VerifiedNode":
        if not signature.valid:
            raise NodeError("Signature invalid")
        return cls(event, deps)


@node
class RejectedNode:
    """Validates: signature did not match."""

    def __init__(self, event: EventNode, deps: ReconcileDeps) -> None:
        self.draft = event.draft
        self.deps = deps

    @classmethod
    def __compose__(
        cls, signature: SignatureNode, event: EventNode, deps: ReconcileDeps
    ) -> "RejectedNode":
        if signature.valid:
            raise NodeError("Signature valid")
        return cls(event, deps)


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[WebhookOutcome]
class ReconcileOutcome:
    """
    Exactly one case survives for a given delivery.

    Note: Каждая ветка пишет ровно одну строку аудита.
    Successful state changes write it inside the controller's transaction.
    """

    @case
    async def rejected(cls, node: RejectedNode) -> WebhookOutcome:
        await _journal(node.deps, node.draft, None, "signature invalid")
        return WebhookOutcome(
            accepted=False,
            processed=False,
            event_type=node.draft.event_type,
            detail="signature invalid",
        )

    @case
    async def malformed(cls, node: VerifiedNode) -> WebhookOutcome:
        if node.parsed.kind != EventKind.MALFORMED:
            raise NodeError("Not malformed")
        error = node.parsed.error or "malformed payload"
        await _journal(node.deps, node.draft, None, error)
        return _unprocessed(node, None, error)

    @case
    async def unsupported(cls, node: VerifiedNode) -> WebhookOutcome:
        if node.parsed.kind != EventKind.UNSUPPORTED:
            raise NodeError("Not unsupported")
        await _journal(node.deps, node.draft, None, None)
        return WebhookOutcome(
            accepted=True,
            processed=True,
            event_type=node.draft.event_type,
            detail="event ignored",
        )

    @case
    async def captured(cls, node: VerifiedNode) -> WebhookOutcome:
        if node.parsed.kind != EventKind.CAPTURED:
            raise NodeError("Not captured")
        payment = node.parsed.payment
        if payment is None:
            await _journal(node.deps, node.draft, None, _NO_PAYMENT)
            return _unprocessed(node, None, _NO_PAYMENT)
        controller = node.deps.controller

        match await controller.get_by_gateway_order_id(payment.order_id):
            case Error(e):
                await _journal(node.deps, node.draft, None, e.message)
                return _unprocessed(node, None, e.message)
            case Ok(order):
                pass

        match await controller.reconcile_payment(order.id, payment.id, audit=node.draft):
            case Ok(commit):
                return WebhookOutcome(
                    accepted=True,
                    processed=True,
                    event_type=node.draft.event_type,
                    order_id=order.id,
                    detail="payment recorded" if commit.applied else "already paid",
                )
            case Error(e):
                await _journal(node.deps, node.draft, order.id, e.message)
                return _unprocessed(node, order.id, e.message)

    @case
    async def failed(cls, node: VerifiedNode) -> WebhookOutcome:
        if node.parsed.kind != EventKind.FAILED:
            raise NodeError("Not failed")
        payment = node.parsed.payment
        if payment is None:
            await _journal(node.deps, node.draft, None, _NO_PAYMENT)
            return _unprocessed(node, None, _NO_PAYMENT)
        controller = node.deps.controller

        match await controller.get_by_gateway_order_id(payment.order_id):
            case Error(e):
                await _journal(node.deps, node.draft, None, e.message)
                return _unprocessed(node, None, e.message)
            case Ok(order):
                pass

        match await controller.mark_payment_failed(order.id, audit=node.draft):
            case Ok(updated):
                return WebhookOutcome(
                    accepted=True,
                    processed=True,
                    event_type=node.draft.event_type,
                    order_id=order.id,
                    detail=f"order is {updated.status.value}",
                )
            case Error(e):
                await _journal(node.deps, node.draft, order.id, e.message)
                return _unprocessed(node, order.id, e.message)


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@node
class WebhookResultNode:
    def __init__(self, outcome: WebhookOutcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: ReconcileOutcome) -> "WebhookResultNode":
        return cls(outcome.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


async def _journal(
    deps: ReconcileDeps, draft: AuditDraft, order_id: str | None, error: str | None
) -> None:
    """Audit row for every outcome not written by the controller."""
    recorded = await deps.journal.record(
        draft, processed=error is None, order_id=order_id, error=error
    )
    match recorded:
        case Error(e):
            log.error(
                "webhook audit write failed",
                event_type=draft.event_type,
                order_id=order_id,
                error=e.message,
            )
        case Ok(_):
            pass


def _unprocessed(node: VerifiedNode, order_id: str | None, error: str) -> WebhookOutcome:
    return WebhookOutcome(
        accepted=True,
        processed=False,
        event_type=node.draft.event_type,
        order_id=order_id,
        detail=error,
    )


__all__ = (
    "Delivery",
    "ReconcileDeps",
    "WebhookOutcome",
    "SignatureNode",
    "EventNode",
    "VerifiedNode",
    "RejectedNode",
    "ReconcileOutcome",
    "WebhookResultNode",
)
