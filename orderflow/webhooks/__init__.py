"""
Webhooks — gateway notifications, verified and journaled.

    from orderflow import webhooks as W

    reconciler = W.WebhookReconciler(controller, journal, webhook_secret)
    outcome = await reconciler.ingest(raw_body, signature_header)

Every delivery leaves exactly one webhook_audit row:

    bad signature          accepted=False  processed=False
    malformed / unknown id accepted=True   processed=False  (error recorded)
    unsupported event      accepted=True   processed=True
    payment.captured       accepted=True   processed=True   (same tx as PAID)
    payment.failed         accepted=True   processed=True   (never regresses PAID)
"""

from orderflow.webhooks._events import (
    PAYMENT_CAPTURED,
    PAYMENT_FAILED,
    UNKNOWN_EVENT,
    EVENT_TYPE_MAX,
    PaymentEntity,
    WebhookEvent,
    EventKind,
    ParsedEvent,
    parse_event,
    peek_event_type,
    event_type_label,
)
from orderflow.webhooks._graph import (
    Delivery,
    ReconcileDeps,
    WebhookOutcome,
    SignatureNode,
    EventNode,
    VerifiedNode,
    RejectedNode,
    ReconcileOutcome,
    WebhookResultNode,
)
from orderflow.webhooks._reconciler import WebhookReconciler

__all__ = (
    # Events
    "PAYMENT_CAPTURED",
    "PAYMENT_FAILED",
    "UNKNOWN_EVENT",
    "EVENT_TYPE_MAX",
    "PaymentEntity",
    "WebhookEvent",
    "EventKind",
    "ParsedEvent",
    "parse_event",
    "peek_event_type",
    "event_type_label",
    # Graph
    "Delivery",
    "ReconcileDeps",
    "WebhookOutcome",
    "SignatureNode",
    "EventNode",
    "VerifiedNode",
    "RejectedNode",
    "ReconcileOutcome",
    "WebhookResultNode",
    # Reconciler
    "WebhookReconciler",
)
