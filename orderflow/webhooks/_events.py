"""
Gateway webhook events — pydantic models for the parts we read.

    {
      "event": "payment.captured",
      "payload": {"payment": {"entity": {"id": "pay_..", "order_id": "order_..", ...}}}
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, ValidationError


PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"
UNKNOWN_EVENT = "unknown"

# Width of webhook_audit.event_type.
EVENT_TYPE_MAX = 100


class PaymentEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    order_id: str
    error_description: str | None = None


class PaymentEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entity: PaymentEntity


class EventPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment: PaymentEnvelope | None = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    payload: EventPayload | None = None

    @property
    def payment(self) -> PaymentEntity | None:
        if self.payload is None or self.payload.payment is None:
            return None
        return self.payload.payment.entity


class EventKind(Enum):
    CAPTURED = "captured"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"
    MALFORMED = "malformed"


_HANDLED = {
    PAYMENT_CAPTURED: EventKind.CAPTURED,
    PAYMENT_FAILED: EventKind.FAILED,
}


@dataclass(frozen=True, slots=True)
class ParsedEvent:
    kind: EventKind
    event_type: str
    event: WebhookEvent | None = None
    error: str | None = None

    @property
    def payment(self) -> PaymentEntity | None:
        return self.event.payment if self.event is not None else None


def parse_event(raw: bytes) -> ParsedEvent:
    """Never raises: anything unreadable becomes MALFORMED."""
    try:
        event = WebhookEvent.model_validate_json(raw)
    except ValidationError as e:
        return ParsedEvent(
            kind=EventKind.MALFORMED,
            event_type=peek_event_type(raw),
            error=f"malformed payload: {e.error_count()} validation error(s)",
        )

    kind = _HANDLED.get(event.event)
    if kind is None:
        return ParsedEvent(EventKind.UNSUPPORTED, event_type_label(event.event), event)

    if event.payment is None:
        return ParsedEvent(
            kind=EventKind.MALFORMED,
            event_type=event_type_label(event.event),
            event=event,
            error="payment entity missing",
        )
    return ParsedEvent(kind, event.event, event)


def peek_event_type(raw: bytes) -> str:
    """Best-effort event name for the audit row, even for bodies we reject."""
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return UNKNOWN_EVENT
    if isinstance(data, dict) and isinstance(data.get("event"), str):
        return event_type_label(data["event"])
    return UNKNOWN_EVENT


def event_type_label(name: str) -> str:
    """Event name as the audit column can hold it: no NULs, at most EVENT_TYPE_MAX."""
    return name.replace("\x00", "")[:EVENT_TYPE_MAX] or UNKNOWN_EVENT


__all__ = (
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
)
