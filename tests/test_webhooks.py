import asyncio
import json

from conftest import WEBHOOK_SECRET, run
from orderflow.domain import CartLine
from orderflow.lifecycle import OrderStatus
from orderflow.payments import sign, signatures_match
from orderflow.webhooks import (
    PAYMENT_CAPTURED,
    PAYMENT_FAILED,
    EVENT_TYPE_MAX,
    EventKind,
    ParsedEvent,
    WebhookReconciler,
    event_type_label,
    parse_event,
    peek_event_type,
)


def body(event: str, gateway_order_id: str = "order_1", payment_id: str = "pay_1") -> bytes:
    return json.dumps(
        {
            "entity": "event",
            "event": event,
            "payload": {
                "payment": {
                    "entity": {
                        "id": payment_id,
                        "order_id": gateway_order_id,
                        "amount": 7500,
                        "status": "captured",
                    }
                }
            },
        }
    ).encode()


def signed(raw: bytes) -> str:
    return sign(WEBHOOK_SECRET, raw)


async def awaiting(e, gateway_order_id="order_1"):
    order = (await e.controller.create_order("u1", [CartLine("biryani", 3)])).value
    return (
        await e.controller.set_gateway_order_id(order.id, gateway_order_id, order.version)
    ).value


# ═══════════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════════


class TestParseEvent:
    def test_captured(self):
        parsed = parse_event(body(PAYMENT_CAPTURED))
        assert parsed.kind == EventKind.CAPTURED
        assert parsed.payment.id == "pay_1"
        assert parsed.payment.order_id == "order_1"

    def test_unknown_event_is_unsupported(self):
        parsed = parse_event(json.dumps({"event": "refund.processed"}).encode())
        assert parsed.kind == EventKind.UNSUPPORTED
        assert parsed.event_type == "refund.processed"

    def test_handled_event_without_payment_is_malformed(self):
        parsed = parse_event(json.dumps({"event": PAYMENT_CAPTURED, "payload": {}}).encode())
        assert parsed.kind == EventKind.MALFORMED
        assert parsed.event_type == PAYMENT_CAPTURED

    def test_garbage(self):
        parsed = parse_event(b"\xff not json")
        assert parsed.kind == EventKind.MALFORMED
        assert parsed.event_type == "unknown"
        assert peek_event_type(b"[1, 2]") == "unknown"

    def test_event_names_fit_the_audit_column(self):
        unsupported = parse_event(json.dumps({"event": "x" * 200}).encode())
        malformed = parse_event(json.dumps({"event": "y" * 200, "payload": 5}).encode())
        assert unsupported.kind == EventKind.UNSUPPORTED
        assert unsupported.event_type == "x" * EVENT_TYPE_MAX
        assert malformed.kind == EventKind.MALFORMED
        assert malformed.event_type == "y" * EVENT_TYPE_MAX

    def test_nul_is_dropped_from_event_names(self):
        assert event_type_label("refund\x00.processed") == "refund.processed"
        assert event_type_label("\x00") == "unknown"


# ═══════════════════════════════════════════════════════════════════════════════
# Ingest
# ═══════════════════════════════════════════════════════════════════════════════


class TestIngest:
    def test_capture_marks_paid(self, engine):
        async def main():
            async with engine.opened() as e:
                order = await awaiting(e)
                raw = body(PAYMENT_CAPTURED)
                outcome = await e.reconciler.ingest(raw, signed(raw))
                return (
                    order,
                    outcome,
                    await e.controller.get_order(order.id),
                    await e.journal.for_order(order.id),
                )

        order, outcome, final, audit = run(main())
        assert outcome.accepted and outcome.processed
        assert outcome.order_id == order.id
        assert final.value.status is OrderStatus.PAID
        assert final.value.gateway_payment_id == "pay_1"
        [entry] = audit.value
        assert entry.signature_valid and entry.processed
        assert entry.event_type == PAYMENT_CAPTURED
        assert json.loads(entry.payload)["event"] == PAYMENT_CAPTURED

    def test_redelivery_changes_nothing_but_the_journal(self, engine):
        async def main():
            async with engine.opened() as e:
                order = await awaiting(e)
                raw = body(PAYMENT_CAPTURED)
                first = await e.reconciler.ingest(raw, signed(raw))
                paid = (await e.controller.get_order(order.id)).value
                second = await e.reconciler.ingest(raw, signed(raw))
                return (
                    first,
                    second,
                    paid,
                    (await e.controller.get_order(order.id)).value,
                    (await e.journal.for_order(order.id)).value,
                )

        first, second, paid, final, audit = run(main())
        assert first.detail == "payment recorded"
        assert second.detail == "already paid"
        assert second.accepted and second.processed
        assert final.version == paid.version
        assert len(audit) == 2
        assert all(entry.processed for entry in audit)

    def test_concurrent_redeliveries_commit_once(self, engine):
        async def main():
            async with engine.opened() as e:
                order = await awaiting(e)
                raw = body(PAYMENT_CAPTURED)
                outcomes = await asyncio.gather(
                    *(e.reconciler.ingest(raw, signed(raw)) for _ in range(4))
                )
                return (
                    outcomes,
                    (await e.controller.get_order(order.id)).value,
                    (await e.journal.for_order(order.id)).value,
                )

        outcomes, final, audit = run(main())
        assert all(o.accepted for o in outcomes)
        assert sum(o.detail == "payment recorded" for o in outcomes) == 1
        assert final.status is OrderStatus.PAID
        assert final.version == 3
        assert len(audit) == 4

    def test_bad_signature_is_journaled_and_ignored(self, engine):
        async def main():
            async with engine.opened() as e:
                order = await awaiting(e)
                raw = body(PAYMENT_CAPTURED)
                outcome = await e.reconciler.ingest(raw, sign("wrong-secret", raw))
                missing = await e.reconciler.ingest(raw, None)
                return (
                    outcome,
                    missing,
                    (await e.controller.get_order(order.id)).value,
                    (await e.journal.recent()).value,
                )

        outcome, missing, final, audit = run(main())
        assert not outcome.accepted and not outcome.processed
        assert not missing.accepted
        assert final.status is OrderStatus.AWAITING_PAYMENT
        assert len(audit) == 2
        for entry in audit:
            assert not entry.signature_valid
            assert not entry.processed
            assert entry.order_id is None
            assert entry.event_type == PAYMENT_CAPTURED

    def test_tampered_body_is_rejected(self, engine):
        async def main():
            async with engine.opened() as e:
                await awaiting(e)
                raw = body(PAYMENT_CAPTURED)
                tampered = body(PAYMENT_CAPTURED, payment_id="pay_evil")
                return await e.reconciler.ingest(tampered, signed(raw))

        assert not run(main()).accepted

    def test_unconfigured_secret_rejects_everything(self, engine):
        async def main():
            async with engine.opened() as e:
                reconciler = WebhookReconciler(e.controller, e.journal, None)
                raw = body(PAYMENT_CAPTURED)
                return await reconciler.ingest(raw, sign("", raw))

        assert not run(main()).accepted

    def test_failure_then_retry_capture(self, engine):
        async def main():
            async with engine.opened() as e:
                order = await awaiting(e)
                failed_raw = body(PAYMENT_FAILED, payment_id="pay_1")
                failed = await e.reconciler.ingest(failed_raw, signed(failed_raw))
                after_failure = (await e.controller.get_order(order.id)).value
                captured_raw = body(PAYMENT_CAPTURED, payment_id="pay_2")
                captured = await e.reconciler.ingest(captured_raw, signed(captured_raw))
                return failed, after_failure, captured, (await e.controller.get_order(order.id)).value

        failed, after_failure, captured, final = run(main())
        assert failed.processed
        assert after_failure.status is OrderStatus.PAYMENT_FAILED
        assert captured.processed
        assert final.status is OrderStatus.PAID
        assert final.gateway_payment_id == "pay_2"
        assert final.version == after_failure.version + 2

    def test_failure_after_capture_keeps_order_paid(self, engine):
        async def main():
            async with engine.opened() as e:
                order = await awaiting(e)
                captured_raw = body(PAYMENT_CAPTURED)
                await e.reconciler.ingest(captured_raw, signed(captured_raw))
                paid = (await e.controller.get_order(order.id)).value
                failed_raw = body(PAYMENT_FAILED, payment_id="pay_0")
                late = await e.reconciler.ingest(failed_raw, signed(failed_raw))
                return paid, late, (await e.controller.get_order(order.id)).value

        paid, late, final = run(main())
        assert late.accepted and late.processed
        assert final.status is OrderStatus.PAID
        assert final.version == paid.version

    def test_unknown_gateway_order(self, engine):
        async def main():
            async with engine.opened() as e:
                raw = body(PAYMENT_CAPTURED, gateway_order_id="order_ghost")
                outcome = await e.reconciler.ingest(raw, signed(raw))
                return outcome, (await e.journal.recent()).value

        outcome, audit = run(main())
        assert outcome.accepted
        assert not outcome.processed
        [entry] = audit
        assert entry.signature_valid
        assert not entry.processed
        assert "order_ghost" in entry.processing_error

    def test_unsupported_event_is_acknowledged(self, engine):
        async def main():
            async with engine.opened() as e:
                raw = json.dumps({"event": "order.paid", "payload": {}}).encode()
                outcome = await e.reconciler.ingest(raw, signed(raw))
                return outcome, (await e.journal.recent()).value

        outcome, audit = run(main())
        assert outcome.accepted and outcome.processed
        assert outcome.detail == "event ignored"
        assert audit[0].event_type == "order.paid"

    def test_malformed_body_is_journaled_unprocessed(self, engine):
        async def main():
            async with engine.opened() as e:
                raw = b'{"event": "payment.captured", "payload": {"payment": {}}}'
                outcome = await e.reconciler.ingest(raw, signed(raw))
                return outcome, (await e.journal.recent()).value

        outcome, audit = run(main())
        assert outcome.accepted
        assert not outcome.processed
        [entry] = audit
        assert entry.signature_valid
        assert not entry.processed
        assert entry.processing_error

    def test_long_unsigned_event_name_is_journaled(self, engine):
        async def main():
            async with engine.opened() as e:
                raw = json.dumps({"event": "x" * 200, "payload": {}}).encode()
                outcome = await e.reconciler.ingest(raw, "deadbeef")
                return raw, outcome, (await e.journal.recent()).value

        raw, outcome, audit = run(main())
        assert not outcome.accepted
        [entry] = audit
        assert entry.event_type == "x" * EVENT_TYPE_MAX
        assert entry.payload == raw

    def test_undecodable_body_is_journaled_byte_for_byte(self, engine):
        async def main():
            async with engine.opened() as e:
                raw = b'{"event": "payment.captured"}\x00\xff\xfe'
                good = await e.reconciler.ingest(raw, signed(raw))
                bad = await e.reconciler.ingest(raw, "deadbeef")
                return raw, good, bad, (await e.journal.recent()).value

        raw, good, bad, audit = run(main())
        assert good.accepted and not good.processed
        assert not bad.accepted
        assert len(audit) == 2
        for entry in audit:
            assert entry.payload == raw
        # The stored body still verifies against the signature it arrived with.
        [verified] = [entry for entry in audit if entry.signature_valid]
        assert signatures_match(sign(WEBHOOK_SECRET, verified.payload), signed(raw))

    def test_handled_event_without_payment_entity_is_unprocessed(self, engine, monkeypatch):
        async def main():
            outcomes = []
            async with engine.opened() as e:
                for kind, name in ((EventKind.CAPTURED, PAYMENT_CAPTURED), (EventKind.FAILED, PAYMENT_FAILED)):
                    monkeypatch.setattr(
                        "orderflow.webhooks._graph.parse_event",
                        lambda raw, kind=kind, name=name: ParsedEvent(kind, name),
                    )
                    raw = body(name)
                    outcomes.append(await e.reconciler.ingest(raw, signed(raw)))
                return outcomes, (await e.journal.recent()).value

        outcomes, audit = run(main())
        for outcome in outcomes:
            assert outcome.accepted and not outcome.processed
            assert outcome.detail == "payment entity missing"
        assert len(audit) == 2
        assert {entry.processing_error for entry in audit} == {"payment entity missing"}

    def test_failure_on_pending_order_is_not_applied(self, engine):
        async def main():
            async with engine.opened() as e:
                order = (await e.controller.create_order("u1", [CartLine("naan", 1)])).value
                raw = body(PAYMENT_FAILED, gateway_order_id="order_never_set")
                outcome = await e.reconciler.ingest(raw, signed(raw))
                return order, outcome, (await e.controller.get_order(order.id)).value

        order, outcome, final = run(main())
        assert not outcome.processed
        assert final.status is OrderStatus.PENDING
        assert final.version == order.version
