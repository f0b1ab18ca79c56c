import json

import pytest
from fastapi.testclient import TestClient

from conftest import KEY_SECRET, WEBHOOK_SECRET, run
from orderflow.http import SIGNATURE_HEADER, Components, create_app
from orderflow.payments import payment_signature, sign

CART = {"user_id": "u1", "items": [{"item_id": "biryani", "quantity": 2}, {"item_id": "naan", "quantity": 1}]}


@pytest.fixture
def client(engine):
    # Built on a throwaway loop; the pool is emptied so the app's loop opens
    # its own connections.
    async def build():
        async with engine.opened() as e:
            return e

    opened = run(build())
    components = Components(
        opened.service, opened.reconciler, closers=[opened.engine.dispose]
    )
    with TestClient(create_app(components=components)) as client:
        yield client


def pay(client, receipt, payment_id="pay_1"):
    return client.post(
        "/payments/verify",
        json={
            "order_id": receipt["order_id"],
            "gateway_order_id": receipt["gateway_order_id"],
            "gateway_payment_id": payment_id,
            "signature": payment_signature(KEY_SECRET, receipt["gateway_order_id"], payment_id),
        },
    )


class TestOrders:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_create_and_read(self, client):
        created = client.post("/orders", json=CART)
        assert created.status_code == 201
        receipt = created.json()
        assert receipt["amount"] == 5500
        assert receipt["currency"] == "INR"

        order = client.get(f"/orders/{receipt['order_id']}").json()
        assert order["status"] == "AWAITING_PAYMENT"
        assert order["total_amount"] == 5500
        assert [i["subtotal"] for i in order["items"]] == [5000, 500]

    def test_client_prices_are_ignored(self, client):
        body = {
            "user_id": "u1",
            "total_amount": 1,
            "items": [{"item_id": "biryani", "quantity": 1, "price": 1}],
        }
        assert client.post("/orders", json=body).json()["amount"] == 2500

    def test_idempotency_key_header(self, client):
        first = client.post("/orders", json=CART, headers={"Idempotency-Key": "tap-1"})
        again = client.post("/orders", json=CART, headers={"Idempotency-Key": "tap-1"})
        other = client.post("/orders", json=CART, headers={"Idempotency-Key": "tap-2"})
        assert first.json() == again.json()
        assert other.json()["order_id"] != first.json()["order_id"]

    def test_validation_errors(self, client):
        response = client.post("/orders", json={"user_id": "u1", "items": []})
        assert response.status_code == 400
        assert response.json()["error"] == "validation"

        response = client.post(
            "/orders", json={"user_id": "u1", "items": [{"item_id": "ghost", "quantity": 1}]}
        )
        assert response.status_code == 400

    def test_unknown_order(self, client):
        response = client.get("/orders/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_user_orders(self, client):
        client.post("/orders", json=CART)
        client.post("/orders", json={"user_id": "u2", "items": [{"item_id": "naan", "quantity": 1}]})
        orders = client.get("/users/u1/orders").json()
        assert [o["user_id"] for o in orders] == ["u1"]


class TestPayments:
    def test_verify(self, client):
        receipt = client.post("/orders", json=CART).json()
        first = pay(client, receipt)
        second = pay(client, receipt)
        assert first.status_code == 200
        assert first.json() == {
            "success": True,
            "order_id": receipt["order_id"],
            "message": "Payment verified successfully",
        }
        assert second.json()["message"] == "Payment already recorded"

    def test_bad_signature_reveals_nothing(self, client):
        receipt = client.post("/orders", json=CART).json()
        response = client.post(
            "/payments/verify",
            json={
                "order_id": receipt["order_id"],
                "gateway_order_id": receipt["gateway_order_id"],
                "gateway_payment_id": "pay_1",
                "signature": "deadbeef",
            },
        )
        assert response.status_code == 400
        assert response.json() == {
            "error": "signature_invalid",
            "message": "Payment verification failed",
        }


class TestWebhook:
    def event(self, gateway_order_id: str) -> bytes:
        return json.dumps(
            {
                "event": "payment.captured",
                "payload": {"payment": {"entity": {"id": "pay_9", "order_id": gateway_order_id}}},
            }
        ).encode()

    def test_signed_capture(self, client):
        receipt = client.post("/orders", json=CART).json()
        raw = self.event(receipt["gateway_order_id"])
        response = client.post(
            "/webhooks/razorpay",
            content=raw,
            headers={SIGNATURE_HEADER: sign(WEBHOOK_SECRET, raw), "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "processed": True}
        assert client.get(f"/orders/{receipt['order_id']}").json()["status"] == "PAID"

    def test_unsigned_capture_is_401(self, client):
        receipt = client.post("/orders", json=CART).json()
        response = client.post("/webhooks/razorpay", content=self.event(receipt["gateway_order_id"]))
        assert response.status_code == 401
        assert response.json() == {"status": "rejected", "processed": False}
        assert client.get(f"/orders/{receipt['order_id']}").json()["status"] == "AWAITING_PAYMENT"


class TestAdmin:
    def test_status_progression(self, client):
        receipt = client.post("/orders", json=CART).json()
        pay(client, receipt)

        accepted = client.patch(
            f"/admin/orders/{receipt['order_id']}/status", json={"status": "ACCEPTED"}
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "ACCEPTED"

        skipped = client.patch(
            f"/admin/orders/{receipt['order_id']}/status", json={"status": "PENDING"}
        )
        assert skipped.status_code == 409
        assert skipped.json()["error"] == "invalid_transition"

        stale = client.patch(
            f"/admin/orders/{receipt['order_id']}/status",
            json={"status": "DELIVERED", "version": 1},
        )
        assert stale.status_code == 409
        assert stale.json()["error"] == "version_conflict"

    def test_paid_cannot_be_set_by_admin(self, client):
        receipt = client.post("/orders", json=CART).json()
        response = client.patch(
            f"/admin/orders/{receipt['order_id']}/status", json={"status": "PAID"}
        )
        assert response.status_code == 409

    def test_unknown_status_is_rejected_by_schema(self, client):
        receipt = client.post("/orders", json=CART).json()
        response = client.patch(
            f"/admin/orders/{receipt['order_id']}/status", json={"status": "SHIPPED"}
        )
        assert response.status_code == 422

    def test_listing(self, client):
        for user in ("u1", "u2", "u3"):
            client.post("/orders", json={"user_id": user, "items": [{"item_id": "naan", "quantity": 1}]})
        assert len(client.get("/admin/orders", params={"limit": 2}).json()) == 2
        assert len(client.get("/admin/orders", params={"limit": 2, "offset": 2}).json()) == 1
        assert len(client.get("/admin/orders", params={"limit": 0}).json()) == 1
