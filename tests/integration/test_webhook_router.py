"""Integration tests for the Stripe and voice provider webhooks."""

import json
import time

from sqlalchemy import func, select

from bookedsolid.billing.stripe_webhook import sign_stripe_payload
from bookedsolid.calls.voice_webhook import sign_voice_payload
from bookedsolid.clients.models import ClientModel

STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
VOICE_WEBHOOK_SECRET = "voice-test-secret"


def subscription_body(customer="cus_int_1", price="price_complete_monthly", status="active"):
    return json.dumps({
        "id": "evt_int_1",
        "type": "customer.subscription.created",
        "created": 1_700_000_100,
        "data": {"object": {
            "id": "sub_int_1",
            "customer": customer,
            "status": status,
            "current_period_start": 1_700_000_000,
            "current_period_end": 1_702_592_000,
            "items": {"data": [{"price": {"id": price}}]},
        }},
    }).encode()


async def client_count():
    from bookedsolid.deps import get_db
    async with get_db().get_session() as session:
        return await session.scalar(select(func.count(ClientModel.id)))


async def get_by_customer(customer_id):
    from bookedsolid.deps import get_db
    async with get_db().get_session() as session:
        result = await session.execute(
            select(ClientModel).where(ClientModel.stripe_customer_id == customer_id)
        )
        return result.scalar_one_or_none()


class TestStripeWebhook:
    async def test_missing_signature(self, client):
        resp = await client.post("/webhooks/stripe", content=subscription_body())
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing signature"}
        assert await client_count() == 0

    async def test_invalid_signature_creates_nothing(self, client):
        body = subscription_body()
        resp = await client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_stripe_payload(body, "whsec_wrong")},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid signature"}
        assert await client_count() == 0

    async def test_stale_timestamp_rejected(self, client):
        body = subscription_body()
        header = sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET, timestamp=1_000_000_000)
        resp = await client.post("/webhooks/stripe", content=body, headers={"Stripe-Signature": header})
        assert resp.status_code == 400

    async def test_valid_subscription_creates_tenant(self, client):
        body = subscription_body()
        resp = await client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

        tenant = await get_by_customer("cus_int_1")
        assert tenant.plan == "complete"
        assert tenant.minutes_included == 1000
        assert tenant.status == "active"

    async def test_redelivery_keeps_one_tenant(self, client):
        body = subscription_body()
        for _ in range(2):
            resp = await client.post(
                "/webhooks/stripe",
                content=body,
                headers={"Stripe-Signature": sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET)},
            )
            assert resp.status_code == 200
        assert await client_count() == 1

    async def test_unknown_price_acknowledged_without_tenant(self, client):
        body = subscription_body(price="price_from_another_product")
        resp = await client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 200
        assert await client_count() == 0

    async def test_bad_json(self, client):
        body = b"{not json"
        resp = await client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid payload"}

    async def test_missing_data_object(self, client):
        body = json.dumps({"id": "evt_x", "type": "customer.subscription.created"}).encode()
        resp = await client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 400

    async def test_items_as_list_rejected(self, client):
        payload = json.loads(subscription_body())
        payload["type"] = "customer.subscription.updated"
        payload["data"]["object"]["items"] = [{"price": "price_complete_monthly"}]
        body = json.dumps(payload).encode()
        resp = await client.post(
            "/webhooks/stripe",
            content=body,
            headers={"Stripe-Signature": sign_stripe_payload(body, STRIPE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid payload"}
        assert await client_count() == 0


class TestVoiceWebhook:
    def body(self, client_id, event="call_ended", seconds=90):
        start_ms = int(time.time() * 1000) - seconds * 1000
        return json.dumps({
            "event": event,
            "call": {
                "call_id": "call_int_1",
                "direction": "inbound",
                "from_number": "+15550001111",
                "start_timestamp": start_ms,
                "end_timestamp": start_ms + seconds * 1000,
                "transcript": "I'd like to book an appointment",
                "metadata": {"client_id": client_id},
            },
        }).encode()

    async def test_missing_signature(self, client, make_tenant_user):
        tenant, _ = await make_tenant_user()
        resp = await client.post("/webhooks/voice", content=self.body(tenant.id))
        assert resp.status_code == 401

    async def test_invalid_signature(self, client, make_tenant_user):
        tenant, _ = await make_tenant_user()
        body = self.body(tenant.id)
        resp = await client.post(
            "/webhooks/voice",
            content=body,
            headers={"X-Voice-Signature": sign_voice_payload(body, "wrong-secret")},
        )
        assert resp.status_code == 401

    async def test_call_ended_tracks_minutes(self, client, make_tenant_user):
        tenant, headers = await make_tenant_user()
        body = self.body(tenant.id)
        resp = await client.post(
            "/webhooks/voice",
            content=body,
            headers={"X-Voice-Signature": sign_voice_payload(body, VOICE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["minutes_tracked"] == 2

        calls = await client.get("/calls", headers=headers)
        assert calls.status_code == 200
        assert [c["outcome"] for c in calls.json()] == ["booked"]

    async def test_unknown_client(self, client):
        body = self.body("no-such-client")
        resp = await client.post(
            "/webhooks/voice",
            content=body,
            headers={"X-Voice-Signature": sign_voice_payload(body, VOICE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 404

    async def test_bad_payload(self, client):
        body = json.dumps({"event": "call_ended"}).encode()
        resp = await client.post(
            "/webhooks/voice",
            content=body,
            headers={"X-Voice-Signature": sign_voice_payload(body, VOICE_WEBHOOK_SECRET)},
        )
        assert resp.status_code == 400
