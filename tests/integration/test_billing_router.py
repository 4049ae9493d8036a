"""Integration tests for plans, subscription management and tenant analytics."""

from bookedsolid.calls.models import CallRecordModel
from bookedsolid.common.models import utcnow


async def add_call(client_id, seconds, outcome="info"):
    from bookedsolid.deps import get_db
    async with get_db().get_session() as session:
        session.add(CallRecordModel(
            client_id=client_id, started_at=utcnow(), duration_seconds=seconds, outcome=outcome,
        ))


class TestPlans:
    async def test_public_plan_list(self, client):
        resp = await client.get("/billing/plans")
        assert resp.status_code == 200
        plans = {p["key"]: p for p in resp.json()}
        assert list(plans) == ["missed", "complete", "unlimited"]
        assert plans["complete"]["overage_rate"] == 0.25
        assert plans["unlimited"]["minutes_included"] == -1


class TestSubscriptionManagement:
    async def test_checkout_requires_tenant_session(self, client):
        resp = await client.post("/billing/checkout", json={"plan": "complete"})
        assert resp.status_code == 401

    async def test_admin_without_tenant_rejected(self, client, make_admin):
        _, headers = await make_admin()
        resp = await client.post("/billing/checkout", json={"plan": "complete"}, headers=headers)
        assert resp.status_code == 401

    async def test_checkout_without_stripe(self, client, make_tenant_user):
        _, headers = await make_tenant_user()
        resp = await client.post(
            "/billing/checkout", json={"plan": "complete", "interval": "year"}, headers=headers,
        )
        assert resp.status_code == 503
        assert resp.json()["code"] == "BILLING_NOT_CONFIGURED"

    async def test_checkout_bad_interval(self, client, make_tenant_user):
        _, headers = await make_tenant_user()
        resp = await client.post(
            "/billing/checkout", json={"plan": "complete", "interval": "week"}, headers=headers,
        )
        assert resp.status_code == 422

    async def test_cancel_without_stripe(self, client, make_tenant_user):
        _, headers = await make_tenant_user()
        resp = await client.post("/billing/cancel", headers=headers)
        assert resp.status_code == 503

    async def test_portal_without_stripe(self, client, make_tenant_user):
        _, headers = await make_tenant_user()
        resp = await client.post("/billing/portal", headers=headers)
        assert resp.status_code == 503


class TestAnalytics:
    async def test_usage_for_own_tenant(self, client, make_tenant_user):
        tenant, headers = await make_tenant_user()
        await add_call(tenant.id, 120, outcome="booked")
        await add_call(tenant.id, 60)

        resp = await client.get("/analytics/usage", params={"range": 30}, headers=headers)
        assert resp.status_code == 200
        report = resp.json()
        assert report["summary"]["total_calls"] == 2
        assert report["summary"]["total_minutes"] == 3
        assert report["summary"]["conversion_rate"] == 50.0
        assert report["outcomes"] == {"booked": 1, "info": 1}
        assert report["cost_analysis"]["monthly_rate"] == 349.0
        assert report["cost_analysis"]["overage_cost"] == 0.0

    async def test_range_must_be_positive(self, client, make_tenant_user):
        _, headers = await make_tenant_user()
        resp = await client.get("/analytics/usage", params={"range": 0}, headers=headers)
        assert resp.status_code == 422

    async def test_requires_session(self, client):
        assert (await client.get("/analytics/usage")).status_code == 401


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
