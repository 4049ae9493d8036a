"""Tests for usage reports."""

from datetime import datetime, timedelta, timezone

import pytest

from bookedsolid.billing.plans import PlanCatalog
from bookedsolid.billing.reconciliation import (
    ReconciliationService,
    compute_usage_report,
    format_hour,
)
from bookedsolid.calls.models import CallRecordModel
from bookedsolid.clients.models import ClientModel
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.database import DatabaseManager
from bookedsolid.common.exceptions import NotFoundError, ValidationError

NOW = datetime(2025, 3, 15, 18, 0, tzinfo=timezone.utc)


def make_settings(**overrides) -> BookedSolidSettings:
    defaults = {"db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return BookedSolidSettings(**defaults)


def make_client(plan="complete", timezone_name="UTC", **fields):
    return ClientModel(
        id="client-1",
        business_name="Bright Dental",
        email="owner@dental.example",
        phone="+15550100",
        plan=plan,
        billing_interval="month",
        timezone=timezone_name,
        **fields,
    )


def make_call(started_at, duration_seconds, outcome="info"):
    return CallRecordModel(
        client_id="client-1",
        started_at=started_at,
        duration_seconds=duration_seconds,
        outcome=outcome,
    )


class TestComputeUsageReport:
    def report(self, client, calls):
        catalog = PlanCatalog.from_settings(make_settings())
        return compute_usage_report(client, calls, catalog, NOW - timedelta(days=30), NOW)

    def test_no_calls(self):
        report = self.report(make_client(), [])
        assert report.summary.total_calls == 0
        assert report.summary.avg_call_duration == 0
        assert report.summary.conversion_rate == 0.0
        assert report.cost_analysis.cost_per_call == 0.0
        assert report.cost_analysis.total_cost == 349.0
        assert report.peak_hour.formatted == "12:00 AM"
        assert report.time_range.days == 30

    def test_summary_and_outcomes(self):
        calls = [
            make_call(NOW - timedelta(hours=1), 90, "booked"),
            make_call(NOW - timedelta(hours=2), 150, "info"),
            make_call(NOW - timedelta(hours=3), 59, "booked"),
        ]
        report = self.report(make_client(), calls)
        assert report.summary.total_calls == 3
        # 299 seconds floors to 4 minutes
        assert report.summary.total_minutes == 4
        assert report.summary.avg_call_duration == 99
        assert report.summary.conversion_rate == 66.7
        assert report.summary.estimated_revenue == 100.0
        assert report.outcomes == {"booked": 2, "info": 1}

    def test_overage_cost(self):
        # 1072 minutes on the complete plan: 72 over at 0.25
        calls = [make_call(NOW - timedelta(days=1), 1072 * 60, "booked")]
        report = self.report(make_client(), calls)
        cost = report.cost_analysis
        assert cost.overage_minutes == 72
        assert cost.overage_cost == 18.0
        assert cost.total_cost == 367.0
        assert cost.cost_per_call == 367.0
        assert cost.roi == round((50 - 367) / 367 * 100, 1)

    def test_unlimited_plan_has_no_overage(self):
        calls = [make_call(NOW - timedelta(days=1), 5000 * 60)]
        report = self.report(make_client(plan="unlimited"), calls)
        assert report.cost_analysis.overage_minutes == 0
        assert report.cost_analysis.overage_cost == 0
        assert report.cost_analysis.minutes_included == -1

    def test_custom_plan_uses_row_terms(self):
        client = make_client(plan=None, minutes_included=100, overage_rate=0.5, monthly_rate=99.0)
        calls = [make_call(NOW - timedelta(days=1), 110 * 60)]
        cost = self.report(client, calls).cost_analysis
        assert cost.monthly_rate == 99.0
        assert cost.overage_cost == 5.0

    def test_zero_cost_roi_is_zero(self):
        client = make_client(plan=None, minutes_included=-1, monthly_rate=0.0)
        report = self.report(client, [make_call(NOW, 60, "booked")])
        assert report.cost_analysis.roi == 0

    def test_hours_bucketed_in_tenant_timezone(self):
        # 18:00 UTC is 14:00 in New York during daylight saving time
        calls = [
            make_call(NOW, 60),
            make_call(NOW + timedelta(minutes=5), 60),
            make_call(NOW - timedelta(hours=3), 60),
        ]
        report = self.report(make_client(timezone_name="America/New_York"), calls)
        assert report.peak_hour.hour == 14
        assert report.peak_hour.count == 2
        assert report.peak_hour.formatted == "2:00 PM"
        assert report.hourly_distribution == {11: 1, 14: 2}

    def test_daily_volume_sorted(self):
        calls = [
            make_call(NOW, 60),
            make_call(NOW - timedelta(days=2), 60),
            make_call(NOW - timedelta(days=2, hours=1), 60),
        ]
        report = self.report(make_client(), calls)
        assert [(d.date, d.count) for d in report.daily_volume] == [
            ("2025-03-13", 2), ("2025-03-15", 1),
        ]

    def test_unknown_timezone_falls_back_to_utc(self):
        report = self.report(make_client(timezone_name="Mars/Olympus"), [make_call(NOW, 60)])
        assert report.peak_hour.hour == 18


class TestFormatHour:
    @pytest.mark.parametrize("hour,label", [
        (0, "12:00 AM"), (9, "9:00 AM"), (12, "12:00 PM"), (23, "11:00 PM"),
    ])
    def test_labels(self, hour, label):
        assert format_hour(hour) == label


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


class TestReconciliationService:
    async def seed(self, db, period_start):
        async with db.get_session() as session:
            client = make_client(current_period_start=period_start, minutes_used=999)
            session.add(client)
            await session.flush()
            session.add_all([
                make_call(NOW - timedelta(days=1), 61, "booked"),
                make_call(NOW - timedelta(days=2), 120),
                make_call(NOW - timedelta(days=40), 600),
            ])

    async def test_usage_report_window(self, db):
        await self.seed(db, NOW - timedelta(days=10))
        svc = ReconciliationService(make_settings())
        async with db.get_session() as session:
            report = await svc.usage_report(session, "client-1", days=30, now=NOW)
        assert report.summary.total_calls == 2

    async def test_usage_report_rejects_empty_range(self, db):
        svc = ReconciliationService(make_settings())
        async with db.get_session() as session:
            with pytest.raises(ValidationError):
                await svc.usage_report(session, "client-1", days=0, now=NOW)

    async def test_usage_report_unknown_client(self, db):
        svc = ReconciliationService(make_settings())
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await svc.usage_report(session, "nope", now=NOW)

    async def test_usage_report_leaves_minutes_used_untouched(self, db):
        await self.seed(db, NOW - timedelta(days=10))
        svc = ReconciliationService(make_settings())
        async with db.get_session() as session:
            await svc.usage_report(session, "client-1", days=30, now=NOW)
        async with db.get_session() as session:
            client = await session.get(ClientModel, "client-1")
            assert client.minutes_used == 999
