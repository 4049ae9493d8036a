"""Usage and cost reporting for a tenant over a time window.

``compute_usage_report`` is pure: it takes the tenant, its call records and
the plan catalog and produces the report. Percentages are rounded to one
decimal place and currency to two.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.billing.plans import PlanCatalog, PlanTier, overage_charge
from bookedsolid.billing.schemas import (
    CostAnalysis,
    DailyVolume,
    PeakHour,
    TimeRange,
    UsageReport,
    UsageSummary,
)
from bookedsolid.calls.models import CallRecordModel
from bookedsolid.clients.models import ClientModel
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.exceptions import NotFoundError, ValidationError
from bookedsolid.common.models import as_utc, utcnow

BOOKED_OUTCOME = "booked"


def _tenant_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def format_hour(hour: int) -> str:
    """12-hour clock label, e.g. 14 -> '2:00 PM'."""
    return f"{hour % 12 or 12}:00 {'PM' if hour >= 12 else 'AM'}"


def _billing_terms(client: ClientModel, catalog: PlanCatalog) -> tuple[PlanTier, float]:
    """The plan to bill against and its monthly rate.

    Tenants without a catalog plan are billed on the counters stored on
    their row.
    """
    plan = catalog.get(client.plan)
    if plan is not None:
        return plan, catalog.effective_monthly_rate(plan, client.billing_interval or "month")
    custom = PlanTier(
        key=client.plan or "custom",
        name=client.plan or "custom",
        minutes_included=client.minutes_included or 0,
        monthly_rate=client.monthly_rate or 0.0,
        annual_rate=(client.monthly_rate or 0.0) * 12,
        overage_rate=client.overage_rate or 0.0,
    )
    return custom, float(custom.monthly_rate)


def compute_usage_report(
    client: ClientModel,
    calls: Iterable[CallRecordModel],
    plan_catalog: PlanCatalog,
    start: datetime,
    end: datetime,
    value_per_booking: float = 50.0,
) -> UsageReport:
    calls = list(calls)
    zone = _tenant_zone(client.timezone)

    total_calls = len(calls)
    total_duration = sum(c.duration_seconds or 0 for c in calls)
    total_minutes = total_duration // 60
    avg_call_duration = total_duration // total_calls if total_calls else 0

    outcomes = dict(Counter(c.outcome for c in calls))
    booked = outcomes.get(BOOKED_OUTCOME, 0)
    conversion_rate = booked / total_calls * 100 if total_calls else 0.0
    estimated_revenue = booked * value_per_booking

    local_times = [as_utc(c.started_at).astimezone(zone) for c in calls]
    hourly = Counter(t.hour for t in local_times)
    hourly_distribution = dict(sorted(hourly.items()))
    peak_hour, peak_count = 0, 0
    for hour, count in hourly_distribution.items():
        if count > peak_count:
            peak_hour, peak_count = hour, count

    daily = Counter(t.date().isoformat() for t in local_times)
    daily_volume = [DailyVolume(date=d, count=n) for d, n in sorted(daily.items())]

    plan, monthly_rate = _billing_terms(client, plan_catalog)
    if plan.is_unlimited:
        overage_minutes = 0
    else:
        overage_minutes = max(0, total_minutes - plan.minutes_included)
    overage_cost = overage_charge(plan, total_minutes)
    total_cost = monthly_rate + overage_cost
    cost_per_call = total_cost / total_calls if total_calls else 0.0
    roi = (estimated_revenue - total_cost) / total_cost * 100 if total_cost > 0 else 0.0

    return UsageReport(
        summary=UsageSummary(
            total_calls=total_calls,
            total_minutes=total_minutes,
            avg_call_duration=avg_call_duration,
            conversion_rate=round(conversion_rate, 1),
            estimated_revenue=estimated_revenue,
        ),
        outcomes=outcomes,
        peak_hour=PeakHour(hour=peak_hour, count=peak_count, formatted=format_hour(peak_hour)),
        hourly_distribution=hourly_distribution,
        daily_volume=daily_volume,
        cost_analysis=CostAnalysis(
            plan=client.plan,
            monthly_rate=monthly_rate,
            minutes_included=plan.minutes_included,
            minutes_used=total_minutes,
            overage_minutes=overage_minutes,
            overage_rate=plan.overage_rate,
            overage_cost=round(overage_cost, 2),
            total_cost=round(total_cost, 2),
            cost_per_call=round(cost_per_call, 2),
            roi=round(roi, 1),
        ),
        time_range=TimeRange(start=start, end=end, days=(end - start).days),
    )


class ReconciliationService:
    """Loads tenant data for usage reports. Read only."""

    def __init__(self, settings: BookedSolidSettings, catalog: PlanCatalog | None = None):
        self.settings = settings
        self.catalog = catalog or PlanCatalog.from_settings(settings)

    async def _get_client(self, session: AsyncSession, client_id: str) -> ClientModel:
        client = await session.get(ClientModel, client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    async def _calls_between(
        self, session: AsyncSession, client_id: str, start: datetime, end: datetime,
    ) -> list[CallRecordModel]:
        result = await session.execute(
            select(CallRecordModel)
            .where(
                CallRecordModel.client_id == client_id,
                CallRecordModel.started_at >= start,
                CallRecordModel.started_at <= end,
            )
            .order_by(CallRecordModel.started_at.desc())
        )
        return list(result.scalars().all())

    async def usage_report(
        self,
        session: AsyncSession,
        client_id: str,
        days: int | None = None,
        now: datetime | None = None,
    ) -> UsageReport:
        days = self.settings.default_usage_range_days if days is None else days
        if days < 1:
            raise ValidationError("Range must be at least one day", code="INVALID_RANGE")
        client = await self._get_client(session, client_id)
        end = now or utcnow()
        start = end - timedelta(days=days)
        calls = await self._calls_between(session, client_id, start, end)
        return compute_usage_report(
            client, calls, self.catalog, start, end,
            value_per_booking=self.settings.value_per_booking,
        )
