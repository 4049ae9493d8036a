"""Pydantic schemas for billing and usage endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class UsageSummary(BaseModel):
    total_calls: int
    total_minutes: int
    avg_call_duration: int
    conversion_rate: float
    estimated_revenue: float


class PeakHour(BaseModel):
    hour: int
    count: int
    formatted: str


class DailyVolume(BaseModel):
    date: str
    count: int


class CostAnalysis(BaseModel):
    plan: Optional[str] = None
    monthly_rate: float
    minutes_included: int
    minutes_used: int
    overage_minutes: int
    overage_rate: float
    overage_cost: float
    total_cost: float
    cost_per_call: float
    roi: float


class TimeRange(BaseModel):
    start: datetime
    end: datetime
    days: int


class UsageReport(BaseModel):
    summary: UsageSummary
    outcomes: dict[str, int]
    peak_hour: PeakHour
    hourly_distribution: dict[int, int]
    daily_volume: list[DailyVolume]
    cost_analysis: CostAnalysis
    time_range: TimeRange


class CheckoutRequest(BaseModel):
    plan: str
    interval: Literal["month", "year"] = "month"


class SessionUrlResponse(BaseModel):
    url: str


class CancelRequest(BaseModel):
    immediate: bool = False


class CancelResponse(BaseModel):
    success: bool
    message: str
    ends_at: Optional[str] = None
    billing_interval: str


class PlanResponse(BaseModel):
    key: str
    name: str
    description: str
    minutes_included: int
    monthly_rate: float
    annual_rate: float
    overage_rate: float
    features: list[str]
