"""Pydantic schemas for admin client endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ClientCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    phone: str = Field(..., min_length=1, max_length=50)
    contact_name: Optional[str] = None
    location: Optional[str] = None
    timezone: str = "America/New_York"
    plan: Optional[str] = None
    billing_interval: Literal["month", "year"] = "month"
    status: Literal["active", "suspended"] = "active"


class ClientUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=50)
    contact_name: Optional[str] = None
    location: Optional[str] = None
    timezone: Optional[str] = None
    plan: Optional[str] = None
    billing_interval: Optional[Literal["month", "year"]] = None
    status: Optional[Literal["active", "suspended"]] = None
    minutes_included: Optional[int] = Field(None, ge=-1)
    overage_rate: Optional[float] = Field(None, ge=0)
    monthly_rate: Optional[float] = Field(None, ge=0)


class ClientResponse(BaseModel):
    id: str
    business_name: str
    email: str
    phone: str
    contact_name: Optional[str] = None
    location: Optional[str] = None
    timezone: str
    status: str
    plan: Optional[str] = None
    billing_interval: str
    stripe_customer_id: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_ends_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    minutes_included: int
    minutes_used: int
    overage_rate: float
    monthly_rate: float
    created_at: datetime

    model_config = {"from_attributes": True}


class ClientListItem(ClientResponse):
    call_count: int = 0


class ClientMetrics(BaseModel):
    total_calls: int
    calls_today: int
    calls_this_month: int
    booked_this_month: int
    conversion_rate: float


class ClientDetailResponse(ClientResponse):
    metrics: ClientMetrics
