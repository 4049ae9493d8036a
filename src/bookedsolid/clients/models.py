"""SQLAlchemy model for clients (tenant businesses)."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from bookedsolid.common.models import Base, TimestampMixin, generate_uuid


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    SUSPENDED = "suspended"


class ClientStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ClientModel(Base, TimestampMixin):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="America/New_York")
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClientStatus.ACTIVE.value, index=True
    )

    # Subscription state, written by the Stripe webhook handler
    plan: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    billing_interval: Mapped[str] = mapped_column(String(10), nullable=False, default="month")
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subscription_status: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    subscription_ends_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_stripe_event_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Usage counters for the current billing period
    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    minutes_included: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    minutes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overage_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    monthly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
