"""Subscription plan catalog.

Every plan, price and minute allotment lives here. Stripe price ids come from
settings (``BOOKEDSOLID_STRIPE_PRICE_<PLAN>_<MONTHLY|ANNUAL>``); the rest is
static. Other modules must go through the catalog rather than hard-code
plan numbers.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.exceptions import BillingConfigError

UNLIMITED_MINUTES = -1

INTERVALS = ("month", "year")

# Overage rate per minute once a metered plan exceeds its allotment
OVERAGE_RATE_PER_MINUTE = 0.25


@dataclass(frozen=True)
class PlanTier:
    key: str
    name: str
    minutes_included: int
    monthly_rate: float
    annual_rate: float
    overage_rate: float = 0.0
    monthly_price_id: str = ""
    annual_price_id: str = ""
    description: str = ""
    features: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_unlimited(self) -> bool:
        return self.minutes_included == UNLIMITED_MINUTES


def overage_charge(plan: PlanTier, minutes_used: float) -> float:
    """Charge for minutes beyond the plan allotment, rounded to cents."""
    if plan.is_unlimited:
        return 0.0
    overage_minutes = max(0, minutes_used - plan.minutes_included)
    return round(overage_minutes * plan.overage_rate, 2)


_BASE_PLANS: tuple[PlanTier, ...] = (
    PlanTier(
        key="missed",
        name="Missed Call Recovery",
        description="Perfect for: Testing the service while keeping your receptionist",
        minutes_included=UNLIMITED_MINUTES,
        monthly_rate=149,
        annual_rate=1700,
        features=(
            "Unlimited missed calls handled",
            "Books appointments 24/7",
            "After-hours & weekend coverage",
            "CRM/booking system integration",
            "SMS confirmations & reminders",
            "Basic analytics dashboard",
            "Email support",
        ),
    ),
    PlanTier(
        key="complete",
        name="Complete Receptionist",
        description="Includes: Up to 1,000 minutes per month | Overage: $0.25/minute",
        minutes_included=1000,
        monthly_rate=349,
        annual_rate=4000,
        overage_rate=OVERAGE_RATE_PER_MINUTE,
        features=(
            "All calls handled 24/7/365",
            "Unlimited concurrent calls",
            "CRM/booking system integration",
            "SMS confirmations & reminders",
            "Multi-service booking",
            "Call recordings & transcripts",
            "Advanced analytics dashboard",
            "Phone & email support",
        ),
    ),
    PlanTier(
        key="unlimited",
        name="High-Volume Unlimited",
        description="For businesses with: 50+ calls per day or multi-location needs",
        minutes_included=UNLIMITED_MINUTES,
        monthly_rate=599,
        annual_rate=7000,
        features=(
            "Truly unlimited minutes",
            "No overage charges ever",
            "All Complete plan features",
            "Up to 3 locations included",
            "Custom CRM integrations",
            "Priority phone support",
            "Dedicated account manager",
        ),
    ),
)


class PlanCatalog:
    """Plan lookups keyed by plan name or Stripe price id."""

    def __init__(self, plans: tuple[PlanTier, ...] | list[PlanTier]):
        self._plans = {p.key: p for p in plans}

    @classmethod
    def from_settings(cls, settings: BookedSolidSettings) -> "PlanCatalog":
        plans = [
            replace(
                plan,
                monthly_price_id=getattr(settings, f"stripe_price_{plan.key}_monthly", ""),
                annual_price_id=getattr(settings, f"stripe_price_{plan.key}_annual", ""),
            )
            for plan in _BASE_PLANS
        ]
        return cls(plans)

    @property
    def plans(self) -> list[PlanTier]:
        return list(self._plans.values())

    def keys(self) -> list[str]:
        return list(self._plans)

    def get(self, plan_key: str | None) -> Optional[PlanTier]:
        if plan_key is None:
            return None
        return self._plans.get(plan_key)

    def price_identifier_for(self, plan_key: str, interval: str) -> str:
        plan = self._plans.get(plan_key)
        if plan is None:
            raise BillingConfigError(f"Unknown plan: {plan_key}")
        if interval not in INTERVALS:
            raise BillingConfigError(f"Unknown billing interval: {interval}")
        return plan.monthly_price_id if interval == "month" else plan.annual_price_id

    def plan_for(self, price_id: str | None) -> Optional[tuple[PlanTier, str]]:
        """Resolve a Stripe price id to (plan, interval), or None if unknown."""
        if not price_id:
            return None
        for plan in self._plans.values():
            if plan.monthly_price_id and plan.monthly_price_id == price_id:
                return plan, "month"
            if plan.annual_price_id and plan.annual_price_id == price_id:
                return plan, "year"
        return None

    @staticmethod
    def effective_monthly_rate(plan: PlanTier, interval: str) -> float:
        if interval == "year":
            return round(plan.annual_rate / 12, 2)
        return float(plan.monthly_rate)

    def validate_price_ids(self) -> None:
        """Raise BillingConfigError naming every missing or placeholder price id."""
        missing = []
        for plan in self._plans.values():
            for interval in INTERVALS:
                price_id = self.price_identifier_for(plan.key, interval)
                if not price_id or "REPLACE_WITH" in price_id:
                    missing.append(f"{plan.key}/{interval}")
        if missing:
            raise BillingConfigError(
                "Missing or invalid Stripe price ids for: " + ", ".join(missing)
            )
