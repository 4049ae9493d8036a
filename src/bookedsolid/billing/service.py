"""Billing service: apply Stripe events to tenant billing state.

Every transition is a keyed assignment on the tenant row found by
``stripe_customer_id``, so a redelivered event leaves the row exactly as the
first delivery did. ``minutes_used`` is reset only when a subscription is
created or updated.
"""

import enum
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.billing.plans import PlanCatalog
from bookedsolid.billing.stripe_webhook import (
    CHECKOUT_SESSION_COMPLETED,
    INVOICE_PAYMENT_FAILED,
    INVOICE_PAYMENT_SUCCEEDED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
    StripeEvent,
    SubscriptionSnapshot,
)
from bookedsolid.clients.models import ClientModel, ClientStatus, SubscriptionStatus
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.exceptions import (
    BillingConfigError,
    NotFoundError,
    ValidationError,
)
from bookedsolid.common.models import as_utc

logger = logging.getLogger(__name__)

PLACEHOLDER_BUSINESS_NAME = "New Business"


class WebhookOutcome(str, enum.Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    UNRESOLVED_PRICE = "unresolved_price"
    STALE = "stale"
    NO_TENANT = "no_tenant"


def map_subscription_status(provider_status: str | None) -> str:
    """Stripe subscription status to the tenant's subscription_status."""
    if provider_status in (
        SubscriptionStatus.ACTIVE.value,
        SubscriptionStatus.PAST_DUE.value,
        SubscriptionStatus.CANCELED.value,
    ):
        return provider_status
    return SubscriptionStatus.SUSPENDED.value


class BillingService:
    """Stripe webhook state machine plus checkout, cancel and portal helpers."""

    def __init__(
        self,
        settings: BookedSolidSettings,
        catalog: PlanCatalog | None = None,
        stripe_client=None,
    ):
        self.settings = settings
        self.catalog = catalog or PlanCatalog.from_settings(settings)
        self.stripe_client = stripe_client

    async def get_by_customer_id(
        self, session: AsyncSession, customer_id: str | None,
    ) -> Optional[ClientModel]:
        if not customer_id:
            return None
        result = await session.execute(
            select(ClientModel).where(ClientModel.stripe_customer_id == customer_id)
        )
        return result.scalar_one_or_none()

    # ── Webhook state machine ──

    async def handle_event(self, session: AsyncSession, event: StripeEvent) -> WebhookOutcome:
        if event.type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            outcome = await self.apply_subscription(
                session, event.subscription(), event_time=event.created,
            )
        elif event.type == SUBSCRIPTION_DELETED:
            outcome = await self._subscription_deleted(session, event)
        elif event.type == INVOICE_PAYMENT_SUCCEEDED:
            outcome = await self._payment_succeeded(session, event)
        elif event.type == INVOICE_PAYMENT_FAILED:
            outcome = await self._payment_failed(session, event)
        elif event.type == CHECKOUT_SESSION_COMPLETED:
            outcome = await self._checkout_completed(session, event)
        else:
            logger.info("Unhandled Stripe event type: %s", event.type)
            return WebhookOutcome.IGNORED

        logger.info(
            "Stripe event processed",
            extra={"event_id": event.id, "event_type": event.type, "outcome": outcome.value},
        )
        return outcome

    def _is_stale(self, client: ClientModel, event_time: datetime | None) -> bool:
        if not self.settings.reject_stale_events or event_time is None:
            return False
        last = as_utc(client.last_stripe_event_at)
        return last is not None and as_utc(event_time) < last

    async def apply_subscription(
        self,
        session: AsyncSession,
        snapshot: SubscriptionSnapshot,
        event_time: datetime | None = None,
    ) -> WebhookOutcome:
        """Upsert the tenant for ``snapshot.customer`` with the resolved plan."""
        resolved = self.catalog.plan_for(snapshot.price_id)
        if resolved is None:
            logger.warning(
                "Unknown Stripe price id %r on subscription %s (customer %s); event dropped",
                snapshot.price_id, snapshot.id, snapshot.customer,
            )
            return WebhookOutcome.UNRESOLVED_PRICE
        plan, interval = resolved

        client = await self.get_by_customer_id(session, snapshot.customer)
        if client is None:
            client = ClientModel(
                business_name=PLACEHOLDER_BUSINESS_NAME,
                email=snapshot.customer,
                stripe_customer_id=snapshot.customer,
            )
            session.add(client)
            logger.info("Created placeholder client for Stripe customer %s", snapshot.customer)
        elif self._is_stale(client, event_time):
            logger.warning(
                "Skipping stale subscription event for customer %s", snapshot.customer,
            )
            return WebhookOutcome.STALE

        client.plan = plan.key
        client.billing_interval = interval
        client.stripe_subscription_id = snapshot.id
        client.stripe_price_id = snapshot.price_id
        client.subscription_status = map_subscription_status(snapshot.status)
        client.status = (
            ClientStatus.ACTIVE.value
            if snapshot.status == SubscriptionStatus.ACTIVE.value
            else ClientStatus.SUSPENDED.value
        )
        client.current_period_start = snapshot.current_period_start
        client.current_period_end = snapshot.current_period_end
        client.subscription_ends_at = snapshot.current_period_end
        client.minutes_included = plan.minutes_included
        client.minutes_used = 0
        client.overage_rate = plan.overage_rate
        client.monthly_rate = self.catalog.effective_monthly_rate(plan, interval)
        if event_time is not None:
            client.last_stripe_event_at = event_time
        await session.flush()
        return WebhookOutcome.APPLIED

    async def _subscription_deleted(
        self, session: AsyncSession, event: StripeEvent,
    ) -> WebhookOutcome:
        snapshot = event.subscription()
        client = await self.get_by_customer_id(session, snapshot.customer)
        if client is None:
            logger.warning("Subscription deleted for unknown customer %s", snapshot.customer)
            return WebhookOutcome.NO_TENANT
        if self._is_stale(client, event.created):
            logger.warning("Skipping stale deletion for customer %s", snapshot.customer)
            return WebhookOutcome.STALE

        client.subscription_status = SubscriptionStatus.CANCELED.value
        client.status = ClientStatus.SUSPENDED.value
        client.subscription_ends_at = snapshot.current_period_end or event.created
        if event.created is not None:
            client.last_stripe_event_at = event.created
        await session.flush()
        return WebhookOutcome.APPLIED

    async def _payment_succeeded(
        self, session: AsyncSession, event: StripeEvent,
    ) -> WebhookOutcome:
        client = await self.get_by_customer_id(session, event.customer_id)
        if client is None:
            logger.warning("Payment succeeded for unknown customer %s", event.customer_id)
            return WebhookOutcome.NO_TENANT
        client.status = ClientStatus.ACTIVE.value
        client.subscription_status = SubscriptionStatus.ACTIVE.value
        await session.flush()
        return WebhookOutcome.APPLIED

    async def _payment_failed(
        self, session: AsyncSession, event: StripeEvent,
    ) -> WebhookOutcome:
        client = await self.get_by_customer_id(session, event.customer_id)
        if client is None:
            logger.warning("Payment failed for unknown customer %s", event.customer_id)
            return WebhookOutcome.NO_TENANT
        # Operational status is left alone; the grace period policy decides suspension.
        client.subscription_status = SubscriptionStatus.PAST_DUE.value
        await session.flush()
        return WebhookOutcome.APPLIED

    async def _checkout_completed(
        self, session: AsyncSession, event: StripeEvent,
    ) -> WebhookOutcome:
        subscription_id = event.subscription_id
        if not subscription_id:
            logger.info("Checkout session %s has no subscription; ignoring", event.data_object.get("id"))
            return WebhookOutcome.IGNORED
        if self.stripe_client is None:
            raise BillingConfigError("Cannot resolve checkout subscription without Stripe")
        snapshot = await self.stripe_client.retrieve_subscription(subscription_id)
        return await self.apply_subscription(session, snapshot, event_time=event.created)

    # ── Customer-facing Stripe helpers ──

    def _require_stripe(self):
        if self.stripe_client is None or not self.settings.stripe_configured:
            raise BillingConfigError(
                "Billing system is not configured. Please contact support."
            )
        return self.stripe_client

    async def create_checkout(
        self,
        session: AsyncSession,
        client: ClientModel,
        plan_key: str,
        interval: str,
    ) -> str:
        """Start a Stripe Checkout subscription for ``client``; returns the session URL."""
        stripe_client = self._require_stripe()
        if self.catalog.get(plan_key) is None:
            raise ValidationError(f"Unknown plan: {plan_key}", code="INVALID_PLAN")
        if interval not in ("month", "year"):
            raise ValidationError(f"Unknown billing interval: {interval}", code="INVALID_INTERVAL")
        price_id = self.catalog.price_identifier_for(plan_key, interval)
        if not price_id or "REPLACE_WITH" in price_id:
            raise BillingConfigError(
                f"Stripe price id not configured for {plan_key}/{interval}"
            )

        if not client.stripe_customer_id:
            client.stripe_customer_id = await stripe_client.create_customer(
                client.email, client.business_name, client.id,
            )
            await session.flush()

        base = self.settings.public_base_url.rstrip("/")
        return await stripe_client.create_checkout_session(
            customer_id=client.stripe_customer_id,
            price_id=price_id,
            success_url=f"{base}/dashboard/billing?success=true",
            cancel_url=f"{base}/dashboard/billing?canceled=true",
            metadata={"client_id": client.id, "plan": plan_key, "interval": interval},
        )

    async def cancel_subscription(
        self,
        session: AsyncSession,
        client: ClientModel,
        immediately: bool = False,
    ) -> dict:
        stripe_client = self._require_stripe()
        if not client.stripe_subscription_id:
            raise NotFoundError("No active subscription found")

        snapshot = await stripe_client.cancel_subscription(
            client.stripe_subscription_id, immediately=immediately,
        )
        client.subscription_status = (
            SubscriptionStatus.CANCELED.value if immediately else SubscriptionStatus.ACTIVE.value
        )
        client.subscription_ends_at = snapshot.current_period_end
        await session.flush()

        ends_at = snapshot.current_period_end
        return {
            "success": True,
            "message": (
                "Subscription canceled immediately"
                if immediately
                else "Subscription will cancel at the end of the billing period"
            ),
            "ends_at": ends_at.isoformat() if ends_at else None,
            "billing_interval": client.billing_interval or "month",
        }

    async def create_portal(self, client: ClientModel) -> str:
        stripe_client = self._require_stripe()
        if not client.stripe_customer_id:
            raise NotFoundError("No active subscription found")
        base = self.settings.public_base_url.rstrip("/")
        return await stripe_client.create_portal_session(
            client.stripe_customer_id, return_url=f"{base}/dashboard/billing",
        )
