"""Thin wrapper over the Stripe SDK calls BookedSolid makes."""

import logging
from typing import Any, Optional

import stripe

from bookedsolid.billing.stripe_webhook import SubscriptionSnapshot
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.exceptions import BillingConfigError, PaymentProviderError

logger = logging.getLogger(__name__)


class StripeClient:
    """Checkout, cancellation, billing portal and subscription lookup."""

    def __init__(self, settings: BookedSolidSettings):
        self.settings = settings

    def _configure(self) -> None:
        if not self.settings.stripe_configured:
            raise BillingConfigError(
                "Billing system is not configured. Please contact support."
            )
        stripe.api_key = self.settings.stripe_secret_key

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        self._configure()
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as e:
            logger.error("Stripe subscription lookup failed for %s: %s", subscription_id, e)
            raise PaymentProviderError("Unable to retrieve subscription") from e
        return SubscriptionSnapshot.from_stripe(subscription)

    async def create_customer(self, email: str, name: str, client_id: str) -> str:
        self._configure()
        try:
            customer = stripe.Customer.create(
                email=email, name=name, metadata={"client_id": client_id},
            )
        except stripe.StripeError as e:
            logger.error("Stripe customer creation failed for %s: %s", client_id, e)
            raise PaymentProviderError("Unable to create customer") from e
        return customer.id

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        self._configure()
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            logger.error("Stripe session creation failed: %s", e)
            raise PaymentProviderError("Stripe session creation failed") from e
        return session.url

    async def cancel_subscription(
        self, subscription_id: str, immediately: bool = False,
    ) -> SubscriptionSnapshot:
        """Cancel now, or flag the subscription to end with the current period."""
        self._configure()
        try:
            if immediately:
                subscription = stripe.Subscription.cancel(subscription_id)
            else:
                subscription = stripe.Subscription.modify(
                    subscription_id, cancel_at_period_end=True,
                )
        except stripe.StripeError as e:
            logger.error("Stripe cancellation failed for %s: %s", subscription_id, e)
            raise PaymentProviderError("Unable to cancel subscription. Please contact support.") from e
        return SubscriptionSnapshot.from_stripe(subscription)

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        self._configure()
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id, return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.error("Stripe billing portal session failed for %s: %s", customer_id, e)
            raise PaymentProviderError("Failed to create billing portal session") from e
        return session.url
