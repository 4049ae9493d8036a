"""Stripe webhook signature verification and event parsing."""

import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

from bookedsolid.common.exceptions import WebhookPayloadError

logger = logging.getLogger(__name__)

SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


def verify_stripe_signature(
    payload: bytes,
    signature_header: str,
    webhook_secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> bool:
    """Verify Stripe webhook signature (v1 scheme).

    Stripe sends: t=<timestamp>,v1=<signature>[,v1=<signature>...]
    Any matching v1 signature is accepted. Timestamps further than
    ``tolerance`` seconds from ``now`` are rejected; ``tolerance=0``
    disables the age check.
    """
    if not signature_header or not webhook_secret:
        return False

    timestamp = ""
    signatures = []
    for item in signature_header.split(","):
        key, _, value = item.partition("=")
        key = key.strip()
        if key == "t":
            timestamp = value.strip()
        elif key == "v1":
            signatures.append(value.strip())

    if not timestamp or not signatures:
        return False

    try:
        ts = int(timestamp)
    except ValueError:
        return False

    if tolerance > 0:
        current = time.time() if now is None else now
        if abs(current - ts) > tolerance:
            logger.warning("Stripe signature timestamp outside tolerance: %s", timestamp)
            return False

    signed_payload = f"{timestamp}.".encode() + payload
    computed = hmac.new(
        webhook_secret.encode(),
        signed_payload,
        hashlib.sha256,
    ).hexdigest()

    return any(hmac.compare_digest(computed, sig) for sig in signatures)


def sign_stripe_payload(payload: bytes, webhook_secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header value for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        webhook_secret.encode(),
        f"{ts}.".encode() + payload,
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={signature}"


def _from_epoch(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class SubscriptionSnapshot(BaseModel):
    """The subscription fields the billing state machine reads."""

    id: str
    customer: str
    status: str
    price_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    @classmethod
    def from_stripe(cls, obj: Any) -> "SubscriptionSnapshot":
        """Build from a subscription dict or a ``stripe.Subscription``."""
        if obj is None:
            raise WebhookPayloadError("Missing subscription object")
        if hasattr(obj, "to_dict"):
            obj = obj.to_dict()
        if not isinstance(obj, dict):
            raise WebhookPayloadError("Subscription object must be a JSON object")

        customer = obj.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")

        price_id = None
        items = obj.get("items") or {}
        if not isinstance(items, dict):
            raise WebhookPayloadError("Subscription items must be a JSON object")
        items = items.get("data") or []
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise WebhookPayloadError("Subscription items data must be a list of objects")
        if items:
            price = items[0].get("price") or {}
            if isinstance(price, dict):
                price_id = price.get("id")
            elif isinstance(price, str):
                price_id = price
            else:
                raise WebhookPayloadError("Subscription item price must be an object or id")

        # Newer API versions moved period bounds onto the subscription item
        period_source = obj
        if obj.get("current_period_end") is None and items:
            period_source = items[0]

        try:
            return cls(
                id=obj.get("id"),
                customer=customer,
                status=obj.get("status"),
                price_id=price_id,
                current_period_start=_from_epoch(period_source.get("current_period_start")),
                current_period_end=_from_epoch(period_source.get("current_period_end")),
            )
        except PydanticValidationError as exc:
            raise WebhookPayloadError(f"Malformed subscription object: {exc.error_count()} errors") from exc


class StripeEvent(BaseModel):
    id: str
    type: str
    created: Optional[datetime] = None
    data_object: dict[str, Any]

    @property
    def customer_id(self) -> Optional[str]:
        customer = self.data_object.get("customer")
        if isinstance(customer, dict):
            return customer.get("id")
        return customer

    @property
    def subscription_id(self) -> Optional[str]:
        subscription = self.data_object.get("subscription")
        if isinstance(subscription, dict):
            return subscription.get("id")
        return subscription

    def subscription(self) -> SubscriptionSnapshot:
        return SubscriptionSnapshot.from_stripe(self.data_object)


def parse_stripe_event(data: Any) -> StripeEvent:
    """Parse a decoded Stripe event body.

    Raises WebhookPayloadError when the envelope is not an event.
    """
    if not isinstance(data, dict):
        raise WebhookPayloadError("Event body must be a JSON object")

    envelope = data.get("data")
    obj = envelope.get("object") if isinstance(envelope, dict) else None
    if not isinstance(obj, dict):
        raise WebhookPayloadError("Event is missing data.object")

    try:
        return StripeEvent(
            id=data.get("id"),
            type=data.get("type"),
            created=_from_epoch(data.get("created")),
            data_object=obj,
        )
    except PydanticValidationError as exc:
        raise WebhookPayloadError(f"Malformed event: {exc.error_count()} errors") from exc
