"""Billing endpoints: Stripe webhook, checkout/cancel/portal and usage analytics."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from bookedsolid.billing.schemas import (
    CancelRequest,
    CancelResponse,
    CheckoutRequest,
    PlanResponse,
    SessionUrlResponse,
    UsageReport,
)
from bookedsolid.billing.stripe_webhook import parse_stripe_event, verify_stripe_signature
from bookedsolid.common.config import get_settings
from bookedsolid.common.exceptions import WebhookPayloadError
from bookedsolid.common.security import current_tenant_user

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
router = APIRouter(prefix="/billing", tags=["billing"])
analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])


def _get_service():
    from bookedsolid.deps import get_billing_service
    return get_billing_service()


def _get_reconciliation():
    from bookedsolid.deps import get_reconciliation_service
    return get_reconciliation_service()


def _get_clients():
    from bookedsolid.deps import get_client_service
    return get_client_service()


def _get_db():
    from bookedsolid.deps import get_db
    return get_db()


# ── Stripe webhook ──

@webhook_router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """Apply a Stripe subscription/invoice/checkout event to tenant billing state."""
    body = await request.body()
    settings = get_settings()

    if not stripe_signature:
        logger.warning("Stripe webhook without signature header")
        return JSONResponse(status_code=400, content={"error": "Missing signature"})
    if not verify_stripe_signature(
        body, stripe_signature, settings.stripe_webhook_secret,
        tolerance=settings.stripe_webhook_tolerance,
    ):
        logger.warning("Invalid Stripe webhook signature")
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})

    try:
        event = parse_stripe_event(json.loads(body))
    except (json.JSONDecodeError, UnicodeDecodeError, WebhookPayloadError):
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            await svc.handle_event(session, event)
    except WebhookPayloadError as e:
        logger.warning("Malformed Stripe %s event %s: %s", event.type, event.id, e.message)
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})
    except Exception:
        logger.exception(
            "Stripe webhook processing failed",
            extra={"event_id": event.id, "event_type": event.type},
        )
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return {"received": True}


# ── Plans and subscription management ──

@router.get("/plans", response_model=list[PlanResponse])
async def list_plans():
    svc = _get_service()
    return [
        PlanResponse(
            key=p.key,
            name=p.name,
            description=p.description,
            minutes_included=p.minutes_included,
            monthly_rate=p.monthly_rate,
            annual_rate=p.annual_rate,
            overage_rate=p.overage_rate,
            features=list(p.features),
        )
        for p in svc.catalog.plans
    ]


@router.post("/checkout", response_model=SessionUrlResponse)
async def create_checkout(body: CheckoutRequest, user=Depends(current_tenant_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        client = await _get_clients().get(session, user.client_id)
        url = await svc.create_checkout(session, client, body.plan, body.interval)
    return SessionUrlResponse(url=url)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_subscription(
    body: Optional[CancelRequest] = None, user=Depends(current_tenant_user),
):
    svc = _get_service()
    db = _get_db()
    immediately = body.immediate if body is not None else False
    async with db.get_session() as session:
        client = await _get_clients().get(session, user.client_id)
        result = await svc.cancel_subscription(session, client, immediately=immediately)
    return CancelResponse(**result)


@router.post("/portal", response_model=SessionUrlResponse)
async def create_portal(user=Depends(current_tenant_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        client = await _get_clients().get(session, user.client_id)
    url = await svc.create_portal(client)
    return SessionUrlResponse(url=url)


# ── Usage analytics ──

@analytics_router.get("/usage", response_model=UsageReport)
async def usage_report(
    days: int = Query(30, alias="range", ge=1, le=366),
    user=Depends(current_tenant_user),
):
    svc = _get_reconciliation()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.usage_report(session, user.client_id, days=days)
