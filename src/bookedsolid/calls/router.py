"""Voice provider webhook and tenant call history."""

import json
import logging
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from bookedsolid.calls.schemas import CallRecordResponse
from bookedsolid.calls.voice_webhook import parse_voice_event, verify_voice_signature
from bookedsolid.common.config import get_settings
from bookedsolid.common.exceptions import NotFoundError, WebhookPayloadError
from bookedsolid.common.models import utcnow
from bookedsolid.common.security import current_tenant_user

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
router = APIRouter(prefix="/calls", tags=["calls"])

VOICE_SIGNATURE_HEADER = "X-Voice-Signature"


def _get_service():
    from bookedsolid.deps import get_call_service
    return get_call_service()


def _get_db():
    from bookedsolid.deps import get_db
    return get_db()


@webhook_router.post("/voice")
async def voice_webhook(
    request: Request,
    voice_signature: Optional[str] = Header(None, alias=VOICE_SIGNATURE_HEADER),
):
    """Record call lifecycle events and add finished calls to the tenant's minutes."""
    body = await request.body()
    secret = get_settings().voice_webhook_secret

    if not secret:
        logger.error("Voice webhook secret is not configured")
        return JSONResponse(status_code=500, content={"error": "Webhook not configured"})
    if not voice_signature:
        return JSONResponse(status_code=401, content={"error": "Missing signature"})
    if not verify_voice_signature(body, voice_signature, secret):
        logger.warning("Invalid voice webhook signature")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        event = parse_voice_event(json.loads(body))
    except (json.JSONDecodeError, UnicodeDecodeError, WebhookPayloadError):
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            result = await svc.handle_event(session, event)
    except NotFoundError as e:
        return JSONResponse(status_code=404, content={"error": e.message})
    except Exception:
        logger.exception(
            "Voice webhook processing failed",
            extra={"event_type": event.event, "call_id": event.call.call_id},
        )
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return {"success": True, **result}


@router.get("", response_model=list[CallRecordResponse])
async def list_calls(
    days: int = Query(30, alias="range", ge=1, le=366),
    outcome: Optional[Literal["booked", "voicemail", "transferred", "spam", "info", "unknown"]] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user=Depends(current_tenant_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        calls = await svc.list_calls(
            session,
            user.client_id,
            start=utcnow() - timedelta(days=days),
            outcome=outcome,
            limit=limit,
            offset=offset,
        )
        return [CallRecordResponse.model_validate(c) for c in calls]
