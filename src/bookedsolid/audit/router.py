"""Admin audit trail API router."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from bookedsolid.audit.models import AuditAction
from bookedsolid.audit.schemas import (
    AuditChainVerification,
    AuditEntryResponse,
    AuditStatsResponse,
)
from bookedsolid.common.security import current_actor
from bookedsolid.permissions.capabilities import Capability

router = APIRouter(prefix="/admin/audit", tags=["audit"])


def _get_service():
    from bookedsolid.deps import get_audit_service
    return get_audit_service()


def _get_gateway():
    from bookedsolid.deps import get_admin_gateway
    return get_admin_gateway()


def _get_db():
    from bookedsolid.deps import get_db
    return get_db()


@router.get("", response_model=list[AuditEntryResponse])
async def list_audit_entries(
    actor_id: Optional[str] = Query(None),
    action: Optional[AuditAction] = Query(None),
    target_type: Optional[str] = Query(None),
    target_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor=Depends(current_actor),
):
    _get_gateway().require(actor, Capability.VIEW_AUDIT_TRAIL)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        entries = await svc.query(
            session,
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        return [AuditEntryResponse.model_validate(e) for e in entries]


@router.get("/stats", response_model=AuditStatsResponse)
async def audit_stats(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    actor=Depends(current_actor),
):
    _get_gateway().require(actor, Capability.VIEW_AUDIT_TRAIL)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        stats = await svc.aggregate(session, start=start, end=end)
        return AuditStatsResponse(
            total_count=stats["total_count"],
            counts_by_action=stats["counts_by_action"],
            top_actors=stats["top_actors"],
            recent_high_risk=[
                AuditEntryResponse.model_validate(e) for e in stats["recent_high_risk"]
            ],
        )


@router.get("/verify", response_model=AuditChainVerification)
async def verify_audit_chain(actor=Depends(current_actor)):
    _get_gateway().require(actor, Capability.VIEW_AUDIT_TRAIL)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.verify_chain(session)
        return AuditChainVerification(**result)
