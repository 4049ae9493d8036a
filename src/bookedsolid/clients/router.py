"""Admin tenant management API router."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from bookedsolid.audit.models import AuditAction
from bookedsolid.billing.schemas import UsageReport
from bookedsolid.clients.models import ClientStatus
from bookedsolid.clients.schemas import (
    ClientCreate,
    ClientDetailResponse,
    ClientListItem,
    ClientMetrics,
    ClientResponse,
    ClientUpdate,
)
from bookedsolid.clients.service import client_snapshot
from bookedsolid.common.schemas import SuccessResponse
from bookedsolid.common.security import current_actor, source_address
from bookedsolid.permissions.capabilities import Capability

router = APIRouter(prefix="/admin/clients", tags=["clients"])


def _get_service():
    from bookedsolid.deps import get_client_service
    return get_client_service()


def _get_reconciliation():
    from bookedsolid.deps import get_reconciliation_service
    return get_reconciliation_service()


def _get_gateway():
    from bookedsolid.deps import get_admin_gateway
    return get_admin_gateway()


def _get_db():
    from bookedsolid.deps import get_db
    return get_db()


@router.get("", response_model=list[ClientListItem])
async def list_clients(
    search: Optional[str] = Query(None),
    plan: Optional[str] = Query(None),
    status: Optional[Literal["active", "suspended"]] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor=Depends(current_actor),
):
    _get_gateway().require(actor, Capability.VIEW_BUSINESSES)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        rows = await svc.list_clients(
            session, search=search, plan=plan, status=status, limit=limit, offset=offset,
        )
        return [
            ClientListItem.model_validate(client).model_copy(update={"call_count": count})
            for client, count in rows
        ]


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(body: ClientCreate, request: Request, actor=Depends(current_actor)):
    svc = _get_service()
    client = await _get_gateway().perform(
        actor,
        Capability.CREATE_BUSINESSES,
        AuditAction.BUSINESS_CREATED,
        lambda session: svc.create(session, body),
        target_type="business",
        target_id=lambda c: c.id,
        changes=lambda c: {"after": client_snapshot(c)},
        source_address=source_address(request),
    )
    return ClientResponse.model_validate(client)


@router.get("/{client_id}", response_model=ClientDetailResponse)
async def get_client(client_id: str, actor=Depends(current_actor)):
    _get_gateway().require(actor, Capability.VIEW_BUSINESSES)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        client = await svc.get(session, client_id)
        metrics = await svc.metrics(session, client_id)
        return ClientDetailResponse(
            **ClientResponse.model_validate(client).model_dump(),
            metrics=ClientMetrics(**metrics),
        )


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: str, body: ClientUpdate, request: Request, actor=Depends(current_actor),
):
    """Suspending or activating needs suspend_businesses; other fields need edit_businesses."""
    gateway = _get_gateway()
    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in fields:
        if set(fields) - {"status"}:
            gateway.require(actor, Capability.EDIT_BUSINESSES)
        capability = Capability.SUSPEND_BUSINESSES
        action = (
            AuditAction.BUSINESS_SUSPENDED
            if fields["status"] == ClientStatus.SUSPENDED.value
            else AuditAction.BUSINESS_ACTIVATED
        )
    else:
        capability = Capability.EDIT_BUSINESSES
        action = AuditAction.BUSINESS_UPDATED

    svc = _get_service()
    before, client = await gateway.perform(
        actor,
        capability,
        action,
        lambda session: svc.update(session, client_id, body),
        target_type="business",
        target_id=client_id,
        changes=lambda result: {
            "before": {k: result[0][k] for k in fields},
            "after": {k: getattr(result[1], k) for k in fields},
        },
        source_address=source_address(request),
    )
    return ClientResponse.model_validate(client)


@router.delete("/{client_id}", response_model=SuccessResponse)
async def delete_client(client_id: str, request: Request, actor=Depends(current_actor)):
    svc = _get_service()
    removed = await _get_gateway().perform(
        actor,
        Capability.DELETE_BUSINESSES,
        AuditAction.BUSINESS_DELETED,
        lambda session: svc.delete(session, client_id),
        target_type="business",
        target_id=client_id,
        changes=lambda snapshot: {"before": snapshot},
        source_address=source_address(request),
    )
    return SuccessResponse(message=f"Client {removed['business_name']} deleted")


@router.get("/{client_id}/usage", response_model=UsageReport)
async def client_usage(
    client_id: str,
    days: int = Query(30, alias="range", ge=1, le=366),
    actor=Depends(current_actor),
):
    _get_gateway().require(actor, Capability.VIEW_ANALYTICS)
    svc = _get_reconciliation()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.usage_report(session, client_id, days=days)

