"""Admin API router: invitations, platform settings and admin accounts."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from bookedsolid.admin.schemas import (
    AcceptInvitationRequest,
    AdminUserResponse,
    InvitationCreate,
    InvitationCreateResponse,
    InvitationResponse,
    InvitationValidation,
    RoleInfo,
    RolesResponse,
    SettingsResponse,
    SettingsUpdate,
)
from bookedsolid.admin.settings_service import settings_snapshot
from bookedsolid.audit.models import AuditAction
from bookedsolid.common.exceptions import PermissionDeniedError, ValidationError
from bookedsolid.common.schemas import SuccessResponse
from bookedsolid.common.security import current_actor, source_address
from bookedsolid.permissions.capabilities import (
    AdminRole,
    Capability,
    can_access_sensitive_data,
    can_manage_admins,
    can_perform_bulk_operations,
    effective_permissions,
    has_permission,
    is_admin,
    permission_categories,
    role_capabilities,
    role_description,
    role_label,
)
from bookedsolid.users.schemas import (
    AdminResetPasswordRequest,
    AdminResetPasswordResponse,
    LockResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_invitations():
    from bookedsolid.deps import get_invitation_service
    return get_invitation_service()


def _get_settings_service():
    from bookedsolid.deps import get_settings_service
    return get_settings_service()


def _get_users():
    from bookedsolid.deps import get_user_service
    return get_user_service()


def _get_audit():
    from bookedsolid.deps import get_audit_service
    return get_audit_service()


def _get_gateway():
    from bookedsolid.deps import get_admin_gateway
    return get_admin_gateway()


def _get_db():
    from bookedsolid.deps import get_db
    return get_db()


def _admin_response(user) -> AdminUserResponse:
    return AdminUserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        admin_role=user.admin_role,
        role_label=role_label(user.admin_role) if user.admin_role else "",
        permissions=sorted(c.value for c in effective_permissions(user)),
        is_locked=user.is_locked,
        admin_joined_at=user.admin_joined_at,
        admin_invited_by_id=user.admin_invited_by_id,
        can_manage_admins=can_manage_admins(user),
        can_access_sensitive_data=can_access_sensitive_data(user),
        can_perform_bulk_operations=can_perform_bulk_operations(user),
    )


# ── Current admin and role catalog ──

@router.get("/me", response_model=AdminUserResponse)
async def whoami(actor=Depends(current_actor)):
    if not is_admin(actor):
        raise PermissionDeniedError()
    return _admin_response(actor)


@router.get("/roles", response_model=RolesResponse)
async def list_roles(actor=Depends(current_actor)):
    _get_gateway().require(actor, Capability.VIEW_ADMINS)
    return RolesResponse(
        roles=[
            RoleInfo(
                role=role.value,
                label=role_label(role),
                description=role_description(role),
                capabilities=sorted(c.value for c in role_capabilities(role)),
            )
            for role in AdminRole
        ],
        categories=permission_categories(),
    )


# ── Invitations ──

@router.post("/invitations", response_model=InvitationCreateResponse, status_code=201)
async def create_invitation(
    body: InvitationCreate, request: Request, actor=Depends(current_actor),
):
    svc = _get_invitations()
    invitation = await _get_gateway().perform(
        actor,
        Capability.INVITE_ADMINS,
        AuditAction.ADMIN_INVITED,
        lambda session: svc.create(
            session, actor, body.email, body.admin_role, permissions=body.permissions,
        ),
        target_type="admin",
        target_id=lambda inv: inv.id,
        metadata=lambda inv: {
            "email": inv.email,
            "admin_role": inv.admin_role,
            "permissions": inv.permissions,
        },
        source_address=source_address(request),
    )
    email_sent = await svc.send_invitation_email(invitation, actor)
    return InvitationCreateResponse(
        **InvitationResponse.model_validate(invitation).model_dump(),
        invitation_link=svc.invitation_link(invitation.token),
        email_sent=email_sent,
    )


@router.get("/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    status: Optional[Literal["pending", "accepted", "expired", "cancelled"]] = Query(None),
    actor=Depends(current_actor),
):
    _get_gateway().require(actor, Capability.VIEW_ADMINS)
    svc = _get_invitations()
    db = _get_db()
    async with db.get_session() as session:
        invitations = await svc.list_invitations(session, status=status)
        return [InvitationResponse.model_validate(i) for i in invitations]


@router.get("/invitations/accept", response_model=InvitationValidation)
async def validate_invitation(token: str = Query(..., min_length=1)):
    svc = _get_invitations()
    db = _get_db()
    async with db.get_session() as session:
        invitation = await svc.validate(session, token)
        return InvitationValidation(
            email=invitation.email,
            admin_role=invitation.admin_role,
            role_label=role_label(invitation.admin_role),
            expires_at=invitation.expires_at,
        )


@router.post("/invitations/accept", response_model=AdminUserResponse, status_code=201)
async def accept_invitation(body: AcceptInvitationRequest, request: Request):
    svc = _get_invitations()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.accept(session, body.token, body.name, body.password)

    await _get_audit().record(
        AuditAction.USER_CREATED,
        user.id,
        target_type="admin",
        target_id=user.id,
        metadata={
            "via": "invitation",
            "admin_role": user.admin_role,
            "invited_by": user.admin_invited_by_id,
        },
        source_address=source_address(request),
    )
    return _admin_response(user)


@router.delete("/invitations/{invitation_id}", response_model=SuccessResponse)
async def cancel_invitation(
    invitation_id: str, request: Request, actor=Depends(current_actor),
):
    """The inviter (invite_admins) or anyone with edit_admin_roles may cancel."""
    capability = (
        Capability.EDIT_ADMIN_ROLES
        if has_permission(actor, Capability.EDIT_ADMIN_ROLES)
        else Capability.INVITE_ADMINS
    )
    svc = _get_invitations()
    await _get_gateway().perform(
        actor,
        capability,
        AuditAction.ADMIN_INVITATION_CANCELLED,
        lambda session: svc.cancel(session, actor, invitation_id),
        target_type="admin",
        target_id=invitation_id,
        metadata=lambda inv: {"email": inv.email, "admin_role": inv.admin_role},
        source_address=source_address(request),
    )
    return SuccessResponse(message="Invitation cancelled")


# ── Platform settings ──

@router.get("/settings", response_model=SettingsResponse)
async def get_platform_settings(actor=Depends(current_actor)):
    _get_gateway().require(actor, Capability.VIEW_SYSTEM_SETTINGS)
    svc = _get_settings_service()
    db = _get_db()
    async with db.get_session() as session:
        row = await svc.get_or_create(session)
        return SettingsResponse.model_validate(row)


@router.put("/settings", response_model=SettingsResponse)
async def update_platform_settings(
    body: SettingsUpdate, request: Request, actor=Depends(current_actor),
):
    svc = _get_settings_service()
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    _, row = await _get_gateway().perform(
        actor,
        Capability.EDIT_SYSTEM_SETTINGS,
        AuditAction.SETTINGS_UPDATED,
        lambda session: svc.update(session, changes),
        target_type="system",
        target_id="settings",
        changes=lambda result: {"before": result[0], "after": settings_snapshot(result[1])},
        source_address=source_address(request),
    )
    return SettingsResponse.model_validate(row)


# ── Admin accounts ──

@router.get("/admins", response_model=list[AdminUserResponse])
async def list_admins(actor=Depends(current_actor)):
    _get_gateway().require(actor, Capability.VIEW_ADMINS)
    users = _get_users()
    db = _get_db()
    async with db.get_session() as session:
        admins = await users.list_admins(session)
        return [_admin_response(u) for u in admins]


@router.delete("/admins/{user_id}", response_model=SuccessResponse)
async def remove_admin(user_id: str, request: Request, actor=Depends(current_actor)):
    users = _get_users()
    await _get_gateway().perform(
        actor,
        Capability.REMOVE_ADMINS,
        AuditAction.ADMIN_REMOVED,
        lambda session: users.remove_admin(session, actor.id, user_id),
        target_type="admin",
        target_id=user_id,
        changes=lambda before: {"before": before, "after": {"is_admin": False}},
        source_address=source_address(request),
    )
    return SuccessResponse(message="Admin access removed")


@router.post("/users/{user_id}/reset-password", response_model=AdminResetPasswordResponse)
async def admin_reset_password(
    user_id: str,
    request: Request,
    body: Optional[AdminResetPasswordRequest] = None,
    actor=Depends(current_actor),
):
    body = body or AdminResetPasswordRequest()
    users = _get_users()
    user, temporary = await _get_gateway().perform(
        actor,
        Capability.RESET_PASSWORDS,
        AuditAction.USER_PASSWORD_RESET,
        lambda session: users.admin_reset_password(
            session, user_id, new_password=body.new_password, force_change=body.force_change,
        ),
        target_type="user",
        target_id=user_id,
        metadata=lambda result: {
            "generated": result[1] is not None,
            "force_password_change": result[0].force_password_change,
        },
        source_address=source_address(request),
    )
    return AdminResetPasswordResponse(
        user_id=user.id,
        temporary_password=temporary,
        force_password_change=user.force_password_change,
    )


async def _set_locked(user_id: str, locked: bool, request: Request, actor) -> LockResponse:
    gateway = _get_gateway()
    gateway.require(actor, Capability.LOCK_UNLOCK_ACCOUNTS)
    if locked and user_id == actor.id:
        raise ValidationError("You cannot lock your own account", code="SELF_LOCK")
    users = _get_users()
    user = await gateway.perform(
        actor,
        Capability.LOCK_UNLOCK_ACCOUNTS,
        AuditAction.USER_ACCOUNT_LOCKED if locked else AuditAction.USER_ACCOUNT_UNLOCKED,
        lambda session: users.set_locked(session, user_id, locked),
        target_type="user",
        target_id=user_id,
        changes={"before": {"is_locked": not locked}, "after": {"is_locked": locked}},
        source_address=source_address(request),
    )
    return LockResponse(user_id=user.id, is_locked=user.is_locked)


@router.post("/users/{user_id}/lock", response_model=LockResponse)
async def lock_user(user_id: str, request: Request, actor=Depends(current_actor)):
    return await _set_locked(user_id, True, request, actor)


@router.post("/users/{user_id}/unlock", response_model=LockResponse)
async def unlock_user(user_id: str, request: Request, actor=Depends(current_actor)):
    return await _set_locked(user_id, False, request, actor)
