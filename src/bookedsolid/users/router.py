"""Auth endpoints: session login and the password reset flow."""

import logging

from fastapi import APIRouter, Request

from bookedsolid.audit.models import AuditAction
from bookedsolid.common.exceptions import AuthenticationError
from bookedsolid.common.security import create_session_token, source_address
from bookedsolid.users.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
    UserResponse,
)
from bookedsolid.users.service import FORGOT_PASSWORD_MESSAGE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _get_service():
    from bookedsolid.deps import get_user_service
    return get_user_service()


def _get_audit():
    from bookedsolid.deps import get_audit_service
    return get_audit_service()


def _get_db():
    from bookedsolid.deps import get_db
    return get_db()


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user, ok = await svc.authenticate(session, body.email, body.password)

    if user is not None and user.is_admin:
        await _get_audit().record(
            AuditAction.LOGIN_SUCCESS if ok else AuditAction.LOGIN_FAILED,
            user.id,
            target_type="user",
            target_id=user.id,
            source_address=source_address(request),
        )
    if not ok:
        raise AuthenticationError("Invalid email or password")
    return LoginResponse(
        token=create_session_token(user.id),
        user=UserResponse.model_validate(user),
    )


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(body: ForgotPasswordRequest):
    """Same response whether or not the account exists."""
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.request_password_reset(session, body.email)
    return MessageResponse(success=True, message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(body: ResetPasswordRequest):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.reset_password(session, body.token, body.password)
    return MessageResponse(
        success=True,
        message="Password has been reset successfully. You can now log in with your new password.",
    )
