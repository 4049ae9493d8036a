"""Pydantic schemas for admin invitations, settings and admin accounts."""

from datetime import datetime
from typing import Any, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from bookedsolid.clients.schemas import EMAIL_PATTERN


class InvitationCreate(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    admin_role: str
    permissions: Optional[dict[str, Any]] = None


class InvitationResponse(BaseModel):
    id: str
    email: str
    admin_role: str
    permissions: Optional[dict[str, bool]] = None
    status: str
    expires_at: datetime
    invited_by_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationCreateResponse(InvitationResponse):
    invitation_link: str
    email_sent: bool = False


class InvitationValidation(BaseModel):
    valid: bool = True
    email: str
    admin_role: str
    role_label: str
    expires_at: datetime


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., min_length=1)
    name: str
    password: str


class SettingsResponse(BaseModel):
    platform_name: str
    support_email: str
    default_timezone: str
    default_plan: str
    maintenance_mode: bool
    allow_signups: bool
    email_notifications: bool
    grace_period_days: int
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SettingsUpdate(BaseModel):
    platform_name: Optional[str] = Field(None, min_length=1, max_length=255)
    support_email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    default_timezone: Optional[str] = None
    default_plan: Optional[Literal["missed", "complete", "unlimited"]] = None
    maintenance_mode: Optional[bool] = None
    allow_signups: Optional[bool] = None
    email_notifications: Optional[bool] = None
    grace_period_days: Optional[int] = Field(None, ge=0, le=90)

    model_config = {"extra": "forbid"}

    @field_validator("default_timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class AdminUserResponse(BaseModel):
    id: str
    email: str
    name: str
    admin_role: Optional[str] = None
    role_label: str = ""
    permissions: list[str] = []
    is_locked: bool = False
    admin_joined_at: Optional[datetime] = None
    admin_invited_by_id: Optional[str] = None
    can_manage_admins: bool = False
    can_access_sensitive_data: bool = False
    can_perform_bulk_operations: bool = False


class RoleInfo(BaseModel):
    role: str
    label: str
    description: str
    capabilities: list[str]


class RolesResponse(BaseModel):
    roles: list[RoleInfo]
    categories: dict[str, list[str]]
