"""Pydantic schemas for auth and admin account endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str = ""


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    client_id: Optional[str] = None
    is_locked: bool = False
    force_password_change: bool = False
    is_admin: bool = False
    admin_role: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class AdminResetPasswordRequest(BaseModel):
    new_password: Optional[str] = None
    force_change: bool = True


class AdminResetPasswordResponse(BaseModel):
    success: bool = True
    user_id: str
    temporary_password: Optional[str] = None
    force_password_change: bool


class LockResponse(BaseModel):
    success: bool = True
    user_id: str
    is_locked: bool
