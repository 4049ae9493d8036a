"""SQLAlchemy model for the admin audit trail."""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from bookedsolid.common.models import Base, generate_uuid, utcnow


class AuditAction(str, enum.Enum):
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    USER_PASSWORD_RESET = "USER_PASSWORD_RESET"
    USER_ACCOUNT_LOCKED = "USER_ACCOUNT_LOCKED"
    USER_ACCOUNT_UNLOCKED = "USER_ACCOUNT_UNLOCKED"
    BUSINESS_CREATED = "BUSINESS_CREATED"
    BUSINESS_UPDATED = "BUSINESS_UPDATED"
    BUSINESS_DELETED = "BUSINESS_DELETED"
    BUSINESS_SUSPENDED = "BUSINESS_SUSPENDED"
    BUSINESS_ACTIVATED = "BUSINESS_ACTIVATED"
    ADMIN_INVITED = "ADMIN_INVITED"
    ADMIN_INVITATION_CANCELLED = "ADMIN_INVITATION_CANCELLED"
    ADMIN_REMOVED = "ADMIN_REMOVED"
    SETTINGS_UPDATED = "SETTINGS_UPDATED"
    SYSTEM_CONFIG_CHANGED = "SYSTEM_CONFIG_CHANGED"
    BULK_ACTION_PERFORMED = "BULK_ACTION_PERFORMED"
    DATA_EXPORTED = "DATA_EXPORTED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"


HIGH_RISK_ACTIONS: frozenset[AuditAction] = frozenset({
    AuditAction.USER_DELETED,
    AuditAction.BUSINESS_DELETED,
    AuditAction.ADMIN_REMOVED,
    AuditAction.SYSTEM_CONFIG_CHANGED,
    AuditAction.DATA_EXPORTED,
})

TARGET_TYPES = ("user", "business", "system", "admin")


class AuditLogModel(Base):
    """Write-once row. There is no update or delete path in the service."""

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    seq: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    performed_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    target_type: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    target_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    changes: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    signature: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
