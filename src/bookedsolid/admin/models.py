"""SQLAlchemy models for admin invitations and the platform settings singleton."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from bookedsolid.common.models import Base, TimestampMixin, generate_uuid

SETTINGS_ID = "global"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AdminInvitationModel(Base, TimestampMixin):
    __tablename__ = "admin_invitations"
    __table_args__ = (
        # At most one pending invitation per email
        Index(
            "uq_invitation_pending_email",
            "email",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    admin_role: Mapped[str] = mapped_column(String(30), nullable=False)
    permissions: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvitationStatus.PENDING.value, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    invited_by_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)


class AdminSettingsModel(Base, TimestampMixin):
    """Single row keyed by SETTINGS_ID."""

    __tablename__ = "admin_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=SETTINGS_ID)
    platform_name: Mapped[str] = mapped_column(String(255), nullable=False, default="BookedSolid AI")
    support_email: Mapped[str] = mapped_column(
        String(255), nullable=False, default="support@bookedsolid.ai"
    )
    default_timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="America/New_York"
    )
    default_plan: Mapped[str] = mapped_column(String(20), nullable=False, default="missed")
    maintenance_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_signups: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    grace_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
