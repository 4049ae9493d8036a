"""SQLAlchemy model for voice call records."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bookedsolid.common.models import Base, TimestampMixin, generate_uuid


class CallRecordModel(Base, TimestampMixin):
    __tablename__ = "call_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_call_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    agent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    caller_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Unknown")
    caller_phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    outcome: Mapped[str] = mapped_column(String(30), nullable=False, default="unknown", index=True)
    call_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    recording_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    # Set once the call's minutes have been added to the client's usage counter
    minutes_billed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    appointment_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
