"""Pydantic schemas for call record endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class CallRecordResponse(BaseModel):
    id: str
    client_id: str
    provider_call_id: Optional[str] = None
    started_at: datetime
    caller_name: str
    caller_phone: str
    duration_seconds: int
    outcome: str
    call_status: Optional[str] = None
    notes: str
    recording_url: Optional[str] = None
    minutes_billed: Optional[int] = None
    appointment_details: Optional[dict[str, Any]] = None

    model_config = {"from_attributes": True}
