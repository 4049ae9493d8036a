"""Pydantic schemas for the admin audit trail endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditEntryResponse(BaseModel):
    id: str
    seq: int
    action: str
    performed_by: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    changes: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias="metadata_")
    ip_address: str
    entry_hash: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TopActor(BaseModel):
    actor_id: str
    name: str
    email: str
    count: int


class AuditStatsResponse(BaseModel):
    total_count: int
    counts_by_action: dict[str, int]
    top_actors: list[TopActor]
    recent_high_risk: list[AuditEntryResponse]


class AuditChainVerification(BaseModel):
    valid: bool
    entries_checked: int
    break_at: Optional[str] = None
