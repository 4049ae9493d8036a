"""Voice provider call webhook: signature check and payload parsing."""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from bookedsolid.common.exceptions import WebhookPayloadError

CALL_STARTED = "call_started"
CALL_ENDED = "call_ended"
CALL_ANALYZED = "call_analyzed"

_BOOKED_WORDS = ("appointment", "booked", "scheduled")


def verify_voice_signature(payload: bytes, signature: str, secret: str) -> bool:
    """HMAC-SHA256 hex digest of the raw body."""
    if not signature or not secret:
        return False
    computed = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature.strip())


def sign_voice_payload(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


class VoiceCall(BaseModel):
    call_id: str = Field(..., min_length=1)
    agent_id: Optional[str] = None
    call_status: Optional[str] = None
    direction: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    duration: Optional[int] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    disconnection_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    retell_llm_dynamic_variables: dict[str, Any] = Field(default_factory=dict)

    @property
    def client_id(self) -> Optional[str]:
        value = self.metadata.get("client_id")
        return value if isinstance(value, str) and value else None

    @property
    def started_at(self) -> datetime:
        if self.start_timestamp:
            return datetime.fromtimestamp(self.start_timestamp / 1000, tz=timezone.utc)
        return datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> int:
        """Whole seconds between start and end (timestamps are in ms)."""
        if not self.start_timestamp or not self.end_timestamp:
            return 0
        return max(0, (self.end_timestamp - self.start_timestamp) // 1000)

    def caller(self) -> tuple[str, str]:
        """(name, phone) of the other party."""
        phone = self.from_number if self.direction == "inbound" else self.to_number
        name = (
            self.retell_llm_dynamic_variables.get("customer_name")
            or self.metadata.get("customer_name")
            or "Unknown Caller"
        )
        return str(name), phone or ""

    def outcome(self) -> str:
        transcript = (self.transcript or "").lower()
        reason = (self.disconnection_reason or "").lower()
        if any(word in transcript for word in _BOOKED_WORDS):
            return "booked"
        if "voicemail" in transcript or "voicemail" in reason:
            return "voicemail"
        if "transferred" in reason:
            return "transferred"
        if self.duration is not None and self.duration < 10:
            return "spam"
        return "info"

    def appointment(self) -> Optional[dict[str, Any]]:
        for source in (self.metadata, self.retell_llm_dynamic_variables):
            details = source.get("appointment")
            if isinstance(details, dict):
                return details
        return None


class VoiceEvent(BaseModel):
    event: str = Field(..., min_length=1)
    call: VoiceCall


def parse_voice_event(data: Any) -> VoiceEvent:
    if not isinstance(data, dict):
        raise WebhookPayloadError("Invalid payload")
    try:
        return VoiceEvent.model_validate(data)
    except PydanticValidationError as exc:
        raise WebhookPayloadError("Invalid payload") from exc
