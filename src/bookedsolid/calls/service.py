"""Call records from the voice provider and minute accounting."""

import logging
import math
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.calls.models import CallRecordModel
from bookedsolid.calls.voice_webhook import (
    CALL_ANALYZED,
    CALL_ENDED,
    CALL_STARTED,
    VoiceCall,
    VoiceEvent,
)
from bookedsolid.clients.models import ClientModel
from bookedsolid.common.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def billable_minutes(duration_seconds: int) -> int:
    """Minutes charged for one call: started minutes round up."""
    return math.ceil(max(0, duration_seconds) / 60)


class CallService:
    """Upserts call records and adds finished calls to the tenant's usage."""

    async def get_by_provider_id(self, session: AsyncSession, provider_call_id: str):
        result = await session.execute(
            select(CallRecordModel).where(CallRecordModel.provider_call_id == provider_call_id)
        )
        return result.scalar_one_or_none()

    async def _resolve_client(self, session: AsyncSession, call: VoiceCall) -> ClientModel:
        client = await session.get(ClientModel, call.client_id) if call.client_id else None
        if client is None:
            logger.error("No client for voice call %s (agent %s)", call.call_id, call.agent_id)
            raise NotFoundError("Client not found for call")
        return client

    async def handle_event(self, session: AsyncSession, event: VoiceEvent) -> dict[str, Any]:
        if event.event == CALL_STARTED:
            return await self.call_started(session, event.call)
        if event.event == CALL_ENDED:
            return await self.call_ended(session, event.call)
        if event.event == CALL_ANALYZED:
            return await self.call_analyzed(session, event.call)
        logger.warning("Unknown voice event type: %s", event.event)
        return {"warning": "Unknown event type"}

    async def call_started(self, session: AsyncSession, call: VoiceCall) -> dict[str, Any]:
        existing = await self.get_by_provider_id(session, call.call_id)
        if existing is not None:
            return {"call_record_id": existing.id, "action": "unchanged"}
        client = await self._resolve_client(session, call)
        name, phone = call.caller()
        record = CallRecordModel(
            client_id=client.id,
            provider_call_id=call.call_id,
            agent_id=call.agent_id,
            started_at=call.started_at,
            caller_name=name,
            caller_phone=phone,
            duration_seconds=0,
            outcome="unknown",
            call_status=call.call_status,
            notes="Call in progress",
        )
        session.add(record)
        await session.flush()
        return {"call_record_id": record.id, "action": "created"}

    async def call_ended(self, session: AsyncSession, call: VoiceCall) -> dict[str, Any]:
        """Finalize the call record. Minutes are added to usage the first time only."""
        client = await self._resolve_client(session, call)
        name, phone = call.caller()
        duration = call.duration_seconds
        fields = dict(
            caller_name=name,
            caller_phone=phone,
            duration_seconds=duration,
            outcome=call.outcome(),
            notes=call.transcript or "No transcript available",
            recording_url=call.recording_url,
            call_status=call.call_status,
            appointment_details=call.appointment(),
        )

        record = await self.get_by_provider_id(session, call.call_id)
        if record is None:
            record = CallRecordModel(
                client_id=client.id,
                provider_call_id=call.call_id,
                agent_id=call.agent_id,
                started_at=call.started_at,
                **fields,
            )
            session.add(record)
            action = "created"
        else:
            for key, value in fields.items():
                setattr(record, key, value)
            action = "updated"

        minutes = 0
        if record.minutes_billed is None:
            minutes = billable_minutes(duration)
            record.minutes_billed = minutes
            await session.execute(
                update(ClientModel)
                .where(ClientModel.id == record.client_id)
                .values(minutes_used=ClientModel.minutes_used + minutes)
            )
            logger.info("Client %s: +%d minutes for call %s", record.client_id, minutes, call.call_id)
        await session.flush()
        return {"call_record_id": record.id, "action": action, "minutes_tracked": minutes}

    async def call_analyzed(self, session: AsyncSession, call: VoiceCall) -> dict[str, Any]:
        record = await self.get_by_provider_id(session, call.call_id)
        if record is None:
            logger.warning("Call record not found for analysis: %s", call.call_id)
            return {"warning": "Call record not found"}
        record.outcome = call.outcome()
        appointment = call.appointment()
        if appointment is not None:
            record.appointment_details = appointment
        await session.flush()
        return {"call_record_id": record.id, "action": "analyzed"}

    async def list_calls(
        self,
        session: AsyncSession,
        client_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        outcome: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[CallRecordModel]:
        query = select(CallRecordModel).where(CallRecordModel.client_id == client_id)
        if start:
            query = query.where(CallRecordModel.started_at >= start)
        if end:
            query = query.where(CallRecordModel.started_at <= end)
        if outcome:
            query = query.where(CallRecordModel.outcome == outcome)
        query = query.order_by(CallRecordModel.started_at.desc()).offset(offset).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())
