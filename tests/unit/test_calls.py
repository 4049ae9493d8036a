"""Tests for voice webhook parsing and call minute accounting."""

import pytest
from sqlalchemy import func, select

from bookedsolid.calls.models import CallRecordModel
from bookedsolid.calls.service import CallService, billable_minutes
from bookedsolid.calls.voice_webhook import (
    parse_voice_event,
    sign_voice_payload,
    verify_voice_signature,
)
from bookedsolid.clients.models import ClientModel
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.database import DatabaseManager
from bookedsolid.common.exceptions import NotFoundError, WebhookPayloadError

START_MS = 1_700_000_000_000


@pytest.fixture
async def db():
    manager = DatabaseManager(BookedSolidSettings(db_url="sqlite+aiosqlite://"))
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def svc():
    return CallService()


@pytest.fixture
async def client(db):
    async with db.get_session() as session:
        client = ClientModel(
            business_name="Bright Smiles", email="front@brightsmiles.test", phone="555",
            plan="complete", minutes_included=1000,
        )
        session.add(client)
    return client


def event(kind, client_id=None, call_id="call_1", seconds=None, **call_fields):
    call = {"call_id": call_id, "agent_id": "agent_1", "direction": "inbound",
            "from_number": "+15550001111", "to_number": "+15552223333"}
    if client_id:
        call["metadata"] = {"client_id": client_id}
    if seconds is not None:
        call["start_timestamp"] = START_MS
        call["end_timestamp"] = START_MS + seconds * 1000
    call.update(call_fields)
    return parse_voice_event({"event": kind, "call": call})


async def minutes_used(db, client_id):
    async with db.get_session() as session:
        return (await session.get(ClientModel, client_id)).minutes_used


class TestSignature:
    def test_valid(self):
        body = b'{"event": "call_ended"}'
        sig = sign_voice_payload(body, "secret")
        assert verify_voice_signature(body, sig, "secret")

    def test_tampered_body(self):
        sig = sign_voice_payload(b"original", "secret")
        assert not verify_voice_signature(b"changed", sig, "secret")

    def test_missing_parts(self):
        assert not verify_voice_signature(b"x", "", "secret")
        assert not verify_voice_signature(b"x", "abc", "")


class TestParsing:
    def test_not_an_object(self):
        with pytest.raises(WebhookPayloadError):
            parse_voice_event(["call_ended"])

    def test_missing_call(self):
        with pytest.raises(WebhookPayloadError):
            parse_voice_event({"event": "call_ended"})

    def test_duration_from_millisecond_timestamps(self):
        assert event("call_ended", seconds=95).call.duration_seconds == 95

    def test_duration_zero_without_end(self):
        assert event("call_ended", start_timestamp=START_MS).call.duration_seconds == 0

    def test_caller_depends_on_direction(self):
        inbound = event("call_ended").call
        outbound = event("call_ended", direction="outbound").call
        assert inbound.caller() == ("Unknown Caller", "+15550001111")
        assert outbound.caller()[1] == "+15552223333"

    def test_caller_name_from_dynamic_variables(self):
        call = event("call_ended", retell_llm_dynamic_variables={"customer_name": "Dana"}).call
        assert call.caller()[0] == "Dana"

    @pytest.mark.parametrize("fields,expected", [
        ({"transcript": "Great, your appointment is booked for Tuesday"}, "booked"),
        ({"transcript": "You've reached the voicemail of"}, "voicemail"),
        ({"disconnection_reason": "call_transferred"}, "transferred"),
        ({"duration": 4}, "spam"),
        ({"transcript": "What are your opening hours?"}, "info"),
    ])
    def test_outcome(self, fields, expected):
        assert event("call_ended", **fields).call.outcome() == expected

    def test_client_id_only_from_metadata(self):
        call = event("call_ended", retell_llm_dynamic_variables={"client_id": "x"}).call
        assert call.client_id is None


class TestBillableMinutes:
    @pytest.mark.parametrize("seconds,minutes", [(0, 0), (1, 1), (60, 1), (61, 2), (-5, 0)])
    def test_started_minutes_round_up(self, seconds, minutes):
        assert billable_minutes(seconds) == minutes


class TestCallService:
    async def test_started_then_ended(self, db, svc, client):
        async with db.get_session() as session:
            started = await svc.handle_event(session, event("call_started", client.id))
        assert started["action"] == "created"

        async with db.get_session() as session:
            ended = await svc.handle_event(session, event(
                "call_ended", client.id, seconds=125, transcript="appointment booked",
            ))
        assert ended["action"] == "updated"
        assert ended["minutes_tracked"] == 3
        assert ended["call_record_id"] == started["call_record_id"]
        assert await minutes_used(db, client.id) == 3

        async with db.get_session() as session:
            record = await svc.get_by_provider_id(session, "call_1")
        assert record.outcome == "booked"
        assert record.duration_seconds == 125
        assert record.minutes_billed == 3

    async def test_duplicate_call_ended_bills_once(self, db, svc, client):
        for _ in range(2):
            async with db.get_session() as session:
                result = await svc.handle_event(session, event("call_ended", client.id, seconds=61))
        assert result["minutes_tracked"] == 0
        assert await minutes_used(db, client.id) == 2
        async with db.get_session() as session:
            assert await session.scalar(select(func.count(CallRecordModel.id))) == 1

    async def test_repeated_call_started_is_unchanged(self, db, svc, client):
        async with db.get_session() as session:
            await svc.handle_event(session, event("call_started", client.id))
        async with db.get_session() as session:
            result = await svc.handle_event(session, event("call_started", client.id))
        assert result["action"] == "unchanged"

    async def test_analyzed_updates_outcome(self, db, svc, client):
        async with db.get_session() as session:
            await svc.handle_event(session, event("call_ended", client.id, seconds=30))
        async with db.get_session() as session:
            result = await svc.handle_event(session, event(
                "call_analyzed", transcript="left a voicemail",
                metadata={"client_id": client.id, "appointment": {"date": "2026-11-02"}},
            ))
        assert result["action"] == "analyzed"
        async with db.get_session() as session:
            record = await svc.get_by_provider_id(session, "call_1")
        assert record.outcome == "voicemail"
        assert record.appointment_details == {"date": "2026-11-02"}

    async def test_analyzed_unknown_call(self, db, svc):
        async with db.get_session() as session:
            result = await svc.handle_event(session, event("call_analyzed", call_id="ghost"))
        assert result == {"warning": "Call record not found"}

    async def test_unknown_event_type(self, db, svc):
        async with db.get_session() as session:
            result = await svc.handle_event(session, event("call_transcribed"))
        assert result == {"warning": "Unknown event type"}

    async def test_unknown_client(self, db, svc):
        with pytest.raises(NotFoundError):
            async with db.get_session() as session:
                await svc.handle_event(session, event("call_ended", "no-such-client", seconds=10))

    async def test_missing_client_id(self, db, svc):
        with pytest.raises(NotFoundError):
            async with db.get_session() as session:
                await svc.handle_event(session, event("call_started"))

    async def test_list_calls_filters_by_outcome(self, db, svc, client):
        async with db.get_session() as session:
            await svc.handle_event(session, event(
                "call_ended", client.id, call_id="a", seconds=30, transcript="booked it",
            ))
            await svc.handle_event(session, event(
                "call_ended", client.id, call_id="b", seconds=30, transcript="just asking",
            ))
        async with db.get_session() as session:
            booked = await svc.list_calls(session, client.id, outcome="booked")
            everything = await svc.list_calls(session, client.id)
        assert [c.provider_call_id for c in booked] == ["a"]
        assert len(everything) == 2
