"""Tests for the client (tenant) service."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from bookedsolid.billing.plans import PlanCatalog
from bookedsolid.calls.models import CallRecordModel
from bookedsolid.clients.models import ClientModel
from bookedsolid.clients.schemas import ClientCreate, ClientUpdate
from bookedsolid.clients.service import ClientService
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.database import DatabaseManager
from bookedsolid.common.exceptions import ConflictError, NotFoundError, ValidationError
from bookedsolid.common.models import utcnow
from bookedsolid.users.models import UserModel


def make_settings(**overrides) -> BookedSolidSettings:
    defaults = {"db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return BookedSolidSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def svc():
    return ClientService(PlanCatalog.from_settings(make_settings()))


async def create(db, svc, email="front@brightsmiles.test", **fields):
    data = {"business_name": "Bright Smiles", "email": email, "phone": "555-0100"}
    data.update(fields)
    async with db.get_session() as session:
        return await svc.create(session, ClientCreate(**data))


async def add_call(db, client_id, outcome="info", started_at=None, call_id=None):
    async with db.get_session() as session:
        session.add(CallRecordModel(
            client_id=client_id,
            provider_call_id=call_id,
            started_at=started_at or utcnow(),
            outcome=outcome,
        ))


class TestCreate:
    async def test_defaults_from_plan(self, db, svc):
        client = await create(db, svc, email="Front@BrightSmiles.test")
        assert client.email == "front@brightsmiles.test"
        assert client.plan == "missed"
        assert client.minutes_used == 0
        assert client.monthly_rate == 149

    async def test_complete_plan_terms(self, db, svc):
        client = await create(db, svc, plan="complete")
        assert client.minutes_included == 1000
        assert client.overage_rate == 0.25

    async def test_duplicate_email(self, db, svc):
        await create(db, svc)
        with pytest.raises(ConflictError):
            await create(db, svc, email="FRONT@brightsmiles.test")

    async def test_unknown_plan(self, db, svc):
        with pytest.raises(ValidationError) as exc_info:
            await create(db, svc, plan="platinum")
        assert exc_info.value.code == "INVALID_PLAN"


class TestUpdate:
    async def test_returns_before_and_applies(self, db, svc):
        client = await create(db, svc)
        async with db.get_session() as session:
            before, updated = await svc.update(
                session, client.id, ClientUpdate(status="suspended", phone="555-0199"),
            )
        assert before["status"] == "active"
        assert updated.status == "suspended"
        assert updated.phone == "555-0199"

    async def test_email_taken_by_other_client(self, db, svc):
        await create(db, svc, email="one@example.com")
        other = await create(db, svc, email="two@example.com")
        with pytest.raises(ConflictError):
            async with db.get_session() as session:
                await svc.update(session, other.id, ClientUpdate(email="ONE@example.com"))

    async def test_same_email_is_fine(self, db, svc):
        client = await create(db, svc, email="one@example.com")
        async with db.get_session() as session:
            _, updated = await svc.update(session, client.id, ClientUpdate(email="One@Example.com"))
        assert updated.email == "one@example.com"

    async def test_unknown_client(self, db, svc):
        with pytest.raises(NotFoundError):
            async with db.get_session() as session:
                await svc.update(session, "missing", ClientUpdate(phone="1"))


class TestDelete:
    async def test_cascades_to_users_and_calls(self, db, svc):
        client = await create(db, svc)
        async with db.get_session() as session:
            session.add(UserModel(email="owner@brightsmiles.test", client_id=client.id))
        await add_call(db, client.id, call_id="c1")
        await add_call(db, client.id, call_id="c2")

        async with db.get_session() as session:
            removed = await svc.delete(session, client.id)
        assert removed == {
            "business_name": "Bright Smiles",
            "email": "front@brightsmiles.test",
            "deleted_calls": 2,
            "deleted_users": 1,
        }
        async with db.get_session() as session:
            assert await session.get(ClientModel, client.id) is None
            assert await session.scalar(select(func.count(CallRecordModel.id))) == 0
            assert await session.scalar(select(func.count(UserModel.id))) == 0


class TestListAndMetrics:
    async def test_list_with_call_counts_and_search(self, db, svc):
        first = await create(db, svc, email="one@example.com", business_name="Alpha Dental")
        await create(db, svc, email="two@example.com", business_name="Beta Plumbing")
        await add_call(db, first.id)

        async with db.get_session() as session:
            rows = await svc.list_clients(session, search="alpha")
            everything = await svc.list_clients(session)
        assert [(c.business_name, n) for c, n in rows] == [("Alpha Dental", 1)]
        assert len(everything) == 2

    async def test_metrics(self, db, svc):
        client = await create(db, svc)
        now = utcnow().replace(day=15, hour=12)
        await add_call(db, client.id, outcome="booked", started_at=now)
        await add_call(db, client.id, outcome="info", started_at=now - timedelta(hours=1))
        await add_call(db, client.id, outcome="booked", started_at=now - timedelta(days=3))
        await add_call(db, client.id, outcome="booked", started_at=now - timedelta(days=60))

        async with db.get_session() as session:
            metrics = await svc.metrics(session, client.id, now=now)
        assert metrics == {
            "total_calls": 4,
            "calls_today": 2,
            "calls_this_month": 3,
            "booked_this_month": 2,
            "conversion_rate": 66.7,
        }

    async def test_metrics_without_calls(self, db, svc):
        client = await create(db, svc)
        async with db.get_session() as session:
            metrics = await svc.metrics(session, client.id)
        assert metrics["conversion_rate"] == 0.0
