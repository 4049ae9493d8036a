"""Shared test fixtures for BookedSolid."""

import pytest
from httpx import ASGITransport, AsyncClient


SECRET_KEY = "test-secret-key-for-unit-tests"
AUDIT_KEY = "test-audit-key-for-unit-tests"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
VOICE_WEBHOOK_SECRET = "voice-test-secret"

PRICE_IDS = {
    "missed_monthly": "price_missed_monthly",
    "missed_annual": "price_missed_annual",
    "complete_monthly": "price_complete_monthly",
    "complete_annual": "price_complete_annual",
    "unlimited_monthly": "price_unlimited_monthly",
    "unlimited_annual": "price_unlimited_annual",
}

ADMIN_PASSWORD = "Password123"


@pytest.fixture
def app(monkeypatch):
    """Create a test app with in-memory DB."""
    monkeypatch.setenv("BOOKEDSOLID_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("BOOKEDSOLID_SECRET_KEY", SECRET_KEY)
    monkeypatch.setenv("BOOKEDSOLID_AUDIT_HMAC_KEY", AUDIT_KEY)
    monkeypatch.setenv("BOOKEDSOLID_STRIPE_WEBHOOK_SECRET", STRIPE_WEBHOOK_SECRET)
    monkeypatch.setenv("BOOKEDSOLID_VOICE_WEBHOOK_SECRET", VOICE_WEBHOOK_SECRET)
    for key, value in PRICE_IDS.items():
        monkeypatch.setenv(f"BOOKEDSOLID_STRIPE_PRICE_{key.upper()}", value)

    # Clear caches and singletons so new env vars take effect
    from bookedsolid.common.config import get_settings
    get_settings.cache_clear()

    from bookedsolid.deps import reset_singletons
    reset_singletons()

    from bookedsolid.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from bookedsolid.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def make_admin(client):
    """Create an admin in the app database; returns (user, session headers)."""
    from bookedsolid.common.security import SESSION_HEADER, create_session_token
    from bookedsolid.deps import get_db, get_user_service

    async def _make(email="root@example.com", role="SUPER_ADMIN", name="Root Admin"):
        async with get_db().get_session() as session:
            user = await get_user_service().create_admin(
                session, email=email, name=name, password=ADMIN_PASSWORD, role=role,
            )
        return user, {SESSION_HEADER: create_session_token(user.id)}

    return _make


@pytest.fixture
def make_tenant_user(client):
    """Create a client with one tenant user; returns (client, session headers)."""
    from bookedsolid.clients.models import ClientModel
    from bookedsolid.common.security import SESSION_HEADER, create_session_token
    from bookedsolid.deps import get_db
    from bookedsolid.users.models import UserModel

    async def _make(email="owner@dental.example", **client_fields):
        fields = {
            "business_name": "Bright Dental",
            "email": email,
            "phone": "+15550100",
            "plan": "complete",
            "minutes_included": 1000,
            "overage_rate": 0.25,
            "monthly_rate": 349.0,
        }
        fields.update(client_fields)
        async with get_db().get_session() as session:
            tenant = ClientModel(**fields)
            session.add(tenant)
            await session.flush()
            user = UserModel(email=email, name="Owner", role="client", client_id=tenant.id)
            session.add(user)
            await session.flush()
        return tenant, {SESSION_HEADER: create_session_token(user.id)}

    return _make
