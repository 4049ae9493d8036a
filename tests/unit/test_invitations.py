"""Tests for the admin invitation lifecycle."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from bookedsolid.admin.invitations import InvitationService
from bookedsolid.admin.models import AdminInvitationModel
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.database import DatabaseManager
from bookedsolid.common.exceptions import (
    ConflictError,
    InvalidPermissionError,
    InvalidTokenError,
    InvitationExpiredError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    WeakPasswordError,
)
from bookedsolid.common.models import as_utc, utcnow
from bookedsolid.permissions.capabilities import Capability, has_permission
from bookedsolid.users.service import UserService


def make_settings(**overrides) -> BookedSolidSettings:
    defaults = {"db_url": "sqlite+aiosqlite://", "public_base_url": "https://app.example.com"}
    defaults.update(overrides)
    return BookedSolidSettings(**defaults)


class RecordingSender:
    def __init__(self):
        self.sent = []

    async def send_invitation(self, to_email, inviter_name, role_label, link):
        self.sent.append((to_email, inviter_name, role_label, link))
        return True


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def users():
    return UserService(make_settings())


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def svc(users, sender):
    return InvitationService(make_settings(), users, email_sender=sender)


async def make_inviter(db, users, role="SUPER_ADMIN", email="root@example.com"):
    async with db.get_session() as session:
        return await users.create_admin(
            session, email=email, name="Root", password="Password1", role=role,
        )


async def invite(db, svc, inviter, email="new@example.com", role="SUPPORT_STAFF", permissions=None):
    async with db.get_session() as session:
        return await svc.create(session, inviter, email, role, permissions=permissions)


async def expire(db, invitation):
    async with db.get_session() as session:
        await session.execute(
            update(AdminInvitationModel)
            .where(AdminInvitationModel.id == invitation.id)
            .values(expires_at=utcnow() - timedelta(minutes=1))
        )


class TestCreate:
    async def test_creates_pending_invitation(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter, email="New@Example.com")
        assert invitation.status == "pending"
        assert invitation.email == "new@example.com"
        assert len(invitation.token) == 64
        expires_in = as_utc(invitation.expires_at) - utcnow()
        assert timedelta(days=6, hours=23) < expires_in <= timedelta(days=7)

    async def test_link(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        assert svc.invitation_link(invitation.token) == (
            f"https://app.example.com/admin/accept-invitation?token={invitation.token}"
        )

    async def test_duplicate_pending_conflicts(self, db, users, svc):
        inviter = await make_inviter(db, users)
        await invite(db, svc, inviter)
        with pytest.raises(ConflictError):
            await invite(db, svc, inviter)

    async def test_reinvite_after_expiry(self, db, users, svc):
        inviter = await make_inviter(db, users)
        first = await invite(db, svc, inviter)
        await expire(db, first)
        second = await invite(db, svc, inviter)
        assert second.id != first.id
        async with db.get_session() as session:
            assert (await svc.get(session, first.id)).status == "expired"

    async def test_existing_user_conflicts(self, db, users, svc):
        inviter = await make_inviter(db, users)
        with pytest.raises(ConflictError):
            await invite(db, svc, inviter, email="root@example.com")

    async def test_unknown_role(self, db, users, svc):
        inviter = await make_inviter(db, users)
        with pytest.raises(ValidationError):
            await invite(db, svc, inviter, role="OVERLORD")

    async def test_cannot_invite_higher_role(self, db, users, svc):
        inviter = await make_inviter(db, users, role="SUPPORT_STAFF")
        with pytest.raises(PermissionDeniedError):
            await invite(db, svc, inviter, role="DEVELOPER")

    async def test_invalid_override_keys_rejected(self, db, users, svc):
        inviter = await make_inviter(db, users)
        with pytest.raises(InvalidPermissionError):
            await invite(db, svc, inviter, permissions={"drop_tables": True})

    async def test_send_email(self, db, users, svc, sender):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        assert await svc.send_invitation_email(invitation, inviter) is True
        to_email, inviter_name, role_label, link = sender.sent[0]
        assert to_email == "new@example.com"
        assert inviter_name == "Root"
        assert role_label == "Support Staff"
        assert link.endswith(invitation.token)


class TestValidateAndAccept:
    async def test_validate_unknown_token(self, db, svc):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await svc.validate(session, "nope")

    async def test_accept_creates_admin_with_overrides(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter, permissions={"export_data": True})
        async with db.get_session() as session:
            user = await svc.accept(session, invitation.token, "Sam Support", "hunter22")

        assert user.is_admin is True
        assert user.admin_role == "SUPPORT_STAFF"
        assert user.admin_invited_by_id == inviter.id
        assert has_permission(user, Capability.EXPORT_DATA)
        assert has_permission(user, Capability.RESET_PASSWORDS)
        async with db.get_session() as session:
            assert (await svc.get(session, invitation.id)).status == "accepted"

    async def test_accept_twice_fails(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        async with db.get_session() as session:
            await svc.accept(session, invitation.token, "Sam", "hunter22")
        with pytest.raises(InvalidTokenError):
            async with db.get_session() as session:
                await svc.accept(session, invitation.token, "Sam", "hunter22")

    async def test_accept_expired_marks_expired(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        await expire(db, invitation)

        with pytest.raises(InvitationExpiredError) as exc_info:
            async with db.get_session() as session:
                await svc.accept(session, invitation.token, "Sam", "hunter22")
        assert exc_info.value.code == "EXPIRED"

        async with db.get_session() as session:
            assert (await svc.get(session, invitation.id)).status == "expired"
            assert await users.get_by_email(session, "new@example.com") is None

    async def test_weak_password_leaves_invitation_pending(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        with pytest.raises(WeakPasswordError):
            async with db.get_session() as session:
                await svc.accept(session, invitation.token, "Sam", "nodigits")
        async with db.get_session() as session:
            assert (await svc.get(session, invitation.id)).status == "pending"

    async def test_blank_name_rejected(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        with pytest.raises(ValidationError):
            async with db.get_session() as session:
                await svc.accept(session, invitation.token, "   ", "hunter22")


class TestListAndCancel:
    async def test_list_marks_expired(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        await expire(db, invitation)
        async with db.get_session() as session:
            pending = await svc.list_invitations(session, status="pending")
            expired = await svc.list_invitations(session, status="expired")
        assert pending == []
        assert [i.id for i in expired] == [invitation.id]

    async def test_inviter_can_cancel(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        async with db.get_session() as session:
            cancelled = await svc.cancel(session, inviter, invitation.id)
        assert cancelled.status == "cancelled"

    async def test_other_admin_without_edit_roles_cannot_cancel(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        support = await make_inviter(db, users, role="SUPPORT_STAFF", email="s@example.com")
        with pytest.raises(PermissionDeniedError):
            async with db.get_session() as session:
                await svc.cancel(session, support, invitation.id)

    async def test_only_pending_can_be_cancelled(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        async with db.get_session() as session:
            await svc.cancel(session, inviter, invitation.id)
        with pytest.raises(ValidationError) as exc_info:
            async with db.get_session() as session:
                await svc.cancel(session, inviter, invitation.id)
        assert exc_info.value.code == "NOT_PENDING"

    async def test_cancelled_token_cannot_be_accepted(self, db, users, svc):
        inviter = await make_inviter(db, users)
        invitation = await invite(db, svc, inviter)
        async with db.get_session() as session:
            await svc.cancel(session, inviter, invitation.id)
        with pytest.raises(InvalidTokenError):
            async with db.get_session() as session:
                await svc.accept(session, invitation.token, "Sam", "hunter22")
