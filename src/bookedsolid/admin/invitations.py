"""Admin invitation lifecycle: create, list, validate, accept, cancel."""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.admin.models import AdminInvitationModel, InvitationStatus
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.exceptions import (
    ConflictError,
    InvalidTokenError,
    InvitationExpiredError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from bookedsolid.common.models import as_utc, utcnow
from bookedsolid.permissions.capabilities import (
    ROLE_PRIVILEGE,
    Capability,
    has_permission,
    parse_overrides,
    parse_role,
    role_label,
)
from bookedsolid.users.models import UserModel
from bookedsolid.users.passwords import check_admin_password
from bookedsolid.users.service import UserService, normalize_email

logger = logging.getLogger(__name__)


class InvitationService:
    """Invite new admins by emailed single-use token."""

    def __init__(self, settings: BookedSolidSettings, users: UserService, email_sender=None):
        self.settings = settings
        self.users = users
        self.email_sender = email_sender

    def invitation_link(self, token: str) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}/admin/accept-invitation?token={token}"

    async def create(
        self,
        session: AsyncSession,
        inviter: UserModel,
        email: str,
        admin_role: str,
        permissions: dict | None = None,
    ) -> AdminInvitationModel:
        role = parse_role(admin_role)
        if role is None:
            raise ValidationError(f"Unknown admin role: {admin_role}", code="INVALID_ROLE")
        inviter_role = parse_role(inviter.admin_role)
        if inviter_role is None or ROLE_PRIVILEGE[role] > ROLE_PRIVILEGE[inviter_role]:
            raise PermissionDeniedError("Cannot invite an admin with a higher role than your own")
        overrides = parse_overrides(permissions, strict=True)

        email = normalize_email(email)
        if await self.users.get_by_email(session, email) is not None:
            raise ConflictError("User already exists with this email")

        await self._expire_stale(session, email=email)
        pending = await session.execute(
            select(AdminInvitationModel.id).where(
                AdminInvitationModel.email == email,
                AdminInvitationModel.status == InvitationStatus.PENDING.value,
            )
        )
        if pending.first() is not None:
            raise ConflictError("Pending invitation already exists for this email")

        invitation = AdminInvitationModel(
            email=email,
            token=secrets.token_hex(32),
            admin_role=role.value,
            permissions={c.value: v for c, v in overrides.items()} or None,
            status=InvitationStatus.PENDING.value,
            expires_at=utcnow() + timedelta(days=self.settings.invitation_ttl_days),
            invited_by_id=inviter.id,
        )
        session.add(invitation)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError("Pending invitation already exists for this email") from exc
        return invitation

    async def send_invitation_email(
        self, invitation: AdminInvitationModel, inviter: UserModel,
    ) -> bool:
        """Best effort; the invitation stands whether or not the email goes out."""
        if self.email_sender is None:
            return False
        try:
            return await self.email_sender.send_invitation(
                invitation.email,
                inviter.name or inviter.email,
                role_label(invitation.admin_role),
                self.invitation_link(invitation.token),
            )
        except Exception:
            logger.exception("Failed to send invitation email for %s", invitation.id)
            return False

    async def _expire_stale(self, session: AsyncSession, email: str | None = None) -> None:
        stmt = (
            update(AdminInvitationModel)
            .where(
                AdminInvitationModel.status == InvitationStatus.PENDING.value,
                AdminInvitationModel.expires_at < utcnow(),
            )
            .values(status=InvitationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        if email is not None:
            stmt = stmt.where(AdminInvitationModel.email == email)
        await session.execute(stmt)

    async def list_invitations(
        self, session: AsyncSession, status: Optional[str] = None,
    ) -> list[AdminInvitationModel]:
        await self._expire_stale(session)
        query = select(AdminInvitationModel)
        if status:
            query = query.where(AdminInvitationModel.status == InvitationStatus(status).value)
        query = query.order_by(AdminInvitationModel.created_at.desc()).execution_options(
            populate_existing=True
        )
        result = await session.execute(query)
        return list(result.scalars().all())

    async def get(self, session: AsyncSession, invitation_id: str) -> AdminInvitationModel:
        invitation = await session.get(AdminInvitationModel, invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        return invitation

    async def validate(self, session: AsyncSession, token: str) -> AdminInvitationModel:
        """Return the pending invitation for ``token``.

        An expired invitation is marked expired (and committed) before
        InvitationExpiredError is raised.
        """
        result = await session.execute(
            select(AdminInvitationModel).where(AdminInvitationModel.token == token)
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError("Invalid invitation token")
        if invitation.status != InvitationStatus.PENDING.value:
            raise InvalidTokenError("This invitation has already been used or cancelled")
        if as_utc(invitation.expires_at) < utcnow():
            invitation.status = InvitationStatus.EXPIRED.value
            await session.commit()
            logger.info("Invitation %s expired on use", invitation.id)
            raise InvitationExpiredError()
        return invitation

    async def accept(
        self, session: AsyncSession, token: str, name: str, password: str,
    ) -> UserModel:
        check_admin_password(password)
        if not name or not name.strip():
            raise ValidationError("Name is required", code="NAME_REQUIRED")

        invitation = await self.validate(session, token)

        # Claim the invitation first so two concurrent accepts cannot both succeed
        claimed = await session.execute(
            update(AdminInvitationModel)
            .where(
                AdminInvitationModel.id == invitation.id,
                AdminInvitationModel.status == InvitationStatus.PENDING.value,
            )
            .values(status=InvitationStatus.ACCEPTED.value)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidTokenError("This invitation has already been used or cancelled")

        overrides = parse_overrides(invitation.permissions)
        user = await self.users.create_admin(
            session,
            email=invitation.email,
            name=name.strip(),
            password=password,
            role=invitation.admin_role,
            permissions={c.value: v for c, v in overrides.items()},
            invited_by_id=invitation.invited_by_id,
        )
        invitation.status = InvitationStatus.ACCEPTED.value
        logger.info("Invitation %s accepted by new admin %s", invitation.id, user.id)
        return user

    async def cancel(
        self, session: AsyncSession, actor: UserModel, invitation_id: str,
    ) -> AdminInvitationModel:
        invitation = await self.get(session, invitation_id)
        if invitation.invited_by_id != actor.id and not has_permission(
            actor, Capability.EDIT_ADMIN_ROLES
        ):
            raise PermissionDeniedError("Only the inviter can cancel this invitation")
        if invitation.status != InvitationStatus.PENDING.value:
            raise ValidationError(
                "Only pending invitations can be cancelled", code="NOT_PENDING",
            )
        invitation.status = InvitationStatus.CANCELLED.value
        await session.flush()
        return invitation
