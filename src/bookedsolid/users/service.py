"""User service: accounts, password resets and admin account controls."""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.exceptions import (
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from bookedsolid.common.models import as_utc, utcnow
from bookedsolid.permissions.capabilities import AdminRole, default_permission_map, parse_role
from bookedsolid.users.models import PasswordResetTokenModel, UserModel
from bookedsolid.users.passwords import (
    check_reset_password,
    generate_temporary_password,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email, you will receive password reset instructions."
)


_DUMMY_HASH = hash_password("not-a-real-password")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


class UserService:
    """User accounts and password lifecycle."""

    def __init__(self, settings: BookedSolidSettings, email_sender=None):
        self.settings = settings
        self.email_sender = email_sender

    async def get(self, session: AsyncSession, user_id: str) -> UserModel:
        user = await session.get(UserModel, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_by_email(self, session: AsyncSession, email: str) -> Optional[UserModel]:
        result = await session.execute(
            select(UserModel).where(UserModel.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def create_admin(
        self,
        session: AsyncSession,
        email: str,
        name: str,
        password: str,
        role: AdminRole | str,
        permissions: dict[str, bool] | None = None,
        invited_by_id: str | None = None,
    ) -> UserModel:
        """Create an admin user with the role's defaults merged with ``permissions``."""
        admin_role = parse_role(role)
        if admin_role is None:
            raise ValidationError(f"Unknown admin role: {role}", code="INVALID_ROLE")
        if await self.get_by_email(session, email) is not None:
            raise ConflictError("User with this email already exists")

        merged = default_permission_map(admin_role)
        merged.update(permissions or {})
        now = utcnow()
        user = UserModel(
            email=normalize_email(email),
            name=name,
            password_hash=hash_password(password),
            role="admin",
            is_admin=True,
            admin_role=admin_role.value,
            admin_permissions=merged,
            admin_joined_at=now,
            admin_invited_by_id=invited_by_id,
            password_changed_at=now,
        )
        session.add(user)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError("User with this email already exists") from exc
        return user

    async def authenticate(
        self, session: AsyncSession, email: str, password: str,
    ) -> tuple[Optional[UserModel], bool]:
        """Look up ``email`` and check ``password``. Returns (user or None, ok)."""
        user = await self.get_by_email(session, email)
        if user is None:
            # Same bcrypt cost either way
            verify_password(password, _DUMMY_HASH)
            return None, False
        if user.is_locked or not verify_password(password, user.password_hash):
            return user, False
        return user, True

    # ── Password reset ──

    async def request_password_reset(self, session: AsyncSession, email: str) -> Optional[str]:
        """Issue a reset token for a password user.

        Returns the raw token, or None when no token was issued. Callers must
        respond identically either way.
        """
        email = normalize_email(email)
        user = await self.get_by_email(session, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None
        if not user.password_hash:
            logger.info("Password reset requested for passwordless user %s", user.id)
            return None

        raw_token = secrets.token_hex(32)
        await session.execute(
            delete(PasswordResetTokenModel).where(PasswordResetTokenModel.email == email)
        )
        session.add(PasswordResetTokenModel(
            email=email,
            token_hash=_hash_token(raw_token),
            expires_at=utcnow() + timedelta(seconds=self.settings.password_reset_ttl_seconds),
        ))
        await session.flush()

        if self.email_sender is not None:
            link = f"{self.settings.public_base_url.rstrip('/')}/reset-password?token={raw_token}"
            await self.email_sender.send_password_reset(user.email, user.name, link)
        return raw_token

    async def reset_password(self, session: AsyncSession, raw_token: str, new_password: str) -> UserModel:
        check_reset_password(new_password)

        result = await session.execute(
            select(PasswordResetTokenModel).where(
                PasswordResetTokenModel.token_hash == _hash_token(raw_token)
            )
        )
        token = result.scalar_one_or_none()
        if token is None:
            raise InvalidTokenError("Invalid or expired reset token")

        if as_utc(token.expires_at) < utcnow():
            await session.delete(token)
            # Keep the cleanup even though the request fails
            await session.commit()
            raise InvalidTokenError("Reset token has expired. Please request a new one.")

        user = await self.get_by_email(session, token.email)
        if user is None:
            raise NotFoundError("User not found")

        user.password_hash = hash_password(new_password)
        user.password_changed_at = utcnow()
        user.force_password_change = False
        await session.execute(
            delete(PasswordResetTokenModel).where(PasswordResetTokenModel.email == token.email)
        )
        await session.flush()
        logger.info("Password reset completed for user %s", user.id)
        return user

    # ── Admin account controls ──

    async def admin_reset_password(
        self,
        session: AsyncSession,
        user_id: str,
        new_password: str | None = None,
        force_change: bool = True,
    ) -> tuple[UserModel, Optional[str]]:
        """Set a new password; generates a temporary one when none is given."""
        user = await self.get(session, user_id)
        temporary = None
        if new_password:
            check_reset_password(new_password)
        else:
            temporary = new_password = generate_temporary_password()
        user.password_hash = hash_password(new_password)
        user.password_changed_at = utcnow()
        user.force_password_change = force_change
        user.is_locked = False
        await session.flush()
        return user, temporary

    async def set_locked(self, session: AsyncSession, user_id: str, locked: bool) -> UserModel:
        user = await self.get(session, user_id)
        user.is_locked = locked
        await session.flush()
        return user

    async def remove_admin(self, session: AsyncSession, actor_id: str, user_id: str) -> dict[str, Any]:
        """Revoke admin access. Returns the admin fields as they were."""
        if actor_id == user_id:
            raise ValidationError("You cannot remove your own admin access", code="SELF_REMOVAL")
        user = await self.get(session, user_id)
        if not user.is_admin:
            raise NotFoundError("Admin not found")

        before = {"email": user.email, "admin_role": user.admin_role}
        user.is_admin = False
        user.admin_role = None
        user.admin_permissions = None
        if user.role == "admin":
            user.role = "client"
        await session.flush()
        return before

    async def list_admins(self, session: AsyncSession) -> list[UserModel]:
        result = await session.execute(
            select(UserModel)
            .where(UserModel.is_admin.is_(True))
            .order_by(UserModel.admin_joined_at.desc())
        )
        return list(result.scalars().all())
