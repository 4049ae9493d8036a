"""Platform settings singleton."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.admin.models import SETTINGS_ID, AdminSettingsModel
from bookedsolid.common.exceptions import ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "platform_name",
    "support_email",
    "default_timezone",
    "default_plan",
    "maintenance_mode",
    "allow_signups",
    "email_notifications",
    "grace_period_days",
)


def settings_snapshot(row: AdminSettingsModel) -> dict[str, Any]:
    return {field: getattr(row, field) for field in SETTINGS_FIELDS}


class SettingsService:
    """Get-or-create and field-wise update of the single settings row."""

    async def get_or_create(self, session: AsyncSession) -> AdminSettingsModel:
        row = await session.get(AdminSettingsModel, SETTINGS_ID)
        if row is not None:
            return row

        # The fixed primary key makes a racing insert fail instead of duplicating.
        # Must run before any other writes in the session: the loser rolls back.
        row = AdminSettingsModel(id=SETTINGS_ID)
        session.add(row)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            row = await session.get(AdminSettingsModel, SETTINGS_ID)
            if row is None:
                raise
            return row
        logger.info("Created default platform settings")
        return row

    async def update(
        self, session: AsyncSession, changes: dict[str, Any],
    ) -> tuple[dict[str, Any], AdminSettingsModel]:
        """Apply named fields. Returns (before, row)."""
        unknown = set(changes) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown settings fields: {', '.join(sorted(unknown))}", code="INVALID_SETTINGS",
            )
        row = await self.get_or_create(session)
        before = settings_snapshot(row)
        for field, value in changes.items():
            setattr(row, field, value)
        await session.flush()
        return before, row
