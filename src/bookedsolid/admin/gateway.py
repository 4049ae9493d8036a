"""Admin action gateway: permission check, mutation, then audit.

Every privileged admin mutation goes through ``AdminGateway.perform``. The
capability check runs before anything is written. The mutation runs in its
own session, which commits before the audit entry is recorded, so a failed
audit write never undoes or fails the action it describes.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.audit.models import AuditAction
from bookedsolid.audit.service import AuditService
from bookedsolid.common.exceptions import AuthenticationError, PermissionDeniedError
from bookedsolid.permissions.capabilities import ActorLike, Capability, has_permission

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutation = Callable[[AsyncSession], Awaitable[T]]
Details = Union[dict[str, Any], Callable[[Any], Optional[dict[str, Any]]], None]


class AdminGateway:
    """Gate admin mutations on capabilities and record them in the audit log."""

    def __init__(self, audit: AuditService, db=None):
        self.audit = audit
        self._db = db

    def _get_db(self):
        if self._db is None:
            from bookedsolid.deps import get_db
            self._db = get_db()
        return self._db

    @staticmethod
    def require(actor: Optional[ActorLike], capability: Capability | str) -> None:
        """Raise unless ``actor`` holds ``capability``."""
        if actor is None:
            raise AuthenticationError()
        if not has_permission(actor, capability):
            logger.warning(
                "Permission denied: %s lacks %s",
                getattr(actor, "id", "unknown"), getattr(capability, "value", capability),
            )
            raise PermissionDeniedError()

    async def perform(
        self,
        actor: Optional[ActorLike],
        capability: Capability | str,
        action: AuditAction | str,
        mutation: Mutation,
        target_type: str | None = None,
        target_id: Union[str, Callable[[Any], Optional[str]], None] = None,
        changes: Details = None,
        metadata: Details = None,
        source_address: str | None = None,
    ):
        """Check, run ``mutation`` in a committed session, then audit it.

        ``target_id``, ``changes`` and ``metadata`` may be callables that
        receive the mutation result, for values only known afterwards.
        Returns the mutation result.
        """
        self.require(actor, capability)

        async with self._get_db().get_session() as session:
            result = await mutation(session)

        try:
            resolved_target = target_id(result) if callable(target_id) else target_id
            resolved_changes = changes(result) if callable(changes) else changes
            resolved_metadata = metadata(result) if callable(metadata) else metadata
        except Exception:
            logger.exception("[Audit] Failed to build audit details for %s", action)
            return result

        await self.audit.record(
            action,
            actor.id,
            target_type=target_type,
            target_id=resolved_target,
            changes=resolved_changes,
            metadata=resolved_metadata,
            source_address=source_address,
        )
        return result
