"""Record, query, aggregate and verify the admin audit trail."""

import hashlib
import hmac as hmac_mod
import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.audit.models import AuditAction, AuditLogModel, HIGH_RISK_ACTIONS, TARGET_TYPES
from bookedsolid.common.config import BookedSolidSettings
from bookedsolid.common.models import as_utc, utcnow
from bookedsolid.users.models import UserModel

logger = logging.getLogger(__name__)

_RECORD_ATTEMPTS = 3


def _jsonable(value: dict[str, Any] | None) -> dict[str, Any] | None:
    """Round-trip through JSON so datetimes and enums are stored as strings."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


class AuditService:
    """Append-only, hash-chained log of privileged actions."""

    def __init__(self, settings: BookedSolidSettings, db=None):
        self.settings = settings
        self._db = db

    def _get_db(self):
        if self._db is None:
            from bookedsolid.deps import get_db
            self._db = get_db()
        return self._db

    # ── Write ──

    async def record(
        self,
        action: AuditAction | str,
        actor_id: str,
        target_type: str | None = None,
        target_id: str | None = None,
        changes: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        source_address: str | None = None,
    ) -> AuditLogModel | None:
        """Best-effort write in its own session. Never raises.

        Called after the audited mutation has committed, so a failure here
        cannot roll it back.
        """
        try:
            action_value = AuditAction(action).value
        except ValueError:
            logger.error("[Audit] Unknown audit action %r from %s", action, actor_id)
            return None
        if target_type is not None and target_type not in TARGET_TYPES:
            logger.warning("[Audit] Unexpected target type %r for %s", target_type, action_value)

        for attempt in range(_RECORD_ATTEMPTS):
            try:
                async with self._get_db().get_session() as session:
                    entry = await self.append(
                        session, action_value, actor_id,
                        target_type=target_type,
                        target_id=target_id,
                        changes=changes,
                        metadata=metadata,
                        source_address=source_address,
                    )
                logger.info(
                    "[Audit] %s performed by %s on %s:%s",
                    action_value, actor_id, target_type, target_id,
                )
                return entry
            except IntegrityError:
                # Another writer took the same sequence number; re-read the head.
                if attempt + 1 < _RECORD_ATTEMPTS:
                    continue
                logger.exception("[Audit] Failed to create audit log for %s", action_value)
            except Exception:
                logger.exception("[Audit] Failed to create audit log for %s", action_value)
                break
        return None

    async def append(
        self,
        session: AsyncSession,
        action: str,
        actor_id: str,
        target_type: str | None = None,
        target_id: str | None = None,
        changes: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        source_address: str | None = None,
    ) -> AuditLogModel:
        """Append one entry to the chain inside ``session``."""
        head = await self.get_chain_head(session)
        seq = head.seq + 1 if head else 1
        prev_hash = head.entry_hash if head else None
        created_at = utcnow()
        changes = _jsonable(changes)
        metadata = _jsonable(metadata)
        ip_address = source_address or "unknown"

        entry_hash = self._compute_entry_hash(
            seq, action, actor_id, target_type, target_id,
            changes, metadata, ip_address, created_at, prev_hash,
        )
        entry = AuditLogModel(
            seq=seq,
            action=action,
            performed_by=actor_id,
            target_type=target_type,
            target_id=target_id,
            changes=changes,
            metadata_=metadata,
            ip_address=ip_address,
            prev_hash=prev_hash,
            entry_hash=entry_hash,
            signature=self._sign(entry_hash),
            created_at=created_at,
        )
        session.add(entry)
        await session.flush()
        return entry

    # ── Read ──

    async def get_chain_head(self, session: AsyncSession) -> AuditLogModel | None:
        result = await session.execute(
            select(AuditLogModel).order_by(AuditLogModel.seq.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _filtered(query, actor_id=None, action=None, target_type=None,
                  target_id=None, start=None, end=None):
        if actor_id:
            query = query.where(AuditLogModel.performed_by == actor_id)
        if action:
            query = query.where(AuditLogModel.action == AuditAction(action).value)
        if target_type:
            query = query.where(AuditLogModel.target_type == target_type)
        if target_id:
            query = query.where(AuditLogModel.target_id == target_id)
        if start:
            query = query.where(AuditLogModel.created_at >= start)
        if end:
            query = query.where(AuditLogModel.created_at <= end)
        return query

    async def query(
        self,
        session: AsyncSession,
        actor_id: str | None = None,
        action: AuditAction | str | None = None,
        target_type: str | None = None,
        target_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogModel]:
        """Filtered entries, newest first."""
        query = self._filtered(
            select(AuditLogModel), actor_id, action, target_type, target_id, start, end,
        )
        query = query.order_by(AuditLogModel.seq.desc()).offset(offset).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def aggregate(
        self,
        session: AsyncSession,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """Totals, per-action counts, most active admins and recent high-risk actions."""
        total = await session.scalar(
            self._filtered(select(func.count(AuditLogModel.id)), start=start, end=end)
        )

        by_action = await session.execute(
            self._filtered(
                select(AuditLogModel.action, func.count(AuditLogModel.id)),
                start=start, end=end,
            ).group_by(AuditLogModel.action)
        )
        counts_by_action = {action: count for action, count in by_action.all()}

        activity = func.count(AuditLogModel.id).label("activity")
        top = await session.execute(
            self._filtered(
                select(AuditLogModel.performed_by, activity), start=start, end=end,
            )
            .group_by(AuditLogModel.performed_by)
            .order_by(activity.desc())
            .limit(10)
        )
        top_rows = top.all()
        actor_ids = [row[0] for row in top_rows]
        users = {}
        if actor_ids:
            user_result = await session.execute(
                select(UserModel).where(UserModel.id.in_(actor_ids))
            )
            users = {u.id: u for u in user_result.scalars().all()}
        top_actors = [
            {
                "actor_id": actor_id,
                "name": users[actor_id].name if actor_id in users else "Unknown",
                "email": users[actor_id].email if actor_id in users else "Unknown",
                "count": count,
            }
            for actor_id, count in top_rows
        ]

        high_risk = await session.execute(
            self._filtered(select(AuditLogModel), start=start, end=end)
            .where(AuditLogModel.action.in_([a.value for a in HIGH_RISK_ACTIONS]))
            .order_by(AuditLogModel.seq.desc())
            .limit(20)
        )

        return {
            "total_count": total or 0,
            "counts_by_action": counts_by_action,
            "top_actors": top_actors,
            "recent_high_risk": list(high_risk.scalars().all()),
        }

    # ── Verify ──

    async def verify_chain(self, session: AsyncSession) -> dict[str, Any]:
        """Walk the chain oldest→newest, verify linkage, hashes and signatures."""
        result = await session.execute(
            select(AuditLogModel).order_by(AuditLogModel.seq.asc())
        )
        entries = list(result.scalars().all())

        prev_hash = None
        for index, entry in enumerate(entries):
            expected_hash = self._compute_entry_hash(
                entry.seq, entry.action, entry.performed_by, entry.target_type,
                entry.target_id, entry.changes, entry.metadata_, entry.ip_address,
                entry.created_at, entry.prev_hash,
            )
            if (
                entry.prev_hash != prev_hash
                or entry.entry_hash != expected_hash
                or not self._verify_signature(entry.entry_hash, entry.signature)
            ):
                return {"valid": False, "entries_checked": index, "break_at": entry.id}
            prev_hash = entry.entry_hash

        return {"valid": True, "entries_checked": len(entries), "break_at": None}

    # ── Internal helpers ──

    @staticmethod
    def _compute_entry_hash(
        seq: int,
        action: str,
        actor_id: str,
        target_type: str | None,
        target_id: str | None,
        changes: dict[str, Any] | None,
        metadata: dict[str, Any] | None,
        ip_address: str,
        created_at: datetime,
        prev_hash: str | None,
    ) -> str:
        """SHA-256 of canonical JSON of the entry fields."""
        canonical = json.dumps(
            {
                "seq": seq,
                "action": action,
                "performed_by": actor_id,
                "target_type": target_type,
                "target_id": target_id,
                "changes": changes,
                "metadata": metadata,
                "ip_address": ip_address,
                "created_at": as_utc(created_at).astimezone(timezone.utc).isoformat(),
                "prev_hash": prev_hash,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _sign(self, entry_hash: str) -> str:
        """HMAC-SHA256 of entry_hash with the current audit key."""
        return hmac_mod.new(
            self.settings.current_audit_key.encode(),
            entry_hash.encode(),
            hashlib.sha256,
        ).hexdigest()

    def _verify_signature(self, entry_hash: str, signature: str) -> bool:
        """Verify signature against all keys in the keyring."""
        for _version, key in self.settings.audit_keyring.items():
            expected = hmac_mod.new(
                key.encode(), entry_hash.encode(), hashlib.sha256,
            ).hexdigest()
            if hmac_mod.compare_digest(expected, signature):
                return True
        return False
