"""Client (tenant) CRUD service."""

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookedsolid.billing.plans import PlanCatalog
from bookedsolid.calls.models import CallRecordModel
from bookedsolid.clients.models import ClientModel
from bookedsolid.clients.schemas import ClientCreate, ClientUpdate
from bookedsolid.common.exceptions import ConflictError, NotFoundError, ValidationError
from bookedsolid.common.models import utcnow
from bookedsolid.users.models import UserModel

DEFAULT_PLAN = "missed"
DEFAULT_PERIOD_DAYS = 30

_AUDITED_FIELDS = (
    "business_name", "email", "phone", "contact_name", "location", "timezone",
    "plan", "billing_interval", "status", "minutes_included", "overage_rate",
    "monthly_rate",
)


def client_snapshot(client: ClientModel) -> dict[str, Any]:
    return {field: getattr(client, field) for field in _AUDITED_FIELDS}


class ClientService:
    """Tenant management operations."""

    def __init__(self, catalog: PlanCatalog):
        self.catalog = catalog

    async def get(self, session: AsyncSession, client_id: str) -> ClientModel:
        client = await session.get(ClientModel, client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    async def get_by_email(self, session: AsyncSession, email: str) -> Optional[ClientModel]:
        result = await session.execute(
            select(ClientModel).where(ClientModel.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def list_clients(
        self,
        session: AsyncSession,
        search: str | None = None,
        plan: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[tuple[ClientModel, int]]:
        """Clients newest first, each with its call count."""
        call_count = (
            select(func.count(CallRecordModel.id))
            .where(CallRecordModel.client_id == ClientModel.id)
            .correlate(ClientModel)
            .scalar_subquery()
        )
        query = select(ClientModel, call_count)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(or_(
                func.lower(ClientModel.business_name).like(pattern),
                func.lower(ClientModel.email).like(pattern),
                ClientModel.phone.like(f"%{search}%"),
            ))
        if plan:
            query = query.where(ClientModel.plan == plan)
        if status:
            query = query.where(ClientModel.status == status)
        query = query.order_by(ClientModel.created_at.desc()).offset(offset).limit(limit)
        result = await session.execute(query)
        return [(row[0], row[1] or 0) for row in result.all()]

    async def metrics(
        self, session: AsyncSession, client_id: str, now: datetime | None = None,
    ) -> dict[str, Any]:
        """Call counts for the detail view: all time, today, and this month."""
        now = now or utcnow()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = day_start.replace(day=1)

        def count(*conditions):
            return select(func.count(CallRecordModel.id)).where(
                CallRecordModel.client_id == client_id, *conditions,
            )

        total = await session.scalar(count())
        today = await session.scalar(count(CallRecordModel.started_at >= day_start))
        month = await session.scalar(count(CallRecordModel.started_at >= month_start))
        booked = await session.scalar(count(
            CallRecordModel.started_at >= month_start,
            CallRecordModel.outcome == "booked",
        ))
        return {
            "total_calls": total or 0,
            "calls_today": today or 0,
            "calls_this_month": month or 0,
            "booked_this_month": booked or 0,
            "conversion_rate": round((booked or 0) / month * 100, 1) if month else 0.0,
        }

    async def create(self, session: AsyncSession, data: ClientCreate) -> ClientModel:
        email = data.email.strip().lower()
        if await self.get_by_email(session, email) is not None:
            raise ConflictError("Client with this email already exists")

        plan_key = data.plan or DEFAULT_PLAN
        plan = self.catalog.get(plan_key)
        if plan is None:
            raise ValidationError(f"Unknown plan: {plan_key}", code="INVALID_PLAN")

        now = utcnow()
        client = ClientModel(
            business_name=data.business_name,
            email=email,
            phone=data.phone,
            contact_name=data.contact_name,
            location=data.location,
            timezone=data.timezone,
            status=data.status,
            plan=plan.key,
            billing_interval=data.billing_interval,
            current_period_start=now,
            current_period_end=now + timedelta(days=DEFAULT_PERIOD_DAYS),
            minutes_included=plan.minutes_included,
            minutes_used=0,
            overage_rate=plan.overage_rate,
            monthly_rate=self.catalog.effective_monthly_rate(plan, data.billing_interval),
        )
        session.add(client)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError("Client with this email already exists") from exc
        return client

    async def update(
        self, session: AsyncSession, client_id: str, data: ClientUpdate,
    ) -> tuple[dict[str, Any], ClientModel]:
        """Apply the fields set on ``data``. Returns (before, client)."""
        client = await self.get(session, client_id)
        before = client_snapshot(client)
        updates = data.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in updates:
            updates["email"] = updates["email"].strip().lower()
            if updates["email"] != client.email:
                existing = await self.get_by_email(session, updates["email"])
                if existing is not None and existing.id != client.id:
                    raise ConflictError("Email already in use by another client")

        if "plan" in updates and self.catalog.get(updates["plan"]) is None:
            raise ValidationError(f"Unknown plan: {updates['plan']}", code="INVALID_PLAN")

        for field, value in updates.items():
            setattr(client, field, value)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError("Email already in use by another client") from exc
        return before, client

    async def delete(self, session: AsyncSession, client_id: str) -> dict[str, Any]:
        """Delete the client with its users and call records. Returns what was removed."""
        client = await self.get(session, client_id)
        snapshot = {"business_name": client.business_name, "email": client.email}

        calls = await session.execute(
            delete(CallRecordModel).where(CallRecordModel.client_id == client_id)
        )
        users = await session.execute(
            delete(UserModel).where(UserModel.client_id == client_id)
        )
        await session.delete(client)
        await session.flush()

        snapshot["deleted_calls"] = calls.rowcount
        snapshot["deleted_users"] = users.rowcount
        return snapshot
