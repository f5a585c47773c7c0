from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.repositories.base import Repository
from src.models.location_subscription import LocationSubscription
from src.models.subscription_plan import SubscriptionPlan


class SubscriptionPlanRepository(Repository[SubscriptionPlan]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=SubscriptionPlan)

    async def get_by_code(self, code: str) -> SubscriptionPlan | None:
        result = await self.session.execute(
            self._select()
            .where(SubscriptionPlan.code == code)
            .where(SubscriptionPlan.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> list[SubscriptionPlan]:
        result = await self.session.execute(
            self._select()
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price_monthly, SubscriptionPlan.code)
        )
        return list(result.scalars().all())


class LocationSubscriptionRepository(Repository[LocationSubscription]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=LocationSubscription)

    async def get_active(self, location_id: str) -> LocationSubscription | None:
        result = await self.session.execute(
            select(LocationSubscription)
            .join(SubscriptionPlan, SubscriptionPlan.id == LocationSubscription.plan_id)
            .where(LocationSubscription.location_id == location_id)
            .where(LocationSubscription.is_active.is_(True))
        )
        return result.unique().scalar_one_or_none()

    async def upsert_plan(self, location_id: str, plan_id: UUID) -> None:
        now = datetime.now(timezone.utc)
        stmt = pg_insert(LocationSubscription).values(
            location_id=location_id,
            plan_id=plan_id,
            start_date=now,
            end_date=None,
            is_active=True,
            payment_status="active",
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[LocationSubscription.location_id],
            set_={
                "plan_id": stmt.excluded.plan_id,
                "start_date": stmt.excluded.start_date,
                "end_date": None,
                "is_active": True,
                "payment_status": "active",
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)
