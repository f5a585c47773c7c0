from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Integer, Numeric, case, func, literal, or_
from sqlalchemy.dialects.postgresql import Insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.repositories.base import Repository
from src.models.usage_record import UsageRecord


def build_increment_statement(
    location_id: str,
    billing_period: str,
    *,
    day: date,
    messages: int = 0,
    tokens: int = 0,
    cost: Decimal = Decimal("0"),
    platform_cost: Decimal = Decimal("0"),
    call_minutes: Decimal = Decimal("0"),
    call_cost: Decimal = Decimal("0"),
    used_custom_key: bool = False,
    included_messages: int | None = None,
    overage_price: Decimal = Decimal("0"),
) -> Insert:
    """Build the single upsert that adds one usage event to a period row.

    When ``included_messages`` is given, the customer overage for messages that
    land past it is added to ``cost_estimate`` in the same statement, priced
    against the stored ``messages_used`` the conflict update sees.
    """
    now = datetime.now(timezone.utc)
    charges_overage = included_messages is not None and overage_price > 0 and messages > 0
    inserted_cost = cost
    if charges_overage:
        inserted_cost += max(0, messages - included_messages) * overage_price

    stmt = pg_insert(UsageRecord).values(
        id=uuid4(),
        location_id=location_id,
        billing_period=billing_period,
        messages_used=messages,
        daily_messages_used=messages,
        daily_period=day,
        tokens_used=tokens,
        cost_estimate=inserted_cost,
        platform_cost_estimate=platform_cost,
        call_minutes_used_monthly=call_minutes,
        daily_call_minutes_used=call_minutes,
        call_cost_estimate=call_cost,
        custom_key_used=used_custom_key,
        created_at=now,
        updated_at=now,
    )
    excluded = stmt.excluded
    same_day = UsageRecord.daily_period == excluded.daily_period

    cost_update = UsageRecord.cost_estimate + excluded.cost_estimate
    if charges_overage:
        overage_units = func.greatest(
            0,
            UsageRecord.messages_used
            + messages
            - func.greatest(included_messages, UsageRecord.messages_used, type_=Integer),
            type_=Integer,
        )
        cost_update = UsageRecord.cost_estimate + literal(cost, Numeric(14, 6)) + overage_units * literal(
            overage_price, Numeric(10, 4)
        )

    # Daily counters restart when the stored day differs from the incoming one.
    return stmt.on_conflict_do_update(
        index_elements=[UsageRecord.location_id, UsageRecord.billing_period],
        set_={
            "messages_used": UsageRecord.messages_used + excluded.messages_used,
            "daily_messages_used": case(
                (same_day, UsageRecord.daily_messages_used + excluded.daily_messages_used),
                else_=excluded.daily_messages_used,
            ),
            "daily_call_minutes_used": case(
                (same_day, UsageRecord.daily_call_minutes_used + excluded.daily_call_minutes_used),
                else_=excluded.daily_call_minutes_used,
            ),
            "daily_period": excluded.daily_period,
            "tokens_used": UsageRecord.tokens_used + excluded.tokens_used,
            "cost_estimate": cost_update,
            "platform_cost_estimate": UsageRecord.platform_cost_estimate + excluded.platform_cost_estimate,
            "call_minutes_used_monthly": UsageRecord.call_minutes_used_monthly
            + excluded.call_minutes_used_monthly,
            "call_cost_estimate": UsageRecord.call_cost_estimate + excluded.call_cost_estimate,
            "custom_key_used": or_(UsageRecord.custom_key_used, excluded.custom_key_used),
            "updated_at": excluded.updated_at,
        },
    ).returning(UsageRecord)


class UsageRecordRepository(Repository[UsageRecord]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=UsageRecord)

    async def get_for_period(self, location_id: str, billing_period: str) -> UsageRecord | None:
        result = await self.session.execute(
            self._select()
            .where(UsageRecord.location_id == location_id)
            .where(UsageRecord.billing_period == billing_period)
        )
        return result.scalar_one_or_none()

    async def ensure_period(self, location_id: str, billing_period: str) -> UsageRecord:
        now = datetime.now(timezone.utc)
        await self.session.execute(
            pg_insert(UsageRecord)
            .values(
                id=uuid4(),
                location_id=location_id,
                billing_period=billing_period,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(
                index_elements=[UsageRecord.location_id, UsageRecord.billing_period]
            )
        )
        record = await self.get_for_period(location_id, billing_period)
        if record is None:
            raise RuntimeError(f"Usage record for {location_id}/{billing_period} vanished after insert")
        return record

    async def upsert_increment(self, stmt: Insert) -> UsageRecord:
        result = await self.session.scalars(stmt, execution_options={"populate_existing": True})
        return result.one()

    async def list_history(self, location_id: str, *, limit: int = 12) -> list[UsageRecord]:
        result = await self.session.execute(
            self._select()
            .where(UsageRecord.location_id == location_id)
            .order_by(UsageRecord.billing_period.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
