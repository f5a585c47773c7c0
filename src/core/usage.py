from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.errors import StorageConflictError
from src.core.plans import EffectivePlan
from src.core.quota import UNLIMITED, Quota
from src.core.repositories.usage import UsageRecordRepository, build_increment_statement
from src.models.usage_record import UsageRecord

logger = logging.getLogger(__name__)

# deadlock_detected; the savepoint retry re-runs the upsert against fresh row locks.
# serialization_failure (40001) keeps the transaction snapshot, so it is not retried here.
RETRYABLE_SQLSTATES = frozenset({"40P01"})
SERIALIZATION_FAILURE = "40001"


def billing_period(at: datetime | None = None) -> str:
    moment = at or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m")


def usage_day(at: datetime | None = None) -> date:
    moment = at or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).date()


@dataclass(slots=True, frozen=True)
class UsageDelta:
    messages: int = 0
    tokens: int = 0
    cost: Decimal = Decimal("0")
    platform_cost: Decimal = Decimal("0")
    call_minutes: Decimal = Decimal("0")
    call_cost: Decimal = Decimal("0")
    used_custom_key: bool = False
    included_messages: int | None = None
    overage_price: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        for name in ("messages", "tokens", "cost", "platform_cost", "call_minutes", "call_cost", "overage_price"):
            if getattr(self, name) < 0:
                raise ValueError(f"Usage delta {name} must not be negative")


@dataclass(slots=True, frozen=True)
class UsageWithLimits:
    billing_period: str
    plan_code: str
    messages_used: int
    messages_included: Quota
    messages_remaining: int | None
    usage_percentage: float
    limit_reached: bool
    daily_messages_used: int
    daily_cap_messages: Quota
    daily_limit_reached: bool
    tokens_used: int
    cost_estimate: Decimal
    call_minutes_used_monthly: Decimal
    daily_call_minutes_used: Decimal
    call_minutes_included: Quota
    call_limit_reached: bool
    call_cost_estimate: Decimal
    custom_key_used: bool


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class UsageLedger:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.records = UsageRecordRepository(session)

    async def get(self, location_id: str, period: str) -> UsageRecord | None:
        return await self.records.get_for_period(location_id, period)

    async def get_or_create(self, location_id: str, period: str) -> UsageRecord:
        record = await self.records.get_for_period(location_id, period)
        if record is not None:
            return record
        record = await self.records.ensure_period(location_id, period)
        await self.session.commit()
        return record

    async def increment(
        self,
        location_id: str,
        period: str,
        delta: UsageDelta,
        *,
        on: date | None = None,
    ) -> UsageRecord:
        stmt = build_increment_statement(
            location_id,
            period,
            day=on or usage_day(),
            messages=delta.messages,
            tokens=delta.tokens,
            cost=delta.cost,
            platform_cost=delta.platform_cost,
            call_minutes=delta.call_minutes,
            call_cost=delta.call_cost,
            used_custom_key=delta.used_custom_key,
            included_messages=delta.included_messages,
            overage_price=delta.overage_price,
        )

        attempts = max(1, settings.usage_upsert_max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                async with self.session.begin_nested():
                    record = await self.records.upsert_increment(stmt)
            except DBAPIError as exc:
                code = _sqlstate(exc)
                if code == SERIALIZATION_FAILURE:
                    raise StorageConflictError(
                        f"Usage upsert for location={location_id} period={period} hit a serialization failure"
                    ) from exc
                if code not in RETRYABLE_SQLSTATES:
                    raise
                logger.warning(
                    "Usage upsert deadlock for location=%s period=%s attempt=%s",
                    location_id,
                    period,
                    attempt,
                )
                continue
            await self.session.commit()
            return record

        raise StorageConflictError(
            f"Usage upsert for location={location_id} period={period} failed after {attempts} attempts"
        )

    async def with_limits(
        self,
        location_id: str,
        plan: EffectivePlan,
        *,
        period: str | None = None,
        today: date | None = None,
    ) -> UsageWithLimits:
        period = period or billing_period()
        today = today or usage_day()
        record = await self.records.get_for_period(location_id, period)

        messages_used = record.messages_used if record else 0
        same_day = record is not None and record.daily_period == today
        daily_messages = record.daily_messages_used if same_day else 0
        daily_call_minutes = Decimal(record.daily_call_minutes_used) if same_day else Decimal("0")
        call_minutes = Decimal(record.call_minutes_used_monthly) if record else Decimal("0")

        if plan.is_agency:
            messages_included: Quota = UNLIMITED
            daily_cap: Quota = UNLIMITED
        else:
            messages_included = plan.messages_included
            daily_cap = plan.daily_cap_messages
        call_included = plan.call_minutes_included

        return UsageWithLimits(
            billing_period=period,
            plan_code=plan.code,
            messages_used=messages_used,
            messages_included=messages_included,
            messages_remaining=messages_included.remaining(messages_used),
            usage_percentage=messages_included.percentage(messages_used),
            limit_reached=messages_included.is_reached(messages_used) and not plan.is_agency,
            daily_messages_used=daily_messages,
            daily_cap_messages=daily_cap,
            daily_limit_reached=daily_cap.is_reached(daily_messages) and not plan.is_agency,
            tokens_used=record.tokens_used if record else 0,
            cost_estimate=Decimal(record.cost_estimate) if record else Decimal("0"),
            call_minutes_used_monthly=call_minutes,
            daily_call_minutes_used=daily_call_minutes,
            call_minutes_included=call_included,
            call_limit_reached=call_included.is_reached(call_minutes) and not plan.is_agency,
            call_cost_estimate=Decimal(record.call_cost_estimate) if record else Decimal("0"),
            custom_key_used=record.custom_key_used if record else False,
        )

    async def history(self, location_id: str, *, limit: int = 12) -> list[UsageRecord]:
        return await self.records.list_history(location_id, limit=limit)
