from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.errors import InvalidPlanCodeError
from src.core.quota import UNLIMITED, Bounded, Quota, quota_from_column
from src.core.repositories.plans import LocationSubscriptionRepository, SubscriptionPlanRepository
from src.models.subscription_plan import SubscriptionPlan

logger = logging.getLogger(__name__)

PlanSource = Literal["subscription", "default", "agency", "synthesized_agency"]

_QUOTA_FIELDS = ("max_users", "messages_included", "daily_cap_messages")
_DECIMAL_FIELDS = (
    "price_monthly",
    "price_annual",
    "overage_price",
    "call_extraction_rate_per_minute",
    "call_package_1_price",
    "call_package_2_price",
)


@dataclass(slots=True, frozen=True)
class EffectivePlan:
    code: str
    name: str
    price_monthly: Decimal
    price_annual: Decimal
    max_users: Quota
    messages_included: Quota
    daily_cap_messages: Quota
    overage_price: Decimal
    can_use_own_ai_key: bool
    can_white_label: bool
    call_extraction_rate_per_minute: Decimal = Decimal("0")
    call_package_1_minutes: int = 0
    call_package_1_price: Decimal = Decimal("0")
    call_package_2_minutes: int = 0
    call_package_2_price: Decimal = Decimal("0")
    source: PlanSource = "default"
    payment_status: str = "active"

    @property
    def is_agency(self) -> bool:
        return is_agency_plan_code(self.code)

    @property
    def call_extraction_enabled(self) -> bool:
        return (
            self.call_extraction_rate_per_minute > 0
            or self.call_package_1_minutes > 0
            or self.call_package_2_minutes > 0
        )

    @property
    def call_minutes_included(self) -> Quota:
        if self.is_agency:
            return UNLIMITED
        packaged = self.call_package_1_minutes + self.call_package_2_minutes
        if packaged > 0:
            return Bounded(packaged)
        return UNLIMITED

    def to_cache(self) -> str:
        payload: dict[str, object] = {}
        for item in dataclasses.fields(self):
            value = getattr(self, item.name)
            if item.name in _QUOTA_FIELDS:
                value = value.as_optional()
            elif isinstance(value, Decimal):
                value = str(value)
            payload[item.name] = value
        return json.dumps(payload)

    @classmethod
    def from_cache(cls, raw: str) -> EffectivePlan:
        payload = json.loads(raw)
        for name in _QUOTA_FIELDS:
            payload[name] = quota_from_column(payload[name])
        for name in _DECIMAL_FIELDS:
            payload[name] = Decimal(payload[name])
        return cls(**payload)


def is_agency_plan_code(code: str) -> bool:
    agency_code = settings.agency_plan_code
    return code == agency_code or code.startswith(f"{agency_code}_")


def plan_from_row(
    row: SubscriptionPlan,
    *,
    source: PlanSource,
    payment_status: str = "active",
) -> EffectivePlan:
    return EffectivePlan(
        code=row.code,
        name=row.name,
        price_monthly=Decimal(row.price_monthly),
        price_annual=Decimal(row.price_annual),
        max_users=quota_from_column(row.max_users),
        messages_included=quota_from_column(row.messages_included),
        daily_cap_messages=quota_from_column(row.daily_cap_messages),
        overage_price=Decimal(row.overage_price),
        can_use_own_ai_key=row.can_use_own_ai_key,
        can_white_label=row.can_white_label,
        call_extraction_rate_per_minute=Decimal(row.call_extraction_rate_per_minute),
        call_package_1_minutes=row.call_package_1_minutes,
        call_package_1_price=Decimal(row.call_package_1_price),
        call_package_2_minutes=row.call_package_2_minutes,
        call_package_2_price=Decimal(row.call_package_2_price),
        source=source,
        payment_status=payment_status,
    )


def as_agency_plan(plan: EffectivePlan, *, source: PlanSource = "agency") -> EffectivePlan:
    return dataclasses.replace(
        plan,
        max_users=UNLIMITED,
        messages_included=UNLIMITED,
        daily_cap_messages=UNLIMITED,
        can_use_own_ai_key=True,
        can_white_label=True,
        source=source,
    )


def synthesized_agency_plan() -> EffectivePlan:
    return EffectivePlan(
        code=settings.agency_plan_code,
        name="Agency",
        price_monthly=Decimal("499.00"),
        price_annual=Decimal("4990.00"),
        max_users=UNLIMITED,
        messages_included=UNLIMITED,
        daily_cap_messages=UNLIMITED,
        overage_price=Decimal("0"),
        can_use_own_ai_key=True,
        can_white_label=True,
        call_extraction_rate_per_minute=Decimal("0.15"),
        source="synthesized_agency",
    )


def builtin_default_plan() -> EffectivePlan:
    return EffectivePlan(
        code="starter",
        name="Starter",
        price_monthly=Decimal("0"),
        price_annual=Decimal("0"),
        max_users=Bounded(1),
        messages_included=Bounded(500),
        daily_cap_messages=Bounded(100),
        overage_price=Decimal("0.01"),
        can_use_own_ai_key=False,
        can_white_label=False,
        call_extraction_rate_per_minute=Decimal("0.25"),
        source="default",
    )


class PlanCache:
    """Short-lived Redis cache of resolved plans, keyed per location and user type."""

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self.ttl_seconds = ttl_seconds or settings.plan_cache_ttl_seconds

    @staticmethod
    def key(location_id: str, user_type: str) -> str:
        return f"plans:effective:{location_id}:{user_type}"

    def _client(self) -> redis.Redis:
        return redis.from_url(settings.redis_url, decode_responses=True)

    async def get(self, location_id: str, user_type: str) -> EffectivePlan | None:
        client = self._client()
        try:
            raw = await client.get(self.key(location_id, user_type))
        except redis.RedisError:
            logger.exception("Plan cache read failed for location=%s", location_id)
            return None
        finally:
            await client.aclose()
        return EffectivePlan.from_cache(raw) if raw else None

    async def set(self, location_id: str, user_type: str, plan: EffectivePlan) -> None:
        client = self._client()
        try:
            await client.set(self.key(location_id, user_type), plan.to_cache(), ex=self.ttl_seconds)
        except redis.RedisError:
            logger.exception("Plan cache write failed for location=%s", location_id)
        finally:
            await client.aclose()

    async def invalidate(self, location_id: str) -> None:
        client = self._client()
        try:
            await client.delete(
                self.key(location_id, "location"),
                self.key(location_id, "agency"),
            )
        except redis.RedisError:
            logger.exception("Plan cache invalidation failed for location=%s", location_id)
        finally:
            await client.aclose()


class PlanResolver:
    def __init__(self, session: AsyncSession, cache: PlanCache | None = None) -> None:
        self.session = session
        self.cache = cache
        self.plans = SubscriptionPlanRepository(session)
        self.subscriptions = LocationSubscriptionRepository(session)

    async def resolve(
        self,
        location_id: str,
        user_type: str = "location",
        company_id: str | None = None,
    ) -> EffectivePlan:
        if self.cache is not None:
            cached = await self.cache.get(location_id, user_type)
            if cached is not None:
                return cached

        plan = await self._resolve_uncached(location_id, user_type, company_id)

        if self.cache is not None:
            await self.cache.set(location_id, user_type, plan)
        return plan

    async def _resolve_uncached(
        self,
        location_id: str,
        user_type: str,
        company_id: str | None,
    ) -> EffectivePlan:
        subscription = await self.subscriptions.get_active(location_id)

        if user_type == "agency":
            if subscription is not None and is_agency_plan_code(subscription.plan.code):
                return as_agency_plan(
                    plan_from_row(subscription.plan, source="agency", payment_status=subscription.payment_status)
                )

            catalog_row = await self.plans.get_by_code(settings.agency_plan_code)
            if catalog_row is not None:
                return as_agency_plan(plan_from_row(catalog_row, source="agency"))

            logger.info(
                "No agency plan stored; using synthesized agency plan for location=%s company=%s",
                location_id,
                company_id,
            )
            return synthesized_agency_plan()

        if subscription is not None:
            return plan_from_row(
                subscription.plan,
                source="subscription",
                payment_status=subscription.payment_status,
            )

        default_row = await self.plans.get_by_code(settings.default_plan_code)
        if default_row is not None:
            return plan_from_row(default_row, source="default")

        logger.warning("Default plan %s missing from catalog; using built-in plan", settings.default_plan_code)
        return builtin_default_plan()

    async def list_plans(self) -> list[SubscriptionPlan]:
        return await self.plans.list_active()

    async def change_plan(self, location_id: str, plan_code: str) -> EffectivePlan:
        plan_row = await self.plans.get_by_code(plan_code)
        if plan_row is None:
            raise InvalidPlanCodeError(plan_code)

        await self.subscriptions.upsert_plan(location_id, plan_row.id)
        await self.session.commit()

        if self.cache is not None:
            await self.cache.invalidate(location_id)

        logger.info("Location %s moved to plan %s", location_id, plan_code)
        return plan_from_row(plan_row, source="subscription")
