from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from src.core.auth import IdentityContext
from src.core.plans import PlanResolver
from src.core.pricing import CostCalculator, call_customer_cost, message_overage_cost, overage_terms
from src.core.usage import UsageDelta, UsageLedger, billing_period

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class MeteringResult:
    recorded: bool
    billing_period: str
    platform_cost: Decimal = Decimal("0")
    customer_cost: Decimal = Decimal("0")
    messages_used: int = 0
    call_minutes_used: Decimal = Decimal("0")


class MeteringService:
    """Records billable units after the surrounding work has succeeded.

    Each event is one upsert: counters, platform cost and any customer
    overage land together or not at all.
    """

    def __init__(self, plans: PlanResolver, ledger: UsageLedger, calculator: CostCalculator) -> None:
        self.plans = plans
        self.ledger = ledger
        self.calculator = calculator

    async def record_completion(
        self,
        identity: IdentityContext,
        *,
        model_id: str,
        input_tokens: int,
        output_tokens: int,
        used_custom_key: bool = False,
        success: bool = True,
        messages: int = 1,
    ) -> MeteringResult:
        location_id = identity.require_location_id()
        period = billing_period()
        if not success:
            logger.info("Skipping metering for failed completion location=%s", location_id)
            return MeteringResult(recorded=False, billing_period=period)

        plan = await self.plans.resolve(location_id, identity.user_type, identity.company_id)
        platform_cost = await self.calculator.estimate_tokens(model_id, input_tokens, output_tokens)
        included, overage_price = overage_terms(plan, used_custom_key=used_custom_key, is_agency=identity.is_agency())

        record = await self.ledger.increment(
            location_id,
            period,
            UsageDelta(
                messages=messages,
                tokens=input_tokens + output_tokens,
                platform_cost=platform_cost,
                used_custom_key=used_custom_key,
                included_messages=included,
                overage_price=overage_price,
            ),
        )

        # Same arithmetic the upsert applied, against the row it returned.
        customer_cost = message_overage_cost(
            plan,
            messages_before=record.messages_used - messages,
            messages_this_event=messages,
            used_custom_key=used_custom_key,
            is_agency=identity.is_agency(),
        )

        return MeteringResult(
            recorded=True,
            billing_period=period,
            platform_cost=platform_cost,
            customer_cost=customer_cost,
            messages_used=record.messages_used,
            call_minutes_used=Decimal(record.call_minutes_used_monthly),
        )

    async def record_call(
        self,
        identity: IdentityContext,
        *,
        minutes: Decimal,
        success: bool = True,
    ) -> MeteringResult:
        location_id = identity.require_location_id()
        period = billing_period()
        if not success:
            logger.info("Skipping metering for failed call extraction location=%s", location_id)
            return MeteringResult(recorded=False, billing_period=period)

        plan = await self.plans.resolve(location_id, identity.user_type, identity.company_id)
        platform_cost = self.calculator.estimate_call_minutes(minutes, plan.call_extraction_rate_per_minute)
        customer_cost = call_customer_cost(plan, minutes, is_agency=identity.is_agency())

        record = await self.ledger.increment(
            location_id,
            period,
            UsageDelta(call_minutes=minutes, call_cost=customer_cost),
        )
        return MeteringResult(
            recorded=True,
            billing_period=period,
            platform_cost=platform_cost,
            customer_cost=customer_cost,
            messages_used=record.messages_used,
            call_minutes_used=Decimal(record.call_minutes_used_monthly),
        )
