from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.plans import EffectivePlan
from src.core.quota import Bounded
from src.core.repositories.pricing import AiModelPricingRepository

logger = logging.getLogger(__name__)

COST_PRECISION = Decimal("0.000001")
ONE_MILLION = Decimal(1_000_000)


@dataclass(slots=True, frozen=True)
class ModelPrice:
    model_id: str
    input_per_million: Decimal
    output_per_million: Decimal


BUILTIN_MODEL_PRICES: dict[str, ModelPrice] = {
    price.model_id: price
    for price in (
        ModelPrice("gpt-4.1", Decimal("2.00"), Decimal("8.00")),
        ModelPrice("gpt-4.1-mini", Decimal("0.40"), Decimal("1.60")),
        ModelPrice("gpt-4.1-nano", Decimal("0.10"), Decimal("0.40")),
        ModelPrice("gpt-4o", Decimal("2.50"), Decimal("10.00")),
        ModelPrice("gpt-4o-mini", Decimal("0.15"), Decimal("0.60")),
        ModelPrice("o1", Decimal("15.00"), Decimal("60.00")),
        ModelPrice("o1-mini", Decimal("1.10"), Decimal("4.40")),
        ModelPrice("o3", Decimal("2.00"), Decimal("8.00")),
        ModelPrice("o3-mini", Decimal("1.10"), Decimal("4.40")),
        ModelPrice("o4-mini", Decimal("1.10"), Decimal("4.40")),
    )
}


def quantize_cost(value: Decimal) -> Decimal:
    return value.quantize(COST_PRECISION, rounding=ROUND_HALF_UP)


def token_cost(price: ModelPrice, input_tokens: int, output_tokens: int) -> Decimal:
    cost = (
        Decimal(input_tokens) * price.input_per_million / ONE_MILLION
        + Decimal(output_tokens) * price.output_per_million / ONE_MILLION
    )
    return quantize_cost(cost)


def call_cost(minutes: Decimal | int | float, rate_per_minute: Decimal) -> Decimal:
    return quantize_cost(Decimal(str(minutes)) * rate_per_minute)


def message_overage_cost(
    plan: EffectivePlan,
    *,
    messages_before: int,
    messages_this_event: int,
    used_custom_key: bool,
    is_agency: bool,
) -> Decimal:
    """Customer charge for messages that land beyond the plan's included quota.

    Agencies and tenants on their own AI key pay nothing per message.
    """
    if is_agency or plan.is_agency or used_custom_key or messages_this_event <= 0:
        return Decimal("0")
    if not isinstance(plan.messages_included, Bounded):
        return Decimal("0")

    included = plan.messages_included.limit
    messages_after = messages_before + messages_this_event
    overage_units = max(0, messages_after - max(included, messages_before))
    return quantize_cost(Decimal(overage_units) * plan.overage_price)


def overage_terms(plan: EffectivePlan, *, used_custom_key: bool, is_agency: bool) -> tuple[int | None, Decimal]:
    """Included quota and unit price the usage upsert charges overage against."""
    if is_agency or plan.is_agency or used_custom_key:
        return None, Decimal("0")
    if not isinstance(plan.messages_included, Bounded):
        return None, Decimal("0")
    return plan.messages_included.limit, plan.overage_price


def call_customer_cost(plan: EffectivePlan, minutes: Decimal, *, is_agency: bool) -> Decimal:
    if is_agency or plan.is_agency:
        return Decimal("0")
    return call_cost(minutes, plan.call_extraction_rate_per_minute)


class CostCalculator:
    def __init__(self, session: AsyncSession) -> None:
        self.pricing = AiModelPricingRepository(session)

    async def price_for(self, model_id: str) -> ModelPrice:
        row = await self.pricing.get_by_model_id(model_id)
        if row is not None:
            return ModelPrice(
                model_id=row.model_id,
                input_per_million=Decimal(row.input_price_per_million),
                output_per_million=Decimal(row.output_price_per_million),
            )

        default_id = settings.default_model_id
        logger.warning("No pricing for model=%s; using %s pricing", model_id, default_id)
        if model_id != default_id:
            default_row = await self.pricing.get_by_model_id(default_id)
            if default_row is not None:
                return ModelPrice(
                    model_id=default_row.model_id,
                    input_per_million=Decimal(default_row.input_price_per_million),
                    output_per_million=Decimal(default_row.output_price_per_million),
                )

        return BUILTIN_MODEL_PRICES.get(model_id) or BUILTIN_MODEL_PRICES.get(
            default_id, BUILTIN_MODEL_PRICES["gpt-4o-mini"]
        )

    async def estimate_tokens(self, model_id: str, input_tokens: int, output_tokens: int) -> Decimal:
        price = await self.price_for(model_id)
        return token_cost(price, input_tokens, output_tokens)

    @staticmethod
    def estimate_call_minutes(minutes: Decimal | int | float, rate_per_minute: Decimal) -> Decimal:
        return call_cost(minutes, rate_per_minute)
