from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class PlanResponse(BaseModel):
    code: str
    name: str
    price_monthly: Decimal
    price_annual: Decimal
    max_users: int | None
    messages_included: int | None
    daily_cap_messages: int | None
    overage_price: Decimal
    can_use_own_ai_key: bool
    can_white_label: bool
    call_extraction_rate_per_minute: Decimal
    call_package_1_minutes: int = 0
    call_package_1_price: Decimal = Decimal("0")
    call_package_2_minutes: int = 0
    call_package_2_price: Decimal = Decimal("0")


class EffectivePlanResponse(PlanResponse):
    source: str
    payment_status: str
    is_agency: bool


class PlanChangeRequest(BaseModel):
    plan_code: str = Field(min_length=1, max_length=50)


class UsageResponse(BaseModel):
    billing_period: str
    plan_code: str
    messages_used: int
    messages_included: int | None
    messages_remaining: int | None
    usage_percentage: float
    limit_reached: bool
    daily_messages_used: int
    daily_cap_messages: int | None
    daily_limit_reached: bool
    tokens_used: int
    cost_estimate: Decimal
    call_minutes_used_monthly: Decimal
    daily_call_minutes_used: Decimal
    call_minutes_included: int | None
    call_limit_reached: bool
    call_cost_estimate: Decimal
    custom_key_used: bool


class UsagePeriodResponse(BaseModel):
    billing_period: str
    messages_used: int
    tokens_used: int
    cost_estimate: Decimal
    call_minutes_used_monthly: Decimal
    custom_key_used: bool


class EntitlementDecisionResponse(BaseModel):
    capability: str
    allowed: bool
    reason: str | None = None
    plan_code: str | None = None


class CompletionUsageRequest(BaseModel):
    model_id: str = Field(min_length=1, max_length=100)
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    used_custom_key: bool = False
    success: bool = True


class CallUsageRequest(BaseModel):
    minutes: Decimal = Field(gt=0, le=24 * 60)
    success: bool = True


class MeteringResponse(BaseModel):
    recorded: bool
    billing_period: str
    platform_cost: Decimal
    customer_cost: Decimal
    messages_used: int
    call_minutes_used: Decimal
