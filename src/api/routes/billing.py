from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.core.auth import IdentityContext, require_location_identity, require_plan_admin
from src.core.billing import (
    get_effective_plan,
    get_entitlement_gate,
    get_metering_service,
    get_plan_resolver,
    raise_for_denial,
)
from src.core.entitlements import Capability, EntitlementGate
from src.core.metering import MeteringResult, MeteringService
from src.core.plans import EffectivePlan, PlanResolver
from src.core.usage import UsageWithLimits
from src.models.subscription_plan import SubscriptionPlan
from src.schemas.billing import (
    CallUsageRequest,
    CompletionUsageRequest,
    EffectivePlanResponse,
    EntitlementDecisionResponse,
    MeteringResponse,
    PlanChangeRequest,
    PlanResponse,
    UsagePeriodResponse,
    UsageResponse,
)

router = APIRouter(prefix="/billing", tags=["billing"])


def _catalog_plan(row: SubscriptionPlan) -> PlanResponse:
    return PlanResponse(
        code=row.code,
        name=row.name,
        price_monthly=row.price_monthly,
        price_annual=row.price_annual,
        max_users=row.max_users,
        messages_included=row.messages_included,
        daily_cap_messages=row.daily_cap_messages,
        overage_price=row.overage_price,
        can_use_own_ai_key=row.can_use_own_ai_key,
        can_white_label=row.can_white_label,
        call_extraction_rate_per_minute=row.call_extraction_rate_per_minute,
        call_package_1_minutes=row.call_package_1_minutes,
        call_package_1_price=row.call_package_1_price,
        call_package_2_minutes=row.call_package_2_minutes,
        call_package_2_price=row.call_package_2_price,
    )


def _effective_plan(plan: EffectivePlan) -> EffectivePlanResponse:
    return EffectivePlanResponse(
        code=plan.code,
        name=plan.name,
        price_monthly=plan.price_monthly,
        price_annual=plan.price_annual,
        max_users=plan.max_users.as_optional(),
        messages_included=plan.messages_included.as_optional(),
        daily_cap_messages=plan.daily_cap_messages.as_optional(),
        overage_price=plan.overage_price,
        can_use_own_ai_key=plan.can_use_own_ai_key,
        can_white_label=plan.can_white_label,
        call_extraction_rate_per_minute=plan.call_extraction_rate_per_minute,
        call_package_1_minutes=plan.call_package_1_minutes,
        call_package_1_price=plan.call_package_1_price,
        call_package_2_minutes=plan.call_package_2_minutes,
        call_package_2_price=plan.call_package_2_price,
        source=plan.source,
        payment_status=plan.payment_status,
        is_agency=plan.is_agency,
    )


def _usage(usage: UsageWithLimits) -> UsageResponse:
    return UsageResponse(
        billing_period=usage.billing_period,
        plan_code=usage.plan_code,
        messages_used=usage.messages_used,
        messages_included=usage.messages_included.as_optional(),
        messages_remaining=usage.messages_remaining,
        usage_percentage=usage.usage_percentage,
        limit_reached=usage.limit_reached,
        daily_messages_used=usage.daily_messages_used,
        daily_cap_messages=usage.daily_cap_messages.as_optional(),
        daily_limit_reached=usage.daily_limit_reached,
        tokens_used=usage.tokens_used,
        cost_estimate=usage.cost_estimate,
        call_minutes_used_monthly=usage.call_minutes_used_monthly,
        daily_call_minutes_used=usage.daily_call_minutes_used,
        call_minutes_included=usage.call_minutes_included.as_optional(),
        call_limit_reached=usage.call_limit_reached,
        call_cost_estimate=usage.call_cost_estimate,
        custom_key_used=usage.custom_key_used,
    )


def _metering(result: MeteringResult) -> MeteringResponse:
    return MeteringResponse(
        recorded=result.recorded,
        billing_period=result.billing_period,
        platform_cost=result.platform_cost,
        customer_cost=result.customer_cost,
        messages_used=result.messages_used,
        call_minutes_used=result.call_minutes_used,
    )


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(
    _: IdentityContext = Depends(require_location_identity),
    plans: PlanResolver = Depends(get_plan_resolver),
) -> list[PlanResponse]:
    return [_catalog_plan(row) for row in await plans.list_plans()]


@router.get("/plan", response_model=EffectivePlanResponse)
async def get_plan(plan: EffectivePlan = Depends(get_effective_plan)) -> EffectivePlanResponse:
    return _effective_plan(plan)


@router.put("/plan", response_model=EffectivePlanResponse)
async def change_plan(
    payload: PlanChangeRequest,
    identity: IdentityContext = Depends(require_plan_admin),
    plans: PlanResolver = Depends(get_plan_resolver),
) -> EffectivePlanResponse:
    plan = await plans.change_plan(identity.require_location_id(), payload.plan_code.strip().lower())
    return _effective_plan(plan)


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> UsageResponse:
    usage = await gate.usage_with_limits(identity.require_location_id(), identity)
    return _usage(usage)


@router.get("/usage/history", response_model=list[UsagePeriodResponse])
async def get_usage_history(
    limit: int = Query(default=12, ge=1, le=36),
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> list[UsagePeriodResponse]:
    records = await gate.ledger.history(identity.require_location_id(), limit=limit)
    return [
        UsagePeriodResponse(
            billing_period=record.billing_period,
            messages_used=record.messages_used,
            tokens_used=record.tokens_used,
            cost_estimate=record.cost_estimate,
            call_minutes_used_monthly=record.call_minutes_used_monthly,
            custom_key_used=record.custom_key_used,
        )
        for record in records
    ]


@router.post("/guards/{capability}", response_model=EntitlementDecisionResponse)
async def capability_guard(
    capability: Capability,
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> EntitlementDecisionResponse:
    decision = raise_for_denial(
        await gate.authorize(identity.require_location_id(), identity, capability)
    )
    return EntitlementDecisionResponse(
        capability=decision.capability.value,
        allowed=decision.allowed,
        plan_code=decision.plan_code,
    )


@router.post("/usage/completions", response_model=MeteringResponse)
async def record_completion_usage(
    payload: CompletionUsageRequest,
    identity: IdentityContext = Depends(require_location_identity),
    metering: MeteringService = Depends(get_metering_service),
) -> MeteringResponse:
    result = await metering.record_completion(
        identity,
        model_id=payload.model_id,
        input_tokens=payload.input_tokens,
        output_tokens=payload.output_tokens,
        used_custom_key=payload.used_custom_key,
        success=payload.success,
    )
    return _metering(result)


@router.post("/usage/calls", response_model=MeteringResponse)
async def record_call_usage(
    payload: CallUsageRequest,
    identity: IdentityContext = Depends(require_location_identity),
    metering: MeteringService = Depends(get_metering_service),
) -> MeteringResponse:
    result = await metering.record_call(identity, minutes=payload.minutes, success=payload.success)
    return _metering(result)
