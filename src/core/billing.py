from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import IdentityContext, require_location_identity
from src.core.db import get_db_session
from src.core.entitlements import Capability, EntitlementDecision, EntitlementGate
from src.core.metering import MeteringService
from src.core.plans import EffectivePlan, PlanCache, PlanResolver
from src.core.pricing import CostCalculator
from src.core.usage import UsageLedger

_DENIAL_MESSAGES = {
    "quota_exceeded": "Monthly message quota reached. Upgrade your plan to keep extracting.",
    "daily_cap_reached": "Daily message cap reached. Usage resets tomorrow or upgrade your plan.",
    "feature_not_in_plan": "This feature is not included in your current plan.",
    "call_extraction_disabled": "Call extraction is not enabled for your plan.",
    "call_quota_exceeded": "Call-minute package exhausted. Purchase more minutes to continue.",
}


def get_plan_resolver(session: AsyncSession = Depends(get_db_session)) -> PlanResolver:
    return PlanResolver(session, cache=PlanCache())


def get_entitlement_gate(
    session: AsyncSession = Depends(get_db_session),
    plans: PlanResolver = Depends(get_plan_resolver),
) -> EntitlementGate:
    return EntitlementGate(plans, UsageLedger(session))


def get_metering_service(
    session: AsyncSession = Depends(get_db_session),
    plans: PlanResolver = Depends(get_plan_resolver),
) -> MeteringService:
    return MeteringService(plans, UsageLedger(session), CostCalculator(session))


async def get_effective_plan(
    identity: IdentityContext = Depends(require_location_identity),
    plans: PlanResolver = Depends(get_plan_resolver),
) -> EffectivePlan:
    return await plans.resolve(identity.require_location_id(), identity.user_type, identity.company_id)


def raise_for_denial(decision: EntitlementDecision) -> EntitlementDecision:
    if decision.allowed:
        return decision
    reason = decision.reason.value if decision.reason else "denied"
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "capability": decision.capability.value,
            "reason": reason,
            "message": _DENIAL_MESSAGES.get(reason, "Not permitted by current plan"),
            "plan_code": decision.plan_code,
        },
    )


async def _authorize(
    identity: IdentityContext,
    gate: EntitlementGate,
    capability: Capability,
) -> EntitlementDecision:
    decision = await gate.authorize(identity.require_location_id(), identity, capability)
    return raise_for_denial(decision)


async def enforce_message_quota(
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> EntitlementDecision:
    return await _authorize(identity, gate, Capability.SEND_MESSAGE)


async def enforce_call_extraction(
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> EntitlementDecision:
    return await _authorize(identity, gate, Capability.EXTRACT_CALL)


async def require_custom_ai_key(
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> EntitlementDecision:
    return await _authorize(identity, gate, Capability.USE_CUSTOM_AI_KEY)


async def require_white_label(
    identity: IdentityContext = Depends(require_location_identity),
    gate: EntitlementGate = Depends(get_entitlement_gate),
) -> EntitlementDecision:
    return await _authorize(identity, gate, Capability.USE_WHITE_LABEL_BRANDING)
