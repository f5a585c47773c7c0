from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import IdentityContext
from src.core.config import settings
from src.core.errors import AgencyLicenseError
from src.core.plans import EffectivePlan, PlanResolver
from src.core.repositories.agencies import AgencyLicensedLocationRepository, AgencyPermissionRepository
from src.core.repositories.configurations import TenantConfigurationRepository
from src.core.usage import UsageLedger, UsageWithLimits
from src.models.agency import AgencyLicensedLocation, AgencyPermission

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    SEND_MESSAGE = "send_message"
    USE_CUSTOM_AI_KEY = "use_custom_ai_key"
    USE_WHITE_LABEL_BRANDING = "use_white_label_branding"
    EXTRACT_CALL = "extract_call"


class DenialReason(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    DAILY_CAP_REACHED = "daily_cap_reached"
    FEATURE_NOT_IN_PLAN = "feature_not_in_plan"
    CALL_EXTRACTION_DISABLED = "call_extraction_disabled"
    CALL_QUOTA_EXCEEDED = "call_quota_exceeded"


@dataclass(slots=True, frozen=True)
class EntitlementDecision:
    capability: Capability
    allowed: bool
    reason: DenialReason | None = None
    plan_code: str | None = None

    @classmethod
    def allow(cls, capability: Capability, plan: EffectivePlan | None = None) -> EntitlementDecision:
        return cls(capability=capability, allowed=True, plan_code=plan.code if plan else None)

    @classmethod
    def deny(
        cls,
        capability: Capability,
        reason: DenialReason,
        plan: EffectivePlan | None = None,
    ) -> EntitlementDecision:
        return cls(capability=capability, allowed=False, reason=reason, plan_code=plan.code if plan else None)


class EntitlementGate:
    """Answers whether a tenant may perform a metered or gated action.

    Every decision is recomputed from the current plan and usage; nothing is stored.
    """

    def __init__(self, plans: PlanResolver, ledger: UsageLedger) -> None:
        self.plans = plans
        self.ledger = ledger

    async def plan_for(self, location_id: str, identity: IdentityContext) -> EffectivePlan:
        return await self.plans.resolve(location_id, identity.user_type, identity.company_id)

    async def usage_with_limits(self, location_id: str, identity: IdentityContext) -> UsageWithLimits:
        plan = await self.plan_for(location_id, identity)
        return await self.ledger.with_limits(location_id, plan)

    async def authorize(
        self,
        location_id: str,
        identity: IdentityContext,
        capability: Capability,
    ) -> EntitlementDecision:
        if capability in (Capability.USE_CUSTOM_AI_KEY, Capability.USE_WHITE_LABEL_BRANDING) and identity.is_agency():
            return EntitlementDecision.allow(capability)

        plan = await self.plan_for(location_id, identity)

        if capability is Capability.USE_CUSTOM_AI_KEY:
            if plan.can_use_own_ai_key:
                return EntitlementDecision.allow(capability, plan)
            return EntitlementDecision.deny(capability, DenialReason.FEATURE_NOT_IN_PLAN, plan)

        if capability is Capability.USE_WHITE_LABEL_BRANDING:
            if plan.can_white_label:
                return EntitlementDecision.allow(capability, plan)
            return EntitlementDecision.deny(capability, DenialReason.FEATURE_NOT_IN_PLAN, plan)

        usage = await self.ledger.with_limits(location_id, plan)

        if capability is Capability.SEND_MESSAGE:
            if usage.limit_reached:
                return EntitlementDecision.deny(capability, DenialReason.QUOTA_EXCEEDED, plan)
            if usage.daily_limit_reached:
                return EntitlementDecision.deny(capability, DenialReason.DAILY_CAP_REACHED, plan)
            return EntitlementDecision.allow(capability, plan)

        if capability is Capability.EXTRACT_CALL:
            if not (plan.is_agency or plan.call_extraction_enabled):
                return EntitlementDecision.deny(capability, DenialReason.CALL_EXTRACTION_DISABLED, plan)
            if usage.call_limit_reached:
                return EntitlementDecision.deny(capability, DenialReason.CALL_QUOTA_EXCEEDED, plan)
            return EntitlementDecision.allow(capability, plan)

        raise ValueError(f"Unknown capability: {capability}")


@dataclass(slots=True, frozen=True)
class AgencyEntitlements:
    agency_id: str
    agency_tier: str
    max_locations: int | None
    can_use_own_ai_key: bool
    can_customize_branding: bool


class AgencyService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.permissions = AgencyPermissionRepository(session)
        self.licenses = AgencyLicensedLocationRepository(session)
        self.configurations = TenantConfigurationRepository(session)

    async def effective_permissions(self, identity: IdentityContext) -> AgencyEntitlements:
        agency_id = identity.company_id or ""
        stored = await self.permissions.get_by_agency_id(agency_id) if agency_id else None
        is_agency = identity.is_agency()

        return AgencyEntitlements(
            agency_id=agency_id,
            agency_tier=stored.agency_tier if stored else "Tier 1",
            max_locations=self._location_limit(stored.agency_tier if stored else "Tier 1", stored),
            can_use_own_ai_key=is_agency or bool(stored and stored.can_use_own_ai_key),
            can_customize_branding=is_agency or bool(stored and stored.can_customize_branding),
        )

    @staticmethod
    def _location_limit(agency_tier: str, stored: AgencyPermission | None) -> int | None:
        tier_limit = settings.agency_tier_location_limits().get(agency_tier)
        if tier_limit is not None:
            return int(tier_limit)
        return stored.max_locations if stored else None

    async def list_licensed_locations(self, agency_id: str) -> list[AgencyLicensedLocation]:
        return await self.licenses.list_for_agency(agency_id)

    async def license_location(self, agency_id: str, location_id: str) -> AgencyLicensedLocation:
        stored = await self.permissions.lock_by_agency_id(agency_id)
        if stored is None:
            raise AgencyLicenseError("Agency permissions not found", status_code=404)

        limit = self._location_limit(stored.agency_tier, stored)
        current = await self.licenses.count_active(agency_id)
        if limit is not None and current >= limit:
            raise AgencyLicenseError(
                f"{stored.agency_tier} agencies are limited to {limit} licensed locations",
                status_code=400,
            )

        if not await self.configurations.list_by_location(location_id):
            raise AgencyLicenseError("Location not found in configurations", status_code=404)

        try:
            license_row = await self.licenses.create(
                agency_id=agency_id,
                location_id=location_id,
                is_active=True,
            )
        except IntegrityError as exc:
            await self.session.rollback()
            raise AgencyLicenseError("Location is already licensed", status_code=409) from exc

        await self.session.commit()
        logger.info("Agency %s licensed location %s", agency_id, location_id)
        return license_row

    async def set_license_active(self, agency_id: str, location_id: str, is_active: bool) -> AgencyLicensedLocation:
        license_row = await self.licenses.get_by_location(location_id)
        if license_row is None or license_row.agency_id != agency_id:
            raise AgencyLicenseError("Licensed location not found", status_code=404)

        if is_active and not license_row.is_active:
            stored = await self.permissions.lock_by_agency_id(agency_id)
            limit = self._location_limit(stored.agency_tier, stored) if stored else None
            if limit is not None and await self.licenses.count_active(agency_id) >= limit:
                raise AgencyLicenseError(
                    f"{stored.agency_tier} agencies are limited to {limit} licensed locations",
                    status_code=400,
                )

        updated = await self.licenses.update(license_row.id, is_active=is_active)
        await self.session.commit()
        return updated or license_row
