from src.schemas.agency import (
    AgencyPermissionsResponse,
    LicensedLocationResponse,
    LicensedLocationsResponse,
    LicenseLocationRequest,
    LicenseUpdateRequest,
)
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
from src.schemas.configuration import ConfigurationResponse, TokenStatusResponse

__all__ = [
    "PlanResponse",
    "EffectivePlanResponse",
    "PlanChangeRequest",
    "UsageResponse",
    "UsagePeriodResponse",
    "EntitlementDecisionResponse",
    "CompletionUsageRequest",
    "CallUsageRequest",
    "MeteringResponse",
    "ConfigurationResponse",
    "TokenStatusResponse",
    "AgencyPermissionsResponse",
    "LicensedLocationResponse",
    "LicensedLocationsResponse",
    "LicenseLocationRequest",
    "LicenseUpdateRequest",
]
