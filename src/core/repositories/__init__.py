from src.core.repositories.agencies import AgencyLicensedLocationRepository, AgencyPermissionRepository
from src.core.repositories.base import Repository
from src.core.repositories.configurations import TenantConfigurationRepository
from src.core.repositories.plans import LocationSubscriptionRepository, SubscriptionPlanRepository
from src.core.repositories.pricing import AiModelPricingRepository
from src.core.repositories.usage import UsageRecordRepository

__all__ = [
    "Repository",
    "TenantConfigurationRepository",
    "SubscriptionPlanRepository",
    "LocationSubscriptionRepository",
    "UsageRecordRepository",
    "AiModelPricingRepository",
    "AgencyPermissionRepository",
    "AgencyLicensedLocationRepository",
]
