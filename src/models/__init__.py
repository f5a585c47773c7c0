from src.models.agency import AgencyLicensedLocation, AgencyPermission
from src.models.ai_model_pricing import AiModelPricing
from src.models.base import Base, TimestampedBase
from src.models.location_subscription import LocationSubscription
from src.models.subscription_plan import SubscriptionPlan
from src.models.tenant_configuration import TenantConfiguration
from src.models.usage_record import UsageRecord

__all__ = [
    "Base",
    "TimestampedBase",
    "TenantConfiguration",
    "SubscriptionPlan",
    "LocationSubscription",
    "UsageRecord",
    "AgencyPermission",
    "AgencyLicensedLocation",
    "AiModelPricing",
]
