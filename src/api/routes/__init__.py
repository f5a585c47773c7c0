from src.api.routes.agency import router as agency_router
from src.api.routes.billing import router as billing_router
from src.api.routes.configuration import router as configuration_router

__all__ = [
    "agency_router",
    "billing_router",
    "configuration_router",
]
