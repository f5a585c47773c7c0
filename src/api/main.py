from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.routes.agency import router as agency_router
from src.api.routes.billing import router as billing_router
from src.api.routes.configuration import router as configuration_router
from src.core.errors import (
    AgencyLicenseError,
    ConfigurationNotFoundError,
    IdentityMissingError,
    InvalidPlanCodeError,
    StorageConflictError,
)

app = FastAPI(title="CRM Data Extractor Billing")
app.include_router(configuration_router, prefix="/api/v1")
app.include_router(billing_router, prefix="/api/v1")
app.include_router(agency_router, prefix="/api/v1")


@app.exception_handler(IdentityMissingError)
async def identity_missing_handler(request: Request, exc: IdentityMissingError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)})


@app.exception_handler(ConfigurationNotFoundError)
async def configuration_not_found_handler(request: Request, exc: ConfigurationNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": "App is not installed for this location"},
    )


@app.exception_handler(InvalidPlanCodeError)
async def invalid_plan_handler(request: Request, exc: InvalidPlanCodeError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(AgencyLicenseError)
async def agency_license_handler(request: Request, exc: AgencyLicenseError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(StorageConflictError)
async def storage_conflict_handler(request: Request, exc: StorageConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Usage could not be recorded, retry shortly"},
    )


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
