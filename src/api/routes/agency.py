from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import IdentityContext, require_identity
from src.core.db import get_db_session
from src.core.entitlements import AgencyService
from src.models.agency import AgencyLicensedLocation
from src.schemas.agency import (
    AgencyPermissionsResponse,
    LicensedLocationResponse,
    LicensedLocationsResponse,
    LicenseLocationRequest,
    LicenseUpdateRequest,
)

router = APIRouter(prefix="/agency", tags=["agency"])


async def require_agency_identity(
    identity: IdentityContext = Depends(require_identity),
) -> IdentityContext:
    if not identity.is_agency() or not identity.company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Agency access required",
        )
    return identity


def _license(row: AgencyLicensedLocation) -> LicensedLocationResponse:
    return LicensedLocationResponse(
        location_id=row.location_id,
        is_active=row.is_active,
        licensed_at=row.licensed_at.isoformat(),
    )


@router.get("/permissions", response_model=AgencyPermissionsResponse)
async def get_permissions(
    identity: IdentityContext = Depends(require_identity),
    session: AsyncSession = Depends(get_db_session),
) -> AgencyPermissionsResponse:
    permissions = await AgencyService(session).effective_permissions(identity)
    return AgencyPermissionsResponse(
        agency_id=permissions.agency_id,
        agency_tier=permissions.agency_tier,
        max_locations=permissions.max_locations,
        can_use_own_ai_key=permissions.can_use_own_ai_key,
        can_customize_branding=permissions.can_customize_branding,
    )


@router.get("/licensed-locations", response_model=LicensedLocationsResponse)
async def list_licensed_locations(
    identity: IdentityContext = Depends(require_agency_identity),
    session: AsyncSession = Depends(get_db_session),
) -> LicensedLocationsResponse:
    service = AgencyService(session)
    rows = await service.list_licensed_locations(identity.company_id)
    permissions = await service.effective_permissions(identity)
    return LicensedLocationsResponse(
        licensed_locations=[_license(row) for row in rows],
        current_count=sum(1 for row in rows if row.is_active),
        max_locations=permissions.max_locations,
    )


@router.post(
    "/licensed-locations",
    response_model=LicensedLocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def license_location(
    payload: LicenseLocationRequest,
    identity: IdentityContext = Depends(require_agency_identity),
    session: AsyncSession = Depends(get_db_session),
) -> LicensedLocationResponse:
    row = await AgencyService(session).license_location(identity.company_id, payload.location_id)
    return _license(row)


@router.patch("/licensed-locations/{location_id}", response_model=LicensedLocationResponse)
async def update_licensed_location(
    location_id: str,
    payload: LicenseUpdateRequest,
    identity: IdentityContext = Depends(require_agency_identity),
    session: AsyncSession = Depends(get_db_session),
) -> LicensedLocationResponse:
    row = await AgencyService(session).set_license_active(identity.company_id, location_id, payload.is_active)
    return _license(row)
