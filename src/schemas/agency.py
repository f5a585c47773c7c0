from __future__ import annotations

from pydantic import BaseModel, Field


class AgencyPermissionsResponse(BaseModel):
    agency_id: str
    agency_tier: str
    max_locations: int | None
    can_use_own_ai_key: bool
    can_customize_branding: bool


class LicensedLocationResponse(BaseModel):
    location_id: str
    is_active: bool
    licensed_at: str


class LicensedLocationsResponse(BaseModel):
    licensed_locations: list[LicensedLocationResponse]
    current_count: int
    max_locations: int | None


class LicenseLocationRequest(BaseModel):
    location_id: str = Field(min_length=1, max_length=255)


class LicenseUpdateRequest(BaseModel):
    is_active: bool
