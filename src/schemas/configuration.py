from __future__ import annotations

from pydantic import BaseModel


class TokenStatusResponse(BaseModel):
    status: str
    is_valid: bool
    message: str
    severity: str


class ConfigurationResponse(BaseModel):
    id: str
    location_id: str
    user_id: str | None
    company_id: str | None
    user_type: str
    business_name: str | None = None
    token_expires_at: str | None = None
    token_status: TokenStatusResponse
