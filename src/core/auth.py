from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

import requests
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.core.config import settings
from src.core.errors import IdentityMissingError

bearer_scheme = HTTPBearer(auto_error=False)

UserType = Literal["location", "agency"]


@dataclass(slots=True, frozen=True)
class IdentityContext:
    """Who is calling, as asserted by the signed SSO credential."""

    user_id: str | None
    location_id: str | None
    company_id: str | None = None
    user_type: UserType = "location"
    claims: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def get_user_id(self) -> str | None:
        return self.user_id

    def get_location_id(self) -> str | None:
        return self.location_id

    def get_company_id(self) -> str | None:
        return self.company_id

    def get_user_type(self) -> UserType:
        return self.user_type

    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def is_agency(self) -> bool:
        return self.user_type == "agency"

    def require_user_id(self) -> str:
        if not self.user_id:
            raise IdentityMissingError("Identity is missing a user id")
        return self.user_id

    def require_location_id(self) -> str:
        if not self.location_id:
            raise IdentityMissingError("Identity is missing a location id")
        return self.location_id


def _claim(claims: Mapping[str, Any], name: str) -> str | None:
    value = claims.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def identity_from_claims(claims: Mapping[str, Any]) -> IdentityContext:
    user_type = (_claim(claims, "ghl_user_type") or "location").lower()
    return IdentityContext(
        user_id=_claim(claims, "ghl_user_id") or _claim(claims, "sub"),
        location_id=_claim(claims, "ghl_location_id"),
        company_id=_claim(claims, "ghl_company_id"),
        user_type="agency" if user_type == "agency" else "location",
        claims=dict(claims),
    )


class JwksCache:
    def __init__(self, ttl_seconds: int = 300) -> None:
        self.ttl_seconds = ttl_seconds
        self._jwks: dict | None = None
        self._fetched_at = 0.0

    def get(self, url: str) -> dict:
        now = time.time()
        if self._jwks is None or (now - self._fetched_at) > self.ttl_seconds:
            response = requests.get(url, timeout=5)
            response.raise_for_status()
            self._jwks = response.json()
            self._fetched_at = now
        return self._jwks


jwks_cache = JwksCache()


def _get_signing_key(token: str) -> dict:
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication header",
        ) from exc

    kid = unverified_header.get("kid")
    if not kid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT is missing key id",
        )

    jwks = jwks_cache.get(settings.identity_jwks_url)
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No matching signing key found",
    )


def decode_identity_token(token: str) -> dict:
    if settings.identity_jwt_secret:
        key: str | dict = settings.identity_jwt_secret
        algorithms = ["HS256"]
    elif settings.identity_jwks_url:
        key = _get_signing_key(token)
        algorithms = ["RS256"]
    else:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Identity verification is not configured",
        )

    options = {
        "verify_aud": bool(settings.identity_audience),
        "verify_iss": bool(settings.identity_issuer),
    }
    try:
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=settings.identity_issuer or None,
            audience=settings.identity_audience or None,
            options=options,
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


async def require_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> IdentityContext:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credential is required",
        )

    identity = identity_from_claims(decode_identity_token(credentials.credentials))
    if not identity.is_authenticated():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing a user id claim",
        )
    return identity


async def require_location_identity(
    identity: IdentityContext = Depends(require_identity),
) -> IdentityContext:
    if not identity.location_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token is missing a location id claim",
        )
    return identity


def _is_super_admin(identity: IdentityContext) -> bool:
    if identity.user_id in settings.super_admin_user_ids():
        return True
    role = identity.claims.get("role")
    roles = identity.claims.get("roles") or []
    return role == "super_admin" or "super_admin" in roles


async def require_plan_admin(
    identity: IdentityContext = Depends(require_location_identity),
) -> IdentityContext:
    if identity.is_agency() or _is_super_admin(identity):
        return identity
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Agency or super admin access required",
    )
