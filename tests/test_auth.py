from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from jose import jwt

from src.core.auth import (
    IdentityContext,
    JwksCache,
    _get_signing_key,
    _is_super_admin,
    decode_identity_token,
    identity_from_claims,
    require_identity,
    require_location_identity,
    require_plan_admin,
)
from src.core.errors import IdentityMissingError


def _identity(**overrides: object) -> IdentityContext:
    values = {
        "user_id": "user_1",
        "location_id": "loc_1",
        "company_id": "company_1",
        "user_type": "location",
        "claims": {},
    }
    values.update(overrides)
    return IdentityContext(**values)


def test_identity_from_claims_reads_crm_claims() -> None:
    identity = identity_from_claims(
        {
            "ghl_user_id": "u1",
            "sub": "ignored",
            "ghl_location_id": "loc1",
            "ghl_company_id": "comp1",
            "ghl_user_type": "Agency",
        }
    )

    assert identity.get_user_id() == "u1"
    assert identity.get_location_id() == "loc1"
    assert identity.get_company_id() == "comp1"
    assert identity.get_user_type() == "agency"
    assert identity.is_authenticated() is True
    assert identity.is_agency() is True


def test_identity_from_claims_falls_back_to_sub_and_location_type() -> None:
    identity = identity_from_claims({"sub": "u2", "ghl_location_id": "loc2"})

    assert identity.user_id == "u2"
    assert identity.user_type == "location"
    assert identity.company_id is None


def test_identity_unknown_user_type_is_location() -> None:
    assert identity_from_claims({"sub": "u", "ghl_user_type": "admin"}).user_type == "location"


def test_identity_without_user_is_not_authenticated() -> None:
    identity = identity_from_claims({"ghl_location_id": "loc1", "sub": "  "})

    assert identity.is_authenticated() is False
    with pytest.raises(IdentityMissingError):
        identity.require_user_id()


def test_require_location_id_fails_closed() -> None:
    with pytest.raises(IdentityMissingError):
        _identity(location_id=None).require_location_id()


def test_decode_identity_token_hs256(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.settings, "identity_jwt_secret", "s3cret")
    monkeypatch.setattr(auth.settings, "identity_issuer", "")
    monkeypatch.setattr(auth.settings, "identity_audience", "")
    token = jwt.encode({"sub": "u1", "ghl_location_id": "loc1"}, "s3cret", algorithm="HS256")

    claims = decode_identity_token(token)
    assert claims["sub"] == "u1"


def test_decode_identity_token_rejects_bad_signature(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.settings, "identity_jwt_secret", "s3cret")
    token = jwt.encode({"sub": "u1"}, "other", algorithm="HS256")

    with pytest.raises(HTTPException) as exc:
        decode_identity_token(token)
    assert exc.value.status_code == 401


def test_decode_identity_token_requires_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.settings, "identity_jwt_secret", "")
    monkeypatch.setattr(auth.settings, "identity_jwks_url", "")

    with pytest.raises(HTTPException) as exc:
        decode_identity_token("token")
    assert exc.value.status_code == 500


def test_get_signing_key_missing_kid(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.jwt, "get_unverified_header", lambda token: {})
    with pytest.raises(HTTPException) as exc:
        _get_signing_key("token")
    assert exc.value.status_code == 401


def test_get_signing_key_matches_kid(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.jwt, "get_unverified_header", lambda token: {"kid": "k2"})
    monkeypatch.setattr(auth.jwks_cache, "get", lambda url: {"keys": [{"kid": "k1"}, {"kid": "k2", "n": "x"}]})

    assert _get_signing_key("token") == {"kid": "k2", "n": "x"}


def test_jwks_cache_reuses_response(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    calls = {"count": 0}

    def _get(url: str, timeout: int):  # noqa: ANN202
        calls["count"] += 1
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: {"keys": []})

    monkeypatch.setattr(auth.requests, "get", _get)
    cache = JwksCache(ttl_seconds=300)

    cache.get("https://issuer/jwks")
    cache.get("https://issuer/jwks")
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_require_identity_without_credentials() -> None:
    with pytest.raises(HTTPException) as exc:
        await require_identity(None)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_require_identity_without_user_claim(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth, "decode_identity_token", lambda token: {"ghl_location_id": "loc1"})
    credentials = SimpleNamespace(credentials="token")

    with pytest.raises(HTTPException) as exc:
        await require_identity(credentials)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_require_identity_builds_context(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(
        auth,
        "decode_identity_token",
        lambda token: {"ghl_user_id": "u1", "ghl_location_id": "loc1"},
    )
    identity = await require_identity(SimpleNamespace(credentials="token"))
    assert identity.user_id == "u1"
    assert identity.location_id == "loc1"


@pytest.mark.asyncio
async def test_require_location_identity_rejects_missing_location() -> None:
    with pytest.raises(HTTPException) as exc:
        await require_location_identity(_identity(location_id=None))
    assert exc.value.status_code == 400


def test_is_super_admin_by_user_id_and_role(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.settings, "super_admin_user_ids_csv", "boss, other")
    assert _is_super_admin(_identity(user_id="boss")) is True
    assert _is_super_admin(_identity(claims={"roles": ["member", "super_admin"]})) is True
    assert _is_super_admin(_identity(claims={"role": "member"})) is False


@pytest.mark.asyncio
async def test_require_plan_admin(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import auth

    monkeypatch.setattr(auth.settings, "super_admin_user_ids_csv", "")
    agency = _identity(user_type="agency")
    assert await require_plan_admin(agency) is agency

    with pytest.raises(HTTPException) as exc:
        await require_plan_admin(_identity())
    assert exc.value.status_code == 403
