from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import IdentityContext, require_identity
from src.core.configuration import ConfigurationResolver, token_status
from src.core.db import get_db_session
from src.core.security.crypto import get_security_cipher
from src.schemas.configuration import ConfigurationResponse, TokenStatusResponse

router = APIRouter(prefix="/configuration", tags=["configuration"])


@router.get("", response_model=ConfigurationResponse)
async def get_configuration(
    identity: IdentityContext = Depends(require_identity),
    session: AsyncSession = Depends(get_db_session),
) -> ConfigurationResponse:
    resolver = ConfigurationResolver(session)
    configuration = await resolver.resolve_and_link(identity.require_user_id(), identity.location_id)
    status_value = token_status(configuration, get_security_cipher())

    return ConfigurationResponse(
        id=str(configuration.id),
        location_id=configuration.location_id,
        user_id=configuration.user_id,
        company_id=configuration.company_id,
        user_type=configuration.user_type,
        business_name=configuration.business_name,
        token_expires_at=(
            configuration.token_expires_at.isoformat() if configuration.token_expires_at else None
        ),
        token_status=TokenStatusResponse(
            status=status_value.status,
            is_valid=status_value.is_valid,
            message=status_value.message,
            severity=status_value.severity,
        ),
    )
