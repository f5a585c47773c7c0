from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ConfigurationNotFoundError
from src.core.repositories.configurations import TenantConfigurationRepository
from src.core.security.crypto import EncryptionError, SecurityCipher
from src.models.tenant_configuration import TenantConfiguration

logger = logging.getLogger(__name__)

MatchStrategy = Literal["exact", "location", "user"]


@dataclass(slots=True)
class ConfigurationMatch:
    configuration: TenantConfiguration
    strategy: MatchStrategy

    def needs_link(self, user_id: str) -> bool:
        return self.strategy == "location" and self.configuration.user_id != user_id


class ConfigurationResolver:
    """Finds the configuration that owns a location's CRM credentials.

    Strategies run in order and stop at the first hit:

    1. exact: active row for this location and this user.
    2. location: most recently updated active row for the location, whether
       linked to a user or still pending a link.
    3. user: most recently updated active row for the user.

    ``resolve`` never writes. ``link`` is the explicit, idempotent write that
    binds a pending row to the caller.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.configurations = TenantConfigurationRepository(session)

    async def resolve(self, user_id: str | None, location_id: str | None) -> ConfigurationMatch:
        if user_id and location_id:
            exact = await self.configurations.find_exact(user_id, location_id)
            if exact is not None:
                return ConfigurationMatch(configuration=exact, strategy="exact")

        if location_id:
            candidates = await self.configurations.list_by_location(location_id)
            if candidates:
                return ConfigurationMatch(configuration=candidates[0], strategy="location")

        if user_id:
            by_user = await self.configurations.find_latest_by_user(user_id)
            if by_user is not None:
                return ConfigurationMatch(configuration=by_user, strategy="user")

        raise ConfigurationNotFoundError(user_id, location_id)

    async def link(
        self,
        configuration: TenantConfiguration,
        user_id: str,
        *,
        reauthorized: bool = False,
    ) -> TenantConfiguration:
        if configuration.user_id == user_id:
            return configuration

        if configuration.user_id is not None and not reauthorized:
            logger.info(
                "Configuration %s is owned by another user; leaving owner unchanged",
                configuration.id,
            )
            return configuration

        linked = await self.configurations.link_user(
            configuration.id,
            user_id,
            replace_owner=reauthorized,
        )
        if linked is None:
            # Another request linked a different owner first.
            logger.info("Configuration %s was linked concurrently; keeping stored owner", configuration.id)
            await self.session.refresh(configuration)
            return configuration

        await self.session.commit()
        logger.info("Linked configuration %s to user %s", linked.id, user_id)
        return linked

    async def resolve_and_link(
        self,
        user_id: str,
        location_id: str | None,
        *,
        reauthorized: bool = False,
    ) -> TenantConfiguration:
        match = await self.resolve(user_id, location_id)
        if not match.needs_link(user_id):
            return match.configuration
        return await self.link(match.configuration, user_id, reauthorized=reauthorized)


TokenStatusCode = Literal[
    "missing_config",
    "missing_access_token",
    "missing_refresh_token",
    "undecryptable",
    "dev_tokens",
    "expired",
    "expiring_soon",
    "valid",
]


@dataclass(slots=True, frozen=True)
class TokenStatus:
    status: TokenStatusCode
    is_valid: bool
    message: str
    severity: Literal["error", "warning", "info", "success"]


def token_status(
    configuration: TenantConfiguration | None,
    cipher: SecurityCipher,
    *,
    now: datetime | None = None,
) -> TokenStatus:
    if configuration is None:
        return TokenStatus("missing_config", False, "No configuration found", "error")
    if not configuration.access_token_encrypted:
        return TokenStatus(
            "missing_access_token", False, "Access token is missing. Please reinstall the app.", "error"
        )
    if not configuration.refresh_token_encrypted:
        return TokenStatus(
            "missing_refresh_token", False, "Refresh token is missing. Please reinstall the app.", "error"
        )

    try:
        access_token = cipher.decrypt(configuration.access_token_encrypted)
        refresh_token = cipher.decrypt(configuration.refresh_token_encrypted)
    except EncryptionError:
        return TokenStatus("undecryptable", False, "Stored credentials could not be decrypted", "error")

    if access_token.startswith("dev-") or refresh_token.startswith("dev-"):
        return TokenStatus(
            "dev_tokens",
            False,
            "Development tokens detected. Please reinstall the app to get real CRM tokens.",
            "error",
        )

    if configuration.token_expires_at is not None:
        current = now or datetime.now(timezone.utc)
        remaining = configuration.token_expires_at - current
        if remaining < timedelta(0):
            return TokenStatus(
                "expired",
                False,
                "Access token has expired. It will be refreshed automatically.",
                "warning",
            )
        if remaining < timedelta(hours=24):
            hours = round(remaining.total_seconds() / 3600)
            return TokenStatus("expiring_soon", True, f"Access token expires in {hours} hours.", "info")

    return TokenStatus("valid", True, "CRM access tokens are valid and ready for use.", "success")
