from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from src.core.repositories.base import Repository
from src.models.tenant_configuration import TenantConfiguration


class TenantConfigurationRepository(Repository[TenantConfiguration]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=TenantConfiguration)

    def _active_select(self) -> Select[tuple[TenantConfiguration]]:
        return self._select().where(TenantConfiguration.is_active.is_(True))

    async def find_exact(self, user_id: str, location_id: str) -> TenantConfiguration | None:
        result = await self.session.execute(
            self._active_select()
            .where(TenantConfiguration.location_id == location_id)
            .where(TenantConfiguration.user_id == user_id)
            .order_by(TenantConfiguration.updated_at.desc(), TenantConfiguration.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_location(self, location_id: str) -> list[TenantConfiguration]:
        result = await self.session.execute(
            self._active_select()
            .where(TenantConfiguration.location_id == location_id)
            .order_by(TenantConfiguration.updated_at.desc(), TenantConfiguration.id)
        )
        return list(result.scalars().all())

    async def find_latest_by_user(self, user_id: str) -> TenantConfiguration | None:
        result = await self.session.execute(
            self._active_select()
            .where(TenantConfiguration.user_id == user_id)
            .order_by(TenantConfiguration.updated_at.desc(), TenantConfiguration.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def link_user(
        self,
        configuration_id: UUID,
        user_id: str,
        *,
        replace_owner: bool = False,
    ) -> TenantConfiguration | None:
        """Set ``user_id`` in one conditional UPDATE; returns None when the row has another owner."""
        stmt = (
            update(TenantConfiguration)
            .where(TenantConfiguration.id == configuration_id)
            .where(TenantConfiguration.is_active.is_(True))
            .values(user_id=user_id, updated_at=datetime.now(timezone.utc))
            .returning(TenantConfiguration)
            .execution_options(synchronize_session=False)
        )
        if not replace_owner:
            stmt = stmt.where(
                or_(
                    TenantConfiguration.user_id.is_(None),
                    TenantConfiguration.user_id == user_id,
                )
            )

        result = await self.session.execute(stmt, execution_options={"populate_existing": True})
        return result.scalar_one_or_none()
