from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.repositories.base import Repository
from src.models.agency import AgencyLicensedLocation, AgencyPermission


class AgencyPermissionRepository(Repository[AgencyPermission]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=AgencyPermission)

    async def get_by_agency_id(self, agency_id: str) -> AgencyPermission | None:
        result = await self.session.execute(
            self._select().where(AgencyPermission.agency_id == agency_id)
        )
        return result.scalar_one_or_none()

    async def lock_by_agency_id(self, agency_id: str) -> AgencyPermission | None:
        """Row-lock the agency so licence count checks serialize per agency."""
        result = await self.session.execute(
            self._select().where(AgencyPermission.agency_id == agency_id).with_for_update()
        )
        return result.scalar_one_or_none()


class AgencyLicensedLocationRepository(Repository[AgencyLicensedLocation]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=AgencyLicensedLocation)

    async def list_for_agency(self, agency_id: str) -> list[AgencyLicensedLocation]:
        result = await self.session.execute(
            self._select()
            .where(AgencyLicensedLocation.agency_id == agency_id)
            .order_by(AgencyLicensedLocation.licensed_at.desc())
        )
        return list(result.scalars().all())

    async def count_active(self, agency_id: str) -> int:
        return int(
            await self.session.scalar(
                select(func.count(AgencyLicensedLocation.id)).where(
                    AgencyLicensedLocation.agency_id == agency_id,
                    AgencyLicensedLocation.is_active.is_(True),
                )
            )
            or 0
        )

    async def get_by_location(self, location_id: str) -> AgencyLicensedLocation | None:
        result = await self.session.execute(
            self._select().where(AgencyLicensedLocation.location_id == location_id)
        )
        return result.scalar_one_or_none()
