from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.repositories.base import Repository
from src.models.ai_model_pricing import AiModelPricing


class AiModelPricingRepository(Repository[AiModelPricing]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=AiModelPricing)

    async def get_by_model_id(self, model_id: str) -> AiModelPricing | None:
        result = await self.session.execute(
            self._select().where(AiModelPricing.model_id == model_id)
        )
        return result.scalar_one_or_none()
