from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import TimestampedBase


class AiModelPricing(TimestampedBase):
    __tablename__ = "ai_model_pricing"

    model_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    input_price_per_million: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    output_price_per_million: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
