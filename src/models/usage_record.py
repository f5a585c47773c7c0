from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import TimestampedBase


class UsageRecord(TimestampedBase):
    __tablename__ = "usage_records"
    __table_args__ = (
        UniqueConstraint("location_id", "billing_period", name="uq_usage_records_location_period"),
    )

    location_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    billing_period: Mapped[str] = mapped_column(String(7), nullable=False)

    messages_used: Mapped[int] = mapped_column(nullable=False, default=0)
    daily_messages_used: Mapped[int] = mapped_column(nullable=False, default=0)
    daily_period: Mapped[date | None] = mapped_column(Date, nullable=True)
    tokens_used: Mapped[int] = mapped_column(nullable=False, default=0)
    cost_estimate: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False, default=Decimal("0"))
    platform_cost_estimate: Mapped[Decimal] = mapped_column(
        Numeric(14, 6), nullable=False, default=Decimal("0")
    )
    call_minutes_used_monthly: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    daily_call_minutes_used: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    call_cost_estimate: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False, default=Decimal("0"))
    custom_key_used: Mapped[bool] = mapped_column(nullable=False, default=False)
