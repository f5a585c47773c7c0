from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import TimestampedBase


class SubscriptionPlan(TimestampedBase):
    __tablename__ = "subscription_plans"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    price_monthly: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    price_annual: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    # NULL quota columns mean unlimited.
    max_users: Mapped[int | None] = mapped_column(nullable=True)
    messages_included: Mapped[int | None] = mapped_column(nullable=True)
    daily_cap_messages: Mapped[int | None] = mapped_column(nullable=True)

    overage_price: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=Decimal("0"))
    can_use_own_ai_key: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_white_label: Mapped[bool] = mapped_column(nullable=False, default=False)

    call_extraction_rate_per_minute: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), nullable=False, default=Decimal("0")
    )
    call_package_1_minutes: Mapped[int] = mapped_column(nullable=False, default=0)
    call_package_1_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    call_package_2_minutes: Mapped[int] = mapped_column(nullable=False, default=0)
    call_package_2_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
