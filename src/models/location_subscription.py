from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import TimestampedBase
from src.models.subscription_plan import SubscriptionPlan


class LocationSubscription(TimestampedBase):
    __tablename__ = "location_subscriptions"

    location_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    plan_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    payment_status: Mapped[str] = mapped_column(String(30), nullable=False, default="active")

    plan: Mapped[SubscriptionPlan] = relationship(lazy="joined")
