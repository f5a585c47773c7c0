from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import TimestampedBase


class AgencyPermission(TimestampedBase):
    __tablename__ = "agency_permissions"

    agency_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    agency_tier: Mapped[str] = mapped_column(String(30), nullable=False, default="Tier 1")
    max_locations: Mapped[int | None] = mapped_column(nullable=True)
    max_extractions_per_month: Mapped[int | None] = mapped_column(nullable=True)
    can_use_own_ai_key: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_customize_branding: Mapped[bool] = mapped_column(nullable=False, default=False)


class AgencyLicensedLocation(TimestampedBase):
    __tablename__ = "agency_licensed_locations"

    agency_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    licensed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
