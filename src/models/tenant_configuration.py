from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import TimestampedBase


class TenantConfiguration(TimestampedBase):
    __tablename__ = "tenant_configurations"
    __table_args__ = (
        Index(
            "uq_tenant_configurations_active_location",
            "location_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    location_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    company_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False, default="location")

    access_token_encrypted: Mapped[str | None] = mapped_column(String(4096), nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(String(4096), nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
