"""create metering schema

Revision ID: 20261018_00
Revises: 
Create Date: 2026-10-18 09:10:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261018_00"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "tenant_configurations",
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("location_id", sa.String(length=255), nullable=False),
        sa.Column("company_id", sa.String(length=255), nullable=True),
        sa.Column("user_type", sa.String(length=20), nullable=False, server_default="location"),
        sa.Column("access_token_encrypted", sa.String(length=4096), nullable=True),
        sa.Column("refresh_token_encrypted", sa.String(length=4096), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("business_email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenant_configurations_user_id", "tenant_configurations", ["user_id"], unique=False)
    op.create_index("ix_tenant_configurations_location_id", "tenant_configurations", ["location_id"], unique=False)
    op.create_index("ix_tenant_configurations_company_id", "tenant_configurations", ["company_id"], unique=False)
    op.create_index(
        "uq_tenant_configurations_active_location",
        "tenant_configurations",
        ["location_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "subscription_plans",
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("price_monthly", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("price_annual", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("max_users", sa.Integer(), nullable=True),
        sa.Column("messages_included", sa.Integer(), nullable=True),
        sa.Column("daily_cap_messages", sa.Integer(), nullable=True),
        sa.Column("overage_price", sa.Numeric(10, 4), nullable=False, server_default="0"),
        sa.Column("can_use_own_ai_key", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_white_label", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("call_extraction_rate_per_minute", sa.Numeric(10, 4), nullable=False, server_default="0"),
        sa.Column("call_package_1_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("call_package_1_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("call_package_2_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("call_package_2_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscription_plans_code", "subscription_plans", ["code"], unique=True)

    op.create_table(
        "location_subscriptions",
        sa.Column("location_id", sa.String(length=255), nullable=False),
        sa.Column("plan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payment_status", sa.String(length=30), nullable=False, server_default="active"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["plan_id"], ["subscription_plans.id"]),
    )
    op.create_index("ix_location_subscriptions_location_id", "location_subscriptions", ["location_id"], unique=True)

    op.create_table(
        "usage_records",
        sa.Column("location_id", sa.String(length=255), nullable=False),
        sa.Column("billing_period", sa.String(length=7), nullable=False),
        sa.Column("messages_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_messages_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_period", sa.Date(), nullable=True),
        sa.Column("tokens_used", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("cost_estimate", sa.Numeric(14, 6), nullable=False, server_default="0"),
        sa.Column("platform_cost_estimate", sa.Numeric(14, 6), nullable=False, server_default="0"),
        sa.Column("call_minutes_used_monthly", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("daily_call_minutes_used", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("call_cost_estimate", sa.Numeric(14, 6), nullable=False, server_default="0"),
        sa.Column("custom_key_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("location_id", "billing_period", name="uq_usage_records_location_period"),
    )
    op.create_index("ix_usage_records_location_id", "usage_records", ["location_id"], unique=False)

    op.create_table(
        "agency_permissions",
        sa.Column("agency_id", sa.String(length=255), nullable=False),
        sa.Column("agency_tier", sa.String(length=30), nullable=False, server_default="Tier 1"),
        sa.Column("max_locations", sa.Integer(), nullable=True),
        sa.Column("max_extractions_per_month", sa.Integer(), nullable=True),
        sa.Column("can_use_own_ai_key", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_customize_branding", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_agency_permissions_agency_id", "agency_permissions", ["agency_id"], unique=True)

    op.create_table(
        "agency_licensed_locations",
        sa.Column("agency_id", sa.String(length=255), nullable=False),
        sa.Column("location_id", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("licensed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("location_id", name="uq_agency_licensed_locations_location"),
    )
    op.create_index("ix_agency_licensed_locations_agency_id", "agency_licensed_locations", ["agency_id"], unique=False)

    op.create_table(
        "ai_model_pricing",
        sa.Column("model_id", sa.String(length=100), nullable=False),
        sa.Column("input_price_per_million", sa.Numeric(10, 3), nullable=False),
        sa.Column("output_price_per_million", sa.Numeric(10, 3), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_model_pricing_model_id", "ai_model_pricing", ["model_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_ai_model_pricing_model_id", table_name="ai_model_pricing")
    op.drop_table("ai_model_pricing")

    op.drop_index("ix_agency_licensed_locations_agency_id", table_name="agency_licensed_locations")
    op.drop_table("agency_licensed_locations")

    op.drop_index("ix_agency_permissions_agency_id", table_name="agency_permissions")
    op.drop_table("agency_permissions")

    op.drop_index("ix_usage_records_location_id", table_name="usage_records")
    op.drop_table("usage_records")

    op.drop_index("ix_location_subscriptions_location_id", table_name="location_subscriptions")
    op.drop_table("location_subscriptions")

    op.drop_index("ix_subscription_plans_code", table_name="subscription_plans")
    op.drop_table("subscription_plans")

    op.drop_index("uq_tenant_configurations_active_location", table_name="tenant_configurations")
    op.drop_index("ix_tenant_configurations_company_id", table_name="tenant_configurations")
    op.drop_index("ix_tenant_configurations_location_id", table_name="tenant_configurations")
    op.drop_index("ix_tenant_configurations_user_id", table_name="tenant_configurations")
    op.drop_table("tenant_configurations")
