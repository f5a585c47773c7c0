"""seed subscription plans and model pricing

Revision ID: 20261018_01
Revises: 20261018_00
Create Date: 2026-10-18 09:40:00

"""
from __future__ import annotations

from uuid import uuid4

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261018_01"
down_revision = "20261018_00"
branch_labels = None
depends_on = None

# code, name, monthly, annual, max_users, included, daily_cap, overage, own_key, white_label,
# call rate, pkg1 minutes, pkg1 price, pkg2 minutes, pkg2 price
PLANS = [
    ("free", "Free", 0, 0, 1, 100, 10, 0.01, False, False, 0.50, 0, 0, 0, 0),
    ("starter", "Starter", 29, 290, 3, 1000, 50, 0.008, False, False, 0.35, 100, 25, 500, 100),
    ("professional", "Professional", 99, 990, 10, 5000, 200, 0.005, True, False, 0.25, 500, 100, 2000, 350),
    ("business", "Business", 299, 2990, 50, 25000, 1000, 0.003, True, True, 0.20, 2000, 350, 10000, 1500),
    ("agency", "Agency", 499, 4990, None, None, None, 0, True, True, 0.15, 0, 0, 0, 0),
    ("agency_pro", "Agency Pro", 999, 9990, None, None, None, 0, True, True, 0.10, 0, 0, 0, 0),
]

MODEL_PRICES = [
    ("gpt-4.1", 2.00, 8.00),
    ("gpt-4.1-mini", 0.40, 1.60),
    ("gpt-4.1-nano", 0.10, 0.40),
    ("gpt-4o", 2.50, 10.00),
    ("gpt-4o-mini", 0.15, 0.60),
    ("o1", 15.00, 60.00),
    ("o1-mini", 1.10, 4.40),
    ("o3", 2.00, 8.00),
    ("o3-mini", 1.10, 4.40),
    ("o4-mini", 1.10, 4.40),
]

plans_table = sa.table(
    "subscription_plans",
    sa.column("id", postgresql.UUID(as_uuid=True)),
    sa.column("code", sa.String),
    sa.column("name", sa.String),
    sa.column("price_monthly", sa.Numeric),
    sa.column("price_annual", sa.Numeric),
    sa.column("max_users", sa.Integer),
    sa.column("messages_included", sa.Integer),
    sa.column("daily_cap_messages", sa.Integer),
    sa.column("overage_price", sa.Numeric),
    sa.column("can_use_own_ai_key", sa.Boolean),
    sa.column("can_white_label", sa.Boolean),
    sa.column("call_extraction_rate_per_minute", sa.Numeric),
    sa.column("call_package_1_minutes", sa.Integer),
    sa.column("call_package_1_price", sa.Numeric),
    sa.column("call_package_2_minutes", sa.Integer),
    sa.column("call_package_2_price", sa.Numeric),
)

pricing_table = sa.table(
    "ai_model_pricing",
    sa.column("id", postgresql.UUID(as_uuid=True)),
    sa.column("model_id", sa.String),
    sa.column("input_price_per_million", sa.Numeric),
    sa.column("output_price_per_million", sa.Numeric),
)


def upgrade() -> None:
    op.bulk_insert(
        plans_table,
        [
            {
                "id": uuid4(),
                "code": code,
                "name": name,
                "price_monthly": monthly,
                "price_annual": annual,
                "max_users": max_users,
                "messages_included": included,
                "daily_cap_messages": daily_cap,
                "overage_price": overage,
                "can_use_own_ai_key": own_key,
                "can_white_label": white_label,
                "call_extraction_rate_per_minute": call_rate,
                "call_package_1_minutes": pkg1_minutes,
                "call_package_1_price": pkg1_price,
                "call_package_2_minutes": pkg2_minutes,
                "call_package_2_price": pkg2_price,
            }
            for (
                code,
                name,
                monthly,
                annual,
                max_users,
                included,
                daily_cap,
                overage,
                own_key,
                white_label,
                call_rate,
                pkg1_minutes,
                pkg1_price,
                pkg2_minutes,
                pkg2_price,
            ) in PLANS
        ],
    )
    op.bulk_insert(
        pricing_table,
        [
            {
                "id": uuid4(),
                "model_id": model_id,
                "input_price_per_million": input_price,
                "output_price_per_million": output_price,
            }
            for model_id, input_price, output_price in MODEL_PRICES
        ],
    )


def downgrade() -> None:
    op.execute(
        pricing_table.delete().where(pricing_table.c.model_id.in_([row[0] for row in MODEL_PRICES]))
    )
    op.execute(plans_table.delete().where(plans_table.c.code.in_([row[0] for row in PLANS])))
