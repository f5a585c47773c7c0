from __future__ import annotations

import asyncio
import dataclasses
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DBAPIError

from src.core.config import settings
from src.core.errors import StorageConflictError
from src.core.plans import builtin_default_plan, synthesized_agency_plan
from src.core.repositories.usage import build_increment_statement
from src.core.usage import UsageDelta, UsageLedger, billing_period


class _Nested:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):  # noqa: ANN001
        return False


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


def _session() -> Mock:
    session = Mock()
    session.begin_nested = Mock(side_effect=lambda: _Nested())
    session.commit = AsyncMock()
    return session


def _record(**overrides: object) -> SimpleNamespace:
    values = {
        "location_id": "loc_1",
        "billing_period": "2026-10",
        "messages_used": 0,
        "daily_messages_used": 0,
        "daily_period": date(2026, 10, 18),
        "tokens_used": 0,
        "cost_estimate": Decimal("0"),
        "platform_cost_estimate": Decimal("0"),
        "call_minutes_used_monthly": Decimal("0"),
        "daily_call_minutes_used": Decimal("0"),
        "call_cost_estimate": Decimal("0"),
        "custom_key_used": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _ledger(session: Mock, record: object | None = None) -> UsageLedger:
    ledger = UsageLedger(session)
    ledger.records = SimpleNamespace(
        get_for_period=AsyncMock(return_value=record),
        ensure_period=AsyncMock(return_value=record),
        upsert_increment=AsyncMock(return_value=record),
        list_history=AsyncMock(return_value=[record] if record else []),
    )
    return ledger


def test_billing_period_is_utc_year_month() -> None:
    assert billing_period(datetime(2026, 10, 31, 23, 30, tzinfo=timezone.utc)) == "2026-10"
    assert billing_period(datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)) == "2026-01"


def test_usage_delta_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        UsageDelta(messages=-1)
    with pytest.raises(ValueError):
        UsageDelta(cost=Decimal("-0.01"))


def test_increment_statement_is_single_atomic_upsert() -> None:
    stmt = build_increment_statement(
        "loc_1",
        "2026-10",
        day=date(2026, 10, 18),
        messages=1,
        tokens=1200,
        platform_cost=Decimal("0.000900"),
        used_custom_key=True,
    )
    compiled = str(stmt.compile(dialect=postgresql.dialect()))

    assert "INSERT INTO usage_records" in compiled
    assert "ON CONFLICT (location_id, billing_period) DO UPDATE" in compiled
    assert "usage_records.messages_used + excluded.messages_used" in compiled
    assert "CASE WHEN" in compiled
    assert "usage_records.daily_period = excluded.daily_period" in compiled
    assert "usage_records.custom_key_used OR excluded.custom_key_used" in compiled
    assert "RETURNING" in compiled
    assert "SELECT" not in compiled


def test_increment_statement_charges_overage_in_the_same_upsert() -> None:
    stmt = build_increment_statement(
        "loc_1",
        "2026-10",
        day=date(2026, 10, 18),
        messages=3,
        included_messages=2,
        overage_price=Decimal("0.01"),
    )
    compiled = stmt.compile(dialect=postgresql.dialect())
    sql = str(compiled)

    assert "usage_records.cost_estimate +" in sql
    assert "greatest(" in sql
    # A fresh row is charged for the single message past the quota.
    assert compiled.params["cost_estimate"] == Decimal("0.01")


def test_increment_statement_without_quota_adds_plain_cost() -> None:
    stmt = build_increment_statement("loc_1", "2026-10", day=date(2026, 10, 18), messages=1)
    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "usage_records.cost_estimate + excluded.cost_estimate" in sql
    assert "greatest(" not in sql


def test_usage_delta_rejects_negative_overage_price() -> None:
    with pytest.raises(ValueError):
        UsageDelta(messages=1, included_messages=500, overage_price=Decimal("-1"))


@pytest.mark.asyncio
async def test_increment_commits_returned_row() -> None:
    session = _session()
    record = _record(messages_used=3)
    ledger = _ledger(session, record)

    result = await ledger.increment("loc_1", "2026-10", UsageDelta(messages=1))

    assert result is record
    ledger.records.upsert_increment.assert_awaited_once()
    ledger.records.get_for_period.assert_not_awaited()
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_increment_retries_deadlocks_then_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "usage_upsert_max_attempts", 3)
    session = _session()
    ledger = _ledger(session)
    ledger.records.upsert_increment = AsyncMock(
        side_effect=DBAPIError("INSERT", {}, _PgError("40P01"))
    )

    with pytest.raises(StorageConflictError):
        await ledger.increment("loc_1", "2026-10", UsageDelta(messages=1))

    assert ledger.records.upsert_increment.await_count == 3
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_serialization_failure_is_not_retried_in_the_same_transaction() -> None:
    session = _session()
    ledger = _ledger(session)
    ledger.records.upsert_increment = AsyncMock(
        side_effect=DBAPIError("INSERT", {}, _PgError("40001"))
    )

    with pytest.raises(StorageConflictError):
        await ledger.increment("loc_1", "2026-10", UsageDelta(messages=1))

    assert ledger.records.upsert_increment.await_count == 1
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_increment_recovers_after_deadlock() -> None:
    session = _session()
    record = _record(messages_used=1)
    ledger = _ledger(session)
    ledger.records.upsert_increment = AsyncMock(
        side_effect=[DBAPIError("INSERT", {}, _PgError("40P01")), record]
    )

    assert await ledger.increment("loc_1", "2026-10", UsageDelta(messages=1)) is record
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_increment_reraises_non_retryable_errors() -> None:
    session = _session()
    ledger = _ledger(session)
    ledger.records.upsert_increment = AsyncMock(
        side_effect=DBAPIError("INSERT", {}, _PgError("23502"))
    )

    with pytest.raises(DBAPIError):
        await ledger.increment("loc_1", "2026-10", UsageDelta(messages=1))

    assert ledger.records.upsert_increment.await_count == 1


@pytest.mark.asyncio
async def test_concurrent_increments_each_issue_one_upsert() -> None:
    session = _session()
    ledger = _ledger(session, _record())

    await asyncio.gather(
        *(ledger.increment("loc_1", "2026-10", UsageDelta(messages=1)) for _ in range(10))
    )

    assert ledger.records.upsert_increment.await_count == 10
    ledger.records.get_for_period.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_or_create_inserts_missing_period() -> None:
    session = _session()
    record = _record()
    ledger = _ledger(session, record)
    ledger.records.get_for_period = AsyncMock(return_value=None)

    assert await ledger.get_or_create("loc_1", "2026-10") is record
    ledger.records.ensure_period.assert_awaited_once_with("loc_1", "2026-10")
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_with_limits_marks_boundary_as_reached() -> None:
    ledger = _ledger(_session(), _record(messages_used=500))

    usage = await ledger.with_limits("loc_1", builtin_default_plan(), period="2026-10", today=date(2026, 10, 18))

    assert usage.messages_remaining == 0
    assert usage.usage_percentage == 100.0
    assert usage.limit_reached is True


@pytest.mark.asyncio
async def test_with_limits_never_limits_agency_plans() -> None:
    ledger = _ledger(_session(), _record(messages_used=500, daily_messages_used=400))

    usage = await ledger.with_limits("loc_1", synthesized_agency_plan(), period="2026-10", today=date(2026, 10, 18))

    assert usage.limit_reached is False
    assert usage.daily_limit_reached is False
    assert usage.messages_remaining is None
    assert usage.messages_included.as_optional() is None


@pytest.mark.asyncio
async def test_with_limits_without_record_starts_at_zero() -> None:
    ledger = _ledger(_session(), None)

    usage = await ledger.with_limits("loc_1", builtin_default_plan(), period="2026-10")

    assert usage.messages_used == 0
    assert usage.limit_reached is False
    assert usage.messages_remaining == 500
    assert usage.cost_estimate == Decimal("0")


@pytest.mark.asyncio
async def test_with_limits_ignores_daily_counters_from_previous_day() -> None:
    ledger = _ledger(_session(), _record(messages_used=120, daily_messages_used=100, daily_period=date(2026, 10, 17)))

    usage = await ledger.with_limits("loc_1", builtin_default_plan(), period="2026-10", today=date(2026, 10, 18))

    assert usage.daily_messages_used == 0
    assert usage.daily_limit_reached is False


@pytest.mark.asyncio
async def test_with_limits_daily_cap_reached_same_day() -> None:
    ledger = _ledger(_session(), _record(messages_used=120, daily_messages_used=100))

    usage = await ledger.with_limits("loc_1", builtin_default_plan(), period="2026-10", today=date(2026, 10, 18))

    assert usage.daily_limit_reached is True
    assert usage.limit_reached is False


@pytest.mark.asyncio
async def test_zero_included_plan_reports_zero_percentage() -> None:
    from src.core.quota import Bounded

    plan = dataclasses.replace(builtin_default_plan(), messages_included=Bounded(0))
    ledger = _ledger(_session(), _record(messages_used=5))

    usage = await ledger.with_limits("loc_1", plan, period="2026-10")

    assert usage.usage_percentage == 0.0
    assert usage.limit_reached is True
