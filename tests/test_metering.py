from __future__ import annotations

import dataclasses
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from src.core.auth import IdentityContext
from src.core.metering import MeteringService
from src.core.plans import builtin_default_plan, synthesized_agency_plan
from src.core.pricing import CostCalculator
from src.core.usage import UsageDelta

LOCATION = IdentityContext(user_id="user_1", location_id="loc_1")
AGENCY = IdentityContext(user_id="user_1", location_id="loc_1", company_id="company_1", user_type="agency")


def _record(messages_used: int, call_minutes: str = "0") -> SimpleNamespace:
    return SimpleNamespace(messages_used=messages_used, call_minutes_used_monthly=Decimal(call_minutes))


def _service(plan, *records: object) -> MeteringService:  # noqa: ANN001
    plans = SimpleNamespace(resolve=AsyncMock(return_value=plan))
    ledger = SimpleNamespace(increment=AsyncMock(side_effect=list(records)))
    calculator = CostCalculator(Mock())
    calculator.pricing = SimpleNamespace(get_by_model_id=AsyncMock(return_value=None))
    return MeteringService(plans, ledger, calculator)


@pytest.mark.asyncio
async def test_failed_completion_is_not_recorded() -> None:
    service = _service(builtin_default_plan())

    result = await service.record_completion(
        LOCATION, model_id="gpt-4.1", input_tokens=100, output_tokens=100, success=False
    )

    assert result.recorded is False
    service.ledger.increment.assert_not_awaited()


@pytest.mark.asyncio
async def test_completion_within_quota_records_platform_cost_only() -> None:
    service = _service(builtin_default_plan(), _record(10))

    result = await service.record_completion(LOCATION, model_id="gpt-4.1", input_tokens=1_000_000, output_tokens=0)

    assert result.recorded is True
    assert result.platform_cost == Decimal("2.000000")
    assert result.customer_cost == Decimal("0")
    service.ledger.increment.assert_awaited_once()
    delta = service.ledger.increment.await_args.args[2]
    assert delta == UsageDelta(
        messages=1,
        tokens=1_000_000,
        platform_cost=Decimal("2.000000"),
        included_messages=500,
        overage_price=Decimal("0.01"),
    )


@pytest.mark.asyncio
async def test_completion_past_quota_adds_overage_cost() -> None:
    service = _service(builtin_default_plan(), _record(501))

    result = await service.record_completion(LOCATION, model_id="gpt-4o-mini", input_tokens=10, output_tokens=10)

    assert result.customer_cost == Decimal("0.010000")
    assert result.messages_used == 501
    service.ledger.increment.assert_awaited_once()
    delta = service.ledger.increment.await_args.args[2]
    assert delta.included_messages == 500
    assert delta.overage_price == Decimal("0.01")
    assert delta.cost == Decimal("0")


@pytest.mark.asyncio
async def test_custom_key_and_agency_completions_carry_no_customer_cost() -> None:
    custom_key = _service(builtin_default_plan(), _record(900))
    agency = _service(synthesized_agency_plan(), _record(900))

    keyed = await custom_key.record_completion(
        LOCATION, model_id="gpt-4.1", input_tokens=10, output_tokens=10, used_custom_key=True
    )
    agency_result = await agency.record_completion(AGENCY, model_id="gpt-4.1", input_tokens=10, output_tokens=10)

    assert keyed.customer_cost == Decimal("0")
    assert agency_result.customer_cost == Decimal("0")
    assert custom_key.ledger.increment.await_args.args[2].used_custom_key is True
    assert agency.ledger.increment.await_count == 1


@pytest.mark.asyncio
async def test_record_call_prices_minutes_at_plan_rate() -> None:
    plan = dataclasses.replace(builtin_default_plan(), call_extraction_rate_per_minute=Decimal("0.35"))
    service = _service(plan, _record(0, "12.5"))

    result = await service.record_call(LOCATION, minutes=Decimal("2.5"))

    assert result.platform_cost == Decimal("0.875000")
    assert result.customer_cost == Decimal("0.875000")
    assert result.call_minutes_used == Decimal("12.5")
    delta = service.ledger.increment.await_args.args[2]
    assert delta == UsageDelta(call_minutes=Decimal("2.5"), call_cost=Decimal("0.875000"))


@pytest.mark.asyncio
async def test_agency_call_has_no_customer_cost_and_failed_call_is_skipped() -> None:
    service = _service(synthesized_agency_plan(), _record(0, "3"))

    skipped = await service.record_call(AGENCY, minutes=Decimal("3"), success=False)
    recorded = await service.record_call(AGENCY, minutes=Decimal("3"))

    assert skipped.recorded is False
    assert recorded.customer_cost == Decimal("0")
    assert service.ledger.increment.await_count == 1


@pytest.mark.asyncio
async def test_plan_lookup_failure_writes_nothing() -> None:
    service = _service(builtin_default_plan(), _record(1))
    service.plans.resolve = AsyncMock(side_effect=RuntimeError("catalog unavailable"))

    with pytest.raises(RuntimeError):
        await service.record_completion(LOCATION, model_id="gpt-4.1", input_tokens=10, output_tokens=10)

    service.ledger.increment.assert_not_awaited()


class _Nested:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):  # noqa: ANN001
        return False


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


@pytest.mark.asyncio
async def test_failed_usage_write_commits_neither_counters_nor_overage(monkeypatch: pytest.MonkeyPatch) -> None:
    from sqlalchemy.dialects import postgresql
    from sqlalchemy.exc import DBAPIError

    from src.core.config import settings
    from src.core.errors import StorageConflictError
    from src.core.usage import UsageLedger

    monkeypatch.setattr(settings, "usage_upsert_max_attempts", 2)
    session = Mock()
    session.begin_nested = Mock(side_effect=lambda: _Nested())
    session.commit = AsyncMock()
    ledger = UsageLedger(session)
    ledger.records = SimpleNamespace(
        upsert_increment=AsyncMock(side_effect=DBAPIError("INSERT", {}, _PgError("40P01")))
    )
    calculator = CostCalculator(Mock())
    calculator.pricing = SimpleNamespace(get_by_model_id=AsyncMock(return_value=None))
    service = MeteringService(
        SimpleNamespace(resolve=AsyncMock(return_value=builtin_default_plan())), ledger, calculator
    )

    with pytest.raises(StorageConflictError):
        await service.record_completion(LOCATION, model_id="gpt-4o-mini", input_tokens=10, output_tokens=10)

    session.commit.assert_not_awaited()
    statements = [call.args[0] for call in ledger.records.upsert_increment.await_args_list]
    assert len(statements) == 2
    assert statements[1] is statements[0]
    compiled = str(statements[0].compile(dialect=postgresql.dialect()))
    assert "usage_records.messages_used" in compiled
    assert "greatest(" in compiled
