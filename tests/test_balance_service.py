"""Tests for leave balance periods, accrual and adjustments."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from hr_engine.errors import ConflictError, NotFoundError, ValidationError
from hr_engine.models import LeavePolicy
from hr_engine.services.balance_service import BalanceService, accrual_for_period


def assert_identity(balance):
    assert balance.closing == balance.opening + balance.accrued - balance.taken + balance.adjusted


class TestAccrualRules:
    def test_fixed_amount_per_period(self):
        rule = {"type": "fixed", "amount": 25}
        assert accrual_for_period(rule, date(2025, 1, 1), date(2025, 12, 31)) == Decimal("25.00")

    def test_monthly_amount_counts_months_touched(self):
        rule = {"type": "monthly", "amount": "1.5"}
        # Jan 15 .. Mar 10 touches three months
        assert accrual_for_period(rule, date(2025, 1, 15), date(2025, 3, 10)) == Decimal("4.50")

    def test_monthly_across_year_boundary(self):
        rule = {"type": "monthly", "amount": 2}
        assert accrual_for_period(rule, date(2024, 11, 1), date(2025, 2, 28)) == Decimal("8.00")

    def test_empty_rule_accrues_nothing(self):
        assert accrual_for_period({}, date(2025, 1, 1), date(2025, 12, 31)) == Decimal("0")
        assert accrual_for_period({"type": "none"}, date(2025, 1, 1), date(2025, 1, 31)) == 0

    def test_invalid_rules(self):
        with pytest.raises(ValidationError):
            accrual_for_period({"type": "weekly", "amount": 1}, date(2025, 1, 1), date(2025, 1, 31))
        with pytest.raises(ValidationError):
            accrual_for_period({"type": "fixed", "amount": -3}, date(2025, 1, 1), date(2025, 1, 31))
        with pytest.raises(ValidationError):
            accrual_for_period({"type": "fixed", "amount": "lots"}, date(2025, 1, 1), date(2025, 1, 31))


class TestBalanceService:
    async def test_summary_without_balances_is_not_configured(self, session, new_hire):
        summary = await BalanceService(session).summary(new_hire.employee_id)

        assert summary.configured is False
        assert summary.balances == []

    async def test_summary_unknown_employee(self, session):
        with pytest.raises(NotFoundError):
            await BalanceService(session).summary(uuid4())

    async def test_summary_returns_rows(self, session, employee, balance):
        summary = await BalanceService(session).summary(employee.employee_id)

        assert summary.configured is True
        assert [b.leave_balance_id for b in summary.balances] == [balance.leave_balance_id]

    async def test_find_covering_uses_period_dates(self, session, employee, annual_policy, balance):
        service = BalanceService(session)

        found = await service.find_covering(
            employee.employee_id, annual_policy.leave_policy_id, date(2025, 6, 1)
        )
        assert found is not None and found.leave_balance_id == balance.leave_balance_id

        assert (
            await service.find_covering(
                employee.employee_id, annual_policy.leave_policy_id, date(2026, 1, 2)
            )
            is None
        )

    async def test_adjust_keeps_identity(self, session, balance):
        service = BalanceService(session)

        adjusted = await service.adjust(balance.leave_balance_id, Decimal("2.5"), "bonus day")

        assert adjusted.adjusted == Decimal("2.50")
        assert adjusted.closing == Decimal("22.50")
        assert_identity(adjusted)

        adjusted = await service.adjust(balance.leave_balance_id, Decimal("-4"))
        assert adjusted.closing == Decimal("18.50")
        assert_identity(adjusted)

    async def test_adjust_by_zero_rejected(self, session, balance):
        with pytest.raises(ValidationError):
            await BalanceService(session).adjust(balance.leave_balance_id, Decimal("0"))

    async def test_open_first_period(self, session, new_hire, annual_policy):
        balance = await BalanceService(session).open_period(
            new_hire.employee_id,
            annual_policy.leave_policy_id,
            date(2025, 1, 1),
            date(2025, 12, 31),
        )

        assert balance.opening == Decimal("0")
        assert balance.accrued == Decimal("25.00")
        assert balance.closing == Decimal("25.00")
        assert_identity(balance)

    async def test_open_period_caps_carry_over(self, session, employee, annual_policy, balance):
        # Previous closing is 20; the policy carries over at most 5
        nxt = await BalanceService(session).open_period(
            employee.employee_id,
            annual_policy.leave_policy_id,
            date(2026, 1, 1),
            date(2026, 12, 31),
        )

        assert nxt.opening == Decimal("5.00")
        assert nxt.accrued == Decimal("25.00")
        assert nxt.closing == Decimal("30.00")
        assert_identity(nxt)

    async def test_open_period_negative_closing_carries_nothing(
        self, session, employee, annual_policy, balance
    ):
        service = BalanceService(session)
        await service.adjust(balance.leave_balance_id, Decimal("-30"))

        nxt = await service.open_period(
            employee.employee_id,
            annual_policy.leave_policy_id,
            date(2026, 1, 1),
            date(2026, 12, 31),
        )
        assert nxt.opening == Decimal("0")

    async def test_overlapping_period_conflicts(self, session, employee, annual_policy, balance):
        with pytest.raises(ConflictError):
            await BalanceService(session).open_period(
                employee.employee_id,
                annual_policy.leave_policy_id,
                date(2025, 12, 1),
                date(2026, 11, 30),
            )

    async def test_policy_from_other_company_not_found(
        self, session, employee, other_company
    ):
        foreign = LeavePolicy(
            company_id=other_company.company_id, code="SICK", name="Sick", unit="DAYS"
        )
        session.add(foreign)
        await session.flush()

        with pytest.raises(NotFoundError):
            await BalanceService(session).open_period(
                employee.employee_id, foreign.leave_policy_id, date(2025, 1, 1), date(2025, 12, 31)
            )
