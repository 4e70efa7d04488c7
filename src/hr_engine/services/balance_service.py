"""Leave balance ledger service.

Owns every write to ``LeaveBalance``. Each mutation recomputes ``closing``
so that ``closing = opening + accrued - taken + adjusted`` holds afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.errors import ConflictError, NotFoundError, ValidationError
from hr_engine.models import Employee, LeaveBalance, LeavePolicy

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class BalanceSummary:
    """Balance rows for one employee.

    ``configured`` is False when the employee has no balance rows at all;
    callers must show "no balance configured" rather than zeros.
    """

    employee_id: UUID
    balances: list[LeaveBalance]

    @property
    def configured(self) -> bool:
        return bool(self.balances)


def recompute_closing(balance: LeaveBalance) -> Decimal:
    """Recompute and store the closing amount from the ledger components."""
    balance.closing = (
        balance.opening + balance.accrued - balance.taken + balance.adjusted
    ).quantize(CENTS)
    return balance.closing


ACCRUAL_RULE_TYPES = ("fixed", "monthly", "none")


def validate_accrual_rule(rule: Any) -> dict[str, Any]:
    """Check a policy accrual rule and return it in normalised form.

    Supported rules:
    - ``{"type": "fixed", "amount": N}``: N per balance period
    - ``{"type": "monthly", "amount": N}``: N for each calendar month the
      period touches
    - ``{}`` or ``{"type": "none"}``: nothing accrues

    A rule without ``type`` is treated as ``fixed``.
    """
    if not rule:
        return {}
    if not isinstance(rule, dict):
        raise ValidationError("Accrual rule must be an object", details={"field": "accrual_rule"})

    rule_type = rule.get("type", "fixed")
    if rule_type not in ACCRUAL_RULE_TYPES:
        raise ValidationError(f"Unsupported accrual rule type: {rule_type!r}")
    if rule_type == "none":
        return {"type": "none"}

    try:
        amount = Decimal(str(rule.get("amount", "0")))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid accrual amount: {rule.get('amount')!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid accrual amount: {rule.get('amount')!r}")
    if amount < 0:
        raise ValidationError("Accrual amount cannot be negative")
    return {"type": rule_type, "amount": str(amount.quantize(CENTS))}


def accrual_for_period(rule: dict[str, Any] | None, period_start: date, period_end: date) -> Decimal:
    """Compute the accrued amount for a period from a policy accrual rule."""
    rule = validate_accrual_rule(rule)
    if not rule or rule["type"] == "none":
        return ZERO

    amount = Decimal(rule["amount"])
    if rule["type"] == "monthly":
        months = (period_end.year - period_start.year) * 12 + (
            period_end.month - period_start.month
        ) + 1
        return (amount * months).quantize(CENTS)
    return amount


class BalanceService:
    """Service for leave balance periods, deductions and adjustments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_employee(
        self,
        employee_id: UUID,
        leave_policy_id: UUID | None = None,
    ) -> list[LeaveBalance]:
        """Load balance rows for an employee, oldest period first."""
        query = select(LeaveBalance).where(LeaveBalance.employee_id == employee_id)
        if leave_policy_id is not None:
            query = query.where(LeaveBalance.leave_policy_id == leave_policy_id)
        query = query.order_by(LeaveBalance.period_start, LeaveBalance.leave_policy_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def summary(self, employee_id: UUID) -> BalanceSummary:
        """Return all balance rows for an employee without inventing data."""
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return BalanceSummary(
            employee_id=employee_id,
            balances=await self.list_for_employee(employee_id),
        )

    async def find_covering(
        self,
        employee_id: UUID,
        leave_policy_id: UUID,
        day: date,
    ) -> LeaveBalance | None:
        """Find the balance period for a policy that contains ``day``."""
        result = await self.session.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_policy_id == leave_policy_id,
                LeaveBalance.period_start <= day,
                LeaveBalance.period_end >= day,
            )
            .order_by(LeaveBalance.period_start.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def available(
        self,
        employee_id: UUID,
        leave_policy_id: UUID,
        day: date,
    ) -> Decimal | None:
        """Closing balance of the covering period, or None if no period exists."""
        balance = await self.find_covering(employee_id, leave_policy_id, day)
        return balance.closing if balance is not None else None

    async def record_taken(self, balance: LeaveBalance, quantity: Decimal) -> LeaveBalance:
        """Add approved leave to ``taken`` and recompute closing.

        The increment runs in the database so approvals of different requests
        against the same period cannot overwrite each other.
        """
        if quantity <= 0:
            raise ValidationError("Quantity taken must be positive")
        await self._apply_delta(balance.leave_balance_id, taken=quantity.quantize(CENTS))
        await self.session.refresh(balance)
        return balance

    async def adjust(
        self,
        leave_balance_id: UUID,
        amount: Decimal,
        reason: str | None = None,
    ) -> LeaveBalance:
        """Apply a manual adjustment (positive or negative) to a balance."""
        if amount == 0:
            raise ValidationError("Adjustment amount cannot be zero")
        balance = await self.session.get(LeaveBalance, leave_balance_id)
        if balance is None:
            raise NotFoundError("LeaveBalance", leave_balance_id)

        await self._apply_delta(leave_balance_id, adjusted=amount.quantize(CENTS))
        await self.session.refresh(balance)

        logger.info(
            "Adjusted leave balance %s by %s (%s); closing now %s",
            leave_balance_id,
            amount,
            reason or "no reason given",
            balance.closing,
        )
        return balance

    async def _apply_delta(
        self,
        leave_balance_id: UUID,
        *,
        taken: Decimal = ZERO,
        adjusted: Decimal = ZERO,
    ) -> None:
        """Increment ledger components in place and recompute closing in SQL."""
        new_taken = LeaveBalance.taken + taken
        new_adjusted = LeaveBalance.adjusted + adjusted
        result = await self.session.execute(
            update(LeaveBalance)
            .where(LeaveBalance.leave_balance_id == leave_balance_id)
            .values(
                taken=new_taken,
                adjusted=new_adjusted,
                closing=LeaveBalance.opening + LeaveBalance.accrued - new_taken + new_adjusted,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("LeaveBalance", leave_balance_id)

    async def open_period(
        self,
        employee_id: UUID,
        leave_policy_id: UUID,
        period_start: date,
        period_end: date,
    ) -> LeaveBalance:
        """Open a new balance period.

        Opening is the previous period's closing, floored at zero and capped
        by the policy's carry-over maximum. Accrued comes from the policy's
        accrual rule.
        """
        if period_end < period_start:
            raise ValidationError("period_end must be on or after period_start")

        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        policy = await self.session.get(LeavePolicy, leave_policy_id)
        if policy is None or policy.company_id != employee.company_id:
            raise NotFoundError("LeavePolicy", leave_policy_id)

        existing = await self.list_for_employee(employee_id, leave_policy_id)
        for row in existing:
            if row.period_start <= period_end and period_start <= row.period_end:
                raise ConflictError(
                    "Balance period overlaps an existing period",
                    details={"leave_balance_id": str(row.leave_balance_id)},
                )

        previous = [row for row in existing if row.period_end < period_start]
        opening = ZERO
        if previous:
            opening = max(previous[-1].closing, ZERO)
            if policy.carry_over_max is not None:
                opening = min(opening, policy.carry_over_max)

        balance = LeaveBalance(
            employee_id=employee_id,
            leave_policy_id=leave_policy_id,
            period_start=period_start,
            period_end=period_end,
            opening=opening.quantize(CENTS),
            accrued=accrual_for_period(policy.accrual_rule, period_start, period_end),
            taken=ZERO,
            adjusted=ZERO,
        )
        recompute_closing(balance)
        self.session.add(balance)
        await self.session.flush()

        logger.info(
            "Opened leave balance period %s..%s for employee %s policy %s (closing %s)",
            period_start,
            period_end,
            employee_id,
            policy.code,
            balance.closing,
        )
        return balance
