"""Leave lifecycle service.

Enforces the leave request state machine and keeps leave balances in step
with approvals:

- create: validate and store a DRAFT or SUBMITTED request
- update: edit a DRAFT request, re-running validation
- submit: DRAFT → SUBMITTED
- decide: SUBMITTED → APPROVED/REJECTED, deducting approved leave
- cancel: DRAFT/SUBMITTED → CANCELLED
- list_requests / balance_summary: read-only projections
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.config import get_settings
from hr_engine.errors import NotFoundError, ValidationError
from hr_engine.models import Employee, EmployeeStatus, LeavePolicy, LeaveRequest, utcnow
from hr_engine.services.balance_service import BalanceService, BalanceSummary
from hr_engine.services.state_machine import (
    ApprovalStateMachine,
    InvalidTransitionError,
    LeaveRequestStatus,
)

logger = logging.getLogger(__name__)

LEAVE_UNITS = ("DAYS", "HOURS")
EDITABLE_FIELDS = frozenset({"start_date", "end_date", "unit", "quantity", "reason"})


@dataclass(frozen=True)
class LeaveRequestView:
    """Leave request joined with employee and policy display fields."""

    request: LeaveRequest
    employee_name: str
    employee_email: str
    policy_code: str
    policy_name: str


def _coerce_date(value: Any, field: str) -> date:
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(
            f"{field} is not a valid ISO date", details={"field": field, "value": str(value)}
        ) from e


def _coerce_quantity(value: Any) -> Decimal:
    if value is None:
        raise ValidationError("quantity is required", details={"field": "quantity"})
    try:
        quantity = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(
            "quantity must be a number", details={"field": "quantity", "value": str(value)}
        ) from e
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("quantity must be greater than zero", details={"field": "quantity"})
    return quantity


class LeaveService:
    """Service for the leave request lifecycle and derived balances."""

    def __init__(self, session: AsyncSession, *, allow_overdraft: bool | None = None):
        self.session = session
        self.balances = BalanceService(session)
        if allow_overdraft is None:
            allow_overdraft = get_settings().allow_leave_overdraft
        self.allow_overdraft = allow_overdraft

    async def get_request(self, leave_request_id: UUID) -> LeaveRequest:
        """Load a leave request or raise NotFoundError."""
        request = await self.session.get(LeaveRequest, leave_request_id)
        if request is None:
            raise NotFoundError("LeaveRequest", leave_request_id)
        return request

    async def create(
        self,
        *,
        employee_id: UUID,
        leave_policy_id: UUID,
        start_date: date | str,
        end_date: date | str,
        unit: str,
        quantity: Decimal | int | str,
        reason: str | None = None,
        submit: bool = True,
        created_by_account_id: UUID | None = None,
    ) -> LeaveRequest:
        """Create a leave request.

        Self-service requests are created SUBMITTED; administrators drafting
        on an employee's behalf pass ``submit=False`` to get a DRAFT.
        """
        start = _coerce_date(start_date, "start_date")
        end = _coerce_date(end_date, "end_date")
        amount = _coerce_quantity(quantity)

        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        if employee.status == EmployeeStatus.TERMINATED.value:
            raise ValidationError("Terminated employees cannot request leave")
        policy = await self._get_policy(leave_policy_id, employee)

        self._validate_fields(start, end, unit, policy)

        now = utcnow()
        status = LeaveRequestStatus.SUBMITTED if submit else LeaveRequestStatus.DRAFT
        request = LeaveRequest(
            employee_id=employee_id,
            leave_policy_id=leave_policy_id,
            start_date=start,
            end_date=end,
            unit=unit,
            quantity=amount,
            reason=reason,
            status=status.value,
            created_by_account_id=created_by_account_id,
            submitted_at=now if submit else None,
        )
        await self._check_balance(request)

        self.session.add(request)
        await self.session.flush()

        logger.info(
            "Created leave request %s for employee %s (%s %s, status %s)",
            request.leave_request_id,
            employee_id,
            amount,
            unit,
            request.status,
        )
        return request

    async def update(self, leave_request_id: UUID, **changes: Any) -> LeaveRequest:
        """Edit a DRAFT request. SUBMITTED requests must be cancelled instead."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown fields in update", details={"fields": sorted(unknown)}
            )

        request = await self.get_request(leave_request_id)
        if not ApprovalStateMachine.can_edit(request.status):
            raise InvalidTransitionError(
                request.status,
                request.status,
                "only DRAFT requests can be edited",
            )

        employee = await self.session.get(Employee, request.employee_id)
        policy = await self._get_policy(request.leave_policy_id, employee)

        start = _coerce_date(changes.get("start_date", request.start_date), "start_date")
        end = _coerce_date(changes.get("end_date", request.end_date), "end_date")
        unit = changes.get("unit", request.unit)
        quantity = _coerce_quantity(changes.get("quantity", request.quantity))
        self._validate_fields(start, end, unit, policy)
        exceeds = await self._exceeds_balance(
            request.employee_id, request.leave_policy_id, start, quantity
        )

        request.start_date = start
        request.end_date = end
        request.unit = unit
        request.quantity = quantity
        request.exceeds_balance = exceeds
        if "reason" in changes:
            request.reason = changes["reason"]
        await self.session.flush()
        return request

    async def submit(self, leave_request_id: UUID) -> LeaveRequest:
        """Move a DRAFT request to SUBMITTED."""
        request = await self.get_request(leave_request_id)
        ApprovalStateMachine.validate_transition(request.status, LeaveRequestStatus.SUBMITTED)

        await self._check_balance(request)
        await self._guarded_update(
            request,
            expected=LeaveRequestStatus.DRAFT,
            to_status=LeaveRequestStatus.SUBMITTED,
            values={"submitted_at": utcnow(), "exceeds_balance": request.exceeds_balance},
        )
        logger.info("Leave request %s submitted", leave_request_id)
        return request

    async def decide(
        self,
        leave_request_id: UUID,
        decision: str,
        approver_account_id: UUID,
        reason: str | None = None,
    ) -> LeaveRequest:
        """Approve or reject a SUBMITTED request.

        The status change is a conditional update on ``status = SUBMITTED``,
        so of two concurrent decisions only one can win. On approval the
        request quantity is added to ``taken`` on the balance period that
        contains the start date; with no such period the balance is left
        untouched.
        """
        if approver_account_id is None:
            raise ValidationError("approver is required", details={"field": "approver_account_id"})

        if decision not in ApprovalStateMachine.DECISIONS:
            raise ValidationError(
                "decision must be APPROVED or REJECTED", details={"decision": str(decision)}
            )

        request = await self.get_request(leave_request_id)
        ApprovalStateMachine.validate_decision(request.status, decision)
        decision = LeaveRequestStatus(decision)

        now = utcnow()
        await self._guarded_update(
            request,
            expected=LeaveRequestStatus.SUBMITTED,
            to_status=decision,
            values={
                "approver_account_id": approver_account_id,
                "decided_at": now,
                "approved_at": now if decision == LeaveRequestStatus.APPROVED else None,
                "decision_reason": reason,
            },
        )

        if decision == LeaveRequestStatus.APPROVED:
            balance = await self.balances.find_covering(
                request.employee_id, request.leave_policy_id, request.start_date
            )
            if balance is None:
                logger.warning(
                    "Approved leave request %s has no balance period covering %s; "
                    "balance left unchanged",
                    leave_request_id,
                    request.start_date,
                )
            else:
                await self.balances.record_taken(balance, request.quantity)
                request.balance_applied = True
                await self.session.flush()

        logger.info(
            "Leave request %s %s by %s",
            leave_request_id,
            decision.value,
            approver_account_id,
        )
        return request

    async def cancel(self, leave_request_id: UUID) -> LeaveRequest:
        """Withdraw a DRAFT or SUBMITTED request."""
        request = await self.get_request(leave_request_id)
        ApprovalStateMachine.validate_transition(request.status, LeaveRequestStatus.CANCELLED)
        await self._guarded_update(
            request,
            expected=request.status,
            to_status=LeaveRequestStatus.CANCELLED,
            values={"decided_at": utcnow()},
        )
        logger.info("Leave request %s cancelled", leave_request_id)
        return request

    async def list_requests(
        self,
        *,
        company_id: UUID | None = None,
        employee_id: UUID | None = None,
        status: str | None = None,
    ) -> list[LeaveRequestView]:
        """List requests newest first, joined with employee and policy names."""
        query = (
            select(
                LeaveRequest,
                Employee.first_name,
                Employee.last_name,
                Employee.email,
                LeavePolicy.code,
                LeavePolicy.name,
            )
            .join(Employee, LeaveRequest.employee_id == Employee.employee_id)
            .join(LeavePolicy, LeaveRequest.leave_policy_id == LeavePolicy.leave_policy_id)
        )
        if company_id is not None:
            query = query.where(Employee.company_id == company_id)
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            if status not in ApprovalStateMachine.VALID_TRANSITIONS:
                raise ValidationError(f"Unknown status filter: {status!r}")
            query = query.where(LeaveRequest.status == status)
        query = query.order_by(LeaveRequest.created_at.desc())

        result = await self.session.execute(query)
        return [
            LeaveRequestView(
                request=request,
                employee_name=f"{first_name} {last_name}",
                employee_email=email,
                policy_code=code,
                policy_name=name,
            )
            for request, first_name, last_name, email, code, name in result.all()
        ]

    async def balance_summary(self, employee_id: UUID) -> BalanceSummary:
        """All balance rows for an employee; empty means none configured."""
        return await self.balances.summary(employee_id)

    async def _get_policy(self, leave_policy_id: UUID, employee: Employee | None) -> LeavePolicy:
        policy = await self.session.get(LeavePolicy, leave_policy_id)
        if policy is None or (employee is not None and policy.company_id != employee.company_id):
            raise NotFoundError("LeavePolicy", leave_policy_id)
        return policy

    def _validate_fields(self, start: date, end: date, unit: str, policy: LeavePolicy) -> None:
        if end < start:
            raise ValidationError(
                "end_date must be on or after start_date",
                details={"start_date": start.isoformat(), "end_date": end.isoformat()},
            )
        if unit not in LEAVE_UNITS:
            raise ValidationError(f"unit must be one of {', '.join(LEAVE_UNITS)}")
        if unit != policy.unit:
            raise ValidationError(
                f"Policy {policy.code} is measured in {policy.unit}, not {unit}"
            )

    async def _check_balance(self, request: LeaveRequest) -> None:
        """Flag (or reject) requests that exceed the available balance."""
        request.exceeds_balance = await self._exceeds_balance(
            request.employee_id, request.leave_policy_id, request.start_date, request.quantity
        )

    async def _exceeds_balance(
        self,
        employee_id: UUID,
        leave_policy_id: UUID,
        start: date,
        quantity: Decimal,
    ) -> bool:
        available = await self.balances.available(employee_id, leave_policy_id, start)
        exceeds = available is not None and quantity > available
        if exceeds and not self.allow_overdraft:
            raise ValidationError(
                "Requested quantity exceeds available balance",
                details={"requested": str(quantity), "available": str(available)},
            )
        if exceeds:
            logger.warning(
                "Leave request for employee %s exceeds available balance (%s > %s)",
                employee_id,
                quantity,
                available,
            )
        return exceeds

    async def _guarded_update(
        self,
        request: LeaveRequest,
        *,
        expected: str,
        to_status: str,
        values: dict[str, Any],
    ) -> None:
        """Conditionally move ``request`` from ``expected`` to ``to_status``."""
        result = await self.session.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.leave_request_id == request.leave_request_id,
                LeaveRequest.status == LeaveRequestStatus(expected).value,
            )
            .values(status=LeaveRequestStatus(to_status).value, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(request)
        if result.rowcount == 0:
            raise InvalidTransitionError(
                request.status,
                to_status,
                "request status changed concurrently",
            )
