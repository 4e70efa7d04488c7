"""Timesheet approval workflow.

Weekly timesheets share the approval state machine with leave requests:
entries are added while DRAFT, a submitted sheet is decided once by an
approver through a conditional status update.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.errors import ConflictError, NotFoundError, ValidationError
from hr_engine.models import Employee, Timesheet, TimesheetEntry, utcnow
from hr_engine.services.state_machine import (
    ApprovalStateMachine,
    ApprovalStatus,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

MAX_HOURS_PER_DAY = Decimal("24")


class TimesheetService:
    """Service for weekly timesheets."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, timesheet_id: UUID) -> Timesheet:
        timesheet = await self.session.get(Timesheet, timesheet_id)
        if timesheet is None:
            raise NotFoundError("Timesheet", timesheet_id)
        return timesheet

    async def create(self, employee_id: UUID, week_start: date) -> Timesheet:
        """Open a DRAFT timesheet for the week starting on ``week_start``."""
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)

        timesheet = Timesheet(
            employee_id=employee_id,
            week_start=week_start,
            status=ApprovalStatus.DRAFT.value,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(timesheet)
        except IntegrityError as e:
            raise ConflictError(
                "A timesheet already exists for this week",
                details={"employee_id": str(employee_id), "week_start": week_start.isoformat()},
            ) from e
        await self.session.refresh(timesheet)
        logger.info("Created timesheet %s for employee %s", timesheet.timesheet_id, employee_id)
        return timesheet

    async def add_entry(
        self,
        timesheet_id: UUID,
        work_date: date,
        hours: Decimal | int | str,
        description: str | None = None,
    ) -> TimesheetEntry:
        timesheet = await self.get(timesheet_id)
        if not ApprovalStateMachine.can_edit(timesheet.status):
            raise InvalidTransitionError(
                timesheet.status, timesheet.status, "entries can only be added while DRAFT"
            )

        week_end = timesheet.week_start + timedelta(days=6)
        if not timesheet.week_start <= work_date <= week_end:
            raise ValidationError(
                "work_date must fall within the timesheet week",
                details={
                    "work_date": work_date.isoformat(),
                    "week_start": timesheet.week_start.isoformat(),
                },
            )
        amount = _coerce_hours(hours)

        entry = TimesheetEntry(
            timesheet_id=timesheet_id,
            work_date=work_date,
            hours=amount,
            description=description,
        )
        timesheet.entries.append(entry)
        await self.session.flush()
        return entry

    async def submit(self, timesheet_id: UUID) -> Timesheet:
        timesheet = await self.get(timesheet_id)
        ApprovalStateMachine.validate_transition(timesheet.status, ApprovalStatus.SUBMITTED)
        if not timesheet.entries:
            raise ValidationError("Cannot submit an empty timesheet")

        await self._guarded_update(
            timesheet,
            expected=ApprovalStatus.DRAFT,
            to_status=ApprovalStatus.SUBMITTED,
            values={"submitted_at": utcnow()},
        )
        logger.info("Timesheet %s submitted", timesheet_id)
        return timesheet

    async def decide(
        self,
        timesheet_id: UUID,
        decision: str,
        approver_account_id: UUID,
        reason: str | None = None,
    ) -> Timesheet:
        """Approve or reject a SUBMITTED timesheet."""
        if approver_account_id is None:
            raise ValidationError("approver is required", details={"field": "approver_account_id"})
        if decision not in ApprovalStateMachine.DECISIONS:
            raise ValidationError(
                "decision must be APPROVED or REJECTED", details={"decision": str(decision)}
            )

        timesheet = await self.get(timesheet_id)
        ApprovalStateMachine.validate_decision(timesheet.status, decision)
        decision = ApprovalStatus(decision)

        now = utcnow()
        await self._guarded_update(
            timesheet,
            expected=ApprovalStatus.SUBMITTED,
            to_status=decision,
            values={
                "approver_account_id": approver_account_id,
                "decided_at": now,
                "approved_at": now if decision == ApprovalStatus.APPROVED else None,
                "decision_reason": reason,
            },
        )
        logger.info("Timesheet %s %s by %s", timesheet_id, decision.value, approver_account_id)
        return timesheet

    async def list_timesheets(
        self,
        *,
        company_id: UUID | None = None,
        employee_id: UUID | None = None,
        status: str | None = None,
    ) -> list[Timesheet]:
        query = select(Timesheet).join(Employee, Timesheet.employee_id == Employee.employee_id)
        if company_id is not None:
            query = query.where(Employee.company_id == company_id)
        if employee_id is not None:
            query = query.where(Timesheet.employee_id == employee_id)
        if status is not None:
            if status not in ApprovalStateMachine.VALID_TRANSITIONS:
                raise ValidationError(f"Unknown status filter: {status!r}")
            query = query.where(Timesheet.status == status)
        query = query.order_by(Timesheet.week_start.desc(), Timesheet.created_at.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _guarded_update(
        self,
        timesheet: Timesheet,
        *,
        expected: str,
        to_status: str,
        values: dict[str, Any],
    ) -> None:
        result = await self.session.execute(
            update(Timesheet)
            .where(
                Timesheet.timesheet_id == timesheet.timesheet_id,
                Timesheet.status == ApprovalStatus(expected).value,
            )
            .values(status=ApprovalStatus(to_status).value, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(timesheet)
        if result.rowcount == 0:
            raise InvalidTransitionError(
                timesheet.status,
                to_status,
                "timesheet status changed concurrently",
            )


def _coerce_hours(value: Any) -> Decimal:
    try:
        hours = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError("hours must be a number", details={"field": "hours"}) from e
    if not hours.is_finite() or hours <= 0 or hours > MAX_HOURS_PER_DAY:
        raise ValidationError(
            "hours must be greater than 0 and at most 24", details={"field": "hours"}
        )
    return hours
