"""Timesheet API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.api.dependencies import (
    Caller,
    CurrentCaller,
    DbSession,
    TimesheetServiceDep,
    ensure_employee_access,
)
from hr_engine.api.schemas import (
    DecisionRequest,
    ErrorResponse,
    TimesheetCreate,
    TimesheetEntryCreate,
    TimesheetListResponse,
    TimesheetResponse,
)
from hr_engine.errors import PermissionDeniedError, ValidationError
from hr_engine.models import Employee, Timesheet
from hr_engine.security import Action, Entity, Role
from hr_engine.services.timesheet_service import TimesheetService

router = APIRouter(prefix="/timesheets", tags=["timesheets"])


async def _load_for_caller(
    db: AsyncSession,
    service: TimesheetService,
    caller: Caller,
    timesheet_id: UUID,
    action: Action,
) -> Timesheet:
    timesheet = await service.get(timesheet_id)
    await ensure_employee_access(db, caller, timesheet.employee_id, action, Entity.TIMESHEET)
    return timesheet


@router.post(
    "",
    response_model=TimesheetResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_timesheet(
    db: DbSession,
    service: TimesheetServiceDep,
    caller: CurrentCaller,
    payload: TimesheetCreate,
) -> TimesheetResponse:
    caller.require(Action.WRITE, Entity.TIMESHEET)
    employee_id = payload.employee_id or caller.employee_id
    if employee_id is None:
        raise ValidationError("employee_id is required", details={"field": "employee_id"})
    await ensure_employee_access(db, caller, employee_id, Action.WRITE, Entity.TIMESHEET)

    timesheet = await service.create(employee_id, payload.week_start)
    await db.commit()
    return TimesheetResponse.model_validate(timesheet)


@router.post(
    "/{timesheet_id}/entries",
    response_model=TimesheetResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def add_timesheet_entry(
    db: DbSession,
    service: TimesheetServiceDep,
    caller: CurrentCaller,
    timesheet_id: Annotated[UUID, Path()],
    payload: TimesheetEntryCreate,
) -> TimesheetResponse:
    await _load_for_caller(db, service, caller, timesheet_id, Action.WRITE)
    await service.add_entry(timesheet_id, payload.work_date, payload.hours, payload.description)
    await db.commit()
    return TimesheetResponse.model_validate(await service.get(timesheet_id))


@router.post(
    "/{timesheet_id}/submit",
    response_model=TimesheetResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def submit_timesheet(
    db: DbSession,
    service: TimesheetServiceDep,
    caller: CurrentCaller,
    timesheet_id: Annotated[UUID, Path()],
) -> TimesheetResponse:
    await _load_for_caller(db, service, caller, timesheet_id, Action.WRITE)
    timesheet = await service.submit(timesheet_id)
    await db.commit()
    return TimesheetResponse.model_validate(timesheet)


@router.patch(
    "/{timesheet_id}",
    response_model=TimesheetResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def decide_timesheet(
    db: DbSession,
    service: TimesheetServiceDep,
    caller: CurrentCaller,
    timesheet_id: Annotated[UUID, Path()],
    payload: DecisionRequest,
) -> TimesheetResponse:
    """Approve or reject a SUBMITTED timesheet. The caller is the approver."""
    caller.require(Action.APPROVE, Entity.TIMESHEET)
    timesheet = await service.get(timesheet_id)
    employee = await db.get(Employee, timesheet.employee_id)
    caller.require_company(employee.company_id if employee else None)

    timesheet = await service.decide(
        timesheet_id,
        payload.status,
        approver_account_id=caller.account_id,
        reason=payload.reason,
    )
    await db.commit()
    return TimesheetResponse.model_validate(timesheet)


@router.get(
    "",
    response_model=TimesheetListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_timesheets(
    service: TimesheetServiceDep,
    caller: CurrentCaller,
    employee_id: Annotated[UUID | None, Query(alias="employeeId")] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> TimesheetListResponse:
    caller.require(Action.READ, Entity.TIMESHEET)
    company_id = None
    if caller.role == Role.EMPLOYEE.value:
        if caller.employee_id is None:
            raise PermissionDeniedError("Account is not linked to an employee")
        if employee_id is not None and employee_id != caller.employee_id:
            raise PermissionDeniedError("Employees may only access their own records")
        employee_id = caller.employee_id
    elif caller.role != Role.SUPERUSER.value:
        company_id = caller.company_id

    timesheets = await service.list_timesheets(
        company_id=company_id, employee_id=employee_id, status=status_filter
    )
    items = [TimesheetResponse.model_validate(t) for t in timesheets]
    return TimesheetListResponse(items=items, total=len(items))


@router.get(
    "/{timesheet_id}",
    response_model=TimesheetResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_timesheet(
    db: DbSession,
    service: TimesheetServiceDep,
    caller: CurrentCaller,
    timesheet_id: Annotated[UUID, Path()],
) -> TimesheetResponse:
    timesheet = await _load_for_caller(db, service, caller, timesheet_id, Action.READ)
    return TimesheetResponse.model_validate(timesheet)
