"""Employee leave balance and account link endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from hr_engine.api.dependencies import (
    AdminCaller,
    BalanceServiceDep,
    CurrentCaller,
    DbSession,
    LeaveServiceDep,
    ProvisioningServiceDep,
    ensure_employee_access,
)
from hr_engine.api.schemas import (
    AdjustmentRequest,
    BalanceSummaryResponse,
    EmployeeResponse,
    ErrorResponse,
    LeaveBalanceResponse,
    LinkAccountRequest,
    OpenPeriodRequest,
)
from hr_engine.errors import NotFoundError
from hr_engine.models import Employee, LeaveBalance
from hr_engine.security import Action, Entity

router = APIRouter(tags=["employees"])


@router.get(
    "/employees/{employee_id}/leave-balance",
    response_model=BalanceSummaryResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_leave_balance(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    employee_id: Annotated[UUID, Path()],
) -> BalanceSummaryResponse:
    """All balance periods for an employee; ``configured=false`` when none exist."""
    await ensure_employee_access(db, caller, employee_id, Action.READ, Entity.LEAVE)
    summary = await service.balance_summary(employee_id)
    return BalanceSummaryResponse(
        employee_id=summary.employee_id,
        configured=summary.configured,
        balances=[LeaveBalanceResponse.model_validate(b) for b in summary.balances],
    )


@router.post(
    "/employees/{employee_id}/leave-balance/periods",
    response_model=LeaveBalanceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def open_balance_period(
    db: DbSession,
    service: BalanceServiceDep,
    caller: CurrentCaller,
    employee_id: Annotated[UUID, Path()],
    payload: OpenPeriodRequest,
) -> LeaveBalanceResponse:
    caller.require(Action.ADMIN, Entity.LEAVE)
    await ensure_employee_access(db, caller, employee_id, Action.ADMIN, Entity.LEAVE)
    balance = await service.open_period(
        employee_id,
        payload.leave_policy_id,
        payload.period_start,
        payload.period_end,
    )
    await db.commit()
    return LeaveBalanceResponse.model_validate(balance)


@router.post(
    "/leave-balances/{leave_balance_id}/adjustments",
    response_model=LeaveBalanceResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def adjust_balance(
    db: DbSession,
    service: BalanceServiceDep,
    caller: CurrentCaller,
    leave_balance_id: Annotated[UUID, Path()],
    payload: AdjustmentRequest,
) -> LeaveBalanceResponse:
    caller.require(Action.ADMIN, Entity.LEAVE)
    balance = await db.get(LeaveBalance, leave_balance_id)
    if balance is None:
        raise NotFoundError("LeaveBalance", leave_balance_id)
    await ensure_employee_access(db, caller, balance.employee_id, Action.ADMIN, Entity.LEAVE)

    balance = await service.adjust(leave_balance_id, payload.amount, payload.reason)
    await db.commit()
    return LeaveBalanceResponse.model_validate(balance)


@router.post(
    "/employees/{employee_id}/link-account",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def link_account(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    employee_id: Annotated[UUID, Path()],
    payload: LinkAccountRequest,
) -> EmployeeResponse:
    """Attach an existing, unlinked account to an employee."""
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError("Employee", employee_id)
    caller.require_company(employee.company_id)

    employee = await service.link_existing(
        employee_id, payload.account_id, actor_account_id=caller.account_id
    )
    await db.commit()
    return EmployeeResponse.model_validate(employee)
