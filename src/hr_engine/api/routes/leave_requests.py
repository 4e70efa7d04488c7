"""Leave request API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.api.dependencies import (
    Caller,
    CurrentCaller,
    DbSession,
    LeaveServiceDep,
    ensure_employee_access,
)
from hr_engine.api.schemas import (
    DecisionRequest,
    ErrorResponse,
    LeaveRequestCreate,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    LeaveRequestUpdate,
)
from hr_engine.errors import PermissionDeniedError, ValidationError
from hr_engine.models import Employee, LeaveRequest
from hr_engine.security import Action, Entity, Role
from hr_engine.services.leave_service import LeaveService

router = APIRouter(prefix="/leave-requests", tags=["leave-requests"])


async def _load_for_caller(
    db: AsyncSession,
    service: LeaveService,
    caller: Caller,
    leave_request_id: UUID,
    action: Action,
) -> LeaveRequest:
    request = await service.get_request(leave_request_id)
    await ensure_employee_access(db, caller, request.employee_id, action, Entity.LEAVE)
    return request


# ============================================================================
# Leave request CRUD
# ============================================================================


@router.post(
    "",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_leave_request(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    payload: LeaveRequestCreate,
) -> LeaveRequestResponse:
    """Create a leave request, SUBMITTED by default or DRAFT with ``submit=false``."""
    caller.require(Action.WRITE, Entity.LEAVE)
    employee_id = payload.employee_id or caller.employee_id
    if employee_id is None:
        raise ValidationError("employee_id is required", details={"field": "employee_id"})
    await ensure_employee_access(db, caller, employee_id, Action.WRITE, Entity.LEAVE)

    request = await service.create(
        employee_id=employee_id,
        leave_policy_id=payload.leave_policy_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        unit=payload.unit,
        quantity=payload.quantity,
        reason=payload.reason,
        submit=payload.submit,
        created_by_account_id=caller.account_id,
    )
    await db.commit()
    return LeaveRequestResponse.model_validate(request)


@router.get(
    "",
    response_model=LeaveRequestListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_leave_requests(
    service: LeaveServiceDep,
    caller: CurrentCaller,
    employee_id: Annotated[UUID | None, Query(alias="employeeId")] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> LeaveRequestListResponse:
    """List leave requests newest first.

    Employees only ever see their own requests; admins see their company.
    """
    caller.require(Action.READ, Entity.LEAVE)
    company_id = None
    if caller.role == Role.EMPLOYEE.value:
        if caller.employee_id is None:
            raise PermissionDeniedError("Account is not linked to an employee")
        if employee_id is not None and employee_id != caller.employee_id:
            raise PermissionDeniedError("Employees may only access their own records")
        employee_id = caller.employee_id
    elif caller.role != Role.SUPERUSER.value:
        company_id = caller.company_id

    views = await service.list_requests(
        company_id=company_id,
        employee_id=employee_id,
        status=status_filter,
    )
    items = [
        LeaveRequestResponse.model_validate(view.request).model_copy(
            update={
                "employee_name": view.employee_name,
                "employee_email": view.employee_email,
                "policy_code": view.policy_code,
                "policy_name": view.policy_name,
            }
        )
        for view in views
    ]
    return LeaveRequestListResponse(items=items, total=len(items))


@router.get(
    "/{leave_request_id}",
    response_model=LeaveRequestResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_leave_request(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    leave_request_id: Annotated[UUID, Path()],
) -> LeaveRequestResponse:
    request = await _load_for_caller(db, service, caller, leave_request_id, Action.READ)
    return LeaveRequestResponse.model_validate(request)


@router.put(
    "/{leave_request_id}",
    response_model=LeaveRequestResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_leave_request(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    leave_request_id: Annotated[UUID, Path()],
    payload: LeaveRequestUpdate,
) -> LeaveRequestResponse:
    """Edit a DRAFT request."""
    await _load_for_caller(db, service, caller, leave_request_id, Action.WRITE)
    changes = payload.model_dump(exclude_unset=True)
    request = await service.update(leave_request_id, **changes)
    await db.commit()
    return LeaveRequestResponse.model_validate(request)


# ============================================================================
# Leave request state transitions
# ============================================================================


@router.post(
    "/{leave_request_id}/submit",
    response_model=LeaveRequestResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def submit_leave_request(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    leave_request_id: Annotated[UUID, Path()],
) -> LeaveRequestResponse:
    await _load_for_caller(db, service, caller, leave_request_id, Action.WRITE)
    request = await service.submit(leave_request_id)
    await db.commit()
    return LeaveRequestResponse.model_validate(request)


@router.post(
    "/{leave_request_id}/cancel",
    response_model=LeaveRequestResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_leave_request(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    leave_request_id: Annotated[UUID, Path()],
) -> LeaveRequestResponse:
    await _load_for_caller(db, service, caller, leave_request_id, Action.WRITE)
    request = await service.cancel(leave_request_id)
    await db.commit()
    return LeaveRequestResponse.model_validate(request)


@router.patch(
    "/{leave_request_id}",
    response_model=LeaveRequestResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def decide_leave_request(
    db: DbSession,
    service: LeaveServiceDep,
    caller: CurrentCaller,
    leave_request_id: Annotated[UUID, Path()],
    payload: DecisionRequest,
) -> LeaveRequestResponse:
    """Approve or reject a SUBMITTED request. The caller is the approver."""
    caller.require(Action.APPROVE, Entity.LEAVE)
    request = await service.get_request(leave_request_id)
    employee = await db.get(Employee, request.employee_id)
    caller.require_company(employee.company_id if employee else None)

    request = await service.decide(
        leave_request_id,
        payload.status,
        approver_account_id=caller.account_id,
        reason=payload.reason,
    )
    await db.commit()
    return LeaveRequestResponse.model_validate(request)
