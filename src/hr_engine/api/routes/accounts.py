"""Admin account provisioning endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from hr_engine.api.dependencies import AdminCaller, Caller, DbSession, ProvisioningServiceDep
from hr_engine.api.schemas import (
    AccountEventResponse,
    AccountResponse,
    EmployeeResponse,
    ErrorResponse,
    InviteEmployeeRequest,
    InviteEmployeeResponse,
    MessageResponse,
    PasswordRequest,
    StatusUpdateRequest,
)
from hr_engine.models import Account
from hr_engine.services.provisioning_service import ProvisioningService

router = APIRouter(prefix="/admin/accounts", tags=["accounts"])


async def _account_in_scope(
    service: ProvisioningService, caller: Caller, account_id: UUID
) -> Account:
    account = await service.get_account(account_id)
    caller.require_company(account.company_id)
    return account


@router.post(
    "/invite-employee",
    response_model=InviteEmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def invite_employee(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    payload: InviteEmployeeRequest,
) -> InviteEmployeeResponse:
    """Invite an employee and link the new account."""
    employee = await service.get_employee(payload.employee_id)
    caller.require_company(employee.company_id)

    account = await service.invite(
        payload.employee_id, payload.role, actor_account_id=caller.account_id
    )
    await db.commit()
    return InviteEmployeeResponse(
        account=AccountResponse.model_validate(account),
        employee_id=payload.employee_id,
        message=f"Invitation sent to {account.email}",
    )


@router.patch(
    "/{account_id}/status",
    response_model=AccountResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_account_status(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    account_id: Annotated[UUID, Path()],
    payload: StatusUpdateRequest,
) -> AccountResponse:
    await _account_in_scope(service, caller, account_id)
    account = await service.update_status(
        account_id, payload.status, actor_account_id=caller.account_id
    )
    await db.commit()
    return AccountResponse.model_validate(account)


@router.post(
    "/{account_id}/password",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def reset_account_password(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    account_id: Annotated[UUID, Path()],
) -> MessageResponse:
    """Send a password reset email."""
    await _account_in_scope(service, caller, account_id)
    account = await service.reset_password(account_id, actor_account_id=caller.account_id)
    await db.commit()
    return MessageResponse(message=f"Password reset email sent to {account.email}")


@router.patch(
    "/{account_id}/password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def set_account_password(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    account_id: Annotated[UUID, Path()],
    payload: PasswordRequest,
) -> MessageResponse:
    """Set a password directly (admin override)."""
    await _account_in_scope(service, caller, account_id)
    await service.set_password(account_id, payload.password, actor_account_id=caller.account_id)
    await db.commit()
    return MessageResponse(message="Password updated successfully")


@router.post(
    "/{account_id}/unlink-employee",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def unlink_employee(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    account_id: Annotated[UUID, Path()],
) -> EmployeeResponse:
    await _account_in_scope(service, caller, account_id)
    employee = await service.unlink(account_id, actor_account_id=caller.account_id)
    await db.commit()
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/{account_id}/deactivate",
    response_model=AccountResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def deactivate_account(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    account_id: Annotated[UUID, Path()],
) -> AccountResponse:
    await _account_in_scope(service, caller, account_id)
    account = await service.deactivate(account_id, actor_account_id=caller.account_id)
    await db.commit()
    return AccountResponse.model_validate(account)


@router.get(
    "/{account_id}/events",
    response_model=list[AccountEventResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_account_events(
    service: ProvisioningServiceDep,
    caller: AdminCaller,
    account_id: Annotated[UUID, Path()],
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> list[AccountEventResponse]:
    """Audit trail for an account, newest first."""
    await _account_in_scope(service, caller, account_id)
    events = await service.list_events(account_id, limit=limit)
    return [AccountEventResponse.model_validate(event) for event in events]
