"""Leave policy endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from hr_engine.api.dependencies import Caller, CurrentCaller, DbSession, LeavePolicyServiceDep
from hr_engine.api.schemas import (
    ErrorResponse,
    LeavePolicyCreate,
    LeavePolicyListResponse,
    LeavePolicyResponse,
)
from hr_engine.errors import ValidationError
from hr_engine.security import Action, Entity

router = APIRouter(prefix="/leave-policies", tags=["leave-policies"])


def _target_company(caller: Caller, company_id: UUID | None) -> UUID:
    """The company to act on: the caller's own unless a superuser names one."""
    company_id = company_id or caller.company_id
    if company_id is None:
        raise ValidationError("company_id is required", details={"field": "company_id"})
    caller.require_company(company_id)
    return company_id


@router.post(
    "",
    response_model=LeavePolicyResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_leave_policy(
    db: DbSession,
    service: LeavePolicyServiceDep,
    caller: CurrentCaller,
    payload: LeavePolicyCreate,
) -> LeavePolicyResponse:
    caller.require(Action.ADMIN, Entity.LEAVE)
    company_id = _target_company(caller, payload.company_id)

    policy = await service.create(
        company_id,
        code=payload.code,
        name=payload.name,
        unit=payload.unit,
        accrual_rule=payload.accrual_rule,
        carry_over_max=payload.carry_over_max,
    )
    await db.commit()
    return LeavePolicyResponse.model_validate(policy)


@router.get(
    "",
    response_model=LeavePolicyListResponse,
    responses={403: {"model": ErrorResponse}},
)
async def list_leave_policies(
    service: LeavePolicyServiceDep,
    caller: CurrentCaller,
    company_id: Annotated[UUID | None, Query(alias="companyId")] = None,
) -> LeavePolicyListResponse:
    """Policies of the caller's company; employees use this to pick a leave type."""
    caller.require(Action.READ, Entity.LEAVE)
    policies = await service.list_policies(_target_company(caller, company_id))
    items = [LeavePolicyResponse.model_validate(p) for p in policies]
    return LeavePolicyListResponse(items=items, total=len(items))
