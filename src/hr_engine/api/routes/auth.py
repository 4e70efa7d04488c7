"""Self-service account setup endpoints.

The caller authenticates with the token from the invitation or reset link.
"""

from fastapi import APIRouter

from hr_engine.api.dependencies import CurrentCaller, DbSession, ProvisioningServiceDep
from hr_engine.api.schemas import AccountResponse, ErrorResponse, PasswordRequest

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/accept-invitation",
    response_model=AccountResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def accept_invitation(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: CurrentCaller,
    payload: PasswordRequest,
) -> AccountResponse:
    account = await service.accept_invitation(caller.account_id, payload.password)
    await db.commit()
    return AccountResponse.model_validate(account)


@router.post(
    "/complete-reset",
    response_model=AccountResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def complete_password_reset(
    db: DbSession,
    service: ProvisioningServiceDep,
    caller: CurrentCaller,
    payload: PasswordRequest,
) -> AccountResponse:
    account = await service.complete_password_reset(caller.account_id, payload.password)
    await db.commit()
    return AccountResponse.model_validate(account)
