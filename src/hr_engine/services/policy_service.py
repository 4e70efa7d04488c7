"""Leave policy administration.

Policies are company-scoped: a code is unique within its company and every
leave request and balance period refers to one.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.errors import ConflictError, NotFoundError, ValidationError
from hr_engine.models import Company, LeavePolicy
from hr_engine.services.balance_service import CENTS, validate_accrual_rule
from hr_engine.services.leave_service import LEAVE_UNITS

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 10
MAX_NAME_LENGTH = 100


def _required_text(value: str | None, field: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", details={"field": field})
    if len(text) > max_length:
        raise ValidationError(
            f"{field} must be {max_length} characters or less", details={"field": field}
        )
    return text


def _carry_over(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(
            "carry_over_max must be a number", details={"field": "carry_over_max"}
        ) from e
    if not amount.is_finite() or amount < 0:
        raise ValidationError(
            "carry_over_max cannot be negative", details={"field": "carry_over_max"}
        )
    return amount.quantize(CENTS)


class LeavePolicyService:
    """Service for creating and listing a company's leave policies."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, leave_policy_id: UUID) -> LeavePolicy:
        policy = await self.session.get(LeavePolicy, leave_policy_id)
        if policy is None:
            raise NotFoundError("LeavePolicy", leave_policy_id)
        return policy

    async def create(
        self,
        company_id: UUID,
        *,
        code: str,
        name: str,
        unit: str = "DAYS",
        accrual_rule: dict[str, Any] | None = None,
        carry_over_max: Decimal | int | str | None = None,
    ) -> LeavePolicy:
        """Create a policy. Codes are stored upper-case and unique per company."""
        code = _required_text(code, "code", MAX_CODE_LENGTH).upper()
        name = _required_text(name, "name", MAX_NAME_LENGTH)
        if unit not in LEAVE_UNITS:
            raise ValidationError(f"unit must be one of {', '.join(LEAVE_UNITS)}")
        rule = validate_accrual_rule(accrual_rule)
        cap = _carry_over(carry_over_max)

        if await self.session.get(Company, company_id) is None:
            raise NotFoundError("Company", company_id)

        policy = LeavePolicy(
            company_id=company_id,
            code=code,
            name=name,
            unit=unit,
            accrual_rule=rule,
            carry_over_max=cap,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(policy)
        except IntegrityError as e:
            raise ConflictError(
                f"Leave policy {code} already exists",
                details={"company_id": str(company_id), "code": code},
            ) from e

        logger.info("Created leave policy %s (%s) for company %s", code, unit, company_id)
        return policy

    async def list_policies(self, company_id: UUID) -> list[LeavePolicy]:
        """A company's policies ordered by code."""
        result = await self.session.execute(
            select(LeavePolicy)
            .where(LeavePolicy.company_id == company_id)
            .order_by(LeavePolicy.code)
        )
        return list(result.scalars().all())
