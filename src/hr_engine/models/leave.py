"""Leave policy, balance and request models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_engine.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from hr_engine.models.company import Company


class LeavePolicy(Base, TimestampMixin):
    """Named accrual rule (e.g. annual leave) owned by a company."""

    __tablename__ = "leave_policy"

    leave_policy_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False, default="DAYS")
    accrual_rule: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    carry_over_max: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="leave_policy_company_code_unique"),
        CheckConstraint("unit IN ('DAYS', 'HOURS')", name="leave_policy_unit_check"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="leave_policies", lazy="raise")


class LeaveBalance(Base, UpdatedAtMixin):
    """Per-employee, per-policy, per-period leave ledger.

    ``closing`` is derived: opening + accrued - taken + adjusted.
    """

    __tablename__ = "leave_balance"

    leave_balance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    leave_policy_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_policy.leave_policy_id", ondelete="RESTRICT"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    opening: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=Decimal("0"))
    accrued: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=Decimal("0"))
    taken: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=Decimal("0"))
    adjusted: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=Decimal("0"))
    closing: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "leave_policy_id",
            "period_start",
            name="leave_balance_employee_policy_period_unique",
        ),
        CheckConstraint("period_end >= period_start", name="leave_balance_dates_check"),
    )

    def covers(self, day: date) -> bool:
        """Check if the balance period contains a given date."""
        return self.period_start <= day <= self.period_end

    def expected_closing(self) -> Decimal:
        return self.opening + self.accrued - self.taken + self.adjusted


class LeaveRequest(Base, UpdatedAtMixin):
    """Employee leave request moving DRAFT -> SUBMITTED -> APPROVED/REJECTED."""

    __tablename__ = "leave_request"

    leave_request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    leave_policy_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_policy.leave_policy_id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    exceeds_balance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("account.account_id", ondelete="SET NULL"),
        nullable=True,
    )
    approver_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("account.account_id", ondelete="SET NULL"),
        nullable=True,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    balance_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="leave_request_dates_check"),
        CheckConstraint("quantity > 0", name="leave_request_quantity_check"),
        CheckConstraint("unit IN ('DAYS', 'HOURS')", name="leave_request_unit_check"),
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED', 'CANCELLED')",
            name="leave_request_status_check",
        ),
    )
