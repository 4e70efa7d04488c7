"""Employee model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_engine.models.base import Base, UpdatedAtMixin

if TYPE_CHECKING:
    from hr_engine.models.account import Account
    from hr_engine.models.company import Company


class EmployeeStatus(str, Enum):
    """Employment status values."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    TERMINATED = "TERMINATED"
    ON_LEAVE = "ON_LEAVE"


class Employee(Base, UpdatedAtMixin):
    """Employee record.

    ``account_id`` is written only by the provisioning service; the unique
    constraint is the storage-level backstop for one account per employee.
    """

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    employment_type: Mapped[str] = mapped_column(String, nullable=False, default="FULL_TIME")
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    base_salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    salary_period: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default=EmployeeStatus.ACTIVE.value)
    manager_employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=True,
    )
    account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("account.account_id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="employee_company_email_unique"),
        CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'TERMINATED', 'ON_LEAVE')",
            name="employee_status_check",
        ),
        CheckConstraint(
            "employment_type IN ('FULL_TIME', 'PART_TIME', 'CONTRACTOR', 'INTERN')",
            name="employee_employment_type_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees", lazy="raise")
    account: Mapped[Account | None] = relationship(lazy="raise")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"
