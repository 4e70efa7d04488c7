"""Company model."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from hr_engine.models.employee import Employee
    from hr_engine.models.leave import LeavePolicy


class Company(Base, TimestampMixin):
    """Company owning employees and leave policies."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'suspended', 'closed')", name="company_status_check"),
    )

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company", lazy="raise")
    leave_policies: Mapped[list[LeavePolicy]] = relationship(
        back_populates="company", lazy="raise"
    )
