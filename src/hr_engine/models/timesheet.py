"""Weekly timesheet and daily entry models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_engine.models.base import Base, TimestampMixin, UpdatedAtMixin


class Timesheet(Base, UpdatedAtMixin):
    """Weekly container of time entries with an approval status."""

    __tablename__ = "timesheet"

    timesheet_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approver_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("account.account_id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "week_start", name="timesheet_employee_week_unique"),
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED')",
            name="timesheet_status_check",
        ),
    )

    # Relationships
    entries: Mapped[list[TimesheetEntry]] = relationship(
        back_populates="timesheet",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TimesheetEntry.work_date",
    )

    @property
    def total_hours(self) -> Decimal:
        return sum((e.hours for e in self.entries), Decimal("0"))


class TimesheetEntry(Base, TimestampMixin):
    """Hours worked on one day of a timesheet week."""

    __tablename__ = "timesheet_entry"

    timesheet_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    timesheet_id: Mapped[UUID] = mapped_column(
        ForeignKey("timesheet.timesheet_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("hours > 0 AND hours <= 24", name="timesheet_entry_hours_check"),
    )

    # Relationships
    timesheet: Mapped[Timesheet] = relationship(back_populates="entries", lazy="raise")
