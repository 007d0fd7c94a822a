"""
DK Payroll - Payroll Models

Multi-unit payroll on the Panchkula method:
- Units and their employees with fixed monthly pay components
- Daily attendance, one record per employee per day
- Salary advances recovered in the month they were given
- Effective-dated statutory deduction settings (PF, ESI, LWF)
- Salary disbursements, one per employee per month
- Payroll batches summarizing a unit's run for a month
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel


# ===========================================
# ENUMS
# ===========================================

class AttendanceStatus(str, Enum):
    """Daily attendance status. Exactly one per employee per day."""
    PRESENT = "PRESENT"
    WEEKLY_OFF = "WEEKLY_OFF"
    CASUAL_LEAVE = "CASUAL_LEAVE"
    EARNED_LEAVE = "EARNED_LEAVE"
    UNPAID_LEAVE = "UNPAID_LEAVE"

    @property
    def is_paid_leave(self) -> bool:
        return self in (AttendanceStatus.CASUAL_LEAVE, AttendanceStatus.EARNED_LEAVE)


class BatchStatus(str, Enum):
    """Outcome of a payroll batch."""
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


# ===========================================
# MASTER DATA
# ===========================================

class Unit(BaseModel):
    """Operating unit (site) that employees belong to."""

    __tablename__ = "units"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    employees: Mapped[List["PayrollEmployee"]] = relationship(back_populates="unit")

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, code={self.code})>"


class PayrollEmployee(BaseModel):
    """
    Employee with fixed monthly pay components.

    overtime_rate_per_hour, when set, replaces the overtime rate derived
    from basic salary.
    """

    __tablename__ = "payroll_employees"

    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    employee_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    uan_number: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Universal Account Number for provident fund",
    )
    joining_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
    )
    hra_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    other_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Other/conveyance allowance",
    )
    overtime_rate_per_hour: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    unit: Mapped["Unit"] = relationship(back_populates="employees")

    __table_args__ = (
        CheckConstraint("basic_salary >= 0", name="basic_salary_non_negative"),
        CheckConstraint("hra_amount >= 0", name="hra_amount_non_negative"),
        CheckConstraint("other_allowance >= 0", name="other_allowance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<PayrollEmployee(id={self.id}, code={self.employee_code})>"


# ===========================================
# ATTENDANCE & ADVANCES
# ===========================================

class AttendanceRecord(BaseModel):
    """One employee's attendance on one day."""

    __tablename__ = "attendance"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("units.id", ondelete="SET NULL"),
        nullable=True,
    )

    attendance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        SQLEnum(AttendanceStatus),
        default=AttendanceStatus.PRESENT,
        nullable=False,
    )
    hours_worked: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    overtime_hours: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("employee_id", "attendance_date", name="uq_attendance_employee_date"),
        CheckConstraint("hours_worked >= 0 AND hours_worked <= 24", name="hours_worked_range"),
        CheckConstraint("overtime_hours >= 0", name="overtime_hours_non_negative"),
    )


class Advance(BaseModel):
    """Salary advance, recovered from the month it was given in."""

    __tablename__ = "advances"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    advance_date: Mapped[date] = mapped_column(Date, nullable=False)
    advance_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("advance_amount > 0", name="advance_amount_positive"),
    )


# ===========================================
# DEDUCTION SETTINGS
# ===========================================

class PayrollSettings(BaseModel):
    """Statutory deduction rates effective from a date. Rates are percentages."""

    __tablename__ = "payroll_settings"

    effective_from: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    pf_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        default=Decimal("12.00"),
        nullable=False,
    )
    esi_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        default=Decimal("0.75"),
        nullable=False,
    )
    lwf_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        default=Decimal("31.00"),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("pf_rate >= 0", name="pf_rate_non_negative"),
        CheckConstraint("esi_rate >= 0", name="esi_rate_non_negative"),
        CheckConstraint("lwf_amount >= 0", name="lwf_amount_non_negative"),
    )


# ===========================================
# PAYROLL OUTPUT
# ===========================================

class PayrollBatch(BaseModel):
    """A unit's payroll run for one month."""

    __tablename__ = "payroll_batches"

    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    month: Mapped[date] = mapped_column(
        Date, nullable=False,
        comment="First day of the payroll month",
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        SQLEnum(BatchStatus),
        default=BatchStatus.COMPLETED,
        nullable=False,
    )

    total_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_net: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    disbursements: Mapped[List["SalaryDisbursement"]] = relationship(back_populates="batch")

    def __repr__(self) -> str:
        return f"<PayrollBatch(id={self.id}, name={self.name}, status={self.status})>"


class SalaryDisbursement(BaseModel):
    """Calculated salary of one employee for one month, stored rounded."""

    __tablename__ = "salary_disbursements"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_batches.id", ondelete="SET NULL"),
        nullable=True,
    )
    month: Mapped[date] = mapped_column(
        Date, nullable=False,
        comment="First day of the payroll month",
    )

    # Days
    paid_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    present_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    weekly_off_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_leave_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unpaid_leave_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overtime_hours: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=2), default=Decimal("0.00"), nullable=False,
    )

    # Earnings
    basic_earned: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    hra_earned: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    other_earned: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    overtime_amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    # Deductions
    pf_deduction: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    esi_deduction: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    welfare_fund_deduction: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    advances_deduction: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    net_salary: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    batch: Mapped[Optional["PayrollBatch"]] = relationship(back_populates="disbursements")

    __table_args__ = (
        UniqueConstraint("employee_id", "month", name="uq_salary_disbursement_employee_month"),
    )
