"""
DK Payroll - Attendance Schemas

Pydantic schemas for attendance tally, daily attendance records and CSV
upload requests and responses.
"""

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.payroll import AttendanceStatus
from app.services.backend_rpc import CsvRowError


# ABSENT is accepted as UNPAID_LEAVE, the same as on CSV import
AttendanceStatusEnum = Literal[
    "PRESENT", "WEEKLY_OFF", "CASUAL_LEAVE", "EARNED_LEAVE", "UNPAID_LEAVE", "ABSENT"
]

PERIOD_PATTERN = r"^\d{4}-\d{2}$"


class AttendanceEntryInput(BaseModel):
    """One day of attendance."""
    attendance_date: date
    status: AttendanceStatusEnum
    hours_worked: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")


class AttendanceTallyRequest(BaseModel):
    """Daily entries to validate and tally, optionally bounded to a month."""
    period: Optional[str] = Field(None, pattern=PERIOD_PATTERN, description="YYYY-MM")
    entries: List[AttendanceEntryInput] = Field(..., min_length=1)


class AttendanceTallyResponse(BaseModel):
    """Attendance totals for a period."""
    present_days: int
    weekly_off_days: int
    paid_leave_days: int
    unpaid_leave_days: int
    overtime_hours: Decimal
    paid_days: int

    class Config:
        from_attributes = True


class CsvValidationResponse(BaseModel):
    """Result of validating an attendance CSV without submitting it."""
    total_rows: int
    valid_rows: int
    error_count: int
    errors: List[CsvRowError]


class AttendanceRecordCreate(BaseModel):
    """One employee's attendance for one day."""
    employee_id: UUID
    attendance_date: date
    status: AttendanceStatusEnum
    hours_worked: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")


class AttendanceRecordResponse(BaseModel):
    id: UUID
    employee_id: UUID
    unit_id: Optional[UUID] = None
    attendance_date: date
    status: AttendanceStatus
    hours_worked: Decimal
    overtime_hours: Decimal

    class Config:
        from_attributes = True
