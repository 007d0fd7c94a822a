"""
DK Payroll - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.payroll import (
    Advance,
    AttendanceRecord,
    AttendanceStatus,
    BatchStatus,
    PayrollBatch,
    PayrollEmployee,
    PayrollSettings,
    SalaryDisbursement,
    Unit,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "Advance",
    "AttendanceRecord",
    "AttendanceStatus",
    "BatchStatus",
    "PayrollBatch",
    "PayrollEmployee",
    "PayrollSettings",
    "SalaryDisbursement",
    "Unit",
]
