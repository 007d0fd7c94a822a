"""
DK Payroll - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.attendance import (
    AttendanceEntryInput,
    AttendanceTallyRequest,
    AttendanceTallyResponse,
    CsvValidationResponse,
)
from app.schemas.payroll import (
    WageCalculationRequest,
    WageCalculationResponse,
    EmployeeSalaryResponse,
    PayrollBatchRequest,
    PayrollBatchResponse,
    SalaryDisbursementResponse,
    DeductionRatesResponse,
    LeaveReconciliationRequest,
    LeaveAdjustmentRequest,
)
