"""
DK Payroll - Payroll Schemas

Pydantic schemas for wage calculation, payroll batches, leave
reconciliation and the unit, employee, advance and deduction rate
master data.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.attendance import PERIOD_PATTERN, AttendanceTallyResponse
from app.services.backend_rpc import LeaveAdjustment


# ===========================================
# ENUMS AS LITERALS
# ===========================================

WagePolicyPresetEnum = Literal["panchkula", "enhanced", "basic"]

BatchStatusEnum = Literal["completed", "partial", "failed"]


# ===========================================
# CALCULATION INPUT SCHEMAS
# Amounts are not range-checked here; the wage calculator rejects
# negative values with INVALID_INPUT.
# ===========================================

class CompensationInput(BaseModel):
    """Fixed monthly pay components."""
    basic_salary: Decimal
    hra_amount: Decimal = Decimal("0")
    other_allowance: Decimal = Decimal("0")
    overtime_rate_per_hour: Optional[Decimal] = None


class AttendanceTallyInput(BaseModel):
    """Attendance totals for the period."""
    present_days: int = 0
    weekly_off_days: int = 0
    paid_leave_days: int = 0
    unpaid_leave_days: int = 0
    overtime_hours: Decimal = Decimal("0")


class DeductionRatesInput(BaseModel):
    """Deduction rates as percentages, plus the flat welfare fund amount."""
    effective_from: date
    pf_rate: Decimal = Decimal("12")
    esi_rate: Decimal = Decimal("0.75")
    lwf_amount: Decimal = Decimal("31")


class WagePolicyInput(BaseModel):
    """
    Preset plus optional per-field overrides.

    Omitted fields keep the preset value. pf_cap sent as null removes
    the preset's cap; for the other fields null is the same as omitted.
    """
    preset: WagePolicyPresetEnum = "panchkula"
    pro_ration_base_days: Optional[int] = None
    hours_per_day: Optional[int] = None
    overtime_multiplier: Optional[Decimal] = None
    pf_cap: Optional[Decimal] = None
    esi_ceiling: Optional[Decimal] = None
    prorate_other_allowance: Optional[bool] = None


class WageCalculationRequest(BaseModel):
    """
    Pure wage calculation request.

    When rates are omitted, the set stored in payroll settings that is
    effective on calculation_date (default today) is used.
    """
    compensation: CompensationInput
    attendance: AttendanceTallyInput
    rates: Optional[DeductionRatesInput] = None
    calculation_date: Optional[date] = None
    advances_total: Decimal = Decimal("0")
    policy: Optional[WagePolicyInput] = None


# ===========================================
# CALCULATION OUTPUT SCHEMAS
# ===========================================

class DeductionRatesResponse(BaseModel):
    """Deduction rate set."""
    effective_from: date
    pf_rate: Decimal
    esi_rate: Decimal
    lwf_amount: Decimal

    class Config:
        from_attributes = True


class WagePolicyResponse(BaseModel):
    """Policy constants used for a calculation."""
    pro_ration_base_days: int
    hours_per_day: int
    overtime_multiplier: Decimal
    pf_cap: Optional[Decimal] = None
    esi_ceiling: Decimal
    prorate_other_allowance: bool

    class Config:
        from_attributes = True


class PayrollResultResponse(BaseModel):
    """Calculated pay, rounded to 2 decimal places."""
    # Earnings
    basic_earned: Decimal
    hra_earned: Decimal
    other_earned: Decimal
    overtime_amount: Decimal
    gross_salary: Decimal

    # Deductions
    pf_deduction: Decimal
    esi_deduction: Decimal
    welfare_fund_deduction: Decimal
    advances_deduction: Decimal
    total_deductions: Decimal

    net_salary: Decimal
    paid_days: int
    esi_exempt: bool

    class Config:
        from_attributes = True


class WageCalculationResponse(BaseModel):
    """Wage calculation with the policy and rates that produced it."""
    policy: WagePolicyResponse
    rates: DeductionRatesResponse
    result: PayrollResultResponse


class EmployeeSalaryResponse(BaseModel):
    """One employee's pay for a period."""
    employee_id: UUID
    employee_name: str
    employee_code: Optional[str] = None
    period: str
    attendance: AttendanceTallyResponse
    result: PayrollResultResponse


# ===========================================
# BATCH SCHEMAS
# ===========================================

class PayrollBatchRequest(BaseModel):
    """Run payroll for a unit and month."""
    unit_id: UUID
    period: str = Field(..., pattern=PERIOD_PATTERN, description="YYYY-MM")
    persist: bool = True


class BatchSummaryResponse(BaseModel):
    total_employees: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal

    class Config:
        from_attributes = True


class EmployeeFailureResponse(BaseModel):
    """An employee left out of the batch."""
    employee_id: UUID
    employee_name: str
    employee_code: Optional[str] = None
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class PayrollBatchResponse(BaseModel):
    """Outcome of a payroll batch."""
    batch_id: Optional[UUID] = None
    unit_id: UUID
    period: str
    status: BatchStatusEnum
    summary: BatchSummaryResponse
    results: List[EmployeeSalaryResponse]
    failures: List[EmployeeFailureResponse]


class SalaryDisbursementResponse(BaseModel):
    """Stored salary of one employee for one month."""
    id: UUID
    employee_id: UUID
    batch_id: Optional[UUID] = None
    month: date
    paid_days: int
    present_days: int
    weekly_off_days: int
    paid_leave_days: int
    unpaid_leave_days: int
    overtime_hours: Decimal
    basic_earned: Decimal
    hra_earned: Decimal
    other_earned: Decimal
    overtime_amount: Decimal
    gross_salary: Decimal
    pf_deduction: Decimal
    esi_deduction: Decimal
    welfare_fund_deduction: Decimal
    advances_deduction: Decimal
    total_deductions: Decimal
    net_salary: Decimal

    class Config:
        from_attributes = True


# ===========================================
# LEAVE RECONCILIATION SCHEMAS
# ===========================================

class LeaveReconciliationRequest(BaseModel):
    """Reconcile leave balances for a month; all units when unit_id is omitted."""
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    unit_id: Optional[UUID] = None


class LeaveAdjustmentRequest(BaseModel):
    """Apply selected reconciliation adjustments."""
    adjustments: List[LeaveAdjustment] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=500)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("A reason is required for leave adjustments")
        return v.strip()


# ===========================================
# UNIT SCHEMAS
# ===========================================

class UnitCreate(BaseModel):
    """Create unit request."""
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=50)
    location: Optional[str] = Field(None, max_length=200)


class UnitUpdate(BaseModel):
    """Update unit request."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    location: Optional[str] = Field(None, max_length=200)


class UnitResponse(BaseModel):
    id: UUID
    name: str
    code: str
    location: Optional[str] = None

    class Config:
        from_attributes = True


# ===========================================
# EMPLOYEE SCHEMAS
# ===========================================

class EmployeeCreate(BaseModel):
    """Create employee request with fixed monthly pay components."""
    unit_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    employee_code: Optional[str] = Field(None, max_length=50)
    uan_number: Optional[str] = Field(None, max_length=20)
    joining_date: Optional[date] = None

    basic_salary: Decimal = Field(..., ge=0)
    hra_amount: Decimal = Field(Decimal("0"), ge=0)
    other_allowance: Decimal = Field(Decimal("0"), ge=0)
    overtime_rate_per_hour: Optional[Decimal] = Field(None, ge=0)

    active: bool = True


class EmployeeUpdate(BaseModel):
    """Update employee request. Set overtime_rate_per_hour to 0 to use the derived rate."""
    unit_id: Optional[UUID] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    employee_code: Optional[str] = Field(None, max_length=50)
    uan_number: Optional[str] = Field(None, max_length=20)
    joining_date: Optional[date] = None

    basic_salary: Optional[Decimal] = Field(None, ge=0)
    hra_amount: Optional[Decimal] = Field(None, ge=0)
    other_allowance: Optional[Decimal] = Field(None, ge=0)
    overtime_rate_per_hour: Optional[Decimal] = Field(None, ge=0)

    active: Optional[bool] = None


class EmployeeResponse(BaseModel):
    id: UUID
    unit_id: UUID
    name: str
    employee_code: Optional[str] = None
    uan_number: Optional[str] = None
    joining_date: Optional[date] = None
    basic_salary: Decimal
    hra_amount: Decimal
    other_allowance: Decimal
    overtime_rate_per_hour: Optional[Decimal] = None
    active: bool

    class Config:
        from_attributes = True


# ===========================================
# ADVANCE SCHEMAS
# ===========================================

class AdvanceCreate(BaseModel):
    """Salary advance, recovered from the month of advance_date."""
    employee_id: UUID
    advance_date: date
    advance_amount: Decimal = Field(..., gt=0)
    remarks: Optional[str] = Field(None, max_length=500)


class AdvanceUpdate(BaseModel):
    advance_date: Optional[date] = None
    advance_amount: Optional[Decimal] = Field(None, gt=0)
    remarks: Optional[str] = Field(None, max_length=500)


class AdvanceResponse(BaseModel):
    id: UUID
    employee_id: UUID
    advance_date: date
    advance_amount: Decimal
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


# ===========================================
# DEDUCTION RATE SET SCHEMAS
# ===========================================

class RateSetCreate(BaseModel):
    """New deduction rates from a date. PF and ESI are percentages, LWF is flat."""
    effective_from: date
    pf_rate: Decimal = Field(Decimal("12"), ge=0, le=100)
    esi_rate: Decimal = Field(Decimal("0.75"), ge=0, le=100)
    lwf_amount: Decimal = Field(Decimal("31"), ge=0)


class RateSetResponse(DeductionRatesResponse):
    id: UUID
