"""
DK Payroll - Payroll Router

API endpoints for units, employees and advances, wage calculation,
payroll batches, deduction rates and leave reconciliation.
"""

import uuid
from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.schemas.attendance import AttendanceTallyResponse, PERIOD_PATTERN
from app.schemas.payroll import (
    AdvanceCreate,
    AdvanceResponse,
    AdvanceUpdate,
    DeductionRatesResponse,
    EmployeeCreate,
    EmployeeFailureResponse,
    EmployeeResponse,
    EmployeeSalaryResponse,
    EmployeeUpdate,
    LeaveAdjustmentRequest,
    LeaveReconciliationRequest,
    PayrollBatchRequest,
    PayrollBatchResponse,
    PayrollResultResponse,
    RateSetCreate,
    RateSetResponse,
    SalaryDisbursementResponse,
    UnitCreate,
    UnitResponse,
    UnitUpdate,
    WageCalculationRequest,
    WageCalculationResponse,
    WagePolicyInput,
    WagePolicyResponse,
    BatchSummaryResponse,
)
from app.services.attendance_service import PayPeriod
from app.services.backend_rpc import (
    AdjustmentResult,
    BackendRpcClient,
    ReconciliationResult,
    ReconciliationStatus,
    get_backend_rpc_client,
)
from app.services.payroll_providers import DatabasePayrollProvider
from app.services.payroll_service import EmployeePayroll, PayrollService
from app.services.wage_calculator import (
    AttendanceTally,
    CompensationProfile,
    DeductionRates,
    WageCalculator,
    WagePolicy,
)


router = APIRouter()

# Policy fields where an explicit null is a value, not "keep the preset"
NULLABLE_POLICY_FIELDS = {"pf_cap"}


def _resolve_policy(policy: Optional[WagePolicyInput]) -> WagePolicy:
    if policy is None:
        return settings.wage_policy
    overrides = {
        name: value
        for name, value in policy.model_dump(exclude={"preset"}, exclude_unset=True).items()
        if value is not None or name in NULLABLE_POLICY_FIELDS
    }
    return WagePolicy.preset(policy.preset).with_overrides(**overrides)


def _employee_salary_response(payroll: EmployeePayroll) -> EmployeeSalaryResponse:
    tally = payroll.tally
    return EmployeeSalaryResponse(
        employee_id=payroll.employee_id,
        employee_name=payroll.employee_name,
        employee_code=payroll.employee_code,
        period=payroll.period.label,
        attendance=AttendanceTallyResponse(
            present_days=tally.present_days,
            weekly_off_days=tally.weekly_off_days,
            paid_leave_days=tally.paid_leave_days,
            unpaid_leave_days=tally.unpaid_leave_days,
            overtime_hours=tally.overtime_hours,
            paid_days=tally.paid_days,
        ),
        result=PayrollResultResponse.model_validate(payroll.result.rounded()),
    )


# ===========================================
# UNIT ENDPOINTS
# ===========================================

@router.post(
    "/units",
    response_model=UnitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a unit",
)
async def create_unit(
    data: UnitCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.create_unit(data.model_dump())


@router.get(
    "/units",
    response_model=List[UnitResponse],
    summary="List units",
)
async def list_units(db: AsyncSession = Depends(get_async_session)):
    service = PayrollService(db)
    return await service.list_units()


@router.get(
    "/units/{unit_id}",
    response_model=UnitResponse,
    summary="Get a unit",
)
async def get_unit(
    unit_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_unit(unit_id)


@router.put(
    "/units/{unit_id}",
    response_model=UnitResponse,
    summary="Update a unit",
)
async def update_unit(
    unit_id: uuid.UUID,
    data: UnitUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.update_unit(unit_id, data.model_dump(exclude_unset=True))


# ===========================================
# EMPLOYEE ENDPOINTS
# ===========================================

@router.post(
    "/employees",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an employee",
    description="Create an employee in a unit with fixed monthly basic, HRA and other allowance.",
)
async def create_employee(
    data: EmployeeCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.create_employee(data.model_dump())


@router.get(
    "/employees",
    response_model=List[EmployeeResponse],
    summary="List employees",
)
async def list_employees(
    unit_id: Optional[uuid.UUID] = Query(None, description="Unit filter"),
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.list_employees(unit_id=unit_id, active_only=active_only)


@router.get(
    "/employees/{employee_id}",
    response_model=EmployeeResponse,
    summary="Get an employee",
)
async def get_employee(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_employee(employee_id)


@router.put(
    "/employees/{employee_id}",
    response_model=EmployeeResponse,
    summary="Update an employee",
    description="Update employee details and pay components. Set active to false to leave the employee out of batches.",
)
async def update_employee(
    employee_id: uuid.UUID,
    data: EmployeeUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.update_employee(employee_id, data.model_dump(exclude_unset=True))


# ===========================================
# ADVANCE ENDPOINTS
# ===========================================

@router.post(
    "/advances",
    response_model=AdvanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a salary advance",
)
async def create_advance(
    data: AdvanceCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.create_advance(data.model_dump())


@router.get(
    "/advances",
    response_model=List[AdvanceResponse],
    summary="List salary advances",
)
async def list_advances(
    employee_id: Optional[uuid.UUID] = Query(None),
    period: Optional[str] = Query(None, pattern=PERIOD_PATTERN, description="YYYY-MM"),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.list_advances(
        employee_id=employee_id,
        period=PayPeriod.parse(period) if period else None,
    )


@router.put(
    "/advances/{advance_id}",
    response_model=AdvanceResponse,
    summary="Update a salary advance",
)
async def update_advance(
    advance_id: uuid.UUID,
    data: AdvanceUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.update_advance(advance_id, data.model_dump(exclude_unset=True))


@router.delete(
    "/advances/{advance_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a salary advance",
)
async def delete_advance(
    advance_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    await service.delete_advance(advance_id)


# ===========================================
# CALCULATION ENDPOINTS
# ===========================================

@router.post(
    "/calculate",
    response_model=WageCalculationResponse,
    summary="Calculate wages",
    description="Calculate pay from compensation, attendance totals, rates and advances. No data is stored.",
)
async def calculate_wages(
    data: WageCalculationRequest,
    db: AsyncSession = Depends(get_async_session),
):
    """Pure wage calculation."""
    policy = _resolve_policy(data.policy)

    if data.rates is not None:
        rates = DeductionRates(**data.rates.model_dump())
    else:
        on_date = data.calculation_date or date.today()
        rates = await DatabasePayrollProvider(db).get_effective_rates(on_date)

    profile = CompensationProfile(**data.compensation.model_dump())
    tally = AttendanceTally(**data.attendance.model_dump())

    result = WageCalculator(policy).calculate(profile, tally, rates, data.advances_total)

    return WageCalculationResponse(
        policy=WagePolicyResponse.model_validate(policy),
        rates=DeductionRatesResponse.model_validate(rates),
        result=PayrollResultResponse.model_validate(result.rounded()),
    )


@router.get(
    "/employees/{employee_id}/salary",
    response_model=EmployeeSalaryResponse,
    summary="Calculate employee salary",
    description="Calculate one employee's pay for a month from stored attendance, advances and rates.",
)
async def get_employee_salary(
    employee_id: uuid.UUID,
    period: str = Query(..., pattern=PERIOD_PATTERN, description="YYYY-MM"),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    payroll = await service.calculate_for_employee(employee_id, PayPeriod.parse(period))
    return _employee_salary_response(payroll)


@router.get(
    "/employees/{employee_id}/salary/cross-check",
    response_model=Dict[str, Any],
    summary="Cross-check salary with backend",
    description="Compare the local calculation with the backend's calculate_panchkula_salary procedure.",
)
async def cross_check_employee_salary(
    employee_id: uuid.UUID,
    period: str = Query(..., pattern=PERIOD_PATTERN, description="YYYY-MM"),
    db: AsyncSession = Depends(get_async_session),
    rpc_client: BackendRpcClient = Depends(get_backend_rpc_client),
):
    service = PayrollService(db)
    return await service.cross_check(employee_id, PayPeriod.parse(period), rpc_client)


# ===========================================
# BATCH ENDPOINTS
# ===========================================

@router.post(
    "/batches",
    response_model=PayrollBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Run payroll batch",
    description="Calculate every active employee of a unit for a month. Invalid employees are reported, not fatal.",
)
async def run_payroll_batch(
    data: PayrollBatchRequest,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    outcome = await service.run_batch(data.unit_id, PayPeriod.parse(data.period), persist=data.persist)

    return PayrollBatchResponse(
        batch_id=outcome.batch_id,
        unit_id=outcome.unit_id,
        period=outcome.period.label,
        status=outcome.status.value,
        summary=BatchSummaryResponse(**asdict(outcome.summary)),
        results=[_employee_salary_response(p) for p in outcome.results],
        failures=[EmployeeFailureResponse.model_validate(f) for f in outcome.failures],
    )


@router.get(
    "/disbursements",
    response_model=List[SalaryDisbursementResponse],
    summary="List salary disbursements",
)
async def list_disbursements(
    period: str = Query(..., pattern=PERIOD_PATTERN, description="YYYY-MM"),
    unit_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.list_disbursements(PayPeriod.parse(period), unit_id=unit_id)


# ===========================================
# RATE ENDPOINTS
# ===========================================

@router.post(
    "/rates",
    response_model=RateSetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add deduction rates",
    description="Add PF, ESI and LWF rates effective from a date. Only one set may start on a given date.",
)
async def create_rate_set(
    data: RateSetCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.create_rate_set(data.model_dump())


@router.get(
    "/rates",
    response_model=List[RateSetResponse],
    summary="List deduction rate history",
)
async def list_rate_sets(db: AsyncSession = Depends(get_async_session)):
    service = PayrollService(db)
    return await service.list_rate_sets()


@router.get(
    "/rates/effective",
    response_model=DeductionRatesResponse,
    summary="Get effective deduction rates",
)
async def get_effective_rates(
    on: Optional[date] = Query(None, description="Date to look up, default today"),
    db: AsyncSession = Depends(get_async_session),
):
    return await DatabasePayrollProvider(db).get_effective_rates(on or date.today())


# ===========================================
# LEAVE RECONCILIATION ENDPOINTS
# ===========================================

@router.post(
    "/leave-reconciliation",
    response_model=ReconciliationResult,
    summary="Reconcile monthly leaves",
    description="Run the backend's leave reconciliation for a month and return suggested adjustments.",
)
async def reconcile_leaves(
    data: LeaveReconciliationRequest,
    rpc_client: BackendRpcClient = Depends(get_backend_rpc_client),
):
    return await rpc_client.reconcile_monthly_leaves(data.month, data.year, data.unit_id)


@router.post(
    "/leave-adjustments",
    response_model=AdjustmentResult,
    summary="Apply leave adjustments",
)
async def apply_leave_adjustments(
    data: LeaveAdjustmentRequest,
    rpc_client: BackendRpcClient = Depends(get_backend_rpc_client),
):
    return await rpc_client.apply_leave_adjustments(data.adjustments, data.reason, data.month, data.year)


@router.get(
    "/leave-reconciliation/status",
    response_model=List[ReconciliationStatus],
    summary="Get leave reconciliation status",
    description="Whether each unit's leaves have been reconciled for a month.",
)
async def get_reconciliation_status(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    unit_id: Optional[uuid.UUID] = Query(None),
    rpc_client: BackendRpcClient = Depends(get_backend_rpc_client),
):
    return await rpc_client.get_reconciliation_status(month, year, unit_id)
