"""
DK Payroll - Payroll Service

Runs the wage calculator against stored data.

Per employee:
1. Compensation profile from the employee master
2. Daily attendance for the month, validated and tallied
3. Advances given in the month, summed
4. Deduction rates effective on the first day of the month
5. WageCalculator with the configured wage policy

Per unit (batch):
- Every active employee is calculated independently
- Employees with invalid data are reported, the rest are paid
- Results are stored rounded in salary_disbursements (one per employee per month)
- A payroll_batches row records the totals

Also maintains the data the calculation reads: units, employees,
advances, deduction rate sets and daily attendance.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.payroll import (
    Advance,
    AttendanceRecord,
    BatchStatus,
    PayrollBatch,
    PayrollEmployee,
    PayrollSettings,
    SalaryDisbursement,
    Unit,
)
from app.services.attendance_service import AttendanceEntry, PayPeriod, aggregate_tally, validate_entry
from app.services.backend_rpc import BackendRpcClient
from app.services.payroll_providers import (
    AdvancesProvider,
    AttendanceProvider,
    DatabasePayrollProvider,
    EmployeeProvider,
    EmployeeRecord,
    RatesProvider,
)
from app.services.wage_calculator import (
    AttendanceTally,
    PayrollResult,
    WageCalculator,
    WagePolicy,
    total_advances,
)
from app.utils.error_handling import (
    AttendanceValidationException,
    ConflictException,
    EmployeeNotFoundException,
    NotFoundException,
    UnitNotFoundException,
    ValidationException,
)


logger = logging.getLogger(__name__)


# ===========================================
# CONSTANTS
# ===========================================

# Largest difference tolerated when comparing with the backend's figures
CROSS_CHECK_TOLERANCE = Decimal("0.01")

# Local result field -> backend calculate_panchkula_salary field
CROSS_CHECK_FIELDS = {
    "basic_earned": "basic_earned",
    "hra_earned": "hra_earned",
    "other_earned": "other_earned",
    "gross_salary": "gross_salary",
    "pf_deduction": "epf_deduction",
    "esi_deduction": "esi_deduction",
    "welfare_fund_deduction": "lwf_deduction",
    "total_deductions": "total_deductions",
    "net_salary": "net_salary",
}


def _apply_changes(record, data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if value is not None and hasattr(record, key):
            setattr(record, key, value)


@dataclass(frozen=True)
class EmployeePayroll:
    """One employee's calculated pay for one period."""
    employee_id: uuid.UUID
    employee_name: str
    employee_code: Optional[str]
    period: PayPeriod
    tally: AttendanceTally
    result: PayrollResult


@dataclass(frozen=True)
class EmployeeFailure:
    """An employee the batch could not pay, and why."""
    employee_id: uuid.UUID
    employee_name: str
    employee_code: Optional[str]
    error_code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchSummary:
    total_employees: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal


@dataclass
class BatchOutcome:
    """Everything a unit batch produced."""
    unit_id: uuid.UUID
    period: PayPeriod
    status: BatchStatus
    summary: BatchSummary
    results: List[EmployeePayroll] = field(default_factory=list)
    failures: List[EmployeeFailure] = field(default_factory=list)
    batch_id: Optional[uuid.UUID] = None


class PayrollService:
    """
    Payroll service for calculating and storing salaries.

    Inputs come through the provider interfaces; with only a database
    session given, all of them read from the database.
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        employees: Optional[EmployeeProvider] = None,
        attendance: Optional[AttendanceProvider] = None,
        advances: Optional[AdvancesProvider] = None,
        rates: Optional[RatesProvider] = None,
        policy: Optional[WagePolicy] = None,
    ):
        self.db = db
        database_provider = DatabasePayrollProvider(db) if db is not None else None
        self.employees = employees or database_provider
        self.attendance = attendance or database_provider
        self.advances = advances or database_provider
        self.rates = rates or database_provider
        self.calculator = WageCalculator(policy or settings.wage_policy)

    # ===========================================
    # CALCULATION
    # ===========================================

    async def calculate_for_employee(
        self,
        employee_id: uuid.UUID,
        period: PayPeriod,
    ) -> EmployeePayroll:
        """
        Calculate one employee's pay for a period.

        Raises:
            EmployeeNotFoundException: Unknown employee
            AttendanceValidationException: Invalid daily attendance
            InvalidInputException: Invalid amounts or no effective rates
        """
        employee = await self.employees.get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFoundException(employee_id)
        return await self._calculate(employee, period)

    async def _calculate(self, employee: EmployeeRecord, period: PayPeriod) -> EmployeePayroll:
        entries = await self.attendance.get_attendance(employee.employee_id, period)
        tally = aggregate_tally(entries, period=period, employee_id=employee.employee_id)
        advances = total_advances(await self.advances.get_advances(employee.employee_id, period))
        rates = await self.rates.get_effective_rates(period.start)

        result = self.calculator.calculate(employee.profile, tally, rates, advances)
        return EmployeePayroll(
            employee_id=employee.employee_id,
            employee_name=employee.name,
            employee_code=employee.employee_code,
            period=period,
            tally=tally,
            result=result,
        )

    async def run_batch(
        self,
        unit_id: uuid.UUID,
        period: PayPeriod,
        persist: bool = True,
    ) -> BatchOutcome:
        """
        Calculate every active employee of a unit for a period.

        Employees whose data fails validation are collected as failures;
        they do not stop the batch.
        """
        if not await self.employees.unit_exists(unit_id):
            raise UnitNotFoundException(unit_id)

        employees = await self.employees.list_active_employees(unit_id)
        logger.info(f"Payroll batch {period.label} for unit {unit_id}: {len(employees)} employees")

        results: List[EmployeePayroll] = []
        failures: List[EmployeeFailure] = []

        # Sequential: the database provider shares one session
        for employee in employees:
            try:
                results.append(await self._calculate(employee, period))
            except ValidationException as e:
                logger.warning(
                    f"Payroll {period.label}: skipped {employee.employee_code or employee.employee_id}: {e.message}"
                )
                failures.append(EmployeeFailure(
                    employee_id=employee.employee_id,
                    employee_name=employee.name,
                    employee_code=employee.employee_code,
                    error_code=e.code.value,
                    message=e.message,
                    details=e.details,
                ))

        if failures and not results:
            status = BatchStatus.FAILED
        elif failures:
            status = BatchStatus.PARTIAL
        else:
            status = BatchStatus.COMPLETED

        outcome = BatchOutcome(
            unit_id=unit_id,
            period=period,
            status=status,
            summary=self.summarize(r.result for r in results),
            results=results,
            failures=failures,
        )

        if persist:
            outcome.batch_id = await self._save_batch(outcome)

        logger.info(
            f"Payroll batch {period.label} for unit {unit_id}: {status.value}, "
            f"{len(results)} paid, {len(failures)} failed, net {outcome.summary.total_net}"
        )
        return outcome

    @staticmethod
    def summarize(results: Iterable[PayrollResult]) -> BatchSummary:
        """Batch totals, summed from each result as stored (rounded to 2 decimal places)."""
        count = 0
        total_gross = Decimal("0.00")
        total_deductions = Decimal("0.00")
        total_net = Decimal("0.00")

        for result in results:
            rounded = result.rounded()
            count += 1
            total_gross += rounded.gross_salary
            total_deductions += rounded.total_deductions
            total_net += rounded.net_salary

        return BatchSummary(
            total_employees=count,
            total_gross=total_gross,
            total_deductions=total_deductions,
            total_net=total_net,
        )

    # ===========================================
    # PERSISTENCE
    # ===========================================

    async def save_disbursement(
        self,
        payroll: EmployeePayroll,
        batch_id: Optional[uuid.UUID] = None,
    ) -> SalaryDisbursement:
        """Store a rounded result, replacing any earlier one for the same employee and month."""
        month = payroll.period.start
        existing = await self.db.execute(
            select(SalaryDisbursement).where(
                SalaryDisbursement.employee_id == payroll.employee_id,
                SalaryDisbursement.month == month,
            )
        )
        disbursement = existing.scalar_one_or_none()
        if disbursement is None:
            disbursement = SalaryDisbursement(employee_id=payroll.employee_id, month=month)
            self.db.add(disbursement)

        rounded = payroll.result.rounded()
        tally = payroll.tally

        disbursement.batch_id = batch_id
        disbursement.paid_days = rounded.paid_days
        disbursement.present_days = tally.present_days
        disbursement.weekly_off_days = tally.weekly_off_days
        disbursement.paid_leave_days = tally.paid_leave_days
        disbursement.unpaid_leave_days = tally.unpaid_leave_days
        disbursement.overtime_hours = tally.overtime_hours
        disbursement.basic_earned = rounded.basic_earned
        disbursement.hra_earned = rounded.hra_earned
        disbursement.other_earned = rounded.other_earned
        disbursement.overtime_amount = rounded.overtime_amount
        disbursement.gross_salary = rounded.gross_salary
        disbursement.pf_deduction = rounded.pf_deduction
        disbursement.esi_deduction = rounded.esi_deduction
        disbursement.welfare_fund_deduction = rounded.welfare_fund_deduction
        disbursement.advances_deduction = rounded.advances_deduction
        disbursement.total_deductions = rounded.total_deductions
        disbursement.net_salary = rounded.net_salary

        await self.db.flush()
        return disbursement

    async def _save_batch(self, outcome: BatchOutcome) -> uuid.UUID:
        batch = PayrollBatch(
            unit_id=outcome.unit_id,
            month=outcome.period.start,
            name=f"Payroll {outcome.period.label}",
            status=outcome.status,
            total_employees=outcome.summary.total_employees,
            failed_employees=len(outcome.failures),
            total_gross=outcome.summary.total_gross,
            total_deductions=outcome.summary.total_deductions,
            total_net=outcome.summary.total_net,
        )
        self.db.add(batch)
        await self.db.flush()

        for payroll in outcome.results:
            await self.save_disbursement(payroll, batch_id=batch.id)

        await self.db.commit()
        return batch.id

    async def list_disbursements(self, period: PayPeriod, unit_id: Optional[uuid.UUID] = None) -> List[SalaryDisbursement]:
        query = select(SalaryDisbursement).where(SalaryDisbursement.month == period.start)
        if unit_id is not None:
            query = query.join(PayrollBatch, SalaryDisbursement.batch_id == PayrollBatch.id).where(
                PayrollBatch.unit_id == unit_id
            )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ===========================================
    # UNITS
    # ===========================================

    async def create_unit(self, data: Dict[str, Any]) -> Unit:
        """Create a unit. Unit codes are unique."""
        await self._ensure_unit_code_free(data["code"])
        unit = Unit(**data)
        self.db.add(unit)
        await self.db.commit()
        await self.db.refresh(unit)
        logger.info(f"Created unit {unit.code}")
        return unit

    async def list_units(self) -> List[Unit]:
        result = await self.db.execute(select(Unit).order_by(Unit.code))
        return list(result.scalars().all())

    async def get_unit(self, unit_id: uuid.UUID) -> Unit:
        unit = await self.db.get(Unit, unit_id)
        if unit is None:
            raise UnitNotFoundException(unit_id)
        return unit

    async def update_unit(self, unit_id: uuid.UUID, data: Dict[str, Any]) -> Unit:
        unit = await self.get_unit(unit_id)
        if data.get("code") and data["code"] != unit.code:
            await self._ensure_unit_code_free(data["code"])
        _apply_changes(unit, data)
        await self.db.commit()
        await self.db.refresh(unit)
        return unit

    async def _ensure_unit_code_free(self, code: str) -> None:
        existing = await self.db.execute(select(Unit.id).where(Unit.code == code))
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(
                f"Unit code {code} already exists",
                resource_type="Unit",
                details={"code": code},
            )

    # ===========================================
    # EMPLOYEES
    # ===========================================

    async def create_employee(self, data: Dict[str, Any]) -> PayrollEmployee:
        """
        Create an employee in an existing unit.

        Raises:
            UnitNotFoundException: Unknown unit
            ConflictException: Employee code already in use
        """
        await self.get_unit(data["unit_id"])
        if data.get("employee_code"):
            await self._ensure_employee_code_free(data["employee_code"])

        employee = PayrollEmployee(**data)
        self.db.add(employee)
        await self.db.commit()
        await self.db.refresh(employee)
        logger.info(f"Created employee {employee.employee_code or employee.id} in unit {employee.unit_id}")
        return employee

    async def list_employees(
        self,
        unit_id: Optional[uuid.UUID] = None,
        active_only: bool = False,
    ) -> List[PayrollEmployee]:
        query = select(PayrollEmployee).order_by(PayrollEmployee.name)
        if unit_id is not None:
            query = query.where(PayrollEmployee.unit_id == unit_id)
        if active_only:
            query = query.where(PayrollEmployee.active == True)  # noqa: E712
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_employee(self, employee_id: uuid.UUID) -> PayrollEmployee:
        employee = await self.db.get(PayrollEmployee, employee_id)
        if employee is None:
            raise EmployeeNotFoundException(employee_id)
        return employee

    async def update_employee(self, employee_id: uuid.UUID, data: Dict[str, Any]) -> PayrollEmployee:
        """Update employee details. Fields left as None are unchanged."""
        employee = await self.get_employee(employee_id)
        if data.get("unit_id") and data["unit_id"] != employee.unit_id:
            await self.get_unit(data["unit_id"])
        if data.get("employee_code") and data["employee_code"] != employee.employee_code:
            await self._ensure_employee_code_free(data["employee_code"])

        _apply_changes(employee, data)
        await self.db.commit()
        await self.db.refresh(employee)
        return employee

    async def _ensure_employee_code_free(self, code: str) -> None:
        existing = await self.db.execute(
            select(PayrollEmployee.id).where(PayrollEmployee.employee_code == code)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(
                f"Employee code {code} already exists",
                resource_type="Employee",
                details={"employee_code": code},
            )

    # ===========================================
    # ADVANCES
    # ===========================================

    async def create_advance(self, data: Dict[str, Any]) -> Advance:
        """Record a salary advance, recovered in the month of advance_date."""
        await self.get_employee(data["employee_id"])
        advance = Advance(**data)
        self.db.add(advance)
        await self.db.commit()
        await self.db.refresh(advance)
        logger.info(f"Recorded advance of {advance.advance_amount} for {advance.employee_id} on {advance.advance_date}")
        return advance

    async def list_advances(
        self,
        employee_id: Optional[uuid.UUID] = None,
        period: Optional[PayPeriod] = None,
    ) -> List[Advance]:
        query = select(Advance).order_by(Advance.advance_date)
        if employee_id is not None:
            query = query.where(Advance.employee_id == employee_id)
        if period is not None:
            query = query.where(Advance.advance_date >= period.start).where(Advance.advance_date <= period.end)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_advance(self, advance_id: uuid.UUID) -> Advance:
        advance = await self.db.get(Advance, advance_id)
        if advance is None:
            raise NotFoundException("Advance", advance_id)
        return advance

    async def update_advance(self, advance_id: uuid.UUID, data: Dict[str, Any]) -> Advance:
        advance = await self.get_advance(advance_id)
        _apply_changes(advance, data)
        await self.db.commit()
        await self.db.refresh(advance)
        return advance

    async def delete_advance(self, advance_id: uuid.UUID) -> None:
        advance = await self.get_advance(advance_id)
        await self.db.delete(advance)
        await self.db.commit()

    # ===========================================
    # DEDUCTION RATE SETS
    # ===========================================

    async def create_rate_set(self, data: Dict[str, Any]) -> PayrollSettings:
        """
        Add a deduction rate set. Existing sets are never changed, so past
        periods keep the rates they were calculated with.

        Raises:
            ConflictException: A set is already effective from that date
        """
        existing = await self.db.execute(
            select(PayrollSettings.id).where(PayrollSettings.effective_from == data["effective_from"])
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(
                f"Deduction rates effective from {data['effective_from']} already exist",
                resource_type="PayrollSettings",
                details={"effective_from": str(data["effective_from"])},
            )

        rate_set = PayrollSettings(**data)
        self.db.add(rate_set)
        await self.db.commit()
        await self.db.refresh(rate_set)
        logger.info(f"Added deduction rates effective from {rate_set.effective_from}")
        return rate_set

    async def list_rate_sets(self) -> List[PayrollSettings]:
        result = await self.db.execute(
            select(PayrollSettings).order_by(PayrollSettings.effective_from.desc())
        )
        return list(result.scalars().all())

    # ===========================================
    # DAILY ATTENDANCE
    # ===========================================

    async def record_attendance(self, employee_id: uuid.UUID, entry: AttendanceEntry) -> AttendanceRecord:
        """
        Store one day's attendance, replacing any record for the same day.

        Raises:
            EmployeeNotFoundException: Unknown employee
            AttendanceValidationException: Entry breaks the status/hours rules
        """
        employee = await self.get_employee(employee_id)
        problems = validate_entry(entry)
        if problems:
            raise AttendanceValidationException(problems, employee_id=employee_id)

        existing = await self.db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.attendance_date == entry.attendance_date,
            )
        )
        record = existing.scalar_one_or_none()
        if record is None:
            record = AttendanceRecord(employee_id=employee_id, attendance_date=entry.attendance_date)
            self.db.add(record)

        record.unit_id = employee.unit_id
        record.status = entry.status
        record.hours_worked = entry.hours_worked
        record.overtime_hours = entry.overtime_hours

        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def list_attendance(self, employee_id: uuid.UUID, period: PayPeriod) -> List[AttendanceRecord]:
        await self.get_employee(employee_id)
        result = await self.db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.employee_id == employee_id)
            .where(AttendanceRecord.attendance_date >= period.start)
            .where(AttendanceRecord.attendance_date <= period.end)
            .order_by(AttendanceRecord.attendance_date)
        )
        return list(result.scalars().all())

    # ===========================================
    # BACKEND CROSS-CHECK
    # ===========================================

    async def cross_check(
        self,
        employee_id: uuid.UUID,
        period: PayPeriod,
        rpc_client: BackendRpcClient,
    ) -> Dict[str, Any]:
        """
        Compare the local result with the backend's calculate_panchkula_salary.

        Returns:
            Per-field local/backend/difference figures and an overall match flag
        """
        employee = await self.employees.get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFoundException(employee_id)

        local = (await self._calculate(employee, period)).result.rounded()
        server = await rpc_client.calculate_panchkula_salary(
            employee_id=employee_id,
            month=period.start,
            basic_salary=employee.profile.basic_salary,
            hra_amount=employee.profile.hra_amount,
            other_allowances=employee.profile.other_allowance,
        )
        if server is None:
            return {
                "employee_id": str(employee_id),
                "period": period.label,
                "matches": False,
                "paid_days": {"local": local.paid_days, "backend": None},
                "fields": {},
                "backend_available": False,
            }

        fields = {}
        matches = local.paid_days == server.paid_days
        for local_name, server_name in CROSS_CHECK_FIELDS.items():
            local_value = getattr(local, local_name)
            server_value = getattr(server, server_name)
            difference = local_value - server_value
            fields[local_name] = {
                "local": local_value,
                "backend": server_value,
                "difference": difference,
            }
            if abs(difference) > CROSS_CHECK_TOLERANCE:
                matches = False

        if not matches:
            logger.warning(f"Salary cross-check mismatch for {employee_id} in {period.label}")

        return {
            "employee_id": str(employee_id),
            "period": period.label,
            "matches": matches,
            "paid_days": {"local": local.paid_days, "backend": server.paid_days},
            "fields": fields,
            "backend_available": True,
        }
