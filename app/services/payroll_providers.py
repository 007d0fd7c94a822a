"""
DK Payroll - Payroll Data Providers

Interfaces the payroll service reads its inputs through, and their
SQLAlchemy implementation:
- employees: compensation profiles and the active roster of a unit
- attendance: daily entries of an employee in a period
- advances: advance amounts of an employee in a period
- rates: deduction rate sets for the effective-date lookup
"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payroll import (
    Advance,
    AttendanceRecord,
    PayrollEmployee,
    PayrollSettings,
    Unit,
)
from app.services.attendance_service import AttendanceEntry, PayPeriod
from app.services.wage_calculator import CompensationProfile, DeductionRates, select_effective_rates


@dataclass(frozen=True)
class EmployeeRecord:
    """Employee identity plus the compensation profile used for pay."""
    employee_id: uuid.UUID
    name: str
    employee_code: Optional[str]
    unit_id: Optional[uuid.UUID]
    profile: CompensationProfile


# ===========================================
# PROVIDER INTERFACES
# ===========================================

class EmployeeProvider(Protocol):
    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeRecord]: ...

    async def list_active_employees(self, unit_id: uuid.UUID) -> List[EmployeeRecord]: ...

    async def unit_exists(self, unit_id: uuid.UUID) -> bool: ...


class AttendanceProvider(Protocol):
    async def get_attendance(self, employee_id: uuid.UUID, period: PayPeriod) -> List[AttendanceEntry]: ...


class AdvancesProvider(Protocol):
    async def get_advances(self, employee_id: uuid.UUID, period: PayPeriod) -> List[Decimal]: ...


class RatesProvider(Protocol):
    async def get_effective_rates(self, on_date: date) -> DeductionRates: ...


# ===========================================
# DATABASE IMPLEMENTATION
# ===========================================

def _to_record(employee: PayrollEmployee) -> EmployeeRecord:
    return EmployeeRecord(
        employee_id=employee.id,
        name=employee.name,
        employee_code=employee.employee_code,
        unit_id=employee.unit_id,
        profile=CompensationProfile(
            basic_salary=Decimal(employee.basic_salary),
            hra_amount=Decimal(employee.hra_amount or 0),
            other_allowance=Decimal(employee.other_allowance or 0),
            overtime_rate_per_hour=(
                Decimal(employee.overtime_rate_per_hour)
                if employee.overtime_rate_per_hour is not None else None
            ),
        ),
    )


class DatabasePayrollProvider:
    """Reads every payroll input from the application database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeRecord]:
        employee = await self.db.get(PayrollEmployee, employee_id)
        return _to_record(employee) if employee else None

    async def list_active_employees(self, unit_id: uuid.UUID) -> List[EmployeeRecord]:
        result = await self.db.execute(
            select(PayrollEmployee)
            .where(PayrollEmployee.unit_id == unit_id)
            .where(PayrollEmployee.active == True)  # noqa: E712
            .order_by(PayrollEmployee.employee_code, PayrollEmployee.name)
        )
        return [_to_record(e) for e in result.scalars().all()]

    async def unit_exists(self, unit_id: uuid.UUID) -> bool:
        return await self.db.get(Unit, unit_id) is not None

    async def get_attendance(self, employee_id: uuid.UUID, period: PayPeriod) -> List[AttendanceEntry]:
        result = await self.db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.employee_id == employee_id)
            .where(AttendanceRecord.attendance_date >= period.start)
            .where(AttendanceRecord.attendance_date <= period.end)
            .order_by(AttendanceRecord.attendance_date)
        )
        return [
            AttendanceEntry(
                attendance_date=record.attendance_date,
                status=record.status,
                hours_worked=Decimal(record.hours_worked),
                overtime_hours=Decimal(record.overtime_hours),
            )
            for record in result.scalars().all()
        ]

    async def get_advances(self, employee_id: uuid.UUID, period: PayPeriod) -> List[Decimal]:
        result = await self.db.execute(
            select(Advance.advance_amount)
            .where(Advance.employee_id == employee_id)
            .where(Advance.advance_date >= period.start)
            .where(Advance.advance_date <= period.end)
        )
        return [Decimal(amount) for amount in result.scalars().all()]

    async def get_rate_sets(self, on_date: Optional[date] = None) -> List[DeductionRates]:
        query = select(PayrollSettings).order_by(PayrollSettings.effective_from.desc())
        if on_date is not None:
            query = query.where(PayrollSettings.effective_from <= on_date)
        result = await self.db.execute(query)
        return [
            DeductionRates(
                effective_from=row.effective_from,
                pf_rate=Decimal(row.pf_rate),
                esi_rate=Decimal(row.esi_rate),
                lwf_amount=Decimal(row.lwf_amount),
            )
            for row in result.scalars().all()
        ]

    async def get_effective_rates(self, on_date: date) -> DeductionRates:
        return select_effective_rates(await self.get_rate_sets(on_date), on_date)
