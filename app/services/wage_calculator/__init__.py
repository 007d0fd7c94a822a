"""
DK Payroll - Wage Calculator Package

Pure wage calculation on the 30-day pro-ration base.

Modules:
- calculator: WagePolicy, CompensationProfile, AttendanceTally, PayrollResult, WageCalculator
- rates: DeductionRates and the effective-date lookup
"""

from decimal import Decimal
from typing import Iterable, Optional, Union

from app.services.wage_calculator.calculator import (
    AttendanceTally,
    CompensationProfile,
    PayrollResult,
    WageCalculator,
    WagePolicy,
)
from app.services.wage_calculator.rates import (
    DEFAULT_ESI_RATE,
    DEFAULT_LWF_AMOUNT,
    DEFAULT_PF_RATE,
    DeductionRates,
    select_effective_rates,
)

Amount = Union[Decimal, int, str]


def to_decimal(value: Amount) -> Decimal:
    """Convert an int, str or Decimal amount without going through float."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_wages(
    basic_salary: Amount,
    hra_amount: Amount = 0,
    other_allowance: Amount = 0,
    present_days: int = 0,
    weekly_off_days: int = 0,
    paid_leave_days: int = 0,
    unpaid_leave_days: int = 0,
    overtime_hours: Amount = 0,
    rates: Optional[DeductionRates] = None,
    advances_total: Amount = 0,
    policy: Optional[WagePolicy] = None,
) -> PayrollResult:
    """
    Calculate pay from plain values.

    Args:
        basic_salary: Monthly basic salary
        hra_amount: Monthly house rent allowance
        other_allowance: Monthly other/conveyance allowance
        present_days, weekly_off_days, paid_leave_days, unpaid_leave_days: Day counts
        overtime_hours: Overtime hours in the period
        rates: Effective deduction rates
        advances_total: Advances to recover this period
        policy: Wage policy, Panchkula method when omitted

    Returns:
        Unrounded PayrollResult
    """
    profile = CompensationProfile(
        basic_salary=to_decimal(basic_salary),
        hra_amount=to_decimal(hra_amount),
        other_allowance=to_decimal(other_allowance),
    )
    tally = AttendanceTally(
        present_days=present_days,
        weekly_off_days=weekly_off_days,
        paid_leave_days=paid_leave_days,
        unpaid_leave_days=unpaid_leave_days,
        overtime_hours=to_decimal(overtime_hours),
    )
    return WageCalculator(policy).calculate(profile, tally, rates, to_decimal(advances_total))


def total_advances(amounts: Iterable[Amount]) -> Decimal:
    """Sum the advances recorded for a period."""
    return sum((to_decimal(a) for a in amounts), Decimal("0"))


__all__ = [
    "AttendanceTally",
    "CompensationProfile",
    "DeductionRates",
    "PayrollResult",
    "WageCalculator",
    "WagePolicy",
    "DEFAULT_PF_RATE",
    "DEFAULT_ESI_RATE",
    "DEFAULT_LWF_AMOUNT",
    "select_effective_rates",
    "calculate_wages",
    "total_advances",
    "to_decimal",
]
