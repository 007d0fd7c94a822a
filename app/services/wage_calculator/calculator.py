"""
DK Payroll - Wage Calculator

Pro-rated wage calculation on a fixed monthly base.

Earnings:
- Basic, HRA and other allowance pro-rated over paid days / base days (30)
- Overtime at the hourly basic rate times the overtime multiplier (1.5x),
  or at the employee's own hourly overtime rate when one is set

Deductions:
- PF: percentage of basic earned, optionally capped
- ESI: percentage of gross, zero when gross is above the ceiling (21,000)
- LWF: flat amount per period
- Advances: total advances recorded in the period

Amounts are carried at full precision; rounding to 2 decimal places
happens only through PayrollResult.rounded().
"""

from dataclasses import dataclass, fields, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from app.services.wage_calculator.rates import DeductionRates
from app.utils.error_handling import InvalidInputException


ZERO = Decimal("0")
TWO_PLACES = Decimal("0.01")

# Panchkula method defaults
PRO_RATION_BASE_DAYS = 30
HOURS_PER_DAY = 8
OVERTIME_MULTIPLIER = Decimal("1.5")
ESI_CEILING = Decimal("21000")

# Enhanced variant caps PF at this amount
ENHANCED_PF_CAP = Decimal("1800")

# Basic variant pays overtime at double rate
BASIC_OVERTIME_MULTIPLIER = Decimal("2")


@dataclass(frozen=True)
class WagePolicy:
    """Policy constants that differ between the wage formula variants."""
    pro_ration_base_days: int = PRO_RATION_BASE_DAYS
    hours_per_day: int = HOURS_PER_DAY
    overtime_multiplier: Decimal = OVERTIME_MULTIPLIER
    pf_cap: Optional[Decimal] = None
    esi_ceiling: Decimal = ESI_CEILING
    prorate_other_allowance: bool = True

    def __post_init__(self):
        if self.pro_ration_base_days <= 0:
            raise InvalidInputException(
                "Pro-ration base must be a positive number of days",
                field="pro_ration_base_days",
                value=self.pro_ration_base_days,
            )
        if self.hours_per_day <= 0:
            raise InvalidInputException(
                "Hours per day must be positive",
                field="hours_per_day",
                value=self.hours_per_day,
            )
        if self.overtime_multiplier < 0:
            raise InvalidInputException(
                "Overtime multiplier cannot be negative",
                field="overtime_multiplier",
                value=self.overtime_multiplier,
            )
        if self.pf_cap is not None and self.pf_cap < 0:
            raise InvalidInputException("PF cap cannot be negative", field="pf_cap", value=self.pf_cap)
        if self.esi_ceiling < 0:
            raise InvalidInputException(
                "ESI ceiling cannot be negative",
                field="esi_ceiling",
                value=self.esi_ceiling,
            )

    @classmethod
    def panchkula(cls) -> "WagePolicy":
        """30-day base, all allowances pro-rated, uncapped PF, 1.5x overtime."""
        return cls()

    @classmethod
    def enhanced(cls) -> "WagePolicy":
        """Panchkula method with PF capped at 1800."""
        return cls(pf_cap=ENHANCED_PF_CAP)

    @classmethod
    def basic(cls) -> "WagePolicy":
        """Other allowance paid flat, 2x overtime."""
        return cls(
            overtime_multiplier=BASIC_OVERTIME_MULTIPLIER,
            prorate_other_allowance=False,
        )

    @classmethod
    def preset(cls, name: str) -> "WagePolicy":
        presets = {
            "panchkula": cls.panchkula,
            "enhanced": cls.enhanced,
            "basic": cls.basic,
        }
        try:
            return presets[name.lower()]()
        except KeyError:
            raise InvalidInputException(
                f"Unknown wage policy preset: {name}",
                field="wage_policy_preset",
                value=name,
            )

    def with_overrides(self, **changes) -> "WagePolicy":
        return replace(self, **changes)


@dataclass(frozen=True)
class CompensationProfile:
    """Fixed monthly pay components of an employee."""
    basic_salary: Decimal
    hra_amount: Decimal = ZERO
    other_allowance: Decimal = ZERO
    # Employee-specific hourly overtime rate; replaces the derived rate when positive
    overtime_rate_per_hour: Optional[Decimal] = None


@dataclass(frozen=True)
class AttendanceTally:
    """Attendance totals for one employee over one pay period."""
    present_days: int = 0
    weekly_off_days: int = 0
    paid_leave_days: int = 0
    unpaid_leave_days: int = 0
    overtime_hours: Decimal = ZERO

    @property
    def paid_days(self) -> int:
        """Days counted toward pay. Unpaid leave is excluded."""
        return self.present_days + self.weekly_off_days + self.paid_leave_days


@dataclass(frozen=True)
class PayrollResult:
    """Outcome of one wage calculation. Never mutated; recalculation makes a new one."""
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
    paid_days: int
    esi_exempt: bool = False

    def rounded(self) -> "PayrollResult":
        """Copy with every monetary amount quantized to 2 decimal places."""
        changes = {
            f.name: getattr(self, f.name).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
            for f in fields(self)
            if isinstance(getattr(self, f.name), Decimal)
        }
        return replace(self, **changes)


class WageCalculator:
    """
    Pure wage calculator.

    Converts a compensation profile, an attendance tally, the effective
    deduction rates and the period's advances into a PayrollResult.
    Holds no state besides its policy, so one instance can serve any
    number of concurrent calculations.
    """

    def __init__(self, policy: Optional[WagePolicy] = None):
        self.policy = policy or WagePolicy.panchkula()

    def calculate(
        self,
        profile: CompensationProfile,
        tally: AttendanceTally,
        rates: Optional[DeductionRates],
        advances_total: Decimal = ZERO,
    ) -> PayrollResult:
        """
        Calculate pay for one employee and period.

        Raises:
            InvalidInputException: Negative amount, rate or day count,
                paid days above the pro-ration base, or no rate set.
        """
        if rates is None:
            raise InvalidInputException(
                "No effective deduction rates for the calculation date",
                field="rates",
            )
        rates.validate()
        self._validate_profile(profile)
        self._validate_tally(tally)
        if advances_total < 0:
            raise InvalidInputException(
                "Advances total cannot be negative",
                field="advances_total",
                value=advances_total,
            )

        base = Decimal(self.policy.pro_ration_base_days)
        paid_days = tally.paid_days
        days = Decimal(paid_days)

        # Multiply before dividing so a full month yields the exact fixed amount
        basic_earned = profile.basic_salary * days / base
        hra_earned = profile.hra_amount * days / base
        if self.policy.prorate_other_allowance:
            other_earned = profile.other_allowance * days / base
        else:
            other_earned = profile.other_allowance

        overtime_amount = self.calculate_overtime(profile, tally.overtime_hours)

        gross_salary = basic_earned + hra_earned + other_earned + overtime_amount

        pf_deduction = basic_earned * rates.pf_rate / 100
        if self.policy.pf_cap is not None:
            pf_deduction = min(pf_deduction, self.policy.pf_cap)

        esi_exempt = gross_salary > self.policy.esi_ceiling
        esi_deduction = ZERO if esi_exempt else gross_salary * rates.esi_rate / 100

        welfare_fund_deduction = rates.lwf_amount
        advances_deduction = advances_total

        total_deductions = pf_deduction + esi_deduction + welfare_fund_deduction + advances_deduction
        net_salary = gross_salary - total_deductions

        return PayrollResult(
            basic_earned=basic_earned,
            hra_earned=hra_earned,
            other_earned=other_earned,
            overtime_amount=overtime_amount,
            gross_salary=gross_salary,
            pf_deduction=pf_deduction,
            esi_deduction=esi_deduction,
            welfare_fund_deduction=welfare_fund_deduction,
            advances_deduction=advances_deduction,
            total_deductions=total_deductions,
            net_salary=net_salary,
            paid_days=paid_days,
            esi_exempt=esi_exempt,
        )

    def hourly_basic_rate(self, basic_salary: Decimal) -> Decimal:
        """Basic salary per hour: basic / base days / hours per day."""
        return basic_salary / (Decimal(self.policy.pro_ration_base_days) * self.policy.hours_per_day)

    def calculate_overtime(self, profile: CompensationProfile, overtime_hours: Decimal) -> Decimal:
        if profile.overtime_rate_per_hour is not None and profile.overtime_rate_per_hour > 0:
            return overtime_hours * profile.overtime_rate_per_hour
        return overtime_hours * self.hourly_basic_rate(profile.basic_salary) * self.policy.overtime_multiplier

    def _validate_profile(self, profile: CompensationProfile) -> None:
        for field_name in ("basic_salary", "hra_amount", "other_allowance"):
            value = getattr(profile, field_name)
            if value < 0:
                raise InvalidInputException(
                    f"{field_name} cannot be negative",
                    field=field_name,
                    value=value,
                )
        if profile.overtime_rate_per_hour is not None and profile.overtime_rate_per_hour < 0:
            raise InvalidInputException(
                "overtime_rate_per_hour cannot be negative",
                field="overtime_rate_per_hour",
                value=profile.overtime_rate_per_hour,
            )

    def _validate_tally(self, tally: AttendanceTally) -> None:
        for field_name in ("present_days", "weekly_off_days", "paid_leave_days", "unpaid_leave_days"):
            value = getattr(tally, field_name)
            if value < 0:
                raise InvalidInputException(
                    f"{field_name} cannot be negative",
                    field=field_name,
                    value=value,
                )
        if tally.overtime_hours < 0:
            raise InvalidInputException(
                "overtime_hours cannot be negative",
                field="overtime_hours",
                value=tally.overtime_hours,
            )
        if tally.paid_days > self.policy.pro_ration_base_days:
            raise InvalidInputException(
                f"Paid days ({tally.paid_days}) exceed the {self.policy.pro_ration_base_days}-day pro-ration base",
                field="paid_days",
                value=tally.paid_days,
            )
