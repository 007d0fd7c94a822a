"""
DK Payroll - Attendance Service

Daily attendance validation and aggregation into an AttendanceTally.

Each daily entry carries exactly one status:
- PRESENT: hours worked > 0, overtime allowed
- WEEKLY_OFF, CASUAL_LEAVE, EARNED_LEAVE, UNPAID_LEAVE: zero hours, zero overtime

Entries that break these rules are rejected before aggregation,
never corrected.
"""

import calendar
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Union
from uuid import UUID

from app.models.payroll import AttendanceStatus
from app.services.wage_calculator import AttendanceTally
from app.utils.error_handling import AttendanceValidationException, InvalidPeriodException


MAX_HOURS_PER_DAY = Decimal("24")

_PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


# Alternate spellings accepted on import
STATUS_ALIASES = {
    "ABSENT": AttendanceStatus.UNPAID_LEAVE,
}


def parse_status(value: str) -> AttendanceStatus:
    """Parse a status string, case-insensitive, accepting known aliases."""
    key = value.strip().upper().replace(" ", "_")
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    return AttendanceStatus(key)


@dataclass(frozen=True)
class PayPeriod:
    """A calendar month payroll period."""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise InvalidPeriodException(f"{self.year}-{self.month:02d}")

    @classmethod
    def parse(cls, value: str) -> "PayPeriod":
        """Parse a YYYY-MM period identifier."""
        match = _PERIOD_PATTERN.match(value.strip())
        if not match:
            raise InvalidPeriodException(value)
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def containing(cls, day: date) -> "PayPeriod":
        return cls(day.year, day.month)

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class AttendanceEntry:
    """One employee's attendance for one day."""
    attendance_date: date
    status: AttendanceStatus
    hours_worked: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")


def validate_entry(entry: AttendanceEntry) -> List[str]:
    """
    Check one daily entry against the status/hours rules.

    Returns:
        Human-readable problems; empty when the entry is valid
    """
    problems = []
    day = entry.attendance_date.isoformat()

    if entry.hours_worked < 0 or entry.hours_worked > MAX_HOURS_PER_DAY:
        problems.append(f"{day}: hours worked must be between 0 and 24")
    if entry.overtime_hours < 0:
        problems.append(f"{day}: overtime hours cannot be negative")

    if entry.status is AttendanceStatus.PRESENT:
        if entry.hours_worked <= 0:
            problems.append(f"{day}: PRESENT requires hours worked greater than 0")
    else:
        if entry.hours_worked != 0:
            problems.append(f"{day}: {entry.status.value} cannot carry hours worked")
        if entry.overtime_hours != 0:
            problems.append(f"{day}: {entry.status.value} cannot carry overtime hours")

    return problems


def aggregate_tally(
    entries: Iterable[AttendanceEntry],
    period: Optional[PayPeriod] = None,
    employee_id: Optional[Union[str, UUID]] = None,
) -> AttendanceTally:
    """
    Fold daily entries into an AttendanceTally.

    Every entry is validated first; if any entry is invalid, outside the
    period, or duplicates another entry's date, nothing is aggregated.

    Raises:
        AttendanceValidationException: Listing every problem found
    """
    entries = list(entries)
    problems: List[str] = []

    for entry in entries:
        problems.extend(validate_entry(entry))
        if period is not None and not period.contains(entry.attendance_date):
            problems.append(f"{entry.attendance_date.isoformat()}: outside period {period.label}")

    date_counts = Counter(entry.attendance_date for entry in entries)
    for day, count in sorted(date_counts.items()):
        if count > 1:
            problems.append(f"{day.isoformat()}: {count} entries for the same date")

    if problems:
        raise AttendanceValidationException(problems, employee_id=employee_id)

    by_status = Counter(entry.status for entry in entries)
    overtime_hours = sum((entry.overtime_hours for entry in entries), Decimal("0"))

    return AttendanceTally(
        present_days=by_status[AttendanceStatus.PRESENT],
        weekly_off_days=by_status[AttendanceStatus.WEEKLY_OFF],
        paid_leave_days=sum(count for status, count in by_status.items() if status.is_paid_leave),
        unpaid_leave_days=by_status[AttendanceStatus.UNPAID_LEAVE],
        overtime_hours=overtime_hours,
    )
