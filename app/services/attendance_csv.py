"""
DK Payroll - Attendance CSV Import

Bulk attendance upload: parse, validate row by row, then submit the
valid rows to the backend's insert_attendance_from_csv_enhanced procedure.

CSV format:
- Required columns: employee_code, date, hours_worked
- Optional columns: overtime_hours, unit_code, status
- Dates as YYYY-MM-DD or DD-MM-YYYY, never in the future
- hours_worked between 0 and 24, overtime_hours not negative
- Lines starting with # are instructions and are skipped

Row numbers count the header as row 1, ignoring instruction lines.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from app.config import settings
from app.services.attendance_service import (
    MAX_HOURS_PER_DAY,
    AttendanceEntry,
    AttendanceStatus,
    parse_status,
    validate_entry,
)
from app.services.backend_rpc import BackendRpcClient, CsvRowError, CsvUploadResult
from app.utils.error_handling import CsvFormatException


logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = ("employee_code", "date", "hours_worked")
OPTIONAL_COLUMNS = ("overtime_hours", "unit_code", "status")
DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y")


class ErrorCategory(str, Enum):
    """Row error categories shared with the backend's upload procedure."""
    MISSING_DATA = "missing_data"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    DATABASE_ERROR = "database_error"


@dataclass(frozen=True)
class AttendanceCsvRow:
    """A CSV row that passed local validation."""
    row_number: int
    employee_code: str
    attendance_date: date
    status: AttendanceStatus
    hours_worked: Decimal
    overtime_hours: Decimal
    unit_code: Optional[str] = None

    def to_rpc_payload(self) -> Dict[str, Any]:
        payload = {
            "employee_code": self.employee_code,
            "date": self.attendance_date.isoformat(),
            "hours_worked": str(self.hours_worked),
            "overtime_hours": str(self.overtime_hours),
            "status": self.status.value,
        }
        if self.unit_code:
            payload["unit_code"] = self.unit_code
        return payload


@dataclass
class CsvValidationReport:
    """Outcome of validating a whole file."""
    valid_rows: List[AttendanceCsvRow] = field(default_factory=list)
    errors: List[CsvRowError] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.valid_rows) + len(self.errors)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def parse_csv_date(value: str) -> date:
    """Parse YYYY-MM-DD or DD-MM-YYYY."""
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD or DD-MM-YYYY")


def _parse_hours(value: str, column: str) -> Decimal:
    try:
        hours = Decimal(value)
    except InvalidOperation:
        raise ValueError(f"{column} must be a number, got '{value}'")
    if not hours.is_finite():
        raise ValueError(f"{column} must be a number, got '{value}'")
    return hours


def read_csv_rows(text: str, max_rows: Optional[int] = None) -> List[Tuple[int, Dict[str, str]]]:
    """
    Split CSV text into numbered rows keyed by lower-cased header.

    Raises:
        CsvFormatException: Empty file, missing required columns, or too many rows
    """
    lines = [line for line in text.splitlines() if not line.lstrip().startswith("#")]
    reader = csv.DictReader(io.StringIO("\n".join(lines)))

    if not reader.fieldnames:
        raise CsvFormatException("CSV file is empty")
    reader.fieldnames = [name.strip().lower() for name in reader.fieldnames]

    missing = [col for col in REQUIRED_COLUMNS if col not in reader.fieldnames]
    if missing:
        raise CsvFormatException(
            f"Missing required columns: {', '.join(missing)}",
            missing_columns=missing,
        )

    rows = []
    for row_number, row in enumerate(reader, start=2):
        cleaned = {
            key: (value or "").strip()
            for key, value in row.items()
            if key is not None and not isinstance(value, list)
        }
        if not any(cleaned.values()):
            continue
        rows.append((row_number, cleaned))

    if not rows:
        raise CsvFormatException("CSV file has no data rows")
    limit = max_rows or settings.csv_max_rows
    if len(rows) > limit:
        raise CsvFormatException(f"CSV file has {len(rows)} rows; the limit is {limit}")
    return rows


def _validate_row(
    row: Dict[str, str],
    row_number: int,
    today: date,
) -> Tuple[Optional[AttendanceCsvRow], List[Tuple[ErrorCategory, str]]]:
    problems: List[Tuple[ErrorCategory, str]] = []

    for column in REQUIRED_COLUMNS:
        if not row.get(column):
            problems.append((ErrorCategory.MISSING_DATA, f"{column} is required"))
    if problems:
        return None, problems

    try:
        attendance_date = parse_csv_date(row["date"])
    except ValueError as e:
        problems.append((ErrorCategory.VALIDATION, str(e)))
        attendance_date = None
    if attendance_date is not None and attendance_date > today:
        problems.append((ErrorCategory.VALIDATION, f"Date {attendance_date.isoformat()} is in the future"))

    hours_worked = overtime_hours = None
    try:
        hours_worked = _parse_hours(row["hours_worked"], "hours_worked")
        if hours_worked < 0 or hours_worked > MAX_HOURS_PER_DAY:
            problems.append((ErrorCategory.VALIDATION, "hours_worked must be between 0 and 24"))
    except ValueError as e:
        problems.append((ErrorCategory.VALIDATION, str(e)))
    try:
        overtime_hours = _parse_hours(row.get("overtime_hours") or "0", "overtime_hours")
        if overtime_hours < 0:
            problems.append((ErrorCategory.VALIDATION, "overtime_hours cannot be negative"))
    except ValueError as e:
        problems.append((ErrorCategory.VALIDATION, str(e)))

    status = None
    raw_status = row.get("status", "")
    if raw_status:
        try:
            status = parse_status(raw_status)
        except ValueError:
            problems.append((ErrorCategory.VALIDATION, f"Unknown status '{raw_status}'"))
    elif hours_worked is not None and hours_worked > 0:
        status = AttendanceStatus.PRESENT
    elif hours_worked is not None:
        problems.append((ErrorCategory.MISSING_DATA, "status is required when hours_worked is 0"))

    if problems:
        return None, problems

    entry = AttendanceEntry(
        attendance_date=attendance_date,
        status=status,
        hours_worked=hours_worked,
        overtime_hours=overtime_hours,
    )
    for problem in validate_entry(entry):
        problems.append((ErrorCategory.VALIDATION, problem))
    if problems:
        return None, problems

    return AttendanceCsvRow(
        row_number=row_number,
        employee_code=row["employee_code"],
        attendance_date=attendance_date,
        status=status,
        hours_worked=hours_worked,
        overtime_hours=overtime_hours,
        unit_code=row.get("unit_code") or None,
    ), []


def validate_attendance_csv(
    text: str,
    today: Optional[date] = None,
    max_rows: Optional[int] = None,
) -> CsvValidationReport:
    """
    Validate every row of an attendance CSV.

    File-level problems raise CsvFormatException; row-level problems are
    collected in the report, one CsvRowError per rejected row.
    """
    today = today or date.today()
    report = CsvValidationReport()
    first_seen: Dict[Tuple[str, date], int] = {}

    for row_number, row in read_csv_rows(text, max_rows=max_rows):
        parsed, problems = _validate_row(row, row_number, today)

        if parsed is not None:
            key = (parsed.employee_code.upper(), parsed.attendance_date)
            if key in first_seen:
                problems = [(
                    ErrorCategory.DUPLICATE,
                    f"Duplicate entry for {parsed.employee_code} on "
                    f"{parsed.attendance_date.isoformat()} (first seen on row {first_seen[key]})",
                )]
            else:
                first_seen[key] = row_number
                report.valid_rows.append(parsed)
                continue

        report.errors.append(CsvRowError(
            row_number=row_number,
            data=row,
            reason="; ".join(reason for _, reason in problems),
            category=problems[0][0].value,
        ))

    return report


class AttendanceCsvImporter:
    """Validates an attendance CSV and submits the valid rows to the backend."""

    def __init__(self, rpc_client: BackendRpcClient):
        self.rpc_client = rpc_client

    async def upload(
        self,
        text: str,
        today: Optional[date] = None,
    ) -> CsvUploadResult:
        """
        Validate and insert attendance rows.

        Local rejections and the backend's own per-row errors are merged
        into one result. Backend row numbers refer to the submitted batch
        (1-based) and are mapped back to file row numbers.
        """
        report = validate_attendance_csv(text, today=today)
        logger.info(
            f"Attendance CSV: {len(report.valid_rows)} valid rows, {len(report.errors)} rejected locally"
        )

        if not report.valid_rows:
            return CsvUploadResult(
                success_count=0,
                error_count=len(report.errors),
                errors=report.errors,
            )

        backend_result = await self.rpc_client.insert_attendance_from_csv_enhanced(
            [row.to_rpc_payload() for row in report.valid_rows]
        )

        backend_errors = []
        for error in backend_result.errors:
            index = error.row_number - 1
            if 0 <= index < len(report.valid_rows):
                error = error.model_copy(update={"row_number": report.valid_rows[index].row_number})
            backend_errors.append(error)

        errors = sorted(report.errors + backend_errors, key=lambda e: e.row_number)
        return CsvUploadResult(
            success_count=backend_result.success_count,
            error_count=len(report.errors) + backend_result.error_count,
            errors=errors,
        )


def build_template() -> str:
    """Downloadable attendance CSV template with instruction lines."""
    return "\n".join([
        "# Attendance upload template",
        "# Dates: YYYY-MM-DD or DD-MM-YYYY. hours_worked 0-24.",
        "# status: PRESENT, WEEKLY_OFF, CASUAL_LEAVE, EARNED_LEAVE, UNPAID_LEAVE",
        "# Leave and weekly off rows must have 0 hours and 0 overtime.",
        ",".join(REQUIRED_COLUMNS + OPTIONAL_COLUMNS),
        "EMP-001,2024-01-15,8,0,UNIT1,PRESENT",
        "EMP-002,2024-01-15,8,2,UNIT1,PRESENT",
        "EMP-003,2024-01-15,0,0,UNIT2,CASUAL_LEAVE",
        "",
    ])
