"""
DK Payroll - Attendance Router

API endpoints for daily attendance records, attendance tally and bulk
CSV upload.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status, UploadFile, File
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.schemas.attendance import (
    PERIOD_PATTERN,
    AttendanceRecordCreate,
    AttendanceRecordResponse,
    AttendanceTallyRequest,
    AttendanceTallyResponse,
    CsvValidationResponse,
)
from app.services.attendance_csv import (
    AttendanceCsvImporter,
    build_template,
    validate_attendance_csv,
)
from app.services.attendance_service import (
    AttendanceEntry,
    PayPeriod,
    aggregate_tally,
    parse_status,
)
from app.services.backend_rpc import BackendRpcClient, CsvUploadResult, get_backend_rpc_client
from app.services.payroll_service import PayrollService


router = APIRouter()


async def _read_csv_upload(file: UploadFile) -> str:
    """Read an uploaded CSV file as text, enforcing type and size limits."""
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are supported",
        )

    content = await file.read()
    if len(content) > settings.csv_max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"CSV file exceeds {settings.csv_max_upload_bytes} bytes",
        )
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="CSV file must be UTF-8 encoded",
        )


# ===========================================
# TALLY ENDPOINTS
# ===========================================

@router.post(
    "/tally",
    response_model=AttendanceTallyResponse,
    summary="Tally daily attendance",
    description="Validate daily entries and fold them into period totals. Any invalid entry rejects the whole set.",
)
async def tally_attendance(data: AttendanceTallyRequest):
    period = PayPeriod.parse(data.period) if data.period else None
    entries = [
        AttendanceEntry(
            attendance_date=e.attendance_date,
            status=parse_status(e.status),
            hours_worked=e.hours_worked,
            overtime_hours=e.overtime_hours,
        )
        for e in data.entries
    ]
    tally = aggregate_tally(entries, period=period)
    return AttendanceTallyResponse(
        present_days=tally.present_days,
        weekly_off_days=tally.weekly_off_days,
        paid_leave_days=tally.paid_leave_days,
        unpaid_leave_days=tally.unpaid_leave_days,
        overtime_hours=tally.overtime_hours,
        paid_days=tally.paid_days,
    )


# ===========================================
# DAILY RECORD ENDPOINTS
# ===========================================

@router.post(
    "/records",
    response_model=AttendanceRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record daily attendance",
    description="Store one employee's attendance for a day, replacing any earlier record for that day.",
)
async def record_attendance(
    data: AttendanceRecordCreate,
    db: AsyncSession = Depends(get_async_session),
):
    entry = AttendanceEntry(
        attendance_date=data.attendance_date,
        status=parse_status(data.status),
        hours_worked=data.hours_worked,
        overtime_hours=data.overtime_hours,
    )
    service = PayrollService(db)
    return await service.record_attendance(data.employee_id, entry)


@router.get(
    "/records",
    response_model=List[AttendanceRecordResponse],
    summary="List daily attendance",
)
async def list_attendance(
    employee_id: uuid.UUID = Query(...),
    period: str = Query(..., pattern=PERIOD_PATTERN, description="YYYY-MM"),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.list_attendance(employee_id, PayPeriod.parse(period))


# ===========================================
# CSV ENDPOINTS
# ===========================================

@router.get(
    "/csv/template",
    summary="Download attendance CSV template",
)
async def download_csv_template():
    return StreamingResponse(
        iter([build_template()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=attendance_template.csv"},
    )


@router.post(
    "/csv/validate",
    response_model=CsvValidationResponse,
    summary="Validate attendance CSV",
    description="Check every row of an attendance CSV without submitting anything.",
)
async def validate_csv(
    file: UploadFile = File(..., description="Attendance CSV file"),
):
    report = validate_attendance_csv(await _read_csv_upload(file))
    return CsvValidationResponse(
        total_rows=report.total_rows,
        valid_rows=len(report.valid_rows),
        error_count=len(report.errors),
        errors=report.errors,
    )


@router.post(
    "/csv/upload",
    response_model=CsvUploadResult,
    summary="Upload attendance CSV",
    description="Validate an attendance CSV and insert its valid rows through the backend.",
)
async def upload_csv(
    file: UploadFile = File(..., description="Attendance CSV file"),
    rpc_client: BackendRpcClient = Depends(get_backend_rpc_client),
):
    importer = AttendanceCsvImporter(rpc_client)
    return await importer.upload(await _read_csv_upload(file))
