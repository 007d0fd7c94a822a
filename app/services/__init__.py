"""
DK Payroll - Services Package

Business logic services.
"""

from app.services.wage_calculator import WageCalculator, WagePolicy
from app.services.attendance_service import aggregate_tally, validate_entry, PayPeriod
from app.services.attendance_csv import AttendanceCsvImporter, validate_attendance_csv
from app.services.backend_rpc import BackendRpcClient, get_backend_rpc_client
from app.services.payroll_service import PayrollService

__all__ = [
    "WageCalculator",
    "WagePolicy",
    "aggregate_tally",
    "validate_entry",
    "PayPeriod",
    "AttendanceCsvImporter",
    "validate_attendance_csv",
    "BackendRpcClient",
    "get_backend_rpc_client",
    "PayrollService",
]
