"""
DK Payroll - Hosted Backend RPC Client

Calls the stored procedures that live on the hosted backend.

Endpoint shape: POST {backend_url}/rest/v1/rpc/{function_name} with a JSON
body of named parameters, authenticated by service key.

Procedures:
- reconcile_monthly_leaves: leave consumption and suggested balance adjustments
- apply_leave_adjustments: apply selected adjustments to leave balances
- get_reconciliation_status: whether a month has been reconciled per unit
- calculate_panchkula_salary: server-side salary figures for one employee
- insert_attendance_from_csv_enhanced: bulk attendance insert with per-row errors

The procedures themselves are opaque; this module only knows their
parameter and result contracts.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from app.config import settings
from app.utils.error_handling import BackendRpcException


logger = logging.getLogger(__name__)


# ===========================================
# PYDANTIC MODELS FOR RPC CONTRACTS
# ===========================================

class LeaveConsumption(BaseModel):
    """Leave taken in the reconciled month."""
    casual_leave_taken: Decimal = Decimal("0")
    earned_leave_taken: Decimal = Decimal("0")
    unpaid_leave_taken: Decimal = Decimal("0")
    total_leave_days: Decimal = Decimal("0")


class SuggestedAdjustment(BaseModel):
    """Balance adjustment proposed by the reconciliation."""
    casual_adjustment: Decimal = Decimal("0")
    earned_adjustment: Decimal = Decimal("0")


class EmployeeReconciliation(BaseModel):
    """One employee's row in a leave reconciliation."""
    employee_id: str
    employee_name: str = ""
    employee_code: Optional[str] = None
    unit_id: Optional[str] = None
    current_casual_balance: Decimal = Decimal("0")
    current_earned_balance: Decimal = Decimal("0")
    month_consumption: LeaveConsumption = Field(default_factory=LeaveConsumption)
    suggested_adjustment: SuggestedAdjustment = Field(default_factory=SuggestedAdjustment)


class ReconciliationResult(BaseModel):
    """Result of reconcile_monthly_leaves."""
    employee_data: List[EmployeeReconciliation] = Field(default_factory=list)
    total_employees: int = 0


class LeaveAdjustment(BaseModel):
    """One adjustment to apply through apply_leave_adjustments."""
    employee_id: str
    current_casual_balance: Decimal
    current_earned_balance: Decimal
    casual_adjustment: Decimal = Decimal("0")
    earned_adjustment: Decimal = Decimal("0")


class AdjustmentResult(BaseModel):
    """Result of apply_leave_adjustments. The backend answers in either key style."""
    success_count: int = Field(0, validation_alias=AliasChoices("success_count", "successCount"))
    error_count: int = Field(0, validation_alias=AliasChoices("error_count", "errorCount"))
    errors: List[Any] = Field(default_factory=list)


class CsvRowError(BaseModel):
    """A rejected CSV row, from local validation or from the backend."""
    model_config = ConfigDict(populate_by_name=True)

    row_number: int = Field(validation_alias=AliasChoices("row_number", "rowNumber"))
    data: Dict[str, Any] = Field(default_factory=dict)
    reason: str
    category: str
    original_code: Optional[str] = Field(None, validation_alias=AliasChoices("original_code", "originalCode"))
    resolved_code: Optional[str] = Field(None, validation_alias=AliasChoices("resolved_code", "resolvedCode"))


class CsvUploadResult(BaseModel):
    """Result of a bulk attendance upload."""
    model_config = ConfigDict(populate_by_name=True)

    success_count: int = Field(validation_alias=AliasChoices("success_count", "successCount"))
    error_count: int = Field(validation_alias=AliasChoices("error_count", "errorCount"))
    errors: List[CsvRowError] = Field(default_factory=list)


class ReconciliationStatus(BaseModel):
    """Reconciliation state of one unit for one month."""
    model_config = ConfigDict(extra="allow")

    unit_id: Optional[str] = None
    is_reconciled: bool = False
    reconciled_at: Optional[str] = None
    notes: Optional[str] = None


class ServerSalaryCalculation(BaseModel):
    """Figures returned by calculate_panchkula_salary."""
    basic_earned: Decimal
    hra_earned: Decimal
    other_earned: Decimal = Decimal("0")
    gross_salary: Decimal
    epf_deduction: Decimal
    esi_deduction: Decimal
    lwf_deduction: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    paid_days: int
    present_days: int = 0
    weekly_offs: int = 0
    leave_days: int = 0


# ===========================================
# RPC CLIENT
# ===========================================

class BackendRpcClient:
    """
    Client for the hosted backend's stored procedures.

    Every failure (HTTP error status, timeout, transport error, malformed
    body) raises BackendRpcException.
    """

    RPC_PATH = "/rest/v1/rpc/"

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize backend RPC client.

        Args:
            base_url: Backend URL. Defaults to settings.
            service_key: Service key for authentication. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport, used by tests.
        """
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.service_key = service_key if service_key is not None else settings.backend_service_key
        self.timeout = timeout or settings.backend_timeout_seconds
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        """Get RPC request headers."""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }

    async def call(self, function_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Invoke a stored procedure by name.

        Returns:
            Decoded JSON body of the response
        """
        url = f"{self.base_url}{self.RPC_PATH}{function_name}"
        logger.debug(f"RPC {function_name} -> {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, headers=self._get_headers(), json=params or {})
        except httpx.TimeoutException as e:
            logger.error(f"RPC {function_name} timed out after {self.timeout}s")
            raise BackendRpcException(
                function_name,
                "Request timeout - backend did not respond in time",
                original_error=e,
            )
        except httpx.RequestError as e:
            logger.error(f"RPC {function_name} network error: {e}")
            raise BackendRpcException(function_name, f"Network error: {str(e)}", original_error=e)

        try:
            body = response.json() if response.content else None
        except json.JSONDecodeError as e:
            raise BackendRpcException(
                function_name,
                "Invalid JSON response from backend",
                status_code=response.status_code,
                original_error=e,
            )

        if response.status_code >= 400:
            message = "Unknown error"
            if isinstance(body, dict):
                message = body.get("message") or body.get("error") or message
            logger.error(f"RPC {function_name} failed with {response.status_code}: {message}")
            raise BackendRpcException(function_name, message, status_code=response.status_code)

        return body

    def _parse(self, function_name: str, model: type, data: Any):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"RPC {function_name} returned an unexpected shape: {e}")
            raise BackendRpcException(function_name, "Invalid response format from server", original_error=e)

    # ===========================================
    # LEAVE RECONCILIATION
    # ===========================================

    async def reconcile_monthly_leaves(
        self,
        month: int,
        year: int,
        unit_id: Optional[Union[str, UUID]] = None,
    ) -> ReconciliationResult:
        """Reconcile leave balances for a month; all units when unit_id is None."""
        data = await self.call(
            "reconcile_monthly_leaves",
            {
                "p_month": month,
                "p_year": year,
                "p_unit_id": str(unit_id) if unit_id else None,
            },
        )
        return self._parse("reconcile_monthly_leaves", ReconciliationResult, data or {})

    async def apply_leave_adjustments(
        self,
        adjustments: List[LeaveAdjustment],
        reason: str,
        month: int,
        year: int,
    ) -> AdjustmentResult:
        data = await self.call(
            "apply_leave_adjustments",
            {
                "p_adjustments": [a.model_dump(mode="json") for a in adjustments],
                "p_reason": reason,
                "p_month": month,
                "p_year": year,
            },
        )
        return self._parse("apply_leave_adjustments", AdjustmentResult, data or {})

    async def get_reconciliation_status(
        self,
        month: int,
        year: int,
        unit_id: Optional[Union[str, UUID]] = None,
    ) -> List[ReconciliationStatus]:
        data = await self.call(
            "get_reconciliation_status",
            {
                "p_month": month,
                "p_year": year,
                "p_unit_id": str(unit_id) if unit_id else None,
            },
        )
        return [self._parse("get_reconciliation_status", ReconciliationStatus, row) for row in data or []]

    # ===========================================
    # SALARY
    # ===========================================

    async def calculate_panchkula_salary(
        self,
        employee_id: Union[str, UUID],
        month: date,
        basic_salary: Decimal,
        hra_amount: Decimal = Decimal("0"),
        other_allowances: Decimal = Decimal("0"),
    ) -> Optional[ServerSalaryCalculation]:
        """
        Server-side salary calculation for one employee.

        Returns:
            The first result row, or None when the backend returns no rows
        """
        data = await self.call(
            "calculate_panchkula_salary",
            {
                "p_employee_id": str(employee_id),
                "p_month": month.replace(day=1).isoformat(),
                "p_basic_salary": str(basic_salary),
                "p_hra_amount": str(hra_amount),
                "p_other_allowances": str(other_allowances),
            },
        )
        if not data:
            return None
        row = data[0] if isinstance(data, list) else data
        return self._parse("calculate_panchkula_salary", ServerSalaryCalculation, row)

    # ===========================================
    # ATTENDANCE
    # ===========================================

    async def insert_attendance_from_csv_enhanced(self, rows: List[Dict[str, Any]]) -> CsvUploadResult:
        data = await self.call("insert_attendance_from_csv_enhanced", {"rows": rows})
        return self._parse("insert_attendance_from_csv_enhanced", CsvUploadResult, data)


# ===========================================
# SERVICE FACTORY
# ===========================================

def get_backend_rpc_client() -> BackendRpcClient:
    """
    Factory for the backend RPC client.

    Used as a FastAPI dependency so tests can override it.
    """
    return BackendRpcClient()
