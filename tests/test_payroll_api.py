"""
DK Payroll - API Endpoint Tests

Tests for the payroll and attendance HTTP endpoints.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from httpx import AsyncClient

from app.services.backend_rpc import (
    AdjustmentResult,
    CsvUploadResult,
    ReconciliationResult,
    ReconciliationStatus,
    get_backend_rpc_client,
)
from app.utils.error_handling import BackendRpcException
from main import app


class FakeRpcClient:
    """Stands in for the hosted backend."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def reconcile_monthly_leaves(self, month, year, unit_id=None):
        self.calls.append(("reconcile_monthly_leaves", month, year, unit_id))
        if self.fail:
            raise BackendRpcException("reconcile_monthly_leaves", "Request timeout", status_code=None)
        return ReconciliationResult(
            employee_data=[{"employee_id": "e1", "employee_name": "Asha"}],
            total_employees=1,
        )

    async def get_reconciliation_status(self, month, year, unit_id=None):
        self.calls.append(("get_reconciliation_status", month, year, unit_id))
        return [ReconciliationStatus(unit_id="u1", is_reconciled=True)]

    async def apply_leave_adjustments(self, adjustments, reason, month, year):
        self.calls.append(("apply_leave_adjustments", len(adjustments), reason))
        return AdjustmentResult(success_count=len(adjustments), error_count=0)

    async def insert_attendance_from_csv_enhanced(self, rows):
        self.calls.append(("insert_attendance_from_csv_enhanced", len(rows)))
        return CsvUploadResult(success_count=len(rows), error_count=0)

    async def calculate_panchkula_salary(self, **kwargs):
        return None


@pytest.fixture
def fake_rpc():
    rpc = FakeRpcClient()
    app.dependency_overrides[get_backend_rpc_client] = lambda: rpc
    yield rpc
    app.dependency_overrides.pop(get_backend_rpc_client, None)


WORKED_EXAMPLE = {
    "compensation": {"basic_salary": "13500", "hra_amount": "7500"},
    "attendance": {
        "present_days": 21,
        "weekly_off_days": 5,
        "paid_leave_days": 1,
        "unpaid_leave_days": 3,
    },
    "rates": {"effective_from": "2024-04-01"},
}


class TestHealthEndpoints:
    """Test info and health endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_api_root(self, client: AsyncClient):
        response = await client.get("/api/v1")

        assert response.status_code == 200
        assert "payroll" in response.json()["endpoints"]

    @pytest.mark.asyncio
    async def test_api_info_reports_version(self, client: AsyncClient):
        response = await client.get("/api")

        assert response.status_code == 200
        data = response.json()
        assert data["api_version"] == "v1"
        assert data["api_root"] == "/api/v1"


class TestCalculateEndpoint:
    """Test POST /api/v1/payroll/calculate."""

    @pytest.mark.asyncio
    async def test_worked_example(self, client: AsyncClient):
        response = await client.post("/api/v1/payroll/calculate", json=WORKED_EXAMPLE)

        assert response.status_code == 200
        result = response.json()["result"]
        assert Decimal(result["gross_salary"]) == Decimal("18900")
        assert Decimal(result["pf_deduction"]) == Decimal("1458")
        assert Decimal(result["esi_deduction"]) == Decimal("141.75")
        assert Decimal(result["total_deductions"]) == Decimal("1630.75")
        assert Decimal(result["net_salary"]) == Decimal("17269.25")
        assert result["paid_days"] == 27

    @pytest.mark.asyncio
    async def test_rates_from_settings(self, client: AsyncClient, test_rates):
        payload = {**WORKED_EXAMPLE, "calculation_date": "2024-06-30"}
        del payload["rates"]

        response = await client.post("/api/v1/payroll/calculate", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["rates"]["effective_from"] == "2024-04-01"
        assert Decimal(body["result"]["net_salary"]) == Decimal("17269.25")

    @pytest.mark.asyncio
    async def test_no_rates_effective(self, client: AsyncClient):
        payload = {**WORKED_EXAMPLE, "calculation_date": "2024-06-30"}
        del payload["rates"]

        response = await client.post("/api/v1/payroll/calculate", json=payload)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_policy_override(self, client: AsyncClient):
        payload = {
            **WORKED_EXAMPLE,
            "compensation": {"basic_salary": "20000"},
            "attendance": {"present_days": 30},
            "policy": {"preset": "enhanced"},
        }

        response = await client.post("/api/v1/payroll/calculate", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["policy"]["pf_cap"]) == Decimal("1800")
        assert Decimal(body["result"]["pf_deduction"]) == Decimal("1800")

    @pytest.mark.asyncio
    async def test_null_pf_cap_removes_preset_cap(self, client: AsyncClient):
        payload = {
            **WORKED_EXAMPLE,
            "compensation": {"basic_salary": "20000"},
            "attendance": {"present_days": 30},
            "policy": {"preset": "enhanced", "pf_cap": None, "esi_ceiling": None},
        }

        response = await client.post("/api/v1/payroll/calculate", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["policy"]["pf_cap"] is None
        assert Decimal(body["policy"]["esi_ceiling"]) == Decimal("21000")
        assert Decimal(body["result"]["pf_deduction"]) == Decimal("2400")

    @pytest.mark.asyncio
    async def test_negative_salary_rejected(self, client: AsyncClient):
        payload = {**WORKED_EXAMPLE, "compensation": {"basic_salary": "-100"}}

        response = await client.post("/api/v1/payroll/calculate", json=payload)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_INPUT"
        assert detail["field"] == "basic_salary"

    @pytest.mark.asyncio
    async def test_paid_days_above_base_rejected(self, client: AsyncClient):
        payload = {**WORKED_EXAMPLE, "attendance": {"present_days": 31}}

        response = await client.post("/api/v1/payroll/calculate", json=payload)

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "paid_days"

    @pytest.mark.asyncio
    async def test_malformed_request(self, client: AsyncClient):
        response = await client.post("/api/v1/payroll/calculate", json={"attendance": {}})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


class TestEmployeeSalaryEndpoints:
    """Test stored-data salary endpoints."""

    @pytest.mark.asyncio
    async def test_employee_salary(self, client: AsyncClient, test_employee, test_attendance, test_rates):
        response = await client.get(
            f"/api/v1/payroll/employees/{test_employee.id}/salary",
            params={"period": "2024-06"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["employee_code"] == "EMP-001"
        assert body["period"] == "2024-06"
        assert body["attendance"]["paid_days"] == 27
        assert Decimal(body["result"]["net_salary"]) == Decimal("17269.25")

    @pytest.mark.asyncio
    async def test_unknown_employee(self, client: AsyncClient):
        response = await client.get(
            f"/api/v1/payroll/employees/{uuid4()}/salary",
            params={"period": "2024-06"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "EMPLOYEE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_month(self, client: AsyncClient, test_employee):
        response = await client.get(
            f"/api/v1/payroll/employees/{test_employee.id}/salary",
            params={"period": "2024-13"},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_PERIOD"

    @pytest.mark.asyncio
    async def test_cross_check_without_backend_rows(
        self, client: AsyncClient, fake_rpc, test_employee, test_attendance, test_rates
    ):
        response = await client.get(
            f"/api/v1/payroll/employees/{test_employee.id}/salary/cross-check",
            params={"period": "2024-06"},
        )

        assert response.status_code == 200
        assert response.json()["backend_available"] is False


class TestBatchEndpoints:
    """Test payroll batch endpoints."""

    @pytest.mark.asyncio
    async def test_run_batch(self, client: AsyncClient, test_unit, test_employee, test_attendance, test_rates):
        response = await client.post(
            "/api/v1/payroll/batches",
            json={"unit_id": str(test_unit.id), "period": "2024-06"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "completed"
        assert body["batch_id"] is not None
        assert body["summary"]["total_employees"] == 1
        assert Decimal(body["summary"]["total_net"]) == Decimal("17269.25")
        assert body["failures"] == []

        listed = await client.get("/api/v1/payroll/disbursements", params={"period": "2024-06"})
        assert listed.status_code == 200
        assert len(listed.json()) == 1
        assert Decimal(listed.json()[0]["net_salary"]) == Decimal("17269.25")

    @pytest.mark.asyncio
    async def test_batch_reports_failures(self, client: AsyncClient, test_unit, test_employee, test_attendance):
        response = await client.post(
            "/api/v1/payroll/batches",
            json={"unit_id": str(test_unit.id), "period": "2024-06", "persist": False},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "failed"
        assert body["failures"][0]["error_code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_unknown_unit(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/payroll/batches",
            json={"unit_id": str(uuid4()), "period": "2024-06"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UNIT_NOT_FOUND"


class TestRatesEndpoint:
    """Test GET /api/v1/payroll/rates/effective."""

    @pytest.mark.asyncio
    async def test_effective_rates(self, client: AsyncClient, test_rates):
        response = await client.get("/api/v1/payroll/rates/effective", params={"on": "2024-06-01"})

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["pf_rate"]) == Decimal("12")
        assert Decimal(body["lwf_amount"]) == Decimal("31")

    @pytest.mark.asyncio
    async def test_before_first_rate_set(self, client: AsyncClient, test_rates):
        response = await client.get("/api/v1/payroll/rates/effective", params={"on": "2024-01-01"})

        assert response.status_code == 422


class TestLeaveReconciliationEndpoints:
    """Test leave reconciliation passthrough endpoints."""

    @pytest.mark.asyncio
    async def test_reconcile(self, client: AsyncClient, fake_rpc):
        response = await client.post(
            "/api/v1/payroll/leave-reconciliation",
            json={"month": 6, "year": 2024},
        )

        assert response.status_code == 200
        assert response.json()["total_employees"] == 1
        assert fake_rpc.calls[0] == ("reconcile_monthly_leaves", 6, 2024, None)

    @pytest.mark.asyncio
    async def test_backend_failure_is_bad_gateway(self, client: AsyncClient, fake_rpc):
        fake_rpc.fail = True

        response = await client.post(
            "/api/v1/payroll/leave-reconciliation",
            json={"month": 6, "year": 2024},
        )

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "BACKEND_RPC_ERROR"

    @pytest.mark.asyncio
    async def test_reconciliation_status(self, client: AsyncClient, fake_rpc):
        response = await client.get(
            "/api/v1/payroll/leave-reconciliation/status",
            params={"month": 6, "year": 2024},
        )

        assert response.status_code == 200
        assert response.json()[0]["is_reconciled"] is True

    @pytest.mark.asyncio
    async def test_apply_adjustments(self, client: AsyncClient, fake_rpc):
        response = await client.post(
            "/api/v1/payroll/leave-adjustments",
            json={
                "adjustments": [{
                    "employee_id": "e1",
                    "current_casual_balance": "6",
                    "current_earned_balance": "12",
                    "casual_adjustment": "-2",
                }],
                "reason": "June reconciliation",
                "month": 6,
                "year": 2024,
            },
        )

        assert response.status_code == 200
        assert response.json()["success_count"] == 1

    @pytest.mark.asyncio
    async def test_blank_reason_rejected(self, client: AsyncClient, fake_rpc):
        response = await client.post(
            "/api/v1/payroll/leave-adjustments",
            json={
                "adjustments": [{
                    "employee_id": "e1",
                    "current_casual_balance": "6",
                    "current_earned_balance": "12",
                }],
                "reason": "   ",
                "month": 6,
                "year": 2024,
            },
        )

        assert response.status_code == 422
        assert fake_rpc.calls == []


class TestAttendanceEndpoints:
    """Test attendance tally and CSV endpoints."""

    @pytest.mark.asyncio
    async def test_tally(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/attendance/tally",
            json={
                "period": "2024-06",
                "entries": [
                    {"attendance_date": "2024-06-03", "status": "PRESENT", "hours_worked": "8", "overtime_hours": "2"},
                    {"attendance_date": "2024-06-02", "status": "WEEKLY_OFF"},
                    {"attendance_date": "2024-06-04", "status": "EARNED_LEAVE"},
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["paid_days"] == 3
        assert body["paid_leave_days"] == 1
        assert Decimal(body["overtime_hours"]) == Decimal("2")

    @pytest.mark.asyncio
    async def test_tally_accepts_absent_as_unpaid_leave(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/attendance/tally",
            json={
                "entries": [
                    {"attendance_date": "2024-06-03", "status": "PRESENT", "hours_worked": "8"},
                    {"attendance_date": "2024-06-04", "status": "ABSENT"},
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["unpaid_leave_days"] == 1
        assert body["paid_days"] == 1

    @pytest.mark.asyncio
    async def test_tally_rejects_invalid_entry(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/attendance/tally",
            json={"entries": [{"attendance_date": "2024-06-03", "status": "PRESENT", "hours_worked": "0"}]},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_ATTENDANCE"
        assert len(detail["details"]["problems"]) == 1

    @pytest.mark.asyncio
    async def test_csv_template(self, client: AsyncClient):
        response = await client.get("/api/v1/attendance/csv/template")

        assert response.status_code == 200
        assert "employee_code,date,hours_worked" in response.text

    @pytest.mark.asyncio
    async def test_csv_validate(self, client: AsyncClient):
        content = "employee_code,date,hours_worked\nEMP-1,2024-06-03,8\nEMP-2,2024-06-03,30\n"

        response = await client.post(
            "/api/v1/attendance/csv/validate",
            files={"file": ("attendance.csv", content, "text/csv")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_rows"] == 2
        assert body["valid_rows"] == 1
        assert body["errors"][0]["row_number"] == 3

    @pytest.mark.asyncio
    async def test_csv_missing_columns(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/attendance/csv/validate",
            files={"file": ("attendance.csv", "employee_code\nEMP-1\n", "text/csv")},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_CSV"

    @pytest.mark.asyncio
    async def test_non_csv_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/attendance/csv/validate",
            files={"file": ("attendance.xlsx", b"PK\x03\x04", "application/octet-stream")},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_csv_upload(self, client: AsyncClient, fake_rpc):
        content = "employee_code,date,hours_worked,status\nEMP-1,2024-06-03,8,PRESENT\nEMP-2,2024-06-03,0,CASUAL_LEAVE\n"

        response = await client.post(
            "/api/v1/attendance/csv/upload",
            files={"file": ("attendance.csv", content, "text/csv")},
        )

        assert response.status_code == 200
        assert response.json()["success_count"] == 2
        assert fake_rpc.calls == [("insert_attendance_from_csv_enhanced", 2)]
