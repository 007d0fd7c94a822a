"""
DK Payroll - Master Data API Tests

Tests for unit, employee, advance, deduction rate and daily attendance
endpoints, and a payroll run built only from data entered through them.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from httpx import AsyncClient


UNIT = {"name": "Panchkula Plant", "code": "PKL", "location": "Panchkula"}


async def create_unit(client: AsyncClient, **overrides) -> dict:
    response = await client.post("/api/v1/payroll/units", json={**UNIT, **overrides})
    assert response.status_code == 201
    return response.json()


async def create_employee(client: AsyncClient, unit_id: str, **overrides) -> dict:
    payload = {
        "unit_id": unit_id,
        "name": "Asha Verma",
        "employee_code": "EMP-001",
        "basic_salary": "13500",
        "hra_amount": "7500",
        **overrides,
    }
    response = await client.post("/api/v1/payroll/employees", json=payload)
    assert response.status_code == 201
    return response.json()


class TestUnitEndpoints:
    """Test /api/v1/payroll/units."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient):
        unit = await create_unit(client)

        response = await client.get("/api/v1/payroll/units")

        assert response.status_code == 200
        assert [u["code"] for u in response.json()] == ["PKL"]
        assert unit["location"] == "Panchkula"

    @pytest.mark.asyncio
    async def test_duplicate_code_conflict(self, client: AsyncClient):
        await create_unit(client)

        response = await client.post("/api/v1/payroll/units", json={**UNIT, "name": "Second"})

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "RESOURCE_CONFLICT"

    @pytest.mark.asyncio
    async def test_update(self, client: AsyncClient):
        unit = await create_unit(client)

        response = await client.put(f"/api/v1/payroll/units/{unit['id']}", json={"name": "Panchkula Works"})

        assert response.status_code == 200
        assert response.json()["name"] == "Panchkula Works"
        assert response.json()["code"] == "PKL"

    @pytest.mark.asyncio
    async def test_unknown_unit(self, client: AsyncClient):
        response = await client.get(f"/api/v1/payroll/units/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UNIT_NOT_FOUND"


class TestEmployeeEndpoints:
    """Test /api/v1/payroll/employees."""

    @pytest.mark.asyncio
    async def test_create(self, client: AsyncClient):
        unit = await create_unit(client)

        employee = await create_employee(client, unit["id"])

        assert employee["unit_id"] == unit["id"]
        assert Decimal(employee["basic_salary"]) == Decimal("13500")
        assert employee["overtime_rate_per_hour"] is None
        assert employee["active"] is True

    @pytest.mark.asyncio
    async def test_unknown_unit_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/payroll/employees",
            json={"unit_id": str(uuid4()), "name": "Ravi", "basic_salary": "9000"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UNIT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_negative_salary_rejected(self, client: AsyncClient):
        unit = await create_unit(client)

        response = await client.post(
            "/api/v1/payroll/employees",
            json={"unit_id": unit["id"], "name": "Ravi", "basic_salary": "-1"},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_duplicate_code_conflict(self, client: AsyncClient):
        unit = await create_unit(client)
        await create_employee(client, unit["id"])

        response = await client.post(
            "/api/v1/payroll/employees",
            json={"unit_id": unit["id"], "name": "Ravi", "employee_code": "EMP-001", "basic_salary": "9000"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "RESOURCE_CONFLICT"

    @pytest.mark.asyncio
    async def test_update_and_filter_active(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])
        await create_employee(client, unit["id"], name="Ravi Kumar", employee_code="EMP-002")

        response = await client.put(
            f"/api/v1/payroll/employees/{employee['id']}",
            json={"basic_salary": "14000", "active": False},
        )
        assert response.status_code == 200
        assert Decimal(response.json()["basic_salary"]) == Decimal("14000")
        assert Decimal(response.json()["hra_amount"]) == Decimal("7500")

        response = await client.get(
            "/api/v1/payroll/employees",
            params={"unit_id": unit["id"], "active_only": "true"},
        )
        assert [e["employee_code"] for e in response.json()] == ["EMP-002"]

    @pytest.mark.asyncio
    async def test_unknown_employee(self, client: AsyncClient):
        response = await client.put(f"/api/v1/payroll/employees/{uuid4()}", json={"name": "Nobody"})

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "EMPLOYEE_NOT_FOUND"


class TestAdvanceEndpoints:
    """Test /api/v1/payroll/advances."""

    @pytest.mark.asyncio
    async def test_create_list_by_period(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])
        for day, amount in (("2024-05-28", "300"), ("2024-06-10", "1000")):
            response = await client.post(
                "/api/v1/payroll/advances",
                json={"employee_id": employee["id"], "advance_date": day, "advance_amount": amount},
            )
            assert response.status_code == 201

        response = await client.get(
            "/api/v1/payroll/advances",
            params={"employee_id": employee["id"], "period": "2024-06"},
        )

        assert response.status_code == 200
        advances = response.json()
        assert len(advances) == 1
        assert Decimal(advances[0]["advance_amount"]) == Decimal("1000")

    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])

        response = await client.post(
            "/api/v1/payroll/advances",
            json={"employee_id": employee["id"], "advance_date": "2024-06-10", "advance_amount": "0"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])
        response = await client.post(
            "/api/v1/payroll/advances",
            json={"employee_id": employee["id"], "advance_date": "2024-06-10", "advance_amount": "1000"},
        )
        advance_id = response.json()["id"]

        response = await client.put(f"/api/v1/payroll/advances/{advance_id}", json={"advance_amount": "750"})
        assert response.status_code == 200
        assert Decimal(response.json()["advance_amount"]) == Decimal("750")

        response = await client.delete(f"/api/v1/payroll/advances/{advance_id}")
        assert response.status_code == 204

        response = await client.put(f"/api/v1/payroll/advances/{advance_id}", json={"advance_amount": "10"})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"


class TestRateSetEndpoints:
    """Test /api/v1/payroll/rates."""

    @pytest.mark.asyncio
    async def test_create_and_lookup(self, client: AsyncClient):
        for effective_from, pf_rate in (("2024-04-01", "12"), ("2024-07-01", "10")):
            response = await client.post(
                "/api/v1/payroll/rates",
                json={"effective_from": effective_from, "pf_rate": pf_rate},
            )
            assert response.status_code == 201

        history = (await client.get("/api/v1/payroll/rates")).json()
        assert [r["effective_from"] for r in history] == ["2024-07-01", "2024-04-01"]

        response = await client.get("/api/v1/payroll/rates/effective", params={"on": "2024-06-15"})
        assert Decimal(response.json()["pf_rate"]) == Decimal("12")
        assert Decimal(response.json()["lwf_amount"]) == Decimal("31")

    @pytest.mark.asyncio
    async def test_duplicate_effective_date_conflict(self, client: AsyncClient):
        payload = {"effective_from": "2024-04-01"}
        assert (await client.post("/api/v1/payroll/rates", json=payload)).status_code == 201

        response = await client.post("/api/v1/payroll/rates", json={**payload, "pf_rate": "10"})

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "RESOURCE_CONFLICT"
        assert detail["details"]["effective_from"] == "2024-04-01"

    @pytest.mark.asyncio
    async def test_negative_rate_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/payroll/rates",
            json={"effective_from": "2024-04-01", "esi_rate": "-0.75"},
        )

        assert response.status_code == 422


class TestAttendanceRecordEndpoints:
    """Test /api/v1/attendance/records."""

    @pytest.mark.asyncio
    async def test_record_replaces_same_day(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])
        record = {"employee_id": employee["id"], "attendance_date": "2024-06-03"}

        first = await client.post("/api/v1/attendance/records", json={**record, "status": "PRESENT", "hours_worked": "8"})
        assert first.status_code == 201
        assert first.json()["unit_id"] == unit["id"]

        second = await client.post("/api/v1/attendance/records", json={**record, "status": "ABSENT"})
        assert second.status_code == 201
        assert second.json()["status"] == "UNPAID_LEAVE"

        response = await client.get(
            "/api/v1/attendance/records",
            params={"employee_id": employee["id"], "period": "2024-06"},
        )
        records = response.json()
        assert len(records) == 1
        assert Decimal(records[0]["hours_worked"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_invalid_entry_rejected(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])

        response = await client.post(
            "/api/v1/attendance/records",
            json={
                "employee_id": employee["id"],
                "attendance_date": "2024-06-02",
                "status": "WEEKLY_OFF",
                "hours_worked": "4",
            },
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_ATTENDANCE"
        assert detail["details"]["employee_id"] == employee["id"]

    @pytest.mark.asyncio
    async def test_unknown_employee(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/attendance/records",
            json={"employee_id": str(uuid4()), "attendance_date": "2024-06-03", "status": "PRESENT", "hours_worked": "8"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "EMPLOYEE_NOT_FOUND"


class TestPayrollFromEnteredData:
    """Salary and batch endpoints over data entered through the API only."""

    @pytest.mark.asyncio
    async def test_worked_example_end_to_end(self, client: AsyncClient):
        unit = await create_unit(client)
        employee = await create_employee(client, unit["id"])
        await client.post("/api/v1/payroll/rates", json={"effective_from": "2024-04-01"})
        await client.post(
            "/api/v1/payroll/advances",
            json={"employee_id": employee["id"], "advance_date": "2024-06-10", "advance_amount": "1000"},
        )

        # 21 present, 5 weekly off, 1 casual leave, 3 unpaid leave
        statuses = ["PRESENT"] * 21 + ["WEEKLY_OFF"] * 5 + ["CASUAL_LEAVE"] + ["UNPAID_LEAVE"] * 3
        for offset, status in enumerate(statuses):
            response = await client.post(
                "/api/v1/attendance/records",
                json={
                    "employee_id": employee["id"],
                    "attendance_date": (date(2024, 6, 1) + timedelta(days=offset)).isoformat(),
                    "status": status,
                    "hours_worked": "8" if status == "PRESENT" else "0",
                },
            )
            assert response.status_code == 201

        response = await client.get(
            f"/api/v1/payroll/employees/{employee['id']}/salary",
            params={"period": "2024-06"},
        )
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["paid_days"] == 27
        assert Decimal(result["gross_salary"]) == Decimal("18900")
        assert Decimal(result["net_salary"]) == Decimal("16269.25")

        response = await client.post(
            "/api/v1/payroll/batches",
            json={"unit_id": unit["id"], "period": "2024-06"},
        )
        assert response.status_code == 201
        assert Decimal(response.json()["summary"]["total_net"]) == Decimal("16269.25")
