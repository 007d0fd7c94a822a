"""
DK Payroll - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_async_session
from app.models.payroll import (
    Advance,
    AttendanceRecord,
    AttendanceStatus,
    PayrollEmployee,
    PayrollSettings,
    Unit,
)
from main import app


# In-memory SQLite, one database per test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

JUNE_2024 = date(2024, 6, 1)


@pytest_asyncio.fixture
async def test_unit(db_session: AsyncSession) -> Unit:
    """Create a test unit."""
    unit = Unit(
        id=uuid4(),
        name="Panchkula Plant",
        code="PKL",
        location="Panchkula",
    )
    db_session.add(unit)
    await db_session.commit()
    await db_session.refresh(unit)
    return unit


@pytest_asyncio.fixture
async def test_rates(db_session: AsyncSession) -> PayrollSettings:
    """Standard deduction rates effective from April 2024."""
    rates = PayrollSettings(
        id=uuid4(),
        effective_from=date(2024, 4, 1),
        pf_rate=Decimal("12.00"),
        esi_rate=Decimal("0.75"),
        lwf_amount=Decimal("31.00"),
    )
    db_session.add(rates)
    await db_session.commit()
    await db_session.refresh(rates)
    return rates


@pytest_asyncio.fixture
async def test_employee(db_session: AsyncSession, test_unit: Unit) -> PayrollEmployee:
    """Employee with 13,500 basic and 7,500 HRA."""
    employee = PayrollEmployee(
        id=uuid4(),
        unit_id=test_unit.id,
        name="Asha Verma",
        employee_code="EMP-001",
        basic_salary=Decimal("13500.00"),
        hra_amount=Decimal("7500.00"),
        other_allowance=Decimal("0.00"),
        active=True,
    )
    db_session.add(employee)
    await db_session.commit()
    await db_session.refresh(employee)
    return employee


def june_attendance(employee: PayrollEmployee) -> List[AttendanceRecord]:
    """21 present, 5 weekly off, 1 casual leave, 3 unpaid leave."""
    records = []
    for offset in range(30):
        day = JUNE_2024 + timedelta(days=offset)
        if offset < 21:
            status, hours = AttendanceStatus.PRESENT, Decimal("8")
        elif offset < 26:
            status, hours = AttendanceStatus.WEEKLY_OFF, Decimal("0")
        elif offset == 26:
            status, hours = AttendanceStatus.CASUAL_LEAVE, Decimal("0")
        else:
            status, hours = AttendanceStatus.UNPAID_LEAVE, Decimal("0")
        records.append(AttendanceRecord(
            employee_id=employee.id,
            unit_id=employee.unit_id,
            attendance_date=day,
            status=status,
            hours_worked=hours,
            overtime_hours=Decimal("0"),
        ))
    return records


@pytest_asyncio.fixture
async def test_attendance(db_session: AsyncSession, test_employee: PayrollEmployee) -> List[AttendanceRecord]:
    """June 2024 attendance for the test employee."""
    records = june_attendance(test_employee)
    db_session.add_all(records)
    await db_session.commit()
    return records


@pytest_asyncio.fixture
async def test_advance(db_session: AsyncSession, test_employee: PayrollEmployee) -> Advance:
    """1,000 advance given in June 2024."""
    advance = Advance(
        id=uuid4(),
        employee_id=test_employee.id,
        advance_date=date(2024, 6, 10),
        advance_amount=Decimal("1000.00"),
        remarks="Festival advance",
    )
    db_session.add(advance)
    await db_session.commit()
    await db_session.refresh(advance)
    return advance
