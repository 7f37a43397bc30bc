import os
from datetime import date, time
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("JOB_API_KEY", "test-job-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.api.v1.payment_plans import service as payment_plan_service
from app.api.v1.payment_plans.schemas import PaymentPlanCreate
from app.core.models import Agency
from app.db.session import Base, get_db


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; overrides the FastAPI session dependency."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture()
async def agency(db_session: AsyncSession) -> Agency:
    agency = Agency(
        name="Gold Coast Education Agents",
        timezone="Australia/Brisbane",
        overdue_cutoff_time=time(17, 0),
        due_soon_threshold_days=4,
    )
    db_session.add(agency)
    await db_session.commit()
    return agency


@pytest.fixture()
def current_user(agency: Agency) -> CurrentUser:
    return CurrentUser(id=uuid4(), agency_id=agency.id, role="agency_admin")


@pytest.fixture()
async def client(db_session: AsyncSession, current_user: CurrentUser) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, authenticated as an agency admin."""
    app.dependency_overrides[get_current_user] = lambda: current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def plan_payload(**overrides) -> PaymentPlanCreate:
    """$10,000 course, $1,500 up front, three monthly installments."""
    data = {
        "enrollment_id": uuid4(),
        "total_course_value": Decimal("10000.00"),
        "materials_cost": Decimal("500.00"),
        "admin_fees": Decimal("200.00"),
        "other_fees": Decimal("100.00"),
        "commission_rate_percent": Decimal("15"),
        "gst_inclusive": True,
        "initial_payment_amount": Decimal("1500.00"),
        "initial_payment_due_date": date(2025, 3, 1),
        "number_of_installments": 3,
        "payment_frequency": "monthly",
        "first_college_due_date": date(2025, 4, 1),
        "student_lead_time_days": 0,
    }
    data.update(overrides)
    return PaymentPlanCreate(**data)


@pytest.fixture()
def make_plan(db_session: AsyncSession, agency: Agency):
    """Create a confirmed plan through the service. Defaults to the fixture agency."""

    async def _make_plan(agency_id=None, today: date = date(2025, 2, 1), **overrides):
        return await payment_plan_service.create_payment_plan(
            db_session, agency_id or agency.id, plan_payload(**overrides), today=today
        )

    return _make_plan
