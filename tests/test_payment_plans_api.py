from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import AuditAction
from app.core.models import AuditLog, Installment, PaymentPlan


def future(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def yesterday() -> str:
    # Agency-local today can be behind the test machine's date
    return future(-1)


def plan_json(**overrides) -> dict:
    data = {
        "enrollment_id": str(uuid4()),
        "total_course_value": "10000.00",
        "materials_cost": "500.00",
        "admin_fees": "200.00",
        "other_fees": "100.00",
        "commission_rate_percent": "15",
        "gst_inclusive": True,
        "initial_payment_amount": "1500.00",
        "initial_payment_due_date": future(30),
        "number_of_installments": 3,
        "payment_frequency": "monthly",
        "first_college_due_date": future(60),
        "student_lead_time_days": 7,
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_commission_preview(client: AsyncClient) -> None:
    payload = {
        "total_course_value": "10000",
        "materials_cost": "500",
        "admin_fees": "200",
        "other_fees": "100",
        "commission_rate_percent": "15",
        "gst_inclusive": True,
    }
    response = await client.post("/api/v1/payment-plans/commission", json=payload)
    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["commissionable_value"]) == Decimal("9200.00")
    assert Decimal(data["expected_commission"]) == Decimal("1380.00")


@pytest.mark.asyncio
async def test_commission_preview_fees_exceed_total(client: AsyncClient) -> None:
    payload = {"total_course_value": "100", "materials_cost": "150", "commission_rate_percent": "10"}
    response = await client.post("/api/v1/payment-plans/commission", json=payload)
    assert response.status_code == 400
    assert "exceed" in response.json()["detail"]


@pytest.mark.asyncio
async def test_commission_preview_rejects_negative_fee(client: AsyncClient) -> None:
    payload = {"total_course_value": "100", "materials_cost": "-1", "commission_rate_percent": "10"}
    response = await client.post("/api/v1/payment-plans/commission", json=payload)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_schedule_preview(client: AsyncClient) -> None:
    payload = plan_json()
    payload.pop("enrollment_id")
    response = await client.post("/api/v1/payment-plans/installments/preview", json=payload)
    assert response.status_code == 200
    data = response.json()

    amounts = [Decimal(i["amount"]) for i in data["installments"]]
    assert amounts == [Decimal("1500.00"), Decimal("2833.33"), Decimal("2833.33"), Decimal("2833.34")]
    assert all(i["status"] == "draft" for i in data["installments"])
    assert data["summary"]["total_installments"] == 4
    assert Decimal(data["summary"]["expected_commission"]) == Decimal("1380.00")
    assert data["warnings"] == []


@pytest.mark.asyncio
async def test_schedule_preview_names_bad_input(client: AsyncClient) -> None:
    payload = plan_json(initial_payment_amount="12000.00")
    response = await client.post("/api/v1/payment-plans/installments/preview", json=payload)
    assert response.status_code == 400
    assert "initial_payment_amount" in response.json()["detail"]


@pytest.mark.asyncio
async def test_create_payment_plan(client: AsyncClient, db_session: AsyncSession, current_user) -> None:
    response = await client.post("/api/v1/payment-plans", json=plan_json())
    assert response.status_code == 201
    data = response.json()

    assert data["status"] == "active"
    assert data["agency_id"] == str(current_user.agency_id)
    assert Decimal(data["commissionable_value"]) == Decimal("9200.00")
    assert Decimal(data["expected_commission"]) == Decimal("1380.00")
    assert Decimal(data["earned_commission"]) == Decimal("0")
    assert [i["installment_number"] for i in data["installments"]] == [0, 1, 2, 3]
    assert all(i["status"] == "pending" for i in data["installments"])
    assert sum(Decimal(i["amount"]) for i in data["installments"]) == Decimal("10000.00")

    regular = data["installments"][1]
    assert date.fromisoformat(regular["student_due_date"]) - date.fromisoformat(regular["college_due_date"]) == timedelta(days=7)

    plan_id = UUID(data["id"])
    plan = (await db_session.execute(select(PaymentPlan).where(PaymentPlan.id == plan_id))).scalar_one()
    assert plan.created_by == current_user.id
    rows = (await db_session.execute(select(Installment).where(Installment.payment_plan_id == plan_id))).scalars().all()
    assert len(rows) == 4

    audit = (
        await db_session.execute(
            select(AuditLog).where(AuditLog.entity_id == plan_id, AuditLog.action == AuditAction.CREATE.value)
        )
    ).scalar_one()
    assert audit.user_id == current_user.id
    assert audit.changes["expected_commission"] == {"old": None, "new": "1380.00"}


@pytest.mark.asyncio
async def test_create_with_paid_initial_payment(client: AsyncClient) -> None:
    payload = plan_json(initial_payment_due_date=future(-3), initial_payment_paid=True)
    response = await client.post("/api/v1/payment-plans", json=payload)
    assert response.status_code == 201
    initial = response.json()["installments"][0]
    assert initial["status"] == "paid"
    assert Decimal(initial["paid_amount"]) == Decimal("1500.00")


@pytest.mark.asyncio
async def test_create_rejects_invalid_schedule(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await client.post("/api/v1/payment-plans", json=plan_json(number_of_installments=0))
    assert response.status_code == 400
    assert "number_of_installments" in response.json()["detail"]

    plans = (await db_session.execute(select(PaymentPlan))).scalars().all()
    assert plans == []


@pytest.mark.asyncio
async def test_get_payment_plan(client: AsyncClient) -> None:
    created = (await client.post("/api/v1/payment-plans", json=plan_json())).json()

    response = await client.get(f"/api/v1/payment-plans/{created['id']}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == created["id"]
    assert [i["id"] for i in data["installments"]] == [i["id"] for i in created["installments"]]


@pytest.mark.asyncio
async def test_get_unknown_payment_plan(client: AsyncClient) -> None:
    response = await client.get(f"/api/v1/payment-plans/{uuid4()}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cancel_payment_plan_keeps_paid_installments(client: AsyncClient, db_session: AsyncSession) -> None:
    payload = plan_json(initial_payment_due_date=future(-3), initial_payment_paid=True)
    created = (await client.post("/api/v1/payment-plans", json=payload)).json()

    response = await client.post(f"/api/v1/payment-plans/{created['id']}/cancel")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert [i["status"] for i in data["installments"]] == ["paid", "cancelled", "cancelled", "cancelled"]

    again = await client.post(f"/api/v1/payment-plans/{created['id']}/cancel")
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_record_payment_endpoint(client: AsyncClient) -> None:
    created = (await client.post("/api/v1/payment-plans", json=plan_json())).json()
    installment = created["installments"][1]

    response = await client.post(
        f"/api/v1/installments/{installment['id']}/record-payment",
        json={"paid_date": yesterday(), "paid_amount": "1000.00", "notes": "cash"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["installment"]["status"] == "partial"
    assert Decimal(data["remaining_balance"]) == Decimal("1833.33")

    over = await client.post(
        f"/api/v1/installments/{installment['id']}/record-payment",
        json={"paid_date": yesterday(), "paid_amount": "2000.00"},
    )
    assert over.status_code == 400
    assert over.json()["detail"] == "Payment exceeds outstanding balance of 1833.33"

    stale = await client.post(
        f"/api/v1/installments/{installment['id']}/record-payment",
        json={"paid_date": yesterday(), "paid_amount": "1.00", "expected_version": 1},
    )
    assert stale.status_code == 409


@pytest.mark.asyncio
async def test_record_payment_rejects_zero_amount(client: AsyncClient) -> None:
    created = (await client.post("/api/v1/payment-plans", json=plan_json())).json()
    response = await client.post(
        f"/api/v1/installments/{created['installments'][1]['id']}/record-payment",
        json={"paid_date": yesterday(), "paid_amount": "0"},
    )
    assert response.status_code == 422
