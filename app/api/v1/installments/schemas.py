"""Installment payment schemas."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.payment_plans.schemas import InstallmentResponse
from app.core.enums import PaymentPlanStatus


class RecordPaymentRequest(BaseModel):
    paid_date: date
    paid_amount: Decimal = Field(..., gt=0, decimal_places=2)
    notes: Optional[str] = Field(None, max_length=500)
    expected_version: Optional[int] = Field(
        None,
        ge=1,
        description="Installment version the client last saw; a mismatch is rejected with 409",
    )


class PaymentPlanRollup(BaseModel):
    id: UUID
    status: PaymentPlanStatus
    earned_commission: Decimal


class RecordPaymentResponse(BaseModel):
    installment: InstallmentResponse
    remaining_balance: Decimal
    payment_plan: PaymentPlanRollup
