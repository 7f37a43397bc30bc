"""Payment plan schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import InstallmentStatus, PaymentFrequency, PaymentPlanStatus


# --- Commission ---
class CommissionRequest(BaseModel):
    total_course_value: Decimal = Field(..., gt=0, decimal_places=2)
    materials_cost: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    admin_fees: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    other_fees: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    commission_rate_percent: Decimal = Field(..., ge=0, le=100)
    gst_inclusive: bool = True


class CommissionResponse(BaseModel):
    commissionable_value: Decimal
    expected_commission: Decimal


# --- Installment schedule ---
class InstallmentScheduleRequest(CommissionRequest):
    initial_payment_amount: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    initial_payment_due_date: Optional[date] = None
    initial_payment_paid: bool = False
    number_of_installments: int = Field(..., ge=0, le=60)
    payment_frequency: PaymentFrequency = PaymentFrequency.monthly
    first_college_due_date: Optional[date] = None
    student_lead_time_days: int = Field(0, ge=0)
    course_start_date: Optional[date] = None
    course_end_date: Optional[date] = None
    non_commission_installments: List[int] = Field(
        default_factory=list,
        description="Installment numbers that are pure fee collections (no commission)",
    )

    @model_validator(mode="after")
    def validate_course_dates(self) -> "InstallmentScheduleRequest":
        if self.course_start_date and self.course_end_date and self.course_end_date < self.course_start_date:
            raise ValueError("course_end_date cannot be before course_start_date")
        return self


class InstallmentDraftResponse(BaseModel):
    installment_number: int
    amount: Decimal
    student_due_date: date
    college_due_date: date
    is_initial_payment: bool
    generates_commission: bool
    status: InstallmentStatus
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None


class InstallmentScheduleSummary(BaseModel):
    total_course_value: Decimal
    commissionable_value: Decimal
    expected_commission: Decimal
    initial_payment: Decimal
    total_installments: int
    amount_per_installment: Decimal


class InstallmentScheduleResponse(BaseModel):
    installments: List[InstallmentDraftResponse]
    summary: InstallmentScheduleSummary
    warnings: List[str] = Field(default_factory=list)


# --- Payment plan ---
class PaymentPlanCreate(InstallmentScheduleRequest):
    enrollment_id: UUID
    currency: str = Field("AUD", min_length=3, max_length=3)


class InstallmentResponse(BaseModel):
    id: UUID
    payment_plan_id: UUID
    installment_number: int
    amount: Decimal
    student_due_date: date
    college_due_date: date
    is_initial_payment: bool
    generates_commission: bool
    status: InstallmentStatus
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None
    payment_notes: Optional[str] = None
    version: int

    class Config:
        from_attributes = True


class PaymentPlanResponse(BaseModel):
    id: UUID
    agency_id: UUID
    enrollment_id: UUID
    total_amount: Decimal
    currency: str
    commission_rate_percent: Decimal
    gst_inclusive: bool
    materials_cost: Decimal
    admin_fees: Decimal
    other_fees: Decimal
    commissionable_value: Decimal
    expected_commission: Decimal
    earned_commission: Decimal
    payment_frequency: Optional[PaymentFrequency] = None
    student_lead_time_days: int
    course_start_date: Optional[date] = None
    course_end_date: Optional[date] = None
    status: PaymentPlanStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentPlanWithInstallments(PaymentPlanResponse):
    installments: List[InstallmentResponse] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
