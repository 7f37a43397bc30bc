"""Payment plan: one per enrollment. Monetary inputs are frozen once installments exist."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import PaymentPlanStatus
from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentPlan(Base):
    """
    Commission-aware payment plan.
    commissionable_value and expected_commission are derived at creation;
    earned_commission is recomputed on every recorded payment.
    """

    __tablename__ = "payment_plans"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="chk_payment_plan_status",
        ),
        CheckConstraint(
            "materials_cost >= 0 AND admin_fees >= 0 AND other_fees >= 0",
            name="chk_payment_plan_fees_non_negative",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid, ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)
    # Enrollment rows live in the entities domain; referenced by id only
    enrollment_id = Column(Uuid, nullable=False, index=True)

    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="AUD")
    commission_rate_percent = Column(Numeric(5, 2), nullable=False)
    gst_inclusive = Column(Boolean, nullable=False, default=True)
    materials_cost = Column(Numeric(12, 2), nullable=False, default=0)
    admin_fees = Column(Numeric(12, 2), nullable=False, default=0)
    other_fees = Column(Numeric(12, 2), nullable=False, default=0)
    commissionable_value = Column(Numeric(12, 2), nullable=False)
    expected_commission = Column(Numeric(12, 2), nullable=False)
    earned_commission = Column(Numeric(12, 2), nullable=False, default=0)

    payment_frequency = Column(String(20), nullable=True)  # weekly, monthly, quarterly
    student_lead_time_days = Column(Integer, nullable=False, default=0)
    course_start_date = Column(Date, nullable=True)
    course_end_date = Column(Date, nullable=True)

    status = Column(String(20), nullable=False, default=PaymentPlanStatus.active.value)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    agency = relationship("Agency")
    installments = relationship(
        "Installment",
        back_populates="payment_plan",
        order_by="Installment.installment_number",
    )
