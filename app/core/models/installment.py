"""Installment: one scheduled payment inside a payment plan. Rows are never deleted."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.core.enums import InstallmentStatus
from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Installment(Base):
    """
    status is only changed by the daily status sweep or by payment recording,
    both through a conditional update on `version`.
    """

    __tablename__ = "installments"
    __table_args__ = (
        UniqueConstraint("payment_plan_id", "installment_number", name="uq_installment_plan_number"),
        CheckConstraint("amount > 0", name="chk_installment_amount_positive"),
        CheckConstraint(
            "paid_amount IS NULL OR (paid_amount > 0 AND paid_amount <= amount)",
            name="chk_installment_paid_amount",
        ),
        CheckConstraint(
            "status IN ('draft','pending','due_soon','overdue','partial','paid','cancelled')",
            name="chk_installment_status",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_plan_id = Column(Uuid, ForeignKey("payment_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    agency_id = Column(Uuid, ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)

    installment_number = Column(Integer, nullable=False)  # 0 = initial payment
    amount = Column(Numeric(12, 2), nullable=False)
    student_due_date = Column(Date, nullable=False, index=True)
    college_due_date = Column(Date, nullable=False)
    is_initial_payment = Column(Boolean, nullable=False, default=False)
    generates_commission = Column(Boolean, nullable=False, default=True)

    status = Column(String(20), nullable=False, default=InstallmentStatus.draft.value, index=True)
    paid_date = Column(Date, nullable=True)
    paid_amount = Column(Numeric(12, 2), nullable=True)
    payment_notes = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    payment_plan = relationship("PaymentPlan", back_populates="installments")
