"""Installment payment recording and reconciliation. Financial logic with audit."""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.payment_plans.schemas import InstallmentResponse
from app.core.audit_service import diff_values, log_audit
from app.core.commission import calculate_earned_commission, to_decimal
from app.core.enums import AuditAction, InstallmentStatus, PaymentPlanStatus
from app.core.exceptions import ConflictError, NotFoundError, ServiceError, ValidationError
from app.core.installment_status import PAYABLE_STATUSES, AgencyStatusConfig, assert_transition
from app.core.models import Agency, Installment, PaymentPlan

from .schemas import PaymentPlanRollup, RecordPaymentRequest, RecordPaymentResponse

logger = logging.getLogger(__name__)


async def _rollup_payment_plan(db: AsyncSession, plan: PaymentPlan) -> None:
    """Recompute earned commission and complete the plan once every live installment is paid."""
    installments = (
        await db.execute(select(Installment).where(Installment.payment_plan_id == plan.id))
    ).scalars().all()
    live = [i for i in installments if i.status != InstallmentStatus.cancelled.value]
    commissionable = [i for i in live if i.generates_commission]
    paid_commissionable = sum(
        (to_decimal(i.paid_amount) for i in commissionable if i.status == InstallmentStatus.paid.value),
        Decimal("0"),
    )
    plan.earned_commission = calculate_earned_commission(
        paid_commissionable,
        sum((to_decimal(i.amount) for i in commissionable), Decimal("0")),
        plan.expected_commission,
    )
    if live and all(i.status == InstallmentStatus.paid.value for i in live):
        plan.status = PaymentPlanStatus.completed.value


async def record_payment(
    db: AsyncSession,
    agency_id: UUID,
    installment_id: UUID,
    payload: RecordPaymentRequest,
    recorded_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> RecordPaymentResponse:
    """
    Record a (full or partial) payment against one installment.

    The write is a conditional UPDATE on the row's version, so two concurrent
    payments cannot both pass the outstanding-balance check. The installment
    update, its audit entry and the plan roll-up commit together or not at all.
    """
    row = (
        await db.execute(
            select(Installment, PaymentPlan, Agency)
            .join(PaymentPlan, Installment.payment_plan_id == PaymentPlan.id)
            .join(Agency, PaymentPlan.agency_id == Agency.id)
            .where(Installment.id == installment_id, PaymentPlan.agency_id == agency_id)
            .with_for_update(of=Installment)
        )
    ).one_or_none()
    if not row:
        raise NotFoundError("Installment not found")
    inst, plan, agency = row

    if payload.expected_version is not None and payload.expected_version != inst.version:
        raise ConflictError("Installment was updated by someone else; reload and try again")

    current = InstallmentStatus(inst.status)
    if current not in PAYABLE_STATUSES:
        raise ValidationError(
            f"Cannot record a payment against an installment with status '{current.value}'",
            field="status",
        )

    if today is None:
        today = AgencyStatusConfig.from_agency(agency).local_today()
    if payload.paid_date > today:
        raise ValidationError("paid_date cannot be in the future", field="paid_date")

    paid_amount = to_decimal(payload.paid_amount)
    if paid_amount <= 0:
        raise ValidationError("paid_amount must be greater than 0", field="paid_amount")

    amount = to_decimal(inst.amount)
    previous_paid = to_decimal(inst.paid_amount)
    outstanding = amount - previous_paid
    if paid_amount > outstanding:
        logger.warning(
            "Rejected overpayment of %s on installment %s (outstanding %s)", paid_amount, inst.id, outstanding
        )
        raise ValidationError(
            f"Payment exceeds outstanding balance of {outstanding:.2f}",
            field="paid_amount",
        )

    new_total = previous_paid + paid_amount
    target = InstallmentStatus.paid if new_total == amount else InstallmentStatus.partial
    assert_transition(current, target)

    old_values = {
        "status": inst.status,
        "paid_amount": str(inst.paid_amount) if inst.paid_amount is not None else None,
        "paid_date": inst.paid_date.isoformat() if inst.paid_date else None,
    }
    new_values = {
        "status": target.value,
        "paid_amount": str(new_total),
        "paid_date": payload.paid_date.isoformat(),
    }
    notes = (payload.notes or "").strip() or None

    try:
        result = await db.execute(
            update(Installment)
            .where(
                Installment.id == inst.id,
                Installment.version == inst.version,
                Installment.status == current.value,
            )
            .values(
                status=target.value,
                paid_amount=new_total,
                paid_date=payload.paid_date,
                payment_notes=notes if notes is not None else inst.payment_notes,
                version=inst.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Installment was updated by someone else; reload and try again")

        await log_audit(
            db, agency_id, "installment", inst.id, AuditAction.PAYMENT_RECORDED.value,
            changes=diff_values(old_values, new_values),
            user_id=recorded_by,
            metadata={
                "payment_plan_id": str(plan.id),
                "installment_number": inst.installment_number,
                "amount_received": str(paid_amount),
                "remaining_balance": str(amount - new_total),
                "notes": notes,
            },
        )
        await db.refresh(inst)
        await _rollup_payment_plan(db, plan)
        await db.commit()
    except ConflictError:
        await db.rollback()
        logger.info("Payment on installment %s lost a concurrent update race", installment_id)
        raise
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Payment would exceed the installment amount; reload and try again")
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to record payment on installment %s", installment_id)
        raise ServiceError("Unable to record payment")

    await db.refresh(plan)
    logger.info(
        "Recorded payment of %s on installment %s (%s -> %s)", paid_amount, inst.id, current.value, target.value
    )
    return RecordPaymentResponse(
        installment=InstallmentResponse.model_validate(inst),
        remaining_balance=amount - new_total,
        payment_plan=PaymentPlanRollup(
            id=plan.id,
            status=plan.status,
            earned_commission=to_decimal(plan.earned_commission),
        ),
    )
