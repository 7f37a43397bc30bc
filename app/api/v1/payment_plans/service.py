"""Payment plan service: commission preview, schedule preview, plan creation and cancellation."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.audit_service import diff_values, log_audit
from app.core.commission import CommissionResult, calculate_commission
from app.core.enums import AuditAction, InstallmentStatus, PaymentPlanStatus
from app.core.exceptions import ConflictError, NotFoundError, ServiceError, ValidationError
from app.core.installment_status import AgencyStatusConfig, TERMINAL_STATUSES, assert_transition
from app.core.models import Agency, Installment, PaymentPlan
from app.core.schedule import (
    ScheduleInput,
    ScheduleResult,
    build_schedule_summary,
    confirm_schedule,
    generate_installment_schedule,
)

from .schemas import (
    CommissionRequest,
    CommissionResponse,
    InstallmentDraftResponse,
    InstallmentResponse,
    InstallmentScheduleRequest,
    InstallmentScheduleResponse,
    InstallmentScheduleSummary,
    PaymentPlanCreate,
    PaymentPlanResponse,
    PaymentPlanWithInstallments,
)

logger = logging.getLogger(__name__)


def _commission_for(payload: CommissionRequest) -> CommissionResult:
    return calculate_commission(
        payload.total_course_value,
        payload.materials_cost,
        payload.admin_fees,
        payload.other_fees,
        payload.commission_rate_percent,
        payload.gst_inclusive,
    )


def _schedule_input(payload: InstallmentScheduleRequest) -> ScheduleInput:
    return ScheduleInput(
        total_course_value=payload.total_course_value,
        initial_payment_amount=payload.initial_payment_amount,
        initial_payment_due_date=payload.initial_payment_due_date,
        number_of_installments=payload.number_of_installments,
        payment_frequency=payload.payment_frequency,
        first_college_due_date=payload.first_college_due_date,
        student_lead_time_days=payload.student_lead_time_days,
        initial_payment_paid=payload.initial_payment_paid,
        course_start_date=payload.course_start_date,
        course_end_date=payload.course_end_date,
        non_commission_installments=frozenset(payload.non_commission_installments),
    )


def calculate_commission_preview(payload: CommissionRequest) -> CommissionResponse:
    result = _commission_for(payload)
    return CommissionResponse(
        commissionable_value=result.commissionable_value,
        expected_commission=result.expected_commission,
    )


def _schedule_response(result: ScheduleResult, commission: CommissionResult) -> InstallmentScheduleResponse:
    return InstallmentScheduleResponse(
        installments=[
            InstallmentDraftResponse(
                installment_number=i.installment_number,
                amount=i.amount,
                student_due_date=i.student_due_date,
                college_due_date=i.college_due_date,
                is_initial_payment=i.is_initial_payment,
                generates_commission=i.generates_commission,
                status=i.status,
                paid_date=i.paid_date,
                paid_amount=i.paid_amount,
            )
            for i in result.installments
        ],
        summary=InstallmentScheduleSummary(
            **build_schedule_summary(result, commission.commissionable_value, commission.expected_commission)
        ),
        warnings=result.warnings,
    )


def preview_installment_schedule(
    payload: InstallmentScheduleRequest,
    today: Optional[date] = None,
) -> InstallmentScheduleResponse:
    """Draft schedule for the plan wizard. Nothing is persisted."""
    commission = _commission_for(payload)
    result = generate_installment_schedule(_schedule_input(payload), today=today)
    return _schedule_response(result, commission)


def _plan_to_response(plan: PaymentPlan, installments: List[Installment], warnings: Optional[List[str]] = None) -> PaymentPlanWithInstallments:
    base = PaymentPlanResponse.model_validate(plan)
    return PaymentPlanWithInstallments(
        **base.model_dump(),
        installments=[InstallmentResponse.model_validate(i) for i in installments],
        warnings=warnings or [],
    )


async def _get_agency(db: AsyncSession, agency_id: UUID) -> Agency:
    agency = await db.get(Agency, agency_id)
    if not agency:
        raise NotFoundError("Agency not found")
    return agency


async def create_payment_plan(
    db: AsyncSession,
    agency_id: UUID,
    payload: PaymentPlanCreate,
    created_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> PaymentPlanWithInstallments:
    """
    Persist the plan and its confirmed schedule in one transaction.
    Drafts are flipped to pending; an initial payment marked as already paid stays paid.
    """
    agency = await _get_agency(db, agency_id)
    if today is None:
        today = AgencyStatusConfig.from_agency(agency).local_today()

    commission = _commission_for(payload)
    result = generate_installment_schedule(_schedule_input(payload), today=today)
    drafts = confirm_schedule(result.installments)

    plan = PaymentPlan(
        agency_id=agency_id,
        enrollment_id=payload.enrollment_id,
        total_amount=payload.total_course_value,
        currency=payload.currency.upper(),
        commission_rate_percent=payload.commission_rate_percent,
        gst_inclusive=payload.gst_inclusive,
        materials_cost=payload.materials_cost,
        admin_fees=payload.admin_fees,
        other_fees=payload.other_fees,
        commissionable_value=commission.commissionable_value,
        expected_commission=commission.expected_commission,
        earned_commission=0,
        payment_frequency=payload.payment_frequency.value,
        student_lead_time_days=payload.student_lead_time_days,
        course_start_date=payload.course_start_date,
        course_end_date=payload.course_end_date,
        status=PaymentPlanStatus.active.value,
        created_by=created_by,
    )
    try:
        db.add(plan)
        await db.flush()
        rows: List[Installment] = []
        for d in drafts:
            row = Installment(
                payment_plan_id=plan.id,
                agency_id=agency_id,
                installment_number=d.installment_number,
                amount=d.amount,
                student_due_date=d.student_due_date,
                college_due_date=d.college_due_date,
                is_initial_payment=d.is_initial_payment,
                generates_commission=d.generates_commission,
                status=d.status.value,
                paid_date=d.paid_date,
                paid_amount=d.paid_amount,
                version=1,
            )
            db.add(row)
            rows.append(row)
        await db.flush()
        await log_audit(
            db, agency_id, "payment_plan", plan.id, AuditAction.CREATE.value,
            changes=diff_values(
                {},
                {
                    "total_amount": str(plan.total_amount),
                    "commission_rate_percent": str(plan.commission_rate_percent),
                    "commissionable_value": str(commission.commissionable_value),
                    "expected_commission": str(commission.expected_commission),
                    "status": plan.status,
                },
            ),
            user_id=created_by,
            metadata={
                "gst_inclusive": payload.gst_inclusive,
                "deductions": {
                    "materials_cost": str(payload.materials_cost),
                    "admin_fees": str(payload.admin_fees),
                    "other_fees": str(payload.other_fees),
                },
                "installment_count": len(rows),
                "warnings": result.warnings,
            },
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Payment plan could not be saved because it conflicts with existing data")
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to persist payment plan for agency %s", agency_id)
        raise ServiceError("Unable to save payment plan")

    logger.info(
        "Created payment plan %s with %d installments (agency %s)", plan.id, len(rows), agency_id
    )
    return _plan_to_response(plan, rows, result.warnings)


async def get_payment_plan(
    db: AsyncSession,
    agency_id: UUID,
    payment_plan_id: UUID,
) -> PaymentPlanWithInstallments:
    plan = (
        await db.execute(
            select(PaymentPlan)
            .options(selectinload(PaymentPlan.installments))
            .where(PaymentPlan.id == payment_plan_id, PaymentPlan.agency_id == agency_id)
        )
    ).scalar_one_or_none()
    if not plan:
        raise NotFoundError("Payment plan not found")
    return _plan_to_response(plan, list(plan.installments))


async def cancel_payment_plan(
    db: AsyncSession,
    agency_id: UUID,
    payment_plan_id: UUID,
    changed_by: Optional[UUID] = None,
) -> PaymentPlanWithInstallments:
    """Cancel the plan and every non-terminal installment. Paid installments are left as paid."""
    plan = (
        await db.execute(
            select(PaymentPlan)
            .where(PaymentPlan.id == payment_plan_id, PaymentPlan.agency_id == agency_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if not plan:
        raise NotFoundError("Payment plan not found")
    if plan.status != PaymentPlanStatus.active.value:
        raise ValidationError(f"Only active payment plans can be cancelled (status is '{plan.status}')", field="status")

    installments = (
        await db.execute(
            select(Installment)
            .where(Installment.payment_plan_id == plan.id)
            .order_by(Installment.installment_number)
        )
    ).scalars().all()

    try:
        for inst in installments:
            if InstallmentStatus(inst.status) in TERMINAL_STATUSES:
                continue
            old_status = inst.status
            new_status = assert_transition(old_status, InstallmentStatus.cancelled)
            result = await db.execute(
                update(Installment)
                .where(Installment.id == inst.id, Installment.version == inst.version)
                .values(status=new_status.value, version=inst.version + 1)
            )
            if result.rowcount != 1:
                raise ConflictError(f"Installment #{inst.installment_number} changed while cancelling; retry")
            await log_audit(
                db, agency_id, "installment", inst.id, AuditAction.CANCEL.value,
                changes=diff_values({"status": old_status}, {"status": new_status.value}),
                user_id=changed_by,
                metadata={"payment_plan_id": str(plan.id), "installment_number": inst.installment_number},
            )
        old_plan_status = plan.status
        plan.status = PaymentPlanStatus.cancelled.value
        await log_audit(
            db, agency_id, "payment_plan", plan.id, AuditAction.CANCEL.value,
            changes=diff_values({"status": old_plan_status}, {"status": plan.status}),
            user_id=changed_by,
        )
        await db.commit()
    except ConflictError:
        await db.rollback()
        raise
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to cancel payment plan %s", payment_plan_id)
        raise ServiceError("Unable to cancel payment plan")

    for inst in installments:
        await db.refresh(inst)
    await db.refresh(plan)
    return _plan_to_response(plan, list(installments))
