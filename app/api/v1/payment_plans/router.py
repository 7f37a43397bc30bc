"""Payment plans router: commission preview, schedule preview, create, read, cancel."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    CommissionRequest,
    CommissionResponse,
    InstallmentScheduleRequest,
    InstallmentScheduleResponse,
    PaymentPlanCreate,
    PaymentPlanWithInstallments,
)
from . import service

router = APIRouter(prefix="/api/v1/payment-plans", tags=["payment-plans"])


@router.post(
    "/commission",
    response_model=CommissionResponse,
    dependencies=[Depends(get_current_user)],
)
async def calculate_commission(payload: CommissionRequest) -> CommissionResponse:
    try:
        return service.calculate_commission_preview(payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/installments/preview",
    response_model=InstallmentScheduleResponse,
    dependencies=[Depends(get_current_user)],
)
async def preview_installments(payload: InstallmentScheduleRequest) -> InstallmentScheduleResponse:
    try:
        return service.preview_installment_schedule(payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "",
    response_model=PaymentPlanWithInstallments,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_plan(
    payload: PaymentPlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentPlanWithInstallments:
    try:
        return await service.create_payment_plan(
            db, current_user.agency_id, payload, created_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{payment_plan_id}", response_model=PaymentPlanWithInstallments)
async def get_payment_plan(
    payment_plan_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentPlanWithInstallments:
    try:
        return await service.get_payment_plan(db, current_user.agency_id, payment_plan_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{payment_plan_id}/cancel", response_model=PaymentPlanWithInstallments)
async def cancel_payment_plan(
    payment_plan_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentPlanWithInstallments:
    try:
        return await service.cancel_payment_plan(
            db, current_user.agency_id, payment_plan_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
