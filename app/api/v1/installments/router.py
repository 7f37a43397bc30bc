"""Installments router: record payment."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import RecordPaymentRequest, RecordPaymentResponse
from . import service

router = APIRouter(prefix="/api/v1/installments", tags=["installments"])


@router.post("/{installment_id}/record-payment", response_model=RecordPaymentResponse)
async def record_payment(
    installment_id: UUID,
    payload: RecordPaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RecordPaymentResponse:
    try:
        return await service.record_payment(
            db,
            current_user.agency_id,
            installment_id,
            payload,
            recorded_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
