"""Scheduled jobs router: trigger the status sweep, health check, execution metrics."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_job_api_key
from app.core.enums import STATUS_UPDATE_JOB_NAME
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import JobHealthResponse, JobMetricsResponse, SweepSummary
from . import service

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


@router.post(
    "/update-installment-statuses",
    response_model=SweepSummary,
    dependencies=[Depends(require_job_api_key)],
)
async def update_installment_statuses(
    agency_id: Optional[UUID] = Query(None, description="Only sweep this agency (manual retry)"),
    db: AsyncSession = Depends(get_db),
) -> SweepSummary:
    try:
        return await service.run_daily_status_sweep(db, agency_id=agency_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/health", response_model=JobHealthResponse)
async def job_health(
    job_name: str = Query(STATUS_UPDATE_JOB_NAME),
    db: AsyncSession = Depends(get_db),
):
    """Returns 503 when the job missed its window so uptime monitors can alert on status code."""
    health = await service.check_job_health(db, job_name=job_name)
    if not health.ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=health.model_dump(mode="json"),
        )
    return health


@router.get(
    "/metrics",
    response_model=JobMetricsResponse,
    dependencies=[Depends(get_current_user)],
)
async def job_metrics(
    job_name: str = Query(STATUS_UPDATE_JOB_NAME),
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> JobMetricsResponse:
    return await service.get_job_metrics(db, job_name=job_name, days=days, limit=limit)
