"""
Scheduled jobs: the daily installment status sweep, its jobs_log bookkeeping,
and the health/metrics views over jobs_log.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_service import diff_values, log_audit
from app.core.config import settings
from app.core.enums import (
    STATUS_UPDATE_JOB_NAME,
    AuditAction,
    InstallmentStatus,
    JobHealth,
    JobStatus,
    PaymentPlanStatus,
)
from app.core.exceptions import NotFoundError, ServiceError
from app.core.installment_status import (
    SWEEPABLE_STATUSES,
    AgencyStatusConfig,
    assert_transition,
    evaluate_time_based_status,
)
from app.core.models import Agency, Installment, JobLog, PaymentPlan

from .schemas import (
    AgencySweepResult,
    JobDailyTrend,
    JobExecution,
    JobHealthResponse,
    JobMetricsResponse,
    JobPerformance,
    JobRunSummary,
    SweepError,
    SweepSummary,
)

logger = logging.getLogger(__name__)

HEALTHY_WITHIN_HOURS = 24


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# --- Job log ---
async def start_job(db: AsyncSession, job_name: str, started_at: Optional[datetime] = None) -> JobLog:
    job = JobLog(
        job_name=job_name,
        started_at=started_at or datetime.now(timezone.utc),
        status=JobStatus.running.value,
        records_updated=0,
    )
    db.add(job)
    await db.commit()
    return job


async def finish_job(
    db: AsyncSession,
    job_id: UUID,
    status: JobStatus,
    records_updated: int = 0,
    error_message: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> None:
    job = await db.get(JobLog, job_id)
    if not job:
        return
    job.completed_at = datetime.now(timezone.utc)
    job.status = status.value
    job.records_updated = records_updated
    job.error_message = error_message
    job.metadata_ = metadata
    await db.commit()


# --- Status sweep ---
async def sweep_agency(db: AsyncSession, agency: Agency, now: datetime) -> AgencySweepResult:
    """
    Move this agency's pending/due_soon installments along the time-based ladder.
    Caller commits. Each write is conditional on the status and version read here,
    so an overlapping sweep or a concurrent payment never gets a second write.
    """
    config = AgencyStatusConfig.from_agency(agency)
    local_now = config.local_now(now)

    installments = (
        await db.execute(
            select(Installment)
            .join(PaymentPlan, Installment.payment_plan_id == PaymentPlan.id)
            .where(
                PaymentPlan.agency_id == agency.id,
                PaymentPlan.status == PaymentPlanStatus.active.value,
                Installment.status.in_([s.value for s in SWEEPABLE_STATUSES]),
            )
            .order_by(Installment.student_due_date, Installment.installment_number)
        )
    ).scalars().all()

    result = AgencySweepResult(agency_id=agency.id)
    transitions: Dict[str, int] = defaultdict(int)
    for inst in installments:
        target = evaluate_time_based_status(inst.status, inst.student_due_date, now, config)
        if target is None:
            continue
        old_status = inst.status
        assert_transition(old_status, target)
        updated = await db.execute(
            update(Installment)
            .where(
                Installment.id == inst.id,
                Installment.status == old_status,
                Installment.version == inst.version,
            )
            .values(status=target.value, version=inst.version + 1, updated_at=now)
        )
        if updated.rowcount != 1:
            # Changed underneath us; tomorrow's run re-evaluates it
            continue
        await log_audit(
            db, agency.id, "installment", inst.id, AuditAction.STATUS_CHANGE.value,
            changes=diff_values({"status": old_status}, {"status": target.value}),
            metadata={
                "job_name": STATUS_UPDATE_JOB_NAME,
                "payment_plan_id": str(inst.payment_plan_id),
                "installment_number": inst.installment_number,
                "student_due_date": inst.student_due_date.isoformat(),
                "agency_local_time": local_now.isoformat(),
            },
        )
        transitions[f"{old_status}_to_{target.value}"] += 1
        result.updated_count += 1
        if target == InstallmentStatus.overdue:
            result.newly_overdue_ids.append(inst.id)

    result.transitions = dict(transitions)
    return result


async def run_daily_status_sweep(
    db: AsyncSession,
    agency_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> SweepSummary:
    """
    Run the status sweep for every agency, or only `agency_id` for retries/backfills.
    A failing agency is rolled back and reported; the others still run.
    """
    now = _as_utc(now) or datetime.now(timezone.utc)

    if agency_id is not None:
        if not await db.get(Agency, agency_id):
            raise NotFoundError("Agency not found")
        agency_ids: List[UUID] = [agency_id]
    else:
        agency_ids = list((await db.execute(select(Agency.id).order_by(Agency.created_at, Agency.id))).scalars().all())

    job = await start_job(db, STATUS_UPDATE_JOB_NAME, started_at=now)
    job_id = job.id
    summary = SweepSummary(job_log_id=job_id)

    for current_id in agency_ids:
        try:
            agency = await db.get(Agency, current_id)
            agency_result = await sweep_agency(db, agency, now)
            await db.commit()
        except (ServiceError, SQLAlchemyError) as exc:
            await db.rollback()
            message = exc.message if isinstance(exc, ServiceError) else "Database error while updating installments"
            logger.exception("Status sweep failed for agency %s", current_id)
            summary.agencies_failed += 1
            summary.errors.append(SweepError(agency_id=current_id, message=message))
            continue
        summary.agencies_processed += 1
        summary.records_updated += agency_result.updated_count
        summary.agencies.append(agency_result)
        logger.info(
            "Status sweep agency %s: %d updated %s", current_id, agency_result.updated_count, agency_result.transitions
        )

    all_failed = summary.agencies_failed > 0 and summary.agencies_processed == 0
    await finish_job(
        db,
        job_id,
        JobStatus.failed if all_failed else JobStatus.success,
        records_updated=summary.records_updated,
        error_message="; ".join(f"{e.agency_id}: {e.message}" for e in summary.errors) or None,
        metadata={
            "agencies": [a.model_dump(mode="json") for a in summary.agencies],
            "total_agencies_processed": summary.agencies_processed,
            "agencies_failed": summary.agencies_failed,
        },
    )
    logger.info(
        "Status sweep finished: %d agencies processed, %d failed, %d installments updated",
        summary.agencies_processed,
        summary.agencies_failed,
        summary.records_updated,
    )
    return summary


# --- Health ---
def _health_from_last_run(
    job_name: str,
    last_run: Optional[datetime],
    now: datetime,
    threshold_hours: int,
) -> JobHealthResponse:
    if last_run is None:
        return JobHealthResponse(
            ok=False,
            job_name=job_name,
            status=JobHealth.critical,
            message="Job has never completed successfully",
        )
    hours = round((now - last_run).total_seconds() / 3600, 1)
    if hours > threshold_hours:
        status, message = JobHealth.critical, f"Job has not run in {round(hours)} hours - missed execution detected"
    elif hours <= HEALTHY_WITHIN_HOURS:
        status, message = JobHealth.healthy, "Job running normally"
    else:
        status, message = JobHealth.warning, "Job slightly delayed but within tolerance"
    return JobHealthResponse(
        ok=hours <= threshold_hours,
        job_name=job_name,
        last_run=last_run,
        hours_since_last_run=hours,
        status=status,
        message=message,
    )


async def check_job_health(
    db: AsyncSession,
    job_name: str = STATUS_UPDATE_JOB_NAME,
    now: Optional[datetime] = None,
    threshold_hours: Optional[int] = None,
) -> JobHealthResponse:
    """Report a missed run when no successful execution happened within the threshold."""
    now = _as_utc(now) or datetime.now(timezone.utc)
    if threshold_hours is None:
        threshold_hours = settings.job_alert_threshold_hours
    last_run = (
        await db.execute(
            select(JobLog.started_at)
            .where(JobLog.job_name == job_name, JobLog.status == JobStatus.success.value)
            .order_by(JobLog.started_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    health = _health_from_last_run(job_name, _as_utc(last_run), now, threshold_hours)
    if not health.ok:
        logger.warning("Job %s unhealthy: %s", job_name, health.message)
    return health


# --- Metrics ---
def _duration(log: JobLog) -> Optional[float]:
    if not log.completed_at:
        return None
    return (_as_utc(log.completed_at) - _as_utc(log.started_at)).total_seconds()


def _avg(values: Sequence[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def summarize_job_logs(
    job_name: str,
    logs: Sequence[JobLog],
    range_start: datetime,
    now: datetime,
    days: int,
    limit: int,
    threshold_hours: int,
) -> JobMetricsResponse:
    """Build metrics from jobs_log rows, newest first."""
    logs = sorted(logs, key=lambda log: _as_utc(log.started_at), reverse=True)
    successful = [log for log in logs if log.status == JobStatus.success.value]
    failed = [log for log in logs if log.status == JobStatus.failed.value]

    durations = [d for d in (_duration(log) for log in successful) if d is not None]

    by_day: Dict = defaultdict(list)
    for log in logs:
        by_day[_as_utc(log.started_at).date()].append(log)
    daily_trend = []
    for day in sorted(by_day, reverse=True):
        day_logs = by_day[day]
        day_durations = [
            d for d in (_duration(log) for log in day_logs if log.status == JobStatus.success.value) if d is not None
        ]
        daily_trend.append(
            JobDailyTrend(
                date=day,
                runs=len(day_logs),
                successful_runs=sum(1 for log in day_logs if log.status == JobStatus.success.value),
                failed_runs=sum(1 for log in day_logs if log.status == JobStatus.failed.value),
                total_records_updated=sum(log.records_updated or 0 for log in day_logs),
                avg_duration_seconds=_avg(day_durations),
            )
        )

    last_success = _as_utc(successful[0].started_at) if successful else None
    return JobMetricsResponse(
        job_name=job_name,
        range_start=range_start,
        range_end=now,
        days=days,
        summary=JobRunSummary(
            total_runs=len(logs),
            successful_runs=len(successful),
            failed_runs=len(failed),
            success_rate=round(len(successful) / len(logs) * 100, 2) if logs else 0.0,
            total_records_updated=sum(log.records_updated or 0 for log in logs),
        ),
        performance=JobPerformance(
            avg_duration_seconds=_avg(durations),
            min_duration_seconds=round(min(durations), 2) if durations else 0.0,
            max_duration_seconds=round(max(durations), 2) if durations else 0.0,
        ),
        recent_executions=[
            JobExecution(
                id=log.id,
                started_at=_as_utc(log.started_at),
                completed_at=_as_utc(log.completed_at),
                duration_seconds=_duration(log),
                records_updated=log.records_updated or 0,
                status=log.status,
                error_message=log.error_message,
            )
            for log in logs[:limit]
        ],
        daily_trend=daily_trend,
        health=_health_from_last_run(job_name, last_success, now, threshold_hours),
    )


async def get_job_metrics(
    db: AsyncSession,
    job_name: str = STATUS_UPDATE_JOB_NAME,
    days: int = 30,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> JobMetricsResponse:
    now = _as_utc(now) or datetime.now(timezone.utc)
    range_start = now - timedelta(days=days)
    logs = (
        await db.execute(
            select(JobLog)
            .where(JobLog.job_name == job_name, JobLog.started_at >= range_start)
            .order_by(JobLog.started_at.desc())
        )
    ).scalars().all()
    return summarize_job_logs(
        job_name, logs, range_start, now, days, limit, settings.job_alert_threshold_hours
    )
