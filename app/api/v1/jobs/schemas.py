"""Scheduled job schemas: status sweep results, job health, job metrics."""

from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import JobHealth


# --- Status sweep ---
class AgencySweepResult(BaseModel):
    agency_id: UUID
    updated_count: int = 0
    transitions: Dict[str, int] = Field(default_factory=dict)  # e.g. {"pending_to_overdue": 2}
    newly_overdue_ids: List[UUID] = Field(default_factory=list)


class SweepError(BaseModel):
    agency_id: UUID
    message: str


class SweepSummary(BaseModel):
    job_log_id: Optional[UUID] = None
    agencies_processed: int = 0
    agencies_failed: int = 0
    records_updated: int = 0
    errors: List[SweepError] = Field(default_factory=list)
    agencies: List[AgencySweepResult] = Field(default_factory=list)


# --- Health ---
class JobHealthResponse(BaseModel):
    ok: bool
    job_name: str
    last_run: Optional[datetime] = None
    hours_since_last_run: Optional[float] = None
    status: JobHealth
    message: str


# --- Metrics ---
class JobRunSummary(BaseModel):
    total_runs: int
    successful_runs: int
    failed_runs: int
    success_rate: float
    total_records_updated: int


class JobPerformance(BaseModel):
    avg_duration_seconds: float
    min_duration_seconds: float
    max_duration_seconds: float


class JobExecution(BaseModel):
    id: UUID
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    records_updated: int
    status: str
    error_message: Optional[str] = None


class JobDailyTrend(BaseModel):
    date: date
    runs: int
    successful_runs: int
    failed_runs: int
    total_records_updated: int
    avg_duration_seconds: float


class JobMetricsResponse(BaseModel):
    job_name: str
    range_start: datetime
    range_end: datetime
    days: int
    summary: JobRunSummary
    performance: JobPerformance
    recent_executions: List[JobExecution]
    daily_trend: List[JobDailyTrend]
    health: JobHealthResponse
