"""Jobs log: one row per scheduled job execution, read by job health and metrics."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, Text, Uuid

from app.core.enums import JobStatus
from app.db.session import Base, JSONType


class JobLog(Base):
    __tablename__ = "jobs_log"
    __table_args__ = (
        CheckConstraint("status IN ('running','success','failed')", name="chk_jobs_log_status"),
        Index("idx_jobs_log_job_name", "job_name", "started_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_name = Column(String(100), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    records_updated = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=JobStatus.running.value)
    error_message = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
