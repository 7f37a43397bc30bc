import uuid
from datetime import datetime, time, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Time, Uuid

from app.db.session import Base


class Agency(Base):
    """
    Agency (tenant) in the multi-tenant platform.

    timezone, overdue_cutoff_time and due_soon_threshold_days drive the daily
    installment status sweep; each agency is evaluated in its own local time.
    """

    __tablename__ = "agencies"
    __table_args__ = (
        CheckConstraint(
            "due_soon_threshold_days BETWEEN 1 AND 30",
            name="chk_agencies_due_soon_days",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    # IANA name, e.g. Australia/Brisbane
    timezone = Column(String(100), nullable=False, default="Australia/Brisbane")
    overdue_cutoff_time = Column(Time, nullable=False, default=time(17, 0))
    due_soon_threshold_days = Column(Integer, nullable=False, default=4)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
