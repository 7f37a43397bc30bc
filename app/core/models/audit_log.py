"""
Audit log for payment plan and installment changes. Every status change and payment is logged.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid

from app.db.session import Base, JSONType


class AuditLog(Base):
    """Append-only. `changes` holds {field: {"old": ..., "new": ...}}."""

    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid, ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Uuid, nullable=False, index=True)
    action = Column(String(50), nullable=False)
    user_id = Column(Uuid, nullable=True)  # NULL for system actions
    changes = Column(JSONType, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
