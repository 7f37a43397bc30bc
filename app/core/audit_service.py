"""
Audit logging for payment plan and installment changes. Call on every state change.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import AuditLog


class FieldChange(BaseModel):
    old: Any = None
    new: Any = None


AuditChanges = Dict[str, FieldChange]


def diff_values(old: Mapping[str, Any], new: Mapping[str, Any]) -> AuditChanges:
    """Field-level diff of two value maps. Unchanged fields are dropped."""
    changes: AuditChanges = {}
    for key in list(old.keys()) + [k for k in new.keys() if k not in old]:
        before, after = old.get(key), new.get(key)
        if before != after:
            changes[key] = FieldChange(old=before, new=after)
    return changes


def changes_to_json(changes: AuditChanges) -> Dict[str, Dict[str, Any]]:
    return {name: jsonable_encoder(change.model_dump()) for name, change in changes.items()}


def changes_from_json(raw: Optional[Mapping[str, Any]]) -> AuditChanges:
    return {name: FieldChange(**value) for name, value in (raw or {}).items()}


async def log_audit(
    db: AsyncSession,
    agency_id: UUID,
    entity_type: str,
    entity_id: UUID,
    action: str,
    *,
    changes: Optional[AuditChanges] = None,
    user_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Append one audit log entry. Caller must commit."""
    entry = AuditLog(
        agency_id=agency_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        changes=changes_to_json(changes) if changes else None,
        metadata_=jsonable_encoder(metadata) if metadata else None,
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    return entry
