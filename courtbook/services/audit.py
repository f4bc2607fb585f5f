"""Append-only audit trail for administrative and corrective actions."""

from typing import Any, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from courtbook.models.audit_log import AuditLog


def record_audit_event(
    db: Session,
    *,
    organization_id: UUID,
    action: str,
    entity_type: str,
    entity_id: Any,
    actor_id: Optional[UUID] = None,
    previous_data: Optional[dict] = None,
    new_data: Optional[dict] = None,
) -> AuditLog:
    """
    Add an audit row to the current transaction. The caller commits, so the
    entry lands or disappears together with the change it describes.
    """
    entry = AuditLog(
        actor_id=actor_id,
        organization_id=organization_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        previous_data=jsonable_encoder(previous_data) if previous_data is not None else None,
        new_data=jsonable_encoder(new_data) if new_data is not None else None,
    )
    db.add(entry)
    return entry
