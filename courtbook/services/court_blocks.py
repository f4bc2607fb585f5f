import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from courtbook.core.exceptions import AuthorizationError, CourtUnavailableError, NotFoundError, SlotConflictError, ValidationError
from courtbook.db.errors import translate_storage_errors
from courtbook.models.booking import HOLDING_STATUSES
from courtbook.models.court import Court, CourtBlock
from courtbook.models.organization import Organization
from courtbook.models.user import User
from courtbook.schemas.court_block import CourtBlockCreate
from courtbook.services.audit import record_audit_event
from courtbook.services.availability import find_slot_conflict
from courtbook.services.permissions import is_org_admin

logger = logging.getLogger(__name__)


def _block_data(block: CourtBlock) -> dict:
    return {
        "court_id": block.court_id,
        "start_time": block.start_time,
        "end_time": block.end_time,
        "reason": block.reason.value if block.reason else None,
        "description": block.description,
    }


def create_court_block(
    db: Session,
    org: Organization,
    admin: User,
    court_id: UUID,
    data: CourtBlockCreate,
) -> CourtBlock:
    """
    Block a court for ``[start_time, end_time)``. Overlapping other blocks is
    fine; overlapping a pending or confirmed booking is not.
    """
    if data.end_time <= data.start_time:
        raise ValidationError("Block end time must be after its start time")

    with translate_storage_errors(db, "create court block"):
        if not is_org_admin(db, admin, org.id):
            raise AuthorizationError("Admin access required")
        # Same lock the reservation path takes, so a block and a booking cannot interleave
        court = (
            db.query(Court)
            .filter(Court.id == court_id, Court.organization_id == org.id)
            .with_for_update()
            .first()
        )
        if court is None:
            raise CourtUnavailableError("Court not found in this organization")

        if find_slot_conflict(
            db, court.id, data.start_time, data.end_time, statuses=HOLDING_STATUSES, include_blocks=False
        ):
            raise SlotConflictError(
                "The court has bookings during this time. Cancel them before blocking it.",
                details={"court_id": str(court.id)},
            )

        block = CourtBlock(
            organization_id=org.id,
            court_id=court.id,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
            description=data.description,
            created_by_id=admin.id,
        )
        db.add(block)
        db.flush()
        record_audit_event(
            db,
            organization_id=org.id,
            actor_id=admin.id,
            action="COURT_BLOCK_CREATED",
            entity_type="court_block",
            entity_id=block.id,
            new_data=_block_data(block),
        )
        db.commit()

    logger.info("Court %s blocked %s - %s", court_id, data.start_time.isoformat(), data.end_time.isoformat())
    return block


def delete_court_block(db: Session, org: Organization, admin: User, block_id: UUID) -> None:
    with translate_storage_errors(db, "delete court block"):
        if not is_org_admin(db, admin, org.id):
            raise AuthorizationError("Admin access required")
        block = (
            db.query(CourtBlock)
            .filter(CourtBlock.id == block_id, CourtBlock.organization_id == org.id)
            .first()
        )
        if block is None:
            raise NotFoundError("Court block not found")

        record_audit_event(
            db,
            organization_id=org.id,
            actor_id=admin.id,
            action="COURT_BLOCK_DELETED",
            entity_type="court_block",
            entity_id=block.id,
            previous_data=_block_data(block),
        )
        db.delete(block)
        db.commit()
    logger.info("Court block %s removed", block_id)


def list_court_blocks(
    db: Session,
    org: Organization,
    court_id: Optional[UUID] = None,
    since: Optional[datetime] = None,
) -> List[CourtBlock]:
    query = db.query(CourtBlock).filter(CourtBlock.organization_id == org.id)
    if court_id is not None:
        query = query.filter(CourtBlock.court_id == court_id)
    if since is not None:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        query = query.filter(CourtBlock.end_time > since)
    return query.order_by(CourtBlock.start_time).all()
