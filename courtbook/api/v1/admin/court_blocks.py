from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from courtbook.db.session import get_db
from courtbook.api.deps import get_org, get_org_admin
from courtbook.models.user import User
from courtbook.models.organization import Organization
from courtbook.schemas.court_block import CourtBlock as CourtBlockSchema, CourtBlockCreate
from courtbook.services.court_blocks import create_court_block, delete_court_block, list_court_blocks

router = APIRouter(prefix="/admin/orgs/{slug}", tags=["Admin - Court Blocks"])


@router.get("/blocks", response_model=List[CourtBlockSchema])
def list_blocks(
    court_id: Optional[UUID] = Query(None),
    since: Optional[datetime] = Query(None, description="Only blocks ending after this instant"),
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    return list_court_blocks(db, org, court_id=court_id, since=since)


@router.post("/courts/{court_id}/blocks", response_model=CourtBlockSchema, status_code=status.HTTP_201_CREATED)
def add_block(
    court_id: UUID,
    data: CourtBlockCreate,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    """
    Take a court out of service for a time range. Rejected while pending or
    confirmed bookings overlap the range.
    """
    return create_court_block(db, org, current_user, court_id, data)


@router.delete("/blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_block(
    block_id: UUID,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    delete_court_block(db, org, current_user, block_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
