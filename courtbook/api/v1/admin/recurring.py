from uuid import UUID
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from courtbook.db.session import get_db
from courtbook.api.deps import get_org, get_org_admin
from courtbook.models.user import User
from courtbook.models.organization import Organization
from courtbook.schemas.recurring import (
    RecurringBooking as RecurringBookingSchema,
    RecurringBookingCancelled,
    RecurringBookingCreate,
    RecurringBookingCreated,
)
from courtbook.services.recurring import (
    cancel_recurring_booking,
    create_recurring_booking,
    list_recurring_bookings,
)

router = APIRouter(prefix="/admin/orgs/{slug}/recurring-bookings", tags=["Admin - Recurring Bookings"])


@router.get("/", response_model=List[RecurringBookingSchema])
def list_patterns(
    active_only: bool = Query(False),
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    return list_recurring_bookings(db, org, active_only=active_only)


@router.post("/", response_model=RecurringBookingCreated, status_code=status.HTTP_201_CREATED)
def create_pattern(
    data: RecurringBookingCreate,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    """
    Create a weekly pattern and book every occurrence in the date range as a
    confirmed, free, admin booking. Occurrences that collide with existing
    bookings or blocks are skipped.
    """
    result = create_recurring_booking(db, org, current_user, data)
    message = f"Created {result.created} booking(s)"
    if result.skipped:
        message += f", skipped {result.skipped} due to conflicts"
    return RecurringBookingCreated(
        recurring_id=result.recurring.id,
        created=result.created,
        skipped=result.skipped,
        message=message,
    )


@router.delete("/{recurring_id}", response_model=RecurringBookingCancelled)
def cancel_pattern(
    recurring_id: UUID,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    """Deactivate the pattern and cancel its upcoming bookings; past ones stay."""
    cancelled = cancel_recurring_booking(db, org, current_user, recurring_id)
    return RecurringBookingCancelled(
        recurring_id=recurring_id,
        cancelled_count=cancelled,
        message=f"Cancelled {cancelled} upcoming booking(s)",
    )
