from uuid import UUID
from typing import Optional
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload, selectinload

from courtbook.db.session import get_db
from courtbook.api.deps import get_org, get_org_admin
from courtbook.core.exceptions import ValidationError
from courtbook.core.timezones import local_day_bounds
from courtbook.models.user import User
from courtbook.models.organization import Organization
from courtbook.models.booking import Booking, BookingSlot, BookingStatus
from courtbook.schemas.booking import AdminBooking, BookingCancel, BookingStatusResponse
from courtbook.schemas.common import PaginatedResponse
from courtbook.services.lifecycle import admin_cancel_booking, mark_completed, mark_no_show
from courtbook.services.org_settings import get_booking_settings

router = APIRouter(prefix="/admin/orgs/{slug}/bookings", tags=["Admin - Bookings"])


@router.get("/", response_model=PaginatedResponse[AdminBooking])
def list_org_bookings(
    # --- Filters ---
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    date: Optional[date] = Query(None, description="Bookings with a slot on this local date (YYYY-MM-DD)"),
    court_id: Optional[UUID] = Query(None, description="Bookings with a slot on this court"),
    recurring_only: bool = Query(False, description="Only bookings generated by a recurring pattern"),
    # --- Pagination ---
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    """All bookings of the organization, newest first, with the booking user."""
    query = (
        db.query(Booking)
        .options(
            joinedload(Booking.user),
            selectinload(Booking.slots),
            selectinload(Booking.payment),
        )
        .filter(Booking.organization_id == org.id)
    )

    if status:
        query = query.filter(Booking.status == status)
    if recurring_only:
        query = query.filter(Booking.recurring_booking_id.isnot(None))
    if date or court_id:
        slot_query = db.query(BookingSlot.booking_id).filter(BookingSlot.organization_id == org.id)
        if date:
            day_start, day_end = local_day_bounds(date, get_booking_settings(db, org).timezone)
            slot_query = slot_query.filter(BookingSlot.start_time >= day_start, BookingSlot.start_time < day_end)
        if court_id:
            slot_query = slot_query.filter(BookingSlot.court_id == court_id)
        query = query.filter(Booking.id.in_(slot_query.scalar_subquery()))

    total = query.count()
    bookings = (
        query.order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return PaginatedResponse(
        data=[AdminBooking.model_validate(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.patch("/{booking_id}/cancel", response_model=BookingStatusResponse)
def cancel_org_booking(
    booking_id: UUID,
    data: BookingCancel,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    if not data.reason:
        raise ValidationError("A cancellation reason is required")
    booking = admin_cancel_booking(db, org, current_user, booking_id, data.reason)
    return BookingStatusResponse(id=booking.id, status=booking.status)


@router.patch("/{booking_id}/complete", response_model=BookingStatusResponse)
def complete_booking(
    booking_id: UUID,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    booking = mark_completed(db, org, current_user, booking_id)
    return BookingStatusResponse(id=booking.id, status=booking.status)


@router.patch("/{booking_id}/no-show", response_model=BookingStatusResponse)
def no_show_booking(
    booking_id: UUID,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_org_admin),
):
    booking = mark_no_show(db, org, current_user, booking_id)
    return BookingStatusResponse(id=booking.id, status=booking.status)
