from uuid import UUID
from typing import List
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from courtbook.db.session import get_db
from courtbook.api.deps import get_org
from courtbook.models.organization import Organization
from courtbook.schemas.availability import BookableDates, CourtAvailability, DayAvailability
from courtbook.services.availability import (
    get_calendar_availability,
    get_court_availability,
    get_day_availability,
)
from courtbook.services.booking_window import bookable_dates
from courtbook.services.org_settings import get_booking_settings

router = APIRouter(prefix="/orgs/{slug}", tags=["Availability"])


@router.get("/bookable-dates", response_model=BookableDates)
def list_bookable_dates(
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
):
    """Dates open for booking: today (organization time) and the following window."""
    booking_settings = get_booking_settings(db, org)
    return BookableDates(
        timezone=booking_settings.timezone,
        window_days=booking_settings.booking_window_days,
        dates=bookable_dates(booking_settings.booking_window_days, booking_settings.timezone),
    )


@router.get("/availability", response_model=DayAvailability)
def day_availability(
    date: date = Query(..., description="Local date (YYYY-MM-DD)"),
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
):
    """Per-slot count of free courts plus the per-court breakdown for one day."""
    return get_day_availability(db, org, date)


@router.get("/calendar", response_model=List[DayAvailability])
def calendar(
    include_extra_day: bool = Query(True, description="Append the next not-yet-bookable day"),
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
):
    return get_calendar_availability(db, org, include_extra_day=include_extra_day)


@router.get("/courts/{court_id}/availability", response_model=CourtAvailability)
def court_availability(
    court_id: UUID,
    date: date = Query(..., description="Local date (YYYY-MM-DD)"),
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
):
    return get_court_availability(db, org, court_id, date)
