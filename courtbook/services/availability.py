"""
Slot availability for one court and aggregated across an organization.

A generated slot is unavailable when it has already started, when it
overlaps a booking slot whose booking still holds the court (anything but
CANCELLED/EXPIRED), or when it overlaps a court block. Overlap is the
half-open test ``a.start < b.end and a.end > b.start``.

Aggregation assumes every active court of an organization shares the same
slot granularity; courts whose boundaries differ simply produce separate
rows.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from courtbook.core.exceptions import BookingError, CourtUnavailableError
from courtbook.core.timezones import local_day_bounds, utcnow
from courtbook.models.booking import Booking, BookingSlot, BookingStatus, RELEASED_STATUSES
from courtbook.models.court import Court, CourtBlock
from courtbook.models.organization import Organization
from courtbook.schemas.availability import (
    AggregatedSlot,
    CourtAvailability,
    CourtSlotAvailability,
    DayAvailability,
    SlotAvailability,
)
from courtbook.services.booking_window import bookable_dates, booking_opens_at, is_bookable_date
from courtbook.services.lifecycle import expire_stale_bookings
from courtbook.services.org_settings import BookingSettings, get_booking_settings
from courtbook.utils.timeslots import generate_slots, overlaps, price_slot

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


# ---------------------------------------------------------------------------
# Conflict checks (shared by reservations, recurring bookings and blocks)
# ---------------------------------------------------------------------------


def find_slot_conflict(
    db: Session,
    court_id: UUID,
    start: datetime,
    end: datetime,
    statuses: Optional[Sequence[BookingStatus]] = None,
    include_blocks: bool = True,
) -> Optional[str]:
    """
    Return ``"booked"`` or ``"blocked"`` when ``[start, end)`` on the court is
    taken, else None.

    By default every booking not in RELEASED_STATUSES counts as occupying the
    court; pass ``statuses`` to restrict the check to those statuses.
    """
    query = (
        db.query(BookingSlot.id)
        .join(Booking, Booking.id == BookingSlot.booking_id)
        .filter(
            BookingSlot.court_id == court_id,
            BookingSlot.start_time < end,
            BookingSlot.end_time > start,
        )
    )
    if statuses is not None:
        query = query.filter(Booking.status.in_(list(statuses)))
    else:
        query = query.filter(Booking.status.notin_(RELEASED_STATUSES))
    if query.first() is not None:
        return "booked"

    if include_blocks:
        blocked = (
            db.query(CourtBlock.id)
            .filter(
                CourtBlock.court_id == court_id,
                CourtBlock.start_time < end,
                CourtBlock.end_time > start,
            )
            .first()
        )
        if blocked is not None:
            return "blocked"
    return None


def _busy_intervals(
    db: Session,
    court_ids: Iterable[UUID],
    range_start: datetime,
    range_end: datetime,
) -> Dict[UUID, List[Interval]]:
    """Occupied intervals per court (live booking slots and blocks) inside a range."""
    court_ids = list(court_ids)
    busy: Dict[UUID, List[Interval]] = defaultdict(list)
    if not court_ids:
        return busy

    booked = (
        db.query(BookingSlot.court_id, BookingSlot.start_time, BookingSlot.end_time)
        .join(Booking, Booking.id == BookingSlot.booking_id)
        .filter(
            BookingSlot.court_id.in_(court_ids),
            BookingSlot.start_time < range_end,
            BookingSlot.end_time > range_start,
            Booking.status.notin_(RELEASED_STATUSES),
        )
        .all()
    )
    for court_id, start, end in booked:
        busy[court_id].append((start, end))

    blocks = (
        db.query(CourtBlock.court_id, CourtBlock.start_time, CourtBlock.end_time)
        .filter(
            CourtBlock.court_id.in_(court_ids),
            CourtBlock.start_time < range_end,
            CourtBlock.end_time > range_start,
        )
        .all()
    )
    for court_id, start, end in blocks:
        busy[court_id].append((start, end))
    return busy


# ---------------------------------------------------------------------------
# Per-court availability
# ---------------------------------------------------------------------------


def get_active_court(db: Session, org: Organization, court_id: UUID) -> Court:
    court = db.query(Court).filter(Court.id == court_id, Court.organization_id == org.id).first()
    if court is None or not court.is_active:
        raise CourtUnavailableError("Court not found or not available for booking")
    return court


def _court_slots(
    court: Court,
    day: date,
    booking_settings: BookingSettings,
    busy: List[Interval],
    now: datetime,
    bookable: bool = True,
) -> List[SlotAvailability]:
    tz_name = booking_settings.timezone
    result = []
    for candidate in generate_slots(court.open_time, court.close_time, court.slot_duration_minutes, day, tz_name):
        priced = price_slot(court, candidate.start, candidate.end, tz_name, booking_settings.peak_window)
        taken = any(overlaps(candidate.start, candidate.end, s, e) for s, e in busy)
        result.append(
            SlotAvailability(
                start_time=candidate.start,
                end_time=candidate.end,
                is_available=bookable and candidate.start > now and not taken,
                is_peak=priced.is_peak,
                price_cents=priced.price_cents,
            )
        )
    return result


def _expire_lazily(db: Session, org: Organization, now: datetime) -> None:
    """Release overdue holds before they are rendered as taken."""
    try:
        expire_stale_bookings(db, now=now, organization_id=org.id)
    except BookingError:
        logger.exception("Lazy expiry failed for organization %s", org.slug)


def get_court_availability(
    db: Session,
    org: Organization,
    court_id: UUID,
    day: date,
    now: Optional[datetime] = None,
) -> CourtAvailability:
    """Every generated slot of one court on ``day`` with availability and price."""
    now = now or utcnow()
    _expire_lazily(db, org, now)

    court = get_active_court(db, org, court_id)
    booking_settings = get_booking_settings(db, org)
    day_start, day_end = local_day_bounds(day, booking_settings.timezone)
    busy = _busy_intervals(db, [court.id], day_start, day_end)
    bookable = is_bookable_date(day, booking_settings.booking_window_days, booking_settings.timezone, now)

    return CourtAvailability(
        court_id=court.id,
        court_name=court.name,
        date=day,
        slots=_court_slots(court, day, booking_settings, busy[court.id], now, bookable),
    )


# ---------------------------------------------------------------------------
# Aggregated availability
# ---------------------------------------------------------------------------


def _active_courts(db: Session, org: Organization) -> List[Court]:
    return (
        db.query(Court)
        .filter(Court.organization_id == org.id, Court.is_active.is_(True))
        .order_by(Court.sort_order, Court.name)
        .all()
    )


def _aggregate(
    courts: List[Court],
    day: date,
    booking_settings: BookingSettings,
    busy: Dict[UUID, List[Interval]],
    now: datetime,
) -> List[AggregatedSlot]:
    rows: Dict[Interval, AggregatedSlot] = {}
    for court in courts:
        for slot in _court_slots(court, day, booking_settings, busy.get(court.id, []), now):
            key = (slot.start_time, slot.end_time)
            row = rows.get(key)
            if row is None:
                row = AggregatedSlot(
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    available_count=0,
                    total_courts=len(courts),
                    is_peak=slot.is_peak,
                    price_cents=slot.price_cents,
                    courts=[],
                )
                rows[key] = row
            row.courts.append(
                CourtSlotAvailability(
                    court_id=court.id,
                    court_name=court.name,
                    is_available=slot.is_available,
                    price_cents=slot.price_cents,
                )
            )
            if slot.is_available:
                row.available_count += 1
    return sorted(rows.values(), key=lambda r: r.start_time)


def _day_availability(
    db: Session,
    courts: List[Court],
    day: date,
    booking_settings: BookingSettings,
    now: datetime,
) -> DayAvailability:
    tz_name = booking_settings.timezone
    window_days = booking_settings.booking_window_days
    if not is_bookable_date(day, window_days, tz_name, now):
        opens_at = booking_opens_at(day, window_days, tz_name)
        return DayAvailability(
            date=day,
            is_bookable=False,
            booking_opens_at=opens_at if opens_at > now else None,
            slots=[],
        )

    day_start, day_end = local_day_bounds(day, tz_name)
    busy = _busy_intervals(db, [c.id for c in courts], day_start, day_end)
    return DayAvailability(
        date=day,
        is_bookable=True,
        slots=_aggregate(courts, day, booking_settings, busy, now),
    )


def get_day_availability(
    db: Session,
    org: Organization,
    day: date,
    now: Optional[datetime] = None,
) -> DayAvailability:
    """Aggregated "N/M courts available" view of one day across all active courts."""
    now = now or utcnow()
    _expire_lazily(db, org, now)
    booking_settings = get_booking_settings(db, org)
    return _day_availability(db, _active_courts(db, org), day, booking_settings, now)


def get_calendar_availability(
    db: Session,
    org: Organization,
    now: Optional[datetime] = None,
    include_extra_day: bool = True,
) -> List[DayAvailability]:
    """
    Aggregated availability for every bookable date. With
    ``include_extra_day`` one more, not yet bookable, date is appended
    (two days after the last bookable one) carrying its ``booking_opens_at``
    countdown target.
    """
    now = now or utcnow()
    _expire_lazily(db, org, now)
    booking_settings = get_booking_settings(db, org)
    courts = _active_courts(db, org)

    dates = bookable_dates(booking_settings.booking_window_days, booking_settings.timezone, now)
    if include_extra_day and dates:
        dates.append(dates[-1] + timedelta(days=2))
    return [_day_availability(db, courts, d, booking_settings, now) for d in dates]
