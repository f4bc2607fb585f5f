"""
Weekly recurring bookings created by organization admins.

All occurrences inside ``[starts_on, ends_on]`` are generated when the
pattern is created. Each one becomes a CONFIRMED, zero-price, admin-override
booking with a single slot; an occurrence that collides with an existing
booking or a court block is skipped and counted, never an error.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from courtbook.core.exceptions import AuthorizationError, CourtUnavailableError, NotFoundError, ValidationError
from courtbook.core.timezones import local_to_utc, parse_hhmm, utcnow
from courtbook.db.errors import translate_storage_errors
from courtbook.models.booking import Booking, BookingSlot, BookingStatus, BookingType, HOLDING_STATUSES
from courtbook.models.court import Court
from courtbook.models.organization import Organization
from courtbook.models.recurring import RecurringBooking
from courtbook.models.user import User
from courtbook.schemas.recurring import RecurringBookingCreate
from courtbook.services.audit import record_audit_event
from courtbook.services.availability import find_slot_conflict
from courtbook.services.lifecycle import apply_transition
from courtbook.services.org_settings import get_booking_settings
from courtbook.services.permissions import is_org_admin

logger = logging.getLogger(__name__)

SERIES_CANCELLED_REASON = "Recurring booking cancelled"


@dataclass
class RecurringResult:
    recurring: RecurringBooking
    created: int
    skipped: int
    skipped_dates: List[date] = field(default_factory=list)


def sunday_first_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def occurrence_dates(day_of_week: int, starts_on: date, ends_on: date) -> List[date]:
    """Every date in ``[starts_on, ends_on]`` falling on ``day_of_week`` (0=Sunday)."""
    if not 0 <= day_of_week <= 6:
        raise ValueError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    offset = (day_of_week - sunday_first_weekday(starts_on)) % 7
    current = starts_on + timedelta(days=offset)
    dates = []
    while current <= ends_on:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def _require_admin(db: Session, org: Organization, admin: User) -> None:
    if not is_org_admin(db, admin, org.id):
        raise AuthorizationError("Admin access required")


def create_recurring_booking(
    db: Session,
    org: Organization,
    admin: User,
    pattern: RecurringBookingCreate,
    now: Optional[datetime] = None,
) -> RecurringResult:
    now = now or utcnow()
    try:
        start_t = parse_hhmm(pattern.start_time)
        end_t = parse_hhmm(pattern.end_time)
    except ValueError as exc:
        raise ValidationError("Times must be in HH:MM format") from exc
    if end_t <= start_t:
        raise ValidationError("End time must be after start time")
    if pattern.ends_on <= pattern.starts_on:
        raise ValidationError("End date must be after start date")

    with translate_storage_errors(db, "create recurring booking"):
        _require_admin(db, org, admin)
        court = (
            db.query(Court)
            .filter(Court.id == pattern.court_id, Court.organization_id == org.id)
            .with_for_update()
            .first()
        )
        if court is None:
            raise CourtUnavailableError("Court not found in this organization")

        tz_name = get_booking_settings(db, org).timezone
        recurring = RecurringBooking(
            organization_id=org.id,
            created_by_id=admin.id,
            court_id=court.id,
            title=pattern.title,
            day_of_week=pattern.day_of_week,
            start_time=start_t,
            end_time=end_t,
            starts_on=pattern.starts_on,
            ends_on=pattern.ends_on,
            frequency="weekly",
            notes=pattern.notes,
            is_active=True,
        )
        db.add(recurring)
        db.flush()

        created = 0
        skipped_dates: List[date] = []
        for day in occurrence_dates(pattern.day_of_week, pattern.starts_on, pattern.ends_on):
            start = local_to_utc(day, start_t, tz_name)
            end = local_to_utc(day, end_t, tz_name)
            if end <= start or find_slot_conflict(db, court.id, start, end, statuses=HOLDING_STATUSES):
                skipped_dates.append(day)
                continue

            try:
                with db.begin_nested():
                    booking = Booking(
                        organization_id=org.id,
                        user_id=admin.id,
                        type=BookingType.COURT_BOOKING,
                        total_cents=0,
                        currency=org.currency,
                        status=BookingStatus.CONFIRMED,
                        expires_at=None,
                        is_admin_override=True,
                        admin_notes=pattern.title,
                        recurring_booking_id=recurring.id,
                    )
                    db.add(booking)
                    db.flush()
                    db.add(
                        BookingSlot(
                            organization_id=org.id,
                            booking_id=booking.id,
                            court_id=court.id,
                            start_time=start,
                            end_time=end,
                            price_in_cents=0,
                        )
                    )
                    db.flush()
            except IntegrityError:
                logger.warning("Skipping occurrence %s of recurring booking %s", day, recurring.id, exc_info=True)
                skipped_dates.append(day)
                continue
            created += 1

        record_audit_event(
            db,
            organization_id=org.id,
            actor_id=admin.id,
            action="RECURRING_BOOKING_CREATED",
            entity_type="recurring_booking",
            entity_id=recurring.id,
            new_data={
                "court_id": court.id,
                "day_of_week": pattern.day_of_week,
                "start_time": pattern.start_time,
                "end_time": pattern.end_time,
                "starts_on": pattern.starts_on,
                "ends_on": pattern.ends_on,
                "created": created,
                "skipped": len(skipped_dates),
            },
        )
        db.commit()

    logger.info(
        "Recurring booking %s: %d created, %d skipped", recurring.id, created, len(skipped_dates)
    )
    return RecurringResult(recurring=recurring, created=created, skipped=len(skipped_dates), skipped_dates=skipped_dates)


def cancel_recurring_booking(
    db: Session,
    org: Organization,
    admin: User,
    recurring_id: UUID,
    now: Optional[datetime] = None,
) -> int:
    """
    Deactivate the pattern and cancel its bookings that have not started yet.
    Past occurrences are left as they are. Returns the number cancelled.
    """
    now = now or utcnow()
    with translate_storage_errors(db, "cancel recurring booking"):
        _require_admin(db, org, admin)
        recurring = (
            db.query(RecurringBooking)
            .filter(RecurringBooking.id == recurring_id, RecurringBooking.organization_id == org.id)
            .with_for_update()
            .first()
        )
        if recurring is None:
            raise NotFoundError("Recurring booking not found")

        upcoming = (
            db.query(BookingSlot.booking_id)
            .filter(BookingSlot.start_time > now)
            .scalar_subquery()
        )
        bookings = (
            db.query(Booking)
            .filter(
                Booking.recurring_booking_id == recurring.id,
                Booking.status.in_(HOLDING_STATUSES),
                Booking.id.in_(upcoming),
            )
            .with_for_update()
            .all()
        )
        for booking in bookings:
            apply_transition(booking, BookingStatus.CANCELLED, now, SERIES_CANCELLED_REASON)

        was_active = recurring.is_active
        recurring.is_active = False
        record_audit_event(
            db,
            organization_id=org.id,
            actor_id=admin.id,
            action="RECURRING_BOOKING_CANCELLED",
            entity_type="recurring_booking",
            entity_id=recurring.id,
            previous_data={"is_active": was_active},
            new_data={"is_active": False, "cancelled_bookings": len(bookings)},
        )
        db.commit()

    logger.info("Recurring booking %s deactivated, %d booking(s) cancelled", recurring_id, len(bookings))
    return len(bookings)


def list_recurring_bookings(db: Session, org: Organization, active_only: bool = False) -> List[RecurringBooking]:
    query = db.query(RecurringBooking).filter(RecurringBooking.organization_id == org.id)
    if active_only:
        query = query.filter(RecurringBooking.is_active.is_(True))
    return query.order_by(RecurringBooking.starts_on, RecurringBooking.created_at).all()
