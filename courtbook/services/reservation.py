"""
Reservation transaction: turn a selection of slots into one PENDING_PAYMENT
booking with its slot rows and a pending payment, or into nothing at all.

The involved court rows are locked (``SELECT ... FOR UPDATE``, in id order)
before any availability re-check, so two requests for overlapping time on
the same court run one after the other and the second sees the first's
slots. Prices are always recomputed here; a client quote only serves to
detect and audit a mismatch.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courtbook.core.config import settings
from courtbook.core.exceptions import (
    AuthorizationError,
    BookingError,
    CourtUnavailableError,
    EmailUnverifiedError,
    NotAuthenticatedError,
    RateLimitError,
    SlotConflictError,
    ValidationError,
)
from courtbook.core.ratelimit import RateLimiter, format_rate_limit_message
from courtbook.core.timezones import local_day_bounds, parse_hhmm, utc_to_local, utcnow
from courtbook.db.errors import SLOT_TAKEN_MESSAGE, translate_storage_errors
from courtbook.models.booking import Booking, BookingSlot, BookingStatus, BookingType, HOLDING_STATUSES
from courtbook.models.court import Court
from courtbook.models.organization import Organization
from courtbook.models.payment import Payment, PaymentStatus
from courtbook.models.user import Guest, User
from courtbook.services.audit import record_audit_event
from courtbook.services.availability import find_slot_conflict, get_active_court
from courtbook.services.booking_window import is_bookable_date
from courtbook.services.org_settings import BookingSettings, get_booking_settings
from courtbook.utils.timeslots import consecutive_slots, overlaps, price_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestedSlot:
    court_id: UUID
    start_time: datetime
    end_time: datetime
    price_in_cents: Optional[int] = None  # client quote, compared not trusted


@dataclass(frozen=True)
class GuestIdentity:
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    """Who is booking: a signed-in user or a guest identity."""

    user: Optional[User] = None
    guest: Optional[GuestIdentity] = None

    @property
    def rate_limit_key(self) -> str:
        if self.user is not None:
            return str(self.user.id)
        if self.guest is not None:
            return f"guest:{self.guest.email}"
        raise NotAuthenticatedError("Please sign in to book")


@dataclass(frozen=True)
class _PricedRequest:
    request: RequestedSlot
    court: Court
    price_cents: int


# ---------------------------------------------------------------------------
# Checks outside the transaction
# ---------------------------------------------------------------------------


def _check_principal(principal: Principal, booking_settings: BookingSettings) -> None:
    if principal.user is not None:
        if not principal.user.is_active:
            raise AuthorizationError("This account is disabled")
        if not principal.user.email_verified:
            raise EmailUnverifiedError("Please verify your email address before booking")
        return
    if principal.guest is None:
        raise NotAuthenticatedError("Please sign in to book")
    if not booking_settings.allow_guest_bookings:
        raise AuthorizationError("Guest bookings are not enabled for this organization")


def _check_rate_limit(rate_limiter: Optional[RateLimiter], principal: Principal) -> None:
    if rate_limiter is None:
        return
    decision = rate_limiter.check_and_increment(principal.rate_limit_key)
    if not decision.allowed:
        logger.info("Booking rate limit hit for %s", principal.rate_limit_key)
        raise RateLimitError(format_rate_limit_message(decision, "booking"), retry_after=decision.reset_in)


def _validate_request(slots: Sequence[RequestedSlot], booking_settings: BookingSettings, now: datetime) -> None:
    if not slots:
        raise ValidationError("Select at least one slot")

    tz_name = booking_settings.timezone
    for slot in slots:
        if slot.start_time.tzinfo is None or slot.end_time.tzinfo is None:
            raise ValidationError("Slot times must include a timezone offset")
        if slot.end_time <= slot.start_time:
            raise ValidationError("Slot end time must be after its start time")
        if slot.start_time <= now:
            raise ValidationError("Cannot book slots in the past")
        local_day = utc_to_local(slot.start_time, tz_name).date()
        if not is_bookable_date(local_day, booking_settings.booking_window_days, tz_name, now):
            raise ValidationError(
                f"{local_day.isoformat()} is outside the booking window",
                details={"date": local_day.isoformat()},
            )

    by_court: Dict[UUID, List[RequestedSlot]] = defaultdict(list)
    for slot in slots:
        by_court[slot.court_id].append(slot)
    for court_slots in by_court.values():
        court_slots.sort(key=lambda s: s.start_time)
        for prev, nxt in zip(court_slots, court_slots[1:]):
            if overlaps(prev.start_time, prev.end_time, nxt.start_time, nxt.end_time):
                raise ValidationError("Selected slots overlap each other")


# ---------------------------------------------------------------------------
# Steps inside the transaction
# ---------------------------------------------------------------------------


def _lock_courts(db: Session, org: Organization, court_ids) -> Dict[UUID, Court]:
    ids = sorted(set(court_ids), key=str)
    courts = (
        db.query(Court)
        .filter(Court.id.in_(ids), Court.organization_id == org.id)
        .order_by(Court.id)
        .with_for_update()
        .all()
    )
    found = {c.id: c for c in courts}
    for court_id in ids:
        court = found.get(court_id)
        if court is None or not court.is_active:
            raise CourtUnavailableError(
                "Court not found or not available for booking",
                details={"court_id": str(court_id)},
            )
    return found


def _check_within_hours(court: Court, slot: RequestedSlot, tz_name: str) -> None:
    local_start = utc_to_local(slot.start_time, tz_name)
    local_end = utc_to_local(slot.end_time, tz_name)
    if local_end.date() != local_start.date():
        raise ValidationError("A slot cannot run past midnight")
    if local_start.time() < court.open_time or local_end.time() > court.close_time:
        raise ValidationError(
            f"{court.name} is open from {court.open_time:%H:%M} to {court.close_time:%H:%M}",
            details={"court_id": str(court.id)},
        )


def _check_daily_limit(
    db: Session,
    org: Organization,
    user: User,
    slots: Sequence[RequestedSlot],
    booking_settings: BookingSettings,
) -> None:
    """A user may hold at most ``max_consecutive_slots`` slots per local day."""
    tz_name = booking_settings.timezone
    limit = booking_settings.max_consecutive_slots
    requested: Dict[date, int] = defaultdict(int)
    for slot in slots:
        requested[utc_to_local(slot.start_time, tz_name).date()] += 1

    for day, count in requested.items():
        day_start, day_end = local_day_bounds(day, tz_name)
        held = (
            db.query(func.count(BookingSlot.id))
            .join(Booking, Booking.id == BookingSlot.booking_id)
            .filter(
                Booking.organization_id == org.id,
                Booking.user_id == user.id,
                Booking.status.in_(HOLDING_STATUSES),
                BookingSlot.start_time >= day_start,
                BookingSlot.start_time < day_end,
            )
            .scalar()
        ) or 0
        if held + count > limit:
            remaining = max(0, limit - held)
            raise ValidationError(
                f"You can book at most {limit} slot(s) per day; {remaining} remaining on {day.isoformat()}",
                details={"date": day.isoformat(), "limit": limit, "held": held},
            )


def _lock_and_check(
    db: Session,
    org: Organization,
    principal: Principal,
    slots: Sequence[RequestedSlot],
    booking_settings: BookingSettings,
) -> List[_PricedRequest]:
    courts = _lock_courts(db, org, [s.court_id for s in slots])
    tz_name = booking_settings.timezone

    if principal.user is not None:
        _check_daily_limit(db, org, principal.user, slots, booking_settings)

    priced = []
    for slot in slots:
        court = courts[slot.court_id]
        _check_within_hours(court, slot, tz_name)
        reason = find_slot_conflict(db, court.id, slot.start_time, slot.end_time)
        if reason is not None:
            logger.info(
                "Slot conflict (%s) on court %s at %s", reason, court.id, slot.start_time.isoformat()
            )
            raise SlotConflictError(
                SLOT_TAKEN_MESSAGE,
                details={"court_id": str(court.id), "start_time": slot.start_time.isoformat()},
            )
        server_price = price_slot(court, slot.start_time, slot.end_time, tz_name, booking_settings.peak_window)
        priced.append(_PricedRequest(request=slot, court=court, price_cents=server_price.price_cents))
    return priced


def _resolve_guest(db: Session, org: Organization, identity: GuestIdentity, now: datetime) -> Guest:
    email = identity.email.strip().lower()
    guest = db.query(Guest).filter(Guest.organization_id == org.id, Guest.email == email).first()
    if guest is None:
        guest = Guest(organization_id=org.id, email=email, name=identity.name, phone=identity.phone)
        db.add(guest)
    else:
        guest.name = identity.name
        if identity.phone:
            guest.phone = identity.phone
    guest.total_bookings = (guest.total_bookings or 0) + 1
    guest.last_booking_at = now
    db.flush()
    return guest


def _insert_booking(
    db: Session,
    org: Organization,
    principal: Principal,
    priced: Sequence[_PricedRequest],
    booking_settings: BookingSettings,
    now: datetime,
) -> Booking:
    guest = _resolve_guest(db, org, principal.guest, now) if principal.user is None else None
    booking = Booking(
        organization_id=org.id,
        user_id=principal.user.id if principal.user is not None else None,
        guest_id=guest.id if guest is not None else None,
        type=BookingType.COURT_BOOKING,
        total_cents=sum(p.price_cents for p in priced),
        currency=booking_settings.currency,
        status=BookingStatus.PENDING_PAYMENT,
        expires_at=now + timedelta(minutes=booking_settings.payment_timeout_minutes),
    )
    db.add(booking)
    db.flush()
    return booking


def _insert_slots(db: Session, booking: Booking, priced: Sequence[_PricedRequest]) -> None:
    for p in priced:
        db.add(
            BookingSlot(
                organization_id=booking.organization_id,
                booking_id=booking.id,
                court_id=p.court.id,
                start_time=p.request.start_time,
                end_time=p.request.end_time,
                price_in_cents=p.price_cents,
            )
        )
    db.flush()


def _insert_payment(db: Session, booking: Booking) -> None:
    db.add(
        Payment(
            organization_id=booking.organization_id,
            booking_id=booking.id,
            user_id=booking.user_id,
            amount_cents=booking.total_cents,
            currency=booking.currency,
            status=PaymentStatus.PENDING,
        )
    )
    db.flush()


def _record_price_corrections(db: Session, booking: Booking, principal: Principal, priced: Sequence[_PricedRequest]) -> None:
    corrections = [
        {
            "court_id": p.court.id,
            "start_time": p.request.start_time,
            "quoted_cents": p.request.price_in_cents,
            "charged_cents": p.price_cents,
        }
        for p in priced
        if p.request.price_in_cents is not None and p.request.price_in_cents != p.price_cents
    ]
    if not corrections:
        return
    logger.warning("Corrected %d client price quote(s) on booking %s", len(corrections), booking.id)
    record_audit_event(
        db,
        organization_id=booking.organization_id,
        actor_id=principal.user.id if principal.user is not None else None,
        action="PRICE_CORRECTED",
        entity_type="booking",
        entity_id=booking.id,
        previous_data={"slots": [{k: c[k] for k in ("court_id", "start_time", "quoted_cents")} for c in corrections]},
        new_data={"slots": corrections, "total_cents": booking.total_cents},
    )


def _prepare(
    db: Session,
    org: Organization,
    principal: Principal,
    slots: Sequence[RequestedSlot],
    rate_limiter: Optional[RateLimiter],
    now: datetime,
) -> BookingSettings:
    booking_settings = get_booking_settings(db, org)
    _check_principal(principal, booking_settings)
    _check_rate_limit(rate_limiter, principal)
    _validate_request(slots, booking_settings, now)
    return booking_settings


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def create_reservation(
    db: Session,
    org: Organization,
    principal: Principal,
    slots: Sequence[RequestedSlot],
    *,
    rate_limiter: Optional[RateLimiter] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Reserve ``slots`` for ``principal`` in one transaction.

    Raises NotAuthenticatedError, EmailUnverifiedError, AuthorizationError,
    RateLimitError, ValidationError, CourtUnavailableError, SlotConflictError
    or PersistenceError; on any of them nothing is persisted.
    """
    now = now or utcnow()
    booking_settings = _prepare(db, org, principal, slots, rate_limiter, now)

    with translate_storage_errors(db, "create booking"):
        priced = _lock_and_check(db, org, principal, slots, booking_settings)
        booking = _insert_booking(db, org, principal, priced, booking_settings, now)
        _insert_slots(db, booking, priced)
        _insert_payment(db, booking)
        _record_price_corrections(db, booking, principal, priced)
        db.commit()

    logger.info("Booking %s created: %d slot(s), %d cents", booking.id, len(priced), booking.total_cents)
    return booking


def _delete_orphan_booking(db: Session, booking_id: UUID) -> None:
    """Best-effort removal of a booking row whose slots never landed."""
    try:
        guest_id = db.query(Booking.guest_id).filter(Booking.id == booking_id).scalar()
        if guest_id is not None:
            db.query(Guest).filter(Guest.id == guest_id, Guest.total_bookings > 0).update(
                {Guest.total_bookings: Guest.total_bookings - 1}, synchronize_session=False
            )
        db.query(Payment).filter(Payment.booking_id == booking_id).delete(synchronize_session=False)
        db.query(BookingSlot).filter(BookingSlot.booking_id == booking_id).delete(synchronize_session=False)
        db.query(Booking).filter(Booking.id == booking_id).delete(synchronize_session=False)
        db.commit()
        logger.info("Removed orphaned booking %s", booking_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to remove orphaned booking %s", booking_id)


def create_reservation_compensating(
    db: Session,
    org: Organization,
    principal: Principal,
    slots: Sequence[RequestedSlot],
    *,
    rate_limiter: Optional[RateLimiter] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Variant for stores without multi-statement transactions: the booking row
    is committed first and the slots and payment in a second step. If the
    second step fails the booking row is deleted again before the original
    error is raised.
    """
    now = now or utcnow()
    booking_settings = _prepare(db, org, principal, slots, rate_limiter, now)

    with translate_storage_errors(db, "create booking"):
        priced = _lock_and_check(db, org, principal, slots, booking_settings)
        booking = _insert_booking(db, org, principal, priced, booking_settings, now)
        db.commit()
    booking_id = booking.id

    try:
        with translate_storage_errors(db, "reserve booking slots"):
            _lock_courts(db, org, [s.court_id for s in slots])
            for p in priced:
                if find_slot_conflict(db, p.court.id, p.request.start_time, p.request.end_time) is not None:
                    raise SlotConflictError(SLOT_TAKEN_MESSAGE)
            _insert_slots(db, booking, priced)
            _insert_payment(db, booking)
            _record_price_corrections(db, booking, principal, priced)
            db.commit()
    except BookingError:
        _delete_orphan_booking(db, booking_id)
        raise

    logger.info("Booking %s created in two steps: %d slot(s)", booking_id, len(priced))
    return booking


def reserve(
    db: Session,
    org: Organization,
    principal: Principal,
    slots: Sequence[RequestedSlot],
    *,
    rate_limiter: Optional[RateLimiter] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Reserve with the configured strategy (``RESERVATION_STRATEGY``)."""
    if settings.RESERVATION_STRATEGY == "compensating":
        return create_reservation_compensating(db, org, principal, slots, rate_limiter=rate_limiter, now=now)
    return create_reservation(db, org, principal, slots, rate_limiter=rate_limiter, now=now)


def reserve_consecutive(
    db: Session,
    org: Organization,
    principal: Principal,
    court_id: UUID,
    day: date,
    start_time: str,
    count: int,
    *,
    rate_limiter: Optional[RateLimiter] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Reserve ``count`` back-to-back slots on one court from a local ``HH:MM``."""
    booking_settings = get_booking_settings(db, org)
    if count < 1:
        raise ValidationError("Book at least one slot")
    if count > booking_settings.max_consecutive_slots:
        raise ValidationError(
            f"You can book at most {booking_settings.max_consecutive_slots} consecutive slot(s)",
            details={"max_consecutive_slots": booking_settings.max_consecutive_slots},
        )
    try:
        local_start = parse_hhmm(start_time)
    except ValueError as exc:
        raise ValidationError("Start time must be in HH:MM format") from exc

    court = get_active_court(db, org, court_id)
    try:
        candidates = consecutive_slots(
            local_start, count, court.slot_duration_minutes, day, booking_settings.timezone
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    requested = [RequestedSlot(court_id=court.id, start_time=c.start, end_time=c.end) for c in candidates]
    return reserve(db, org, principal, requested, rate_limiter=rate_limiter, now=now)


def slots_from_selection(selection) -> List[RequestedSlot]:
    """Map request-body slot selections to ``RequestedSlot`` values."""
    return [
        RequestedSlot(
            court_id=s.court_id,
            start_time=s.start_time,
            end_time=s.end_time,
            price_in_cents=s.price_in_cents,
        )
        for s in selection
    ]
