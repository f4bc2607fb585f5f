"""
Booking lifecycle.

    PENDING_PAYMENT -> CONFIRMED | CANCELLED | EXPIRED
    CONFIRMED       -> CANCELLED | COMPLETED | NO_SHOW

Every status change goes through ``apply_transition`` so that ``expires_at`` is
non-null only while a booking is PENDING_PAYMENT and the payment row follows
the booking. Released bookings keep their slot rows; availability ignores
them by status.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy.orm import Session

from courtbook.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from courtbook.core.timezones import utcnow
from courtbook.db.errors import translate_storage_errors
from courtbook.models.booking import Booking, BookingStatus, HOLDING_STATUSES
from courtbook.models.organization import Organization
from courtbook.models.payment import PaymentStatus
from courtbook.models.user import User
from courtbook.services.audit import record_audit_event
from courtbook.services.notifications import Notifier, notify
from courtbook.services.permissions import is_org_admin

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Payment not completed in time"

ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
    },
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def apply_transition(booking: Booking, target: BookingStatus, now: datetime, reason: Optional[str] = None) -> None:
    if not can_transition(booking.status, target):
        raise InvalidTransitionError(
            f"Cannot change booking from {booking.status.value} to {target.value}",
            details={"status": booking.status.value},
        )

    booking.status = target
    booking.expires_at = None

    if target in (BookingStatus.CANCELLED, BookingStatus.EXPIRED):
        booking.cancelled_at = now
        booking.cancel_reason = reason

    payment = booking.payment
    if payment is None:
        return
    if target == BookingStatus.CONFIRMED:
        payment.status = PaymentStatus.COMPLETED
        payment.paid_at = payment.paid_at or now
    elif target in (BookingStatus.CANCELLED, BookingStatus.EXPIRED) and payment.status == PaymentStatus.PENDING:
        payment.status = PaymentStatus.EXPIRED


def _load_booking(db: Session, booking_id: UUID, lock: bool = True) -> Booking:
    query = db.query(Booking).filter(Booking.id == booking_id)
    if lock:
        query = query.with_for_update()
    booking = query.first()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _snapshot(booking: Booking) -> dict:
    return {
        "status": booking.status.value,
        "expires_at": booking.expires_at,
        "cancel_reason": booking.cancel_reason,
    }


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


def expire_if_due(
    db: Session,
    booking_id: UUID,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Booking:
    """
    Move an overdue PENDING_PAYMENT booking to EXPIRED.

    Idempotent: a booking that is not pending, or whose deadline has not
    passed, is returned unchanged.
    """
    now = now or utcnow()
    expired = False
    with translate_storage_errors(db, "expire booking"):
        booking = _load_booking(db, booking_id)
        if (
            booking.status == BookingStatus.PENDING_PAYMENT
            and booking.expires_at is not None
            and now > booking.expires_at
        ):
            apply_transition(booking, BookingStatus.EXPIRED, now, EXPIRED_REASON)
            expired = True
        db.commit()

    if expired:
        logger.info("Booking %s expired", booking.id)
        notify("booking_expired", booking, notifier)
    return booking


def expire_stale_bookings(
    db: Session,
    now: Optional[datetime] = None,
    organization_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
) -> List[UUID]:
    """Expire every overdue pending booking; returns the ids that changed."""
    now = now or utcnow()
    with translate_storage_errors(db, "find stale bookings"):
        query = db.query(Booking.id).filter(
            Booking.status == BookingStatus.PENDING_PAYMENT,
            Booking.expires_at < now,
        )
        if organization_id is not None:
            query = query.filter(Booking.organization_id == organization_id)
        if user_id is not None:
            query = query.filter(Booking.user_id == user_id)
        candidate_ids = [row.id for row in query.all()]
        db.commit()

    expired_ids = []
    for booking_id in candidate_ids:
        booking = expire_if_due(db, booking_id, now)
        if booking.status == BookingStatus.EXPIRED:
            expired_ids.append(booking_id)
    if expired_ids:
        logger.info("Expired %d stale booking(s)", len(expired_ids))
    return expired_ids


# ---------------------------------------------------------------------------
# Payment outcome
# ---------------------------------------------------------------------------


def confirm_payment(
    db: Session,
    booking_id: UUID,
    external_reference: Optional[str] = None,
    payload: Optional[dict] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Booking:
    """
    The gateway reported a completed payment. A booking that is still
    PENDING_PAYMENT is confirmed even if its deadline passed but no expiry
    has been applied yet; repeated confirmations are no-ops.
    """
    now = now or utcnow()
    with translate_storage_errors(db, "confirm payment"):
        booking = _load_booking(db, booking_id)
        if booking.status == BookingStatus.CONFIRMED:
            db.commit()
            return booking
        if booking.status != BookingStatus.PENDING_PAYMENT:
            logger.warning(
                "Payment completed for booking %s in status %s; manual refund required",
                booking.id,
                booking.status.value,
            )
            raise InvalidTransitionError(
                "Booking is no longer awaiting payment",
                details={"status": booking.status.value},
            )

        apply_transition(booking, BookingStatus.CONFIRMED, now)
        if booking.payment is not None:
            if external_reference:
                booking.payment.external_reference = external_reference
            if payload is not None:
                booking.payment.webhook_payload = payload
        db.commit()

    logger.info("Booking %s confirmed", booking.id)
    notify("booking_confirmed", booking, notifier)
    return booking


def release_unpaid_booking(
    db: Session,
    booking_id: UUID,
    reason: str,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Cancel a booking whose checkout could not be opened so its slots are
    freed at once. Bookings that already left PENDING_PAYMENT are untouched.
    """
    now = now or utcnow()
    with translate_storage_errors(db, "release unpaid booking"):
        booking = _load_booking(db, booking_id)
        released = booking.status == BookingStatus.PENDING_PAYMENT
        if released:
            apply_transition(booking, BookingStatus.CANCELLED, now, reason)
        db.commit()
    if released:
        logger.warning("Booking %s released: %s", booking.id, reason)
    return booking


def mark_payment_failed(
    db: Session,
    booking_id: UUID,
    payload: Optional[dict] = None,
) -> Booking:
    """Record a failed attempt; the booking keeps its hold until it expires."""
    with translate_storage_errors(db, "record failed payment"):
        booking = _load_booking(db, booking_id)
        payment = booking.payment
        if payment is not None and payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.FAILED
            if payload is not None:
                payment.webhook_payload = payload
        db.commit()
    logger.info("Payment failed for booking %s", booking.id)
    return booking


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def _cancel(booking: Booking, reason: Optional[str], now: datetime) -> Optional[int]:
    """Cancel in the current transaction; returns the amount to refund, if any."""
    if booking.status not in HOLDING_STATUSES:
        raise InvalidTransitionError(
            "Only pending or confirmed bookings can be cancelled",
            details={"status": booking.status.value},
        )
    was_paid = booking.status == BookingStatus.CONFIRMED and booking.total_cents > 0
    apply_transition(booking, BookingStatus.CANCELLED, now, reason)
    return booking.total_cents if was_paid else None


def cancel_booking(
    db: Session,
    user: User,
    booking_id: UUID,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Booking:
    """
    Cancel a booking as its owner, or as an admin of the booking's
    organization (who must give a reason).
    """
    now = now or utcnow()
    expire_if_due(db, booking_id, now, notifier)
    with translate_storage_errors(db, "cancel booking"):
        booking = _load_booking(db, booking_id)
        is_owner = booking.user_id is not None and booking.user_id == user.id
        acting_as_admin = not is_owner and is_org_admin(db, user, booking.organization_id)
        if not is_owner and not acting_as_admin:
            # Hide other users' bookings
            raise NotFoundError("Booking not found")
        if acting_as_admin and not (reason and reason.strip()):
            raise ValidationError("A reason is required when cancelling another user's booking")

        before = _snapshot(booking)
        refund_cents = _cancel(booking, reason, now)
        if acting_as_admin:
            record_audit_event(
                db,
                organization_id=booking.organization_id,
                actor_id=user.id,
                action="BOOKING_CANCELLED",
                entity_type="booking",
                entity_id=booking.id,
                previous_data=before,
                new_data=_snapshot(booking),
            )
        db.commit()

    logger.info("Booking %s cancelled by %s", booking.id, "admin" if acting_as_admin else "owner")
    notify("booking_cancelled", booking, notifier, refund_cents=refund_cents)
    return booking


def admin_cancel_booking(
    db: Session,
    org: Organization,
    admin: User,
    booking_id: UUID,
    reason: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Booking:
    now = now or utcnow()
    if not (reason and reason.strip()):
        raise ValidationError("A cancellation reason is required")
    expire_if_due(db, booking_id, now, notifier)
    with translate_storage_errors(db, "cancel booking"):
        booking = _load_booking(db, booking_id)
        if booking.organization_id != org.id:
            raise NotFoundError("Booking not found")
        if not is_org_admin(db, admin, org.id):
            raise AuthorizationError("Admin access required")

        before = _snapshot(booking)
        refund_cents = _cancel(booking, reason, now)
        record_audit_event(
            db,
            organization_id=org.id,
            actor_id=admin.id,
            action="BOOKING_CANCELLED",
            entity_type="booking",
            entity_id=booking.id,
            previous_data=before,
            new_data=_snapshot(booking),
        )
        db.commit()

    logger.info("Booking %s cancelled by admin %s", booking.id, admin.id)
    notify("booking_cancelled", booking, notifier, refund_cents=refund_cents)
    return booking


# ---------------------------------------------------------------------------
# Post-session outcomes
# ---------------------------------------------------------------------------


def _close_out(
    db: Session,
    org: Organization,
    admin: User,
    booking_id: UUID,
    target: BookingStatus,
    now: datetime,
) -> Booking:
    with translate_storage_errors(db, "update booking"):
        booking = _load_booking(db, booking_id)
        if booking.organization_id != org.id:
            raise NotFoundError("Booking not found")
        if not is_org_admin(db, admin, org.id):
            raise AuthorizationError("Admin access required")
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError(
                f"Only confirmed bookings can be marked {target.value}",
                details={"status": booking.status.value},
            )
        last_end = booking.last_end
        if last_end is not None and last_end > now:
            raise ValidationError("The booked time has not finished yet")

        before = _snapshot(booking)
        apply_transition(booking, target, now)
        record_audit_event(
            db,
            organization_id=org.id,
            actor_id=admin.id,
            action=f"BOOKING_{target.value}",
            entity_type="booking",
            entity_id=booking.id,
            previous_data=before,
            new_data=_snapshot(booking),
        )
        db.commit()
    logger.info("Booking %s marked %s", booking.id, target.value)
    return booking


def mark_completed(
    db: Session, org: Organization, admin: User, booking_id: UUID, now: Optional[datetime] = None
) -> Booking:
    return _close_out(db, org, admin, booking_id, BookingStatus.COMPLETED, now or utcnow())


def mark_no_show(
    db: Session, org: Organization, admin: User, booking_id: UUID, now: Optional[datetime] = None
) -> Booking:
    return _close_out(db, org, admin, booking_id, BookingStatus.NO_SHOW, now or utcnow())
