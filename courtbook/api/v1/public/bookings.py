from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session, selectinload

from courtbook.db.session import get_db
from courtbook.api.deps import get_current_user, get_optional_user, get_org
from courtbook.core.exceptions import NotFoundError, PaymentGatewayError
from courtbook.core.ratelimit import RateLimiter, get_booking_rate_limiter
from courtbook.models.user import User
from courtbook.models.organization import Organization
from courtbook.models.booking import Booking, BookingStatus
from courtbook.schemas.booking import (
    Booking as BookingSchema,
    BookingCancel,
    BookingCancelResponse,
    BookingStatusResponse,
    CheckoutResponse,
    ConsecutiveReservationCreate,
    GuestReservationCreate,
    ReservationCreate,
    ReservationCreated,
)
from courtbook.schemas.common import PaginatedResponse
from courtbook.services.lifecycle import cancel_booking, expire_if_due, expire_stale_bookings, release_unpaid_booking
from courtbook.services.payments import PaymentGateway, get_payment_gateway, start_checkout, sync_payment_status
from courtbook.services.permissions import is_org_admin
from courtbook.services.reservation import (
    GuestIdentity,
    Principal,
    reserve,
    reserve_consecutive,
    slots_from_selection,
)

org_bookings_router = APIRouter(prefix="/orgs/{slug}", tags=["Bookings"])
router = APIRouter(prefix="/bookings", tags=["Bookings"])

CHECKOUT_FAILED_REASON = "Payment could not be started"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _created(booking: Booking, payment_url: Optional[str] = None) -> ReservationCreated:
    return ReservationCreated(
        booking_id=booking.id,
        status=booking.status,
        total_cents=booking.total_cents,
        currency=booking.currency,
        expires_at=booking.expires_at,
        payment_url=payment_url,
    )


def _load_visible_booking(db: Session, booking_id: UUID, user: User) -> Booking:
    """Expire if overdue, then return the booking if ``user`` may see it."""
    expire_if_due(db, booking_id)
    booking = (
        db.query(Booking)
        .options(selectinload(Booking.slots), selectinload(Booking.payment))
        .filter(Booking.id == booking_id)
        .first()
    )
    if booking is None:
        raise NotFoundError("Booking not found")
    if booking.user_id != user.id and not is_org_admin(db, user, booking.organization_id):
        raise NotFoundError("Booking not found")
    return booking


# ---------------------------------------------------------------------------
# POST /orgs/{slug}/bookings: reserve selected slots
# ---------------------------------------------------------------------------


@org_bookings_router.post("/bookings", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: ReservationCreate,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    rate_limiter: RateLimiter = Depends(get_booking_rate_limiter),
):
    """
    Reserve one or more slots. The booking is held as PENDING_PAYMENT until
    `expires_at`; prices are computed by the server.
    """
    booking = reserve(db, org, Principal(user=current_user), slots_from_selection(data.slots), rate_limiter=rate_limiter)
    return _created(booking)


@org_bookings_router.post(
    "/bookings/consecutive", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED
)
def create_consecutive_booking(
    data: ConsecutiveReservationCreate,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    rate_limiter: RateLimiter = Depends(get_booking_rate_limiter),
):
    """Reserve `slots` back-to-back slots on one court from a local start time."""
    booking = reserve_consecutive(
        db,
        org,
        Principal(user=current_user),
        data.court_id,
        data.booking_date,
        data.start_time,
        data.slots,
        rate_limiter=rate_limiter,
    )
    return _created(booking)


@org_bookings_router.post("/guest-bookings", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
def create_guest_booking(
    data: GuestReservationCreate,
    org: Organization = Depends(get_org),
    db: Session = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_booking_rate_limiter),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Book without an account (only where the organization allows it). The
    response carries the payment page URL since guests cannot come back to
    `/bookings/{id}/pay`.
    """
    guest = GuestIdentity(name=data.guest_name, email=data.guest_email, phone=data.guest_phone)
    booking = reserve(db, org, Principal(guest=guest), slots_from_selection(data.slots), rate_limiter=rate_limiter)
    try:
        booking, session = start_checkout(db, booking.id, None, gateway)
    except PaymentGatewayError:
        # Guests cannot retry checkout later
        release_unpaid_booking(db, booking.id, CHECKOUT_FAILED_REASON)
        raise
    return _created(booking, payment_url=session.redirect_url)


# ---------------------------------------------------------------------------
# /bookings: the signed-in user's bookings
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[BookingSchema])
def list_my_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expire_stale_bookings(db, user_id=current_user.id)

    query = (
        db.query(Booking)
        .options(selectinload(Booking.slots), selectinload(Booking.payment))
        .filter(Booking.user_id == current_user.id)
    )
    if status:
        query = query.filter(Booking.status == status)

    total = query.count()
    bookings = (
        query.order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=[BookingSchema.model_validate(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _load_visible_booking(db, booking_id, current_user)


@router.patch("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_my_booking(
    booking_id: UUID,
    data: Optional[BookingCancel] = Body(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cancel a pending or confirmed booking. Slots become available immediately."""
    booking = cancel_booking(db, current_user, booking_id, reason=data.reason if data else None)
    return BookingCancelResponse(
        id=booking.id,
        status=booking.status,
        cancelled_at=booking.cancelled_at,
        cancel_reason=booking.cancel_reason,
    )


@router.post("/{booking_id}/pay", response_model=CheckoutResponse)
def pay_for_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Open a payment page for a booking that is still awaiting payment."""
    booking, session = start_checkout(db, booking_id, current_user, gateway)
    return CheckoutResponse(
        booking_id=booking.id,
        external_id=session.external_id,
        payment_url=session.redirect_url,
        expires_at=booking.expires_at,
    )


@router.get("/{booking_id}/payment-status", response_model=BookingStatusResponse)
def refresh_payment_status(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Ask the gateway directly, for return pages that load before the webhook arrives."""
    _load_visible_booking(db, booking_id, current_user)
    booking = sync_payment_status(db, booking_id, gateway)
    return BookingStatusResponse(id=booking.id, status=booking.status)
