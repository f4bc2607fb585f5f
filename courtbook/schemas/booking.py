from __future__ import annotations

from typing import Annotated, Optional, List
from pydantic import BaseModel, ConfigDict, Field, UUID4, AwareDatetime, EmailStr, field_validator
from datetime import date, datetime

from courtbook.models.booking import BookingStatus, BookingType
from courtbook.models.payment import PaymentStatus


# One selected slot (client side quote included for comparison only)
class SlotSelection(BaseModel):
    court_id: UUID4
    start_time: AwareDatetime
    end_time: AwareDatetime
    price_in_cents: Optional[int] = Field(default=None, ge=0)


# Reservation: Create (POST /orgs/{slug}/bookings)
class ReservationCreate(BaseModel):
    slots: Annotated[List[SlotSelection], Field(min_length=1, max_length=20)]


# Reservation: consecutive slots from a start time (POST /orgs/{slug}/bookings/consecutive)
class ConsecutiveReservationCreate(BaseModel):
    court_id: UUID4
    booking_date: date
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    slots: int = Field(default=1, ge=1)


# Guest reservation (POST /orgs/{slug}/guest-bookings)
class GuestReservationCreate(BaseModel):
    guest_name: str = Field(min_length=1, max_length=255)
    guest_email: EmailStr
    guest_phone: Optional[str] = None
    slots: Annotated[List[SlotSelection], Field(min_length=1, max_length=20)]

    @field_validator("guest_phone", mode="before")
    @classmethod
    def parse_empty_str_to_none(cls, v):
        if v == "":
            return None
        return v


class ReservationCreated(BaseModel):
    booking_id: UUID4
    status: BookingStatus
    total_cents: int
    currency: str
    expires_at: Optional[datetime] = None
    payment_url: Optional[str] = None


class BookingSlotResponse(BaseModel):
    id: UUID4
    court_id: UUID4
    start_time: datetime
    end_time: datetime
    price_in_cents: int

    model_config = ConfigDict(from_attributes=True)


class PaymentSummary(BaseModel):
    status: PaymentStatus
    amount_cents: int
    currency: str
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Booking: Full response (GET /bookings/{id})
class Booking(BaseModel):
    id: UUID4
    organization_id: UUID4
    user_id: Optional[UUID4] = None
    guest_id: Optional[UUID4] = None
    type: BookingType
    status: BookingStatus
    total_cents: int
    currency: str
    expires_at: Optional[datetime] = None
    is_admin_override: bool = False
    admin_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    recurring_booking_id: Optional[UUID4] = None
    created_at: Optional[datetime] = None
    slots: List[BookingSlotResponse] = []
    payment: Optional[PaymentSummary] = None

    model_config = ConfigDict(from_attributes=True)


# Booking: Admin view (GET /admin/orgs/{slug}/bookings, includes user info)
class AdminBooking(Booking):
    user: Optional[UserSummary] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# Booking: Cancel response (PATCH /bookings/{id}/cancel)
class BookingCancelResponse(BaseModel):
    id: UUID4
    status: BookingStatus
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None


class BookingStatusResponse(BaseModel):
    id: UUID4
    status: BookingStatus


class CheckoutResponse(BaseModel):
    booking_id: UUID4
    external_id: str
    payment_url: str
    expires_at: Optional[datetime] = None


# Import at the bottom to avoid circular imports
from courtbook.schemas.user import UserSummary  # noqa: E402

AdminBooking.model_rebuild()
