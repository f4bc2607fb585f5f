from courtbook.schemas.common import PaginatedResponse, ErrorResponse, SweepResult
from courtbook.schemas.user import UserSummary
from courtbook.schemas.availability import (
    SlotAvailability, CourtAvailability, CourtSlotAvailability,
    AggregatedSlot, DayAvailability, BookableDates,
)
from courtbook.schemas.booking import (
    SlotSelection, ReservationCreate, ConsecutiveReservationCreate, GuestReservationCreate,
    ReservationCreated, Booking, AdminBooking, BookingSlotResponse, PaymentSummary,
    BookingCancel, BookingCancelResponse, BookingStatusResponse, CheckoutResponse,
)
from courtbook.schemas.court_block import CourtBlock, CourtBlockCreate
from courtbook.schemas.recurring import (
    RecurringBooking, RecurringBookingCreate, RecurringBookingCreated, RecurringBookingCancelled,
)
from courtbook.schemas.payment import PaymentWebhook, PaymentWebhookAck
