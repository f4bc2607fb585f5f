import uuid
import enum
from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey, Uuid, CheckConstraint, Index, func, Enum as SAEnum
from sqlalchemy.orm import relationship
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class BookingStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses whose slots no longer occupy the court timeline
RELEASED_STATUSES = (BookingStatus.CANCELLED, BookingStatus.EXPIRED)
# Statuses that still hold (or will hold) the court
HOLDING_STATUSES = (BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED)


class BookingType(str, enum.Enum):
    COURT_BOOKING = "COURT_BOOKING"
    CORPORATE_BOOKING = "CORPORATE_BOOKING"
    PRIVATE_COACHING = "PRIVATE_COACHING"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # Only bookings awaiting payment carry a deadline
        CheckConstraint(
            "(status = 'PENDING_PAYMENT') OR (expires_at IS NULL)",
            name="ck_bookings_expires_only_pending",
        ),
        Index("ix_bookings_status_expires_at", "status", "expires_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    guest_id = Column(Uuid, ForeignKey("guests.id"), nullable=True, index=True)
    type = Column(SAEnum(BookingType, native_enum=False), nullable=False, default=BookingType.COURT_BOOKING)
    total_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="SGD")
    status = Column(SAEnum(BookingStatus, native_enum=False, length=20), nullable=False, default=BookingStatus.PENDING_PAYMENT, index=True)
    expires_at = Column(UTCDateTime, nullable=True)
    is_admin_override = Column(Boolean, default=False, nullable=False)
    admin_notes = Column(Text, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    recurring_booking_id = Column(Uuid, ForeignKey("recurring_bookings.id"), nullable=True, index=True)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User")
    guest = relationship("Guest")
    slots = relationship(
        "BookingSlot",
        back_populates="booking",
        order_by="BookingSlot.start_time",
        cascade="all, delete-orphan",
    )
    payment = relationship("Payment", back_populates="booking", uselist=False, cascade="all, delete-orphan")
    recurring_booking = relationship("RecurringBooking", back_populates="bookings")

    @property
    def first_start(self):
        return self.slots[0].start_time if self.slots else None

    @property
    def last_end(self):
        return max((s.end_time for s in self.slots), default=None)


class BookingSlot(Base):
    """
    One reserved [start_time, end_time) interval on one court.

    For a given court, slots of bookings not in RELEASED_STATUSES never overlap.
    Rows are kept after cancellation/expiry for history.
    """

    __tablename__ = "booking_slots"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_booking_slots_time_order"),
        Index("ix_booking_slots_court_start", "court_id", "start_time"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=False, index=True)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    price_in_cents = Column(Integer, nullable=False)

    booking = relationship("Booking", back_populates="slots")
    court = relationship("Court")
