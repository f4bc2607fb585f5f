import uuid
from sqlalchemy import Column, String, Boolean, Integer, Date, Time, Text, ForeignKey, Uuid, CheckConstraint, func
from sqlalchemy.orm import relationship
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class RecurringBooking(Base):
    """
    Weekly pattern that produced a series of admin bookings.

    Occurrences are generated eagerly when the pattern is created; the pattern
    keeps a back-reference to them but never deletes them.
    """

    __tablename__ = "recurring_bookings"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_recurring_day_of_week"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=False)
    title = Column(String(200), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(Time, nullable=False)  # local time of day
    end_time = Column(Time, nullable=False)
    starts_on = Column(Date, nullable=False)
    ends_on = Column(Date, nullable=False)
    frequency = Column(String(20), nullable=False, default="weekly")
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    court = relationship("Court")
    bookings = relationship("Booking", back_populates="recurring_booking")
