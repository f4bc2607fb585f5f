import uuid
from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, UniqueConstraint, Uuid, func
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # user, admin (platform-wide)
    email_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, server_default=func.now())


class Guest(Base):
    """A person who booked without an account. One row per (organization, email)."""

    __tablename__ = "guests"
    __table_args__ = (UniqueConstraint("organization_id", "email", name="uq_guest_org_email"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    total_bookings = Column(Integer, default=0, nullable=False)
    last_booking_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
