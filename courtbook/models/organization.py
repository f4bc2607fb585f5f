import uuid
from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="Asia/Singapore")
    currency = Column(String(3), nullable=False, default="SGD")

    # Booking settings; NULL falls back to app_settings, then built-in defaults
    booking_window_days = Column(Integer, nullable=True)
    payment_timeout_minutes = Column(Integer, nullable=True)
    max_consecutive_slots = Column(Integer, nullable=True)
    allow_guest_bookings = Column(Boolean, default=False, nullable=False)

    # Weekday evening peak window, local hours [start, end)
    peak_start_hour = Column(Integer, default=18, nullable=False)
    peak_end_hour = Column(Integer, default=21, nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    courts = relationship("Court", back_populates="organization", order_by="Court.sort_order")
    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")


class OrganizationMember(Base):
    __tablename__ = "organization_members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id", name="uq_org_member"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member")  # member, admin

    organization = relationship("Organization", back_populates="members")
    user = relationship("User")


class AppSetting(Base):
    """Global key/value settings (booking_window_days, payment_timeout_minutes, ...)."""

    __tablename__ = "app_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
