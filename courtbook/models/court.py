import uuid
import enum
from sqlalchemy import Column, String, Boolean, Integer, Time, Text, ForeignKey, Uuid, func, Enum as SAEnum
from sqlalchemy.orm import relationship
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class BlockReason(str, enum.Enum):
    MAINTENANCE = "MAINTENANCE"
    TOURNAMENT = "TOURNAMENT"
    PRIVATE_EVENT = "PRIVATE_EVENT"
    OTHER = "OTHER"


class Court(Base):
    __tablename__ = "courts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_indoor = Column(Boolean, default=False, nullable=False)
    open_time = Column(Time, nullable=False)   # local time of day
    close_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False, default=60)
    price_per_hour_cents = Column(Integer, nullable=False)
    peak_price_per_hour_cents = Column(Integer, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="courts")
    blocks = relationship("CourtBlock", back_populates="court")


class CourtBlock(Base):
    """Admin-imposed unavailability window. Overlapping blocks are allowed."""

    __tablename__ = "court_blocks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False)
    reason = Column(SAEnum(BlockReason, native_enum=False), nullable=False, default=BlockReason.OTHER)
    description = Column(Text, nullable=True)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    court = relationship("Court", back_populates="blocks")
