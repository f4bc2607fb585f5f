import uuid
import enum
from sqlalchemy import Column, String, Integer, ForeignKey, Uuid, JSON, func, Enum as SAEnum
from sqlalchemy.orm import relationship
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    EXPIRED = "EXPIRED"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=False, unique=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="SGD")
    status = Column(SAEnum(PaymentStatus, native_enum=False, length=20), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_method = Column(String(30), nullable=True)
    external_payment_request_id = Column(String(100), nullable=True, index=True)  # gateway checkout id
    external_reference = Column(String(100), nullable=True)  # gateway payment id on completion
    webhook_payload = Column(JSON, nullable=True)
    paid_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    booking = relationship("Booking", back_populates="payment")
