import uuid
from sqlalchemy import Column, String, ForeignKey, Uuid, JSON, func
from courtbook.db.session import Base
from courtbook.db.types import UTCDateTime


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)  # NULL = system
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False)
    previous_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
