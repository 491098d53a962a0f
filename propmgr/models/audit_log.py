from sqlalchemy import Column, String, DateTime, Integer, JSON
from sqlalchemy.sql import func
from propmgr.core.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=True, index=True)
    actor_email = Column(String, nullable=True, index=True)
    actor_role = Column(String, nullable=True)
    action = Column(String, nullable=False, index=True)  # CREATE / UPDATE / DELETE / ...
    entity_type = Column(String, nullable=False, index=True)  # Property / Rent / PropertyUser / ...
    entity_id = Column(String, nullable=False, index=True)
    property_id = Column(Integer, nullable=True, index=True)
    status = Column(String, nullable=True, index=True)  # success / failure
    description = Column(String, nullable=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
