from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    services = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class MaintenanceRequest(Base):
    __tablename__ = "requests"
    __table_args__ = (
        Index("ix_requests_assignee", "assigned_to_type", "assigned_to_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    priority = Column(String, nullable=False, default="medium")  # low / medium / high / urgent
    status = Column(String, nullable=False, default="new", index=True)

    # tagged reference: User / Vendor
    assigned_to_type = Column(String, nullable=True)
    assigned_to_id = Column(Integer, nullable=True)

    resolved_at = Column(DateTime(timezone=True), nullable=True)
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # shareable link for outside workers without an account
    public_token = Column(String, nullable=True, unique=True, index=True)
    public_link_enabled = Column(Boolean, nullable=False, default=False)
    public_link_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ScheduledMaintenance(Base):
    __tablename__ = "scheduled_maintenance"
    __table_args__ = (
        Index("ix_scheduled_maintenance_assignee", "assigned_to_type", "assigned_to_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=False)
    frequency = Column(String, nullable=True)  # once / weekly / monthly / ...
    status = Column(String, nullable=False, default="scheduled", index=True)

    assigned_to_type = Column(String, nullable=True)
    assigned_to_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
