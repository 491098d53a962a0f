from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Onboarding(Base):
    __tablename__ = "onboardings"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    # document / checklist / welcome / policy / guide / other
    category = Column(String, nullable=False, default="document")
    # all_tenants / property_tenants / unit_tenants / specific_tenant
    visibility = Column(String, nullable=False, default="property_tenants")

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)
    tenant_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    media_id = Column(Integer, ForeignKey("media.id"), nullable=True)

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    media = relationship("Media", foreign_keys=[media_id])

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
