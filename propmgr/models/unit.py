from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("property_id", "unit_name", name="uq_units_property_unit_name"),
    )

    id = Column(Integer, primary_key=True, index=True)

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    property = relationship("Property", back_populates="units")

    unit_name = Column(String, nullable=False)
    floor = Column(Integer, nullable=True)
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Integer, nullable=True)
    rent_amount = Column(Numeric(12, 2), nullable=True)  # asking rent

    # vacant / occupied / under_maintenance / unavailable; derived, see services.units.sync_unit_status
    status = Column(String, nullable=False, default="vacant", index=True)
    # under_maintenance / unavailable pinned by a manager, or null
    manual_status = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)
