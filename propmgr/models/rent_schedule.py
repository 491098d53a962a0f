from sqlalchemy import Column, String, Integer, DateTime, Date, ForeignKey, Numeric, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class RentSchedule(Base):
    __tablename__ = "rent_schedules"

    id = Column(Integer, primary_key=True, index=True)

    lease_id = Column(Integer, ForeignKey("leases.id"), nullable=False, index=True)
    # denormalised from the lease for property-scoped queries and cascades
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="UGX")
    due_date_day = Column(Integer, nullable=False, default=1)  # 1..31, clamped to month length
    # monthly / quarterly / semi_annual / annual
    billing_frequency = Column(String, nullable=False, default="monthly")

    effective_start = Column(Date, nullable=False)
    effective_end = Column(Date, nullable=True)  # open-ended when null

    auto_generate = Column(Boolean, nullable=False, default=True)
    last_generated_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    lease = relationship("Lease")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
