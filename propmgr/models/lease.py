from sqlalchemy import Column, String, Integer, DateTime, Date, ForeignKey, Numeric, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Lease(Base):
    __tablename__ = "leases"
    __table_args__ = (
        # at most one active lease per unit
        Index(
            "uq_leases_active_unit",
            "unit_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    monthly_rent = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="UGX")
    security_deposit = Column(Numeric(12, 2), nullable=True)
    terms = Column(String, nullable=True)

    # active / expired / terminated / pending
    status = Column(String, nullable=False, default="active", index=True)
    terminated_at = Column(DateTime(timezone=True), nullable=True)
    terminated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    termination_reason = Column(String, nullable=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    property = relationship("Property")
    unit = relationship("Unit")
    tenant = relationship("User", foreign_keys=[tenant_id])

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
