from sqlalchemy import Column, String, Integer, DateTime, Date, ForeignKey, Numeric, Boolean, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Rent(Base):
    __tablename__ = "rents"
    __table_args__ = (
        # one active bill per lease and billing period
        Index(
            "uq_rents_active_lease_period",
            "lease_id",
            "billing_period",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_rents_due_date_status", "due_date", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)

    lease_id = Column(Integer, ForeignKey("leases.id"), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)

    billing_period = Column(String(7), nullable=False, index=True)  # YYYY-MM
    amount_due = Column(Numeric(12, 2), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String, nullable=False, default="UGX")
    due_date = Column(Date, nullable=False)
    payment_date = Column(Date, nullable=True)  # date of the latest payment

    # due / partially_paid / paid (overdue is computed on read)
    status = Column(String, nullable=False, default="due", index=True)

    payment_proof_id = Column(Integer, ForeignKey("media.id"), nullable=True)
    notes = Column(String, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    lease = relationship("Lease")
    tenant = relationship("User", foreign_keys=[tenant_id])
    payment_proof = relationship("Media", foreign_keys=[payment_proof_id])
    payments = relationship(
        "RentPayment",
        back_populates="rent",
        order_by="RentPayment.id",
        cascade="all, delete-orphan",
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
