from sqlalchemy import Column, Integer, ForeignKey, Date, Numeric, String, DateTime, func
from sqlalchemy.orm import relationship

from propmgr.core.database import Base


class RentPayment(Base):
    """One entry of a rent's payment history."""
    __tablename__ = "rent_payments"

    id = Column(Integer, primary_key=True, index=True)

    rent_id = Column(Integer, ForeignKey("rents.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_method = Column(String, nullable=True)  # cash / bank_transfer / mobile_money / ...
    transaction_id = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    recorded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    rent = relationship("Rent", back_populates="payments")
