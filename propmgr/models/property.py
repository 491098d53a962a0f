from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    address = Column(String, nullable=False)

    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip = Column(String, nullable=True)
    country = Column(String, nullable=True)

    # residential / commercial / mixed_use / ...
    property_type = Column(String, nullable=False, default="residential", index=True)
    description = Column(String, nullable=True)

    # immutable after creation
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    main_contact_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    units = relationship("Unit", back_populates="property", order_by="Unit.unit_name")
    created_by = relationship("User", foreign_keys=[created_by_id])
    main_contact_user = relationship("User", foreign_keys=[main_contact_user_id])

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
