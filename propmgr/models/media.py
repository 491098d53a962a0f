from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Media(Base):
    """Metadata of a blob held by the blob store."""
    __tablename__ = "media"

    id = Column(Integer, primary_key=True, index=True)

    filename = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    size = Column(Integer, nullable=False, default=0)
    storage_key = Column(String, nullable=False, unique=True)
    url = Column(String, nullable=False)

    uploaded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    # Rent / Message / Onboarding
    related_type = Column(String, nullable=True, index=True)
    related_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
