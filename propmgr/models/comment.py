from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_context", "context_type", "context_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # tagged reference; see propmgr.core.references
    context_type = Column(String, nullable=False)
    context_id = Column(Integer, nullable=False)

    content = Column(String, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_internal = Column(Boolean, nullable=False, default=False)

    author = relationship("User")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
