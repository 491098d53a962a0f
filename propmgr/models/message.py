from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Table, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from propmgr.core.database import Base


message_attachments = Table(
    "message_attachments",
    Base.metadata,
    Column("message_id", Integer, ForeignKey("messages.id"), primary_key=True),
    Column("media_id", Integer, ForeignKey("media.id"), primary_key=True),
)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_recipient_read", "recipient_id", "is_read"),
        Index("ix_messages_conversation", "sender_id", "recipient_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)

    content = Column(String, nullable=False)
    # general / maintenance / billing / onboarding / urgent
    category = Column(String, nullable=False, default="general", index=True)
    parent_message_id = Column(Integer, ForeignKey("messages.id"), nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    attachments = relationship("Media", secondary=message_attachments, lazy="selectin")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
