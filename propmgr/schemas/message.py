from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import List, Optional

from propmgr.core.enums import MessageCategory
from propmgr.schemas.rent import MediaOut
from propmgr.schemas.user import UserBrief


class MessageCreate(BaseModel):
    recipient_id: int
    content: str
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    category: str = MessageCategory.GENERAL.value
    parent_message_id: Optional[int] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty")
        return v

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        allowed = [c.value for c in MessageCategory]
        if v not in allowed:
            raise ValueError(f"category must be one of: {', '.join(allowed)}")
        return v


class MessageOut(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    content: str
    category: str
    parent_message_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    attachments: List[MediaOut] = []
    sender: Optional[UserBrief] = None
    recipient: Optional[UserBrief] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MessagePage(BaseModel):
    items: List[MessageOut]
    total: int
    page: int
    limit: int
    pages: int
