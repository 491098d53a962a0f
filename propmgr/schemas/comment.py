from pydantic import BaseModel, field_validator
from datetime import datetime

from propmgr.schemas.user import UserBrief


class CommentCreate(BaseModel):
    context_type: str
    context_id: int
    content: str
    is_internal: bool = False

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty")
        return v


class CommentOut(BaseModel):
    id: int
    context_type: str
    context_id: int
    content: str
    is_internal: bool
    author_id: int
    author: UserBrief
    created_at: datetime

    class Config:
        from_attributes = True
