from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import List, Optional

from propmgr.core.enums import AssociationRole
from propmgr.schemas.user import UserBrief


class AssignUserRequest(BaseModel):
    user_id: int
    roles: List[str]
    unit_id: Optional[int] = None

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, v):
        allowed = [r.value for r in AssociationRole]
        if not v:
            raise ValueError("at least one role is required")
        bad = [r for r in v if r not in allowed]
        if bad:
            raise ValueError(f"roles must be drawn from: {', '.join(allowed)}")
        return list(dict.fromkeys(v))


class RemoveUserRequest(AssignUserRequest):
    pass


class AssociationOut(BaseModel):
    id: int
    user_id: int
    property_id: int
    unit_id: Optional[int] = None
    roles: List[str]
    is_active: bool
    start_date: datetime
    end_date: Optional[datetime] = None
    invited_by_id: Optional[int] = None
    user: Optional[UserBrief] = None

    class Config:
        from_attributes = True
