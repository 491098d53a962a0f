from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from propmgr.core.enums import UserRole


class UserCreate(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: str = UserRole.TENANT.value

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        allowed = [r.value for r in UserRole]
        if v not in allowed:
            raise ValueError(f"role must be one of: {', '.join(allowed)}")
        return v

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email is not valid")
        return v


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class UserOut(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserBrief(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str

    class Config:
        from_attributes = True
