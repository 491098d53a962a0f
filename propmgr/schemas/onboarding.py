from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from propmgr.core.enums import OnboardingCategory, OnboardingVisibility
from propmgr.schemas.rent import MediaOut


class OnboardingCreate(BaseModel):
    title: str
    description: Optional[str] = None
    category: str = OnboardingCategory.DOCUMENT.value
    visibility: str = OnboardingVisibility.PROPERTY_TENANTS.value
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    tenant_id: Optional[int] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        allowed = [c.value for c in OnboardingCategory]
        if v not in allowed:
            raise ValueError(f"category must be one of: {', '.join(allowed)}")
        return v

    @field_validator("visibility")
    @classmethod
    def validate_visibility(cls, v):
        allowed = [c.value for c in OnboardingVisibility]
        if v not in allowed:
            raise ValueError(f"visibility must be one of: {', '.join(allowed)}")
        return v


class OnboardingOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    category: str
    visibility: str
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    tenant_id: Optional[int] = None
    media: Optional[MediaOut] = None
    is_completed: bool
    completed_by_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_by_id: int
    created_at: datetime

    class Config:
        from_attributes = True
