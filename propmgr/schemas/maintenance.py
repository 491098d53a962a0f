from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional


class AssigneeIn(BaseModel):
    type: str  # User | Vendor
    id: int


class MaintenanceRequestCreate(BaseModel):
    property_id: int
    unit_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    priority: str = "medium"
    assigned_to: Optional[AssigneeIn] = None


class MaintenanceRequestUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None


class PublicLinkCreate(BaseModel):
    expires_in_days: int = Field(7, ge=1, le=365)


class PublicLinkOut(BaseModel):
    public_url: str
    expires_at: datetime


class PublicRequestUpdate(BaseModel):
    # checked by the service so a blank value is rejected like a missing one
    name: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    comment: Optional[str] = None


class PublicCommentOut(BaseModel):
    content: str
    author_name: Optional[str] = None
    created_at: datetime


class PublicRequestOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    priority: str
    status: str
    property_name: str
    unit_name: Optional[str] = None
    created_at: datetime
    comments: List[PublicCommentOut] = []


class ScheduledMaintenanceCreate(BaseModel):
    property_id: int
    unit_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    scheduled_date: datetime
    frequency: Optional[str] = None
    assigned_to: Optional[AssigneeIn] = None


class MaintenanceRequestOut(BaseModel):
    id: int
    property_id: int
    unit_id: Optional[int] = None
    created_by_id: int
    title: str
    description: Optional[str] = None
    priority: str
    status: str
    assigned_to_type: Optional[str] = None
    assigned_to_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    verified_by_id: Optional[int] = None
    public_link_enabled: bool = False
    public_link_expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ScheduledMaintenanceOut(BaseModel):
    id: int
    property_id: int
    unit_id: Optional[int] = None
    created_by_id: int
    title: str
    description: Optional[str] = None
    scheduled_date: datetime
    frequency: Optional[str] = None
    status: str
    assigned_to_type: Optional[str] = None
    assigned_to_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class VendorCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    services: Optional[str] = None


class VendorOut(VendorCreate):
    id: int
    is_active: bool

    class Config:
        from_attributes = True
