from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from propmgr.schemas.unit import UnitOut  # so PropertyDetailOut can include units
from propmgr.schemas.user import UserBrief


class PropertyBase(BaseModel):
    name: str
    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    property_type: str = "residential"
    description: Optional[str] = None
    main_contact_user_id: Optional[int] = None


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(BaseModel):
    # created_by is immutable and deliberately absent
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    property_type: Optional[str] = None
    description: Optional[str] = None
    main_contact_user_id: Optional[int] = None
    is_active: Optional[bool] = None


class PropertyOut(PropertyBase):
    id: int
    created_by_id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TenantOut(UserBrief):
    unit_id: Optional[int] = None
    unit_name: Optional[str] = None


class PropertyDetailOut(PropertyOut):
    units: List[UnitOut] = []
    landlords: List[UserBrief] = []
    property_managers: List[UserBrief] = []
    tenants: List[TenantOut] = []
