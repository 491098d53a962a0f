from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional
from decimal import Decimal

from propmgr.core.enums import MANUAL_UNIT_STATUSES


def _check_manual_status(v):
    if v is not None and v not in MANUAL_UNIT_STATUSES:
        raise ValueError(f"manual_status must be one of: {', '.join(MANUAL_UNIT_STATUSES)}")
    return v


class UnitCreate(BaseModel):
    unit_name: str
    floor: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    rent_amount: Optional[Decimal] = None
    # status itself is derived; only maintenance flags can be set
    manual_status: Optional[str] = None

    @field_validator("unit_name")
    @classmethod
    def unit_name_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("unit_name cannot be blank")
        return v

    @field_validator("manual_status")
    @classmethod
    def validate_manual_status(cls, v):
        return _check_manual_status(v)


class UnitUpdate(BaseModel):
    unit_name: Optional[str] = None
    floor: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    rent_amount: Optional[Decimal] = None
    manual_status: Optional[str] = None  # send null to clear

    @field_validator("manual_status")
    @classmethod
    def validate_manual_status(cls, v):
        return _check_manual_status(v)


class UnitOut(BaseModel):
    id: int
    property_id: int
    unit_name: str
    floor: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    rent_amount: Optional[Decimal] = None
    status: str
    manual_status: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
