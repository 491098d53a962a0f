from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional
from decimal import Decimal

from propmgr.core.enums import BillingFrequency


def _check_frequency(v):
    allowed = [f.value for f in BillingFrequency]
    if v is not None and v not in allowed:
        raise ValueError(f"billing_frequency must be one of: {', '.join(allowed)}")
    return v


class RentScheduleCreate(BaseModel):
    lease_id: int
    amount: Decimal = Field(gt=0)
    currency: Optional[str] = None
    due_date_day: int = Field(1, ge=1, le=31)
    billing_frequency: str = BillingFrequency.MONTHLY.value
    effective_start: date
    effective_end: Optional[date] = None
    auto_generate: bool = True

    @field_validator("billing_frequency")
    @classmethod
    def validate_frequency(cls, v):
        return _check_frequency(v)

    @model_validator(mode="after")
    def validate_range(self) -> "RentScheduleCreate":
        if self.effective_end is not None and self.effective_end < self.effective_start:
            raise ValueError("effective_end cannot be before effective_start")
        return self


class RentScheduleUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = None
    due_date_day: Optional[int] = Field(None, ge=1, le=31)
    billing_frequency: Optional[str] = None
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None  # send null to make open-ended
    auto_generate: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("billing_frequency")
    @classmethod
    def validate_frequency(cls, v):
        return _check_frequency(v)


class RentScheduleOut(BaseModel):
    id: int
    lease_id: int
    property_id: int
    amount: Decimal
    currency: str
    due_date_day: int
    billing_frequency: str
    effective_start: date
    effective_end: Optional[date] = None
    auto_generate: bool
    last_generated_date: Optional[datetime] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class GenerateRentRequest(BaseModel):
    for_date: Optional[date] = None  # defaults to today
    force_generation: bool = False
    property_id: Optional[int] = None
