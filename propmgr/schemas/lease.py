from pydantic import BaseModel, model_validator
from datetime import date, datetime
from typing import Optional
from decimal import Decimal


class LeaseCreate(BaseModel):
    property_id: int
    unit_id: int
    tenant_id: int
    start_date: date
    end_date: date
    monthly_rent: Decimal
    currency: Optional[str] = None
    security_deposit: Optional[Decimal] = None
    terms: Optional[str] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaseCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.monthly_rent <= 0:
            raise ValueError("monthly_rent must be positive")
        return self


class LeaseTerminate(BaseModel):
    reason: Optional[str] = None


class LeaseOut(BaseModel):
    id: int
    property_id: int
    unit_id: int
    tenant_id: int
    start_date: date
    end_date: date
    monthly_rent: Decimal
    currency: str
    security_deposit: Optional[Decimal] = None
    terms: Optional[str] = None
    status: str
    terminated_at: Optional[datetime] = None
    terminated_by_id: Optional[int] = None
    termination_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
