import re

from pydantic import BaseModel, field_validator, model_validator
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from decimal import Decimal

from propmgr.core.enums import RentStatus

BILLING_PERIOD_RE = re.compile(r"^\d{4}-\d{2}$")


def is_overdue(status: str, due_date: Optional[date], today: Optional[date] = None) -> bool:
    """
    Overdue = due date has passed AND the rent is not fully paid.
    Never persisted; computed on every read.
    """
    if due_date is None:
        return False
    if status not in (RentStatus.DUE.value, RentStatus.PARTIALLY_PAID.value):
        return False
    today = today or datetime.now(timezone.utc).date()
    return today > due_date


def check_billing_period(v: str) -> str:
    if not BILLING_PERIOD_RE.match(v or "") or not 1 <= int(v[5:7]) <= 12:
        raise ValueError("billing_period must be in YYYY-MM format")
    return v


class RentCreate(BaseModel):
    lease_id: int
    amount_due: Decimal
    due_date: date
    billing_period: str
    currency: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("billing_period")
    @classmethod
    def validate_billing_period(cls, v):
        return check_billing_period(v)

    @field_validator("amount_due")
    @classmethod
    def amount_due_positive(cls, v):
        if v <= 0:
            raise ValueError("amount_due must be positive")
        return v


class RentUpdate(BaseModel):
    amount_due: Optional[Decimal] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("amount_due")
    @classmethod
    def amount_due_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("amount_due must be positive")
        return v


class PaymentCreate(BaseModel):
    # positivity is enforced by the rent engine so every entry point gets the same error
    amount: Decimal
    payment_date: date
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class RentPaymentOut(BaseModel):
    id: int
    amount: Decimal
    payment_date: date
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    recorded_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MediaOut(BaseModel):
    id: int
    filename: str
    content_type: Optional[str] = None
    size: int
    url: str
    uploaded_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RentOut(BaseModel):
    id: int
    lease_id: int
    tenant_id: int
    property_id: int
    unit_id: int
    billing_period: str
    amount_due: Decimal
    amount_paid: Decimal
    currency: str
    due_date: date
    payment_date: Optional[date] = None
    status: str
    is_overdue: bool = False  # Computed: due_date < today AND status in (due, partially_paid)
    notes: Optional[str] = None
    payment_proof: Optional[MediaOut] = None
    payments: List[RentPaymentOut] = []
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def set_computed_overdue(self) -> "RentOut":
        self.is_overdue = is_overdue(self.status, self.due_date)
        return self

    class Config:
        from_attributes = True


class GenerationSummaryOut(BaseModel):
    for_date: date
    billing_period: str
    generated: int
    skipped: int
    failed: int
    details: List[Dict[str, Any]] = []
