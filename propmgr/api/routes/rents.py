from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from propmgr.api.deps import get_blob_store, get_db, to_incoming
from propmgr.core.auth import get_current_user, User
from propmgr.core.errors import ValidationError
from propmgr.core.storage import BlobStore
from propmgr.schemas.rent import (
    MediaOut,
    PaymentCreate,
    RentCreate,
    RentOut,
    RentUpdate,
)
from propmgr.services import rents as rent_service

router = APIRouter(prefix="/rents", tags=["rents"])


@router.get("", response_model=List[RentOut])
def list_rents(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    status: Optional[str] = Query(None, description="due|partially_paid|paid|overdue"),
    billing_period: Optional[str] = Query(None, description="YYYY-MM"),
    lease_id: Optional[int] = Query(None),
    property_id: Optional[int] = Query(None),
    unit_id: Optional[int] = Query(None),
    tenant_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return rent_service.list_rents(
        db, current_user, status=status, billing_period=billing_period, lease_id=lease_id,
        property_id=property_id, unit_id=unit_id, tenant_id=tenant_id, limit=limit, offset=offset,
    )


@router.post("", response_model=RentOut, status_code=201)
def create_rent(
    payload: RentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return rent_service.create_rent_record(db, current_user, payload)


@router.get("/upcoming", response_model=List[RentOut])
def upcoming_rent(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    days_ahead: int = Query(30, description="window in days, starting today"),
    property_id: Optional[int] = Query(None),
    unit_id: Optional[int] = Query(None),
):
    """
    Unpaid rents (due / partially paid) falling due between today and
    today + days_ahead, earliest first.
    """
    return rent_service.get_upcoming_rent(
        db, current_user, days_ahead=days_ahead, property_id=property_id, unit_id=unit_id,
    )


@router.get("/history", response_model=List[RentOut])
def rent_history(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    lease_id: Optional[int] = Query(None),
    tenant_id: Optional[int] = Query(None),
    property_id: Optional[int] = Query(None),
    start_period: Optional[str] = Query(None, description="YYYY-MM"),
    end_period: Optional[str] = Query(None, description="YYYY-MM"),
):
    return rent_service.get_rent_history(
        db, current_user, lease_id=lease_id, tenant_id=tenant_id, property_id=property_id,
        start_period=start_period, end_period=end_period,
    )


@router.get("/{rent_id}", response_model=RentOut)
def get_rent(
    rent_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return rent_service.get_rent(db, current_user, rent_id)


@router.patch("/{rent_id}", response_model=RentOut)
def update_rent(
    rent_id: int,
    payload: RentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return rent_service.update_rent_record(db, current_user, rent_id, payload)


@router.delete("/{rent_id}", status_code=204)
def delete_rent(
    rent_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rent_service.delete_rent_record(db, current_user, rent_id)
    return Response(status_code=204)


@router.post("/{rent_id}/payments", response_model=RentOut)
def record_payment(
    rent_id: int,
    amount: Decimal = Form(...),
    payment_date: date = Form(...),
    payment_method: Optional[str] = Form(None),
    transaction_id: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    proof: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """
    Record a payment (multipart form). Payments accumulate; the status is
    re-derived from the running total. An optional proof file replaces any
    earlier proof.
    """
    payload = PaymentCreate(
        amount=amount,
        payment_date=payment_date,
        payment_method=payment_method,
        transaction_id=transaction_id,
        notes=notes,
    )
    return rent_service.record_payment(
        db, current_user, rent_id, payload, proof=to_incoming(proof), blob_store=blob_store,
    )


@router.post("/{rent_id}/proof", response_model=RentOut)
def upload_payment_proof(
    rent_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    incoming = to_incoming(file)
    if incoming is None:
        raise ValidationError("A file is required")
    return rent_service.upload_payment_proof(db, current_user, rent_id, incoming, blob_store)


@router.get("/{rent_id}/proof", response_model=MediaOut)
def get_payment_proof(
    rent_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return rent_service.get_payment_proof(db, current_user, rent_id)
