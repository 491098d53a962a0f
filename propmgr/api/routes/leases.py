from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from propmgr.api.deps import get_db
from propmgr.core.auth import get_current_user, User
from propmgr.schemas.lease import LeaseCreate, LeaseOut, LeaseTerminate
from propmgr.schemas.rent_schedule import RentScheduleOut
from propmgr.services import leases as lease_service
from propmgr.services import rent_schedules as schedule_service

router = APIRouter(prefix="/leases", tags=["leases"])


@router.get("", response_model=List[LeaseOut])
def list_leases(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    property_id: Optional[int] = Query(None),
    unit_id: Optional[int] = Query(None),
    tenant_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="active|expired|terminated|pending"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return lease_service.list_leases(
        db, current_user, property_id=property_id, unit_id=unit_id, tenant_id=tenant_id,
        status=status, limit=limit, offset=offset,
    )


@router.post("", response_model=LeaseOut, status_code=201)
def create_lease(
    payload: LeaseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return lease_service.create_lease(db, current_user, payload)


@router.get("/{lease_id}", response_model=LeaseOut)
def get_lease(
    lease_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return lease_service.get_lease(db, current_user, lease_id)


@router.post("/{lease_id}/terminate", response_model=LeaseOut)
def terminate_lease(
    lease_id: int,
    payload: LeaseTerminate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return lease_service.terminate_lease(db, current_user, lease_id, payload.reason)


@router.get("/{lease_id}/rent-schedules", response_model=List[RentScheduleOut])
def list_rent_schedules(
    lease_id: int,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return schedule_service.list_rent_schedules(db, current_user, lease_id, include_inactive)
