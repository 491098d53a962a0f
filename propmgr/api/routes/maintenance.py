from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from propmgr.api.deps import get_db
from propmgr.core.auth import get_current_user, User
from propmgr.schemas.maintenance import (
    AssigneeIn,
    MaintenanceRequestCreate,
    MaintenanceRequestOut,
    MaintenanceRequestUpdate,
    PublicLinkCreate,
    PublicLinkOut,
    PublicRequestOut,
    PublicRequestUpdate,
    ScheduledMaintenanceCreate,
    ScheduledMaintenanceOut,
    VendorCreate,
    VendorOut,
)
from propmgr.services import maintenance as maintenance_service

router = APIRouter(tags=["maintenance"])


@router.get("/requests", response_model=List[MaintenanceRequestOut])
def list_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    property_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
):
    return maintenance_service.list_requests(db, current_user, property_id=property_id, status=status)


@router.post("/requests", response_model=MaintenanceRequestOut, status_code=201)
def create_request(
    payload: MaintenanceRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.create_request(db, current_user, payload)


@router.post("/requests/{request_id}/assign", response_model=MaintenanceRequestOut)
def assign_request(
    request_id: int,
    payload: AssigneeIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.assign_request(db, current_user, request_id, payload)


@router.get("/requests/{request_id}", response_model=MaintenanceRequestOut)
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.get_request(db, current_user, request_id)


@router.patch("/requests/{request_id}", response_model=MaintenanceRequestOut)
def update_request(
    request_id: int,
    payload: MaintenanceRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.update_request(db, current_user, request_id, payload)


@router.post("/requests/{request_id}/verify", response_model=MaintenanceRequestOut)
def verify_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.verify_request(db, current_user, request_id)


@router.post("/requests/{request_id}/reopen", response_model=MaintenanceRequestOut)
def reopen_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.reopen_request(db, current_user, request_id)


@router.post("/requests/{request_id}/archive", response_model=MaintenanceRequestOut)
def archive_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.archive_request(db, current_user, request_id)


@router.post("/requests/{request_id}/public-link", response_model=PublicLinkOut)
def enable_public_link(
    request_id: int,
    payload: Optional[PublicLinkCreate] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    payload = payload or PublicLinkCreate()
    request = maintenance_service.enable_public_link(db, current_user, request_id, payload.expires_in_days)
    return PublicLinkOut(
        public_url=maintenance_service.public_request_url(request.public_token),
        expires_at=request.public_link_expires_at,
    )


@router.delete("/requests/{request_id}/public-link", response_model=MaintenanceRequestOut)
def disable_public_link(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.disable_public_link(db, current_user, request_id)


# no login: the token in the path is the credential
@router.get("/public/requests/{token}", response_model=PublicRequestOut)
def get_public_request(token: str, db: Session = Depends(get_db)):
    return maintenance_service.get_public_request(db, token)


@router.post("/public/requests/{token}", response_model=PublicRequestOut)
def public_request_update(token: str, payload: PublicRequestUpdate, db: Session = Depends(get_db)):
    maintenance_service.public_request_update(db, token, payload)
    return maintenance_service.get_public_request(db, token)


@router.get("/scheduled-maintenance", response_model=List[ScheduledMaintenanceOut])
def list_scheduled_maintenance(
    property_id: int = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.list_scheduled_maintenance(db, current_user, property_id)


@router.post("/scheduled-maintenance", response_model=ScheduledMaintenanceOut, status_code=201)
def schedule_maintenance(
    payload: ScheduledMaintenanceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.schedule_maintenance(db, current_user, payload)


@router.get("/vendors", response_model=List[VendorOut])
def list_vendors(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.list_vendors(db, include_inactive)


@router.post("/vendors", response_model=VendorOut, status_code=201)
def create_vendor(
    payload: VendorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return maintenance_service.create_vendor(db, current_user, payload)
