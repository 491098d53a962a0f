from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session
from typing import List, Optional

from propmgr.api.deps import get_blob_store, get_db
from propmgr.core.auth import get_current_user, User
from propmgr.core.storage import BlobStore
from propmgr.schemas.association import AssignUserRequest, AssociationOut, RemoveUserRequest
from propmgr.schemas.property import (
    PropertyCreate,
    PropertyUpdate,
    PropertyOut,
    PropertyDetailOut,
)
from propmgr.schemas.unit import UnitCreate, UnitOut
from propmgr.services import properties as property_service
from propmgr.services import units as unit_service

router = APIRouter(prefix="/properties", tags=["properties"])


@router.get("", response_model=List[PropertyOut])
def list_properties(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    search: Optional[str] = Query(None, description="search by name/address/city/state/zip"),
    is_active: Optional[bool] = Query(None),
    property_type: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """
    Properties the caller can see: everything for admins, otherwise the
    properties they hold an active association on.
    """
    return property_service.list_properties(
        db, current_user, search=search, is_active=is_active, property_type=property_type,
        limit=limit, offset=offset,
    )


@router.post("", response_model=PropertyOut, status_code=201)
def create_property(
    payload: PropertyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a property. The creator is linked to it in the same transaction
    (landlords as landlord, everyone else as property manager).
    """
    return property_service.create_property(db, current_user, payload)


@router.get("/{property_id}", response_model=PropertyDetailOut)
def get_property(
    property_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return property_service.get_property(db, current_user, property_id)


@router.patch("/{property_id}", response_model=PropertyOut)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return property_service.update_property(db, current_user, property_id, payload)


@router.post("/{property_id}/deactivate", response_model=PropertyOut)
def deactivate_property(
    property_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return property_service.deactivate_property(db, current_user, property_id)


@router.delete("/{property_id}", status_code=204)
def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """
    Permanently delete a property and everything hanging off it.
    Refused while the property still has an active lease.
    """
    property_service.delete_property(db, current_user, property_id, blob_store)
    return Response(status_code=204)


# ---- units ----

@router.get("/{property_id}/units", response_model=List[UnitOut])
def list_units(
    property_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return unit_service.list_units(db, current_user, property_id)


@router.post("/{property_id}/units", response_model=UnitOut, status_code=201)
def create_unit(
    property_id: int,
    payload: UnitCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return unit_service.create_unit(db, current_user, property_id, payload)


# ---- users ----

@router.get("/{property_id}/users", response_model=List[AssociationOut])
def list_property_users(
    property_id: int,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return property_service.list_property_users(db, current_user, property_id, include_inactive)


@router.post("/{property_id}/users", response_model=AssociationOut, status_code=201)
def assign_user(
    property_id: int,
    payload: AssignUserRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return property_service.assign_user_to_property(
        db, current_user, property_id, payload.user_id, payload.roles, payload.unit_id,
    )


@router.post("/{property_id}/users/remove", response_model=AssociationOut)
def remove_user(
    property_id: int,
    payload: RemoveUserRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return property_service.remove_user_from_property(
        db, current_user, property_id, payload.user_id, payload.roles, payload.unit_id,
    )
