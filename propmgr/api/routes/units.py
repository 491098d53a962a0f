from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from propmgr.api.deps import get_blob_store, get_db
from propmgr.core.auth import get_current_user, User
from propmgr.core.storage import BlobStore
from propmgr.schemas.unit import UnitUpdate, UnitOut
from propmgr.services import units as unit_service

router = APIRouter(prefix="/units", tags=["units"])


@router.get("/{unit_id}", response_model=UnitOut)
def get_unit(
    unit_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return unit_service.get_unit(db, current_user, unit_id)


@router.patch("/{unit_id}", response_model=UnitOut)
def update_unit(
    unit_id: int,
    payload: UnitUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Update a unit. ``status`` is never written directly; set or clear
    ``manual_status`` to flag maintenance and the status is re-derived.
    """
    return unit_service.update_unit(db, current_user, unit_id, payload)


@router.delete("/{unit_id}", status_code=204)
def delete_unit(
    unit_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    unit_service.delete_unit(db, current_user, unit_id, blob_store)
    return Response(status_code=204)
