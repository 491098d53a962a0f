from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from propmgr.api.deps import get_db
from propmgr.core.auth import get_current_user, User
from propmgr.schemas.rent import GenerationSummaryOut
from propmgr.schemas.rent_schedule import (
    GenerateRentRequest,
    RentScheduleCreate,
    RentScheduleOut,
    RentScheduleUpdate,
)
from propmgr.services import rent_schedules as schedule_service

router = APIRouter(prefix="/rent-schedules", tags=["rent-schedules"])


@router.post("", response_model=RentScheduleOut, status_code=201)
def create_rent_schedule(
    payload: RentScheduleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return schedule_service.create_rent_schedule(db, current_user, payload)


@router.patch("/{schedule_id}", response_model=RentScheduleOut)
def update_rent_schedule(
    schedule_id: int,
    payload: RentScheduleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return schedule_service.update_rent_schedule(db, current_user, schedule_id, payload)


@router.post("/{schedule_id}/deactivate", response_model=RentScheduleOut)
def deactivate_rent_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return schedule_service.deactivate_rent_schedule(db, current_user, schedule_id)


@router.post("/generate", response_model=GenerationSummaryOut)
def generate_rent(
    payload: GenerateRentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Materialize rent records from active schedules for the billing period of
    ``for_date`` (default today). Existing records are left alone unless
    ``force_generation`` is set; per-schedule failures are reported, not raised.
    """
    return schedule_service.generate_rent_records(
        db,
        current_user,
        for_date=payload.for_date,
        force_generation=payload.force_generation,
        property_id=payload.property_id,
    )
