from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from propmgr.api.deps import get_blob_store, get_db, to_incoming
from propmgr.core.auth import get_current_user, User
from propmgr.core.enums import OnboardingCategory, OnboardingVisibility
from propmgr.core.storage import BlobStore
from propmgr.schemas.onboarding import OnboardingCreate, OnboardingOut
from propmgr.services import onboarding as onboarding_service

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@router.post("", response_model=OnboardingOut, status_code=201)
def create_onboarding(
    title: str = Form(...),
    description: Optional[str] = Form(None),
    category: str = Form(OnboardingCategory.DOCUMENT.value),
    visibility: str = Form(OnboardingVisibility.PROPERTY_TENANTS.value),
    property_id: Optional[int] = Form(None),
    unit_id: Optional[int] = Form(None),
    tenant_id: Optional[int] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    payload = OnboardingCreate(
        title=title,
        description=description,
        category=category,
        visibility=visibility,
        property_id=property_id,
        unit_id=unit_id,
        tenant_id=tenant_id,
    )
    return onboarding_service.create_onboarding(db, current_user, payload, to_incoming(file), blob_store)


@router.get("", response_model=List[OnboardingOut])
def list_onboarding(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    property_id: Optional[int] = Query(None),
    unit_id: Optional[int] = Query(None),
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return onboarding_service.list_onboarding(
        db, current_user, property_id=property_id, unit_id=unit_id, category=category,
        limit=limit, offset=offset,
    )


@router.get("/{doc_id}", response_model=OnboardingOut)
def get_onboarding(
    doc_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return onboarding_service.get_onboarding(db, current_user, doc_id)


@router.post("/{doc_id}/complete", response_model=OnboardingOut)
def complete_onboarding(
    doc_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return onboarding_service.mark_onboarding_completed(db, current_user, doc_id)


@router.delete("/{doc_id}", status_code=204)
def delete_onboarding(
    doc_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    onboarding_service.delete_onboarding(db, current_user, doc_id)
    return Response(status_code=204)
