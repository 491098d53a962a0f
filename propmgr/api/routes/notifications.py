from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from propmgr.api.deps import get_db
from propmgr.core.auth import get_current_user, User
from propmgr.schemas.common import CountOut
from propmgr.schemas.notification import NotificationOut
from propmgr.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
def list_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return notification_service.list_notifications(db, current_user, unread_only, limit, offset)


@router.post("/read-all", response_model=CountOut)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"count": notification_service.mark_all_read(db, current_user)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.mark_notification_read(db, current_user, notification_id)
