from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from propmgr.api.deps import get_db
from propmgr.core.auth import get_current_user, User
from propmgr.schemas.comment import CommentCreate, CommentOut
from propmgr.services import comments as comment_service

router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("", response_model=List[CommentOut])
def list_comments(
    context_type: str = Query(..., description="Property|Unit|Lease|Request|ScheduledMaintenance"),
    context_id: int = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return comment_service.list_comments(db, current_user, context_type, context_id)


@router.post("", response_model=CommentOut, status_code=201)
def add_comment(
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return comment_service.add_comment(db, current_user, payload)
