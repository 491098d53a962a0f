from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from propmgr.api.deps import get_blob_store, get_db, to_incoming
from propmgr.core.auth import get_current_user, User
from propmgr.core.enums import MessageCategory
from propmgr.core.storage import BlobStore
from propmgr.schemas.common import CountOut
from propmgr.schemas.message import MessageCreate, MessageOut, MessagePage
from propmgr.services import messages as message_service

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=MessageOut, status_code=201)
def send_message(
    recipient_id: int = Form(...),
    content: str = Form(...),
    property_id: Optional[int] = Form(None),
    unit_id: Optional[int] = Form(None),
    category: str = Form(MessageCategory.GENERAL.value),
    parent_message_id: Optional[int] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Send a message (multipart form, optional file attachments)."""
    payload = MessageCreate(
        recipient_id=recipient_id,
        content=content,
        property_id=property_id,
        unit_id=unit_id,
        category=category,
        parent_message_id=parent_message_id,
    )
    files = [f for f in (to_incoming(a) for a in attachments or []) if f is not None]
    return message_service.send_message(db, current_user, payload, files, blob_store)


@router.get("", response_model=MessagePage)
def list_messages(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    type: str = Query("inbox", description="inbox|sent"),
    property_id: Optional[int] = Query(None),
    unit_id: Optional[int] = Query(None),
    other_user_id: Optional[int] = Query(None, description="conversation with this user"),
    category: Optional[str] = Query(None),
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return message_service.list_messages(
        db, current_user, type=type, property_id=property_id, unit_id=unit_id,
        other_user_id=other_user_id, category=category, unread_only=unread_only,
        page=page, limit=limit,
    )


@router.get("/unread-count", response_model=CountOut)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"count": message_service.get_unread_count(db, current_user)}


@router.post("/conversations/{other_user_id}/read", response_model=CountOut)
def mark_conversation_read(
    other_user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"count": message_service.mark_conversation_as_read(db, current_user, other_user_id)}


@router.get("/{message_id}", response_model=MessageOut)
def get_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return message_service.get_message(db, current_user, message_id)


@router.post("/{message_id}/read", response_model=MessageOut)
def mark_message_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return message_service.mark_message_as_read(db, current_user, message_id)


@router.delete("/{message_id}", status_code=204)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message_service.delete_message(db, current_user, message_id)
    return Response(status_code=204)
