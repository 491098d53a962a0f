import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.database import transaction, transactional
from propmgr.core.enums import AuditAction, MessageCategory, UserRole
from propmgr.core.errors import AuthorizationError, NotFoundError, ValidationError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.core.storage import BlobStore
from propmgr.models.message import Message
from propmgr.models.unit import Unit
from propmgr.models.user import User
from propmgr.schemas.message import MessageCreate
from propmgr.services.authorization import Action, Resource, authorize, can_view_property
from propmgr.services.media import IncomingFile, store_file
from propmgr.services.units import get_property_or_404

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("inbox", "sent")


def _get_message_or_404(db: Session, message_id: int) -> Message:
    message = db.query(Message).filter(Message.id == message_id, Message.is_active.is_(True)).first()
    if not message:
        raise NotFoundError("Message not found")
    return message


@transactional
def send_message(
    db: Session,
    principal: User,
    payload: MessageCreate,
    attachments: Optional[List[IncomingFile]] = None,
    blob_store: Optional[BlobStore] = None,
) -> Message:
    recipient = db.query(User).filter(User.id == payload.recipient_id, User.is_active.is_(True)).first()
    if not recipient:
        raise NotFoundError("Recipient not found")

    if payload.parent_message_id is not None:
        parent = _get_message_or_404(db, payload.parent_message_id)
        if principal.id not in (parent.sender_id, parent.recipient_id):
            raise AuthorizationError("Cannot reply to a message you are not part of")

    if payload.property_id is not None:
        get_property_or_404(db, payload.property_id)
    if payload.unit_id is not None:
        unit = db.query(Unit).filter(Unit.id == payload.unit_id).first()
        if not unit:
            raise NotFoundError("Unit not found")
        if payload.property_id is not None and unit.property_id != payload.property_id:
            raise ValidationError("Unit does not belong to the given property")

    authorize(
        db,
        principal,
        Action.SEND_MESSAGE,
        Resource.for_user(recipient.id, payload.property_id, payload.unit_id),
        message="You are not authorized to message this user",
    )

    message = Message(
        sender_id=principal.id,
        recipient_id=recipient.id,
        property_id=payload.property_id,
        unit_id=payload.unit_id,
        content=payload.content,
        category=payload.category or MessageCategory.GENERAL.value,
        parent_message_id=payload.parent_message_id,
    )
    db.add(message)
    db.flush()

    for attachment in attachments or []:
        if blob_store is None:
            raise ValidationError("File uploads are not available")
        message.attachments.append(store_file(
            db,
            blob_store,
            attachment,
            uploaded_by=principal,
            folder=f"messages/{message.id}",
            related_type="Message",
            related_id=message.id,
        ))
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Message",
        entity_id=message.id,
        property_id=message.property_id,
        description=f"Sent message to user {recipient.id}",
    )
    send_notification(
        db,
        recipient_id=recipient.id,
        sender_id=principal.id,
        type="message",
        message=f"New message from {principal.full_name}",
        link=frontend_link(f"messages?otherUserId={principal.id}"),
        related_type="Message",
        related_id=message.id,
    )
    logger.info("Message %s sent from user %s to user %s", message.id, principal.id, recipient.id)
    return message


def _mark_read(q) -> int:
    """Flip unread rows to read; returns how many actually changed."""
    return q.filter(Message.is_read.is_(False)).update(
        {Message.is_read: True, Message.read_at: datetime.now(timezone.utc)},
        synchronize_session=False,
    )


def list_messages(
    db: Session,
    principal: User,
    type: str = "inbox",
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    other_user_id: Optional[int] = None,
    category: Optional[str] = None,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    Paginated inbox or sent view. With ``other_user_id`` it becomes the
    conversation with that user (both directions) and marks incoming messages read.
    """
    if type not in MESSAGE_TYPES:
        raise ValidationError("type must be 'inbox' or 'sent'")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    if property_id is not None and principal.role != UserRole.ADMIN.value:
        if not can_view_property(db, principal, property_id):
            raise AuthorizationError("Not authorized to view messages for this property")

    q = db.query(Message).filter(Message.is_active.is_(True))
    if other_user_id is not None:
        q = q.filter(or_(
            and_(Message.sender_id == principal.id, Message.recipient_id == other_user_id),
            and_(Message.sender_id == other_user_id, Message.recipient_id == principal.id),
        ))
    elif type == "inbox":
        q = q.filter(Message.recipient_id == principal.id)
    else:
        q = q.filter(Message.sender_id == principal.id)

    if property_id is not None:
        q = q.filter(Message.property_id == property_id)
    if unit_id is not None:
        q = q.filter(Message.unit_id == unit_id)
    if category:
        q = q.filter(Message.category == category)
    if unread_only:
        q = q.filter(Message.is_read.is_(False), Message.recipient_id == principal.id)

    total = q.count()
    items = q.order_by(Message.created_at.desc(), Message.id.desc()).offset((page - 1) * limit).limit(limit).all()

    if other_user_id is not None:
        with transaction(db):
            changed = _mark_read(db.query(Message).filter(
                Message.sender_id == other_user_id,
                Message.recipient_id == principal.id,
                Message.is_active.is_(True),
            ))
        if changed:
            for m in items:
                db.refresh(m)

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def get_message(db: Session, principal: User, message_id: int) -> Message:
    message = _get_message_or_404(db, message_id)
    if principal.id not in (message.sender_id, message.recipient_id) and principal.role != UserRole.ADMIN.value:
        raise AuthorizationError("Not authorized to view this message")
    if message.recipient_id == principal.id and not message.is_read:
        with transaction(db):
            message.is_read = True
            message.read_at = datetime.now(timezone.utc)
    return message


@transactional
def mark_message_as_read(db: Session, principal: User, message_id: int) -> Message:
    message = _get_message_or_404(db, message_id)
    if message.recipient_id != principal.id:
        raise AuthorizationError("Only the recipient can mark a message as read")
    if not message.is_read:
        message.is_read = True
        message.read_at = datetime.now(timezone.utc)
        db.flush()
    return message


@transactional
def mark_conversation_as_read(db: Session, principal: User, other_user_id: int) -> int:
    """Mark every message from ``other_user_id`` to the principal read; returns rows that flipped."""
    changed = _mark_read(db.query(Message).filter(
        Message.sender_id == other_user_id,
        Message.recipient_id == principal.id,
        Message.is_active.is_(True),
    ))
    logger.info("User %s marked %s messages from user %s as read", principal.id, changed, other_user_id)
    return changed


def get_unread_count(db: Session, principal: User) -> int:
    return db.query(Message).filter(
        Message.recipient_id == principal.id,
        Message.is_read.is_(False),
        Message.is_active.is_(True),
    ).count()


@transactional
def delete_message(db: Session, principal: User, message_id: int) -> None:
    message = _get_message_or_404(db, message_id)
    if principal.id not in (message.sender_id, message.recipient_id) and principal.role != UserRole.ADMIN.value:
        raise AuthorizationError("Not authorized to delete this message")
    message.is_active = False
    message.deleted_at = datetime.now(timezone.utc)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.DELETE.value,
        entity_type="Message",
        entity_id=message.id,
        property_id=message.property_id,
    )
