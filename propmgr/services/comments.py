import logging
from typing import List

from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.database import transactional
from propmgr.core.enums import AuditAction, UserRole
from propmgr.core.errors import AuthorizationError
from propmgr.core.references import ContextRef, resolve_property_id
from propmgr.models.comment import Comment
from propmgr.models.user import User
from propmgr.schemas.comment import CommentCreate
from propmgr.services.authorization import Action, Resource, authorize, can_manage_property

logger = logging.getLogger(__name__)


def _sees_internal(db: Session, principal: User, property_id: int) -> bool:
    return principal.role == UserRole.ADMIN.value or can_manage_property(db, principal, property_id)


@transactional
def add_comment(db: Session, principal: User, payload: CommentCreate) -> Comment:
    ref = ContextRef.parse(payload.context_type, payload.context_id)
    property_id = resolve_property_id(db, ref)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))
    if payload.is_internal and not _sees_internal(db, principal, property_id):
        raise AuthorizationError("Only property managers can post internal comments")

    comment = Comment(
        context_type=ref.type.value,
        context_id=ref.id,
        content=payload.content,
        is_internal=payload.is_internal,
        author_id=principal.id,
    )
    db.add(comment)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Comment",
        entity_id=comment.id,
        property_id=property_id,
        description=f"Comment on {ref.type.value} {ref.id}",
    )
    return comment


def list_comments(db: Session, principal: User, context_type: str, context_id: int) -> List[Comment]:
    ref = ContextRef.parse(context_type, context_id)
    property_id = resolve_property_id(db, ref)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))

    q = db.query(Comment).filter(Comment.context_type == ref.type.value, Comment.context_id == ref.id)
    if not _sees_internal(db, principal, property_id):
        q = q.filter(Comment.is_internal.is_(False))
    return q.order_by(Comment.created_at, Comment.id).all()
