import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.database import transactional
from propmgr.core.enums import AuditAction, UserRole
from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError
from propmgr.models.user import User
from propmgr.schemas.user import UserCreate, UserUpdate
from propmgr.services.authorization import Action, Resource, authorize

logger = logging.getLogger(__name__)


def get_user(db: Session, principal: User, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    authorize(db, principal, Action.VIEW_USER, Resource.for_user(user.id),
              message="Not authorized to view this user")
    return user


@transactional
def update_user(db: Session, principal: User, user_id: int, payload: UserUpdate) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    authorize(db, principal, Action.UPDATE_USER, Resource.for_user(user.id),
              message="Not authorized to update this user")

    changes = payload.model_dump(exclude_unset=True)
    old = {k: getattr(user, k) for k in changes}
    for k, v in changes.items():
        setattr(user, k, v)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="User",
        entity_id=user.id,
        old_value=old,
        new_value=changes,
    )
    return user


@transactional
def create_user(db: Session, principal: User, payload: UserCreate) -> User:
    """Admin-only provisioning of a user row; credentials live with the identity provider."""
    if principal.role != UserRole.ADMIN.value:
        raise AuthorizationError("Only admins can create users")
    if db.query(User.id).filter(User.email == payload.email).first():
        raise ConflictError("A user with this email already exists")

    user = User(**payload.model_dump())
    db.add(user)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="User",
        entity_id=user.id,
        new_value=payload.model_dump(),
    )
    logger.info("User %s (%s) created by admin %s", user.id, user.email, principal.id)
    return user


def list_users(db: Session, principal: User, role: Optional[str] = None, search: Optional[str] = None,
               limit: int = 50, offset: int = 0) -> List[User]:
    if principal.role != UserRole.ADMIN.value:
        raise AuthorizationError("Only admins can list users")
    q = db.query(User)
    if role:
        q = q.filter(User.role == role)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(User.email.ilike(like) | User.first_name.ilike(like) | User.last_name.ilike(like))
    return q.order_by(User.id).offset(offset).limit(limit).all()
