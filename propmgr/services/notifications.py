from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from propmgr.core.database import transactional
from propmgr.core.errors import NotFoundError
from propmgr.models.notification import Notification
from propmgr.models.user import User


def list_notifications(db: Session, principal: User, unread_only: bool = False,
                       limit: int = 50, offset: int = 0) -> List[Notification]:
    q = db.query(Notification).filter(Notification.recipient_id == principal.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()


@transactional
def mark_notification_read(db: Session, principal: User, notification_id: int) -> Notification:
    # other users' notifications are reported as missing
    n = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_id == principal.id,
    ).first()
    if not n:
        raise NotFoundError("Notification not found")
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.now(timezone.utc)
        db.flush()
    return n


@transactional
def mark_all_read(db: Session, principal: User) -> int:
    return db.query(Notification).filter(
        Notification.recipient_id == principal.id,
        Notification.is_read.is_(False),
    ).update(
        {Notification.is_read: True, Notification.read_at: datetime.now(timezone.utc)},
        synchronize_session=False,
    )
