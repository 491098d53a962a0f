import logging
from typing import Optional

from sqlalchemy.orm import Session

from propmgr.core.config import settings
from propmgr.models.notification import Notification

logger = logging.getLogger(__name__)


def frontend_link(path: str) -> str:
    """Absolute deep link into the frontend."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/{path.lstrip('/')}"


def send_notification(
    db: Session,
    *,
    recipient_id: int,
    type: str,
    message: str,
    sender_id: Optional[int] = None,
    link: Optional[str] = None,
    related_type: Optional[str] = None,
    related_id: Optional[int] = None,
) -> Optional[Notification]:
    """
    Persist an in-app notification in the ambient transaction.

    Delivery problems are logged at WARNING and never fail the caller.
    """
    db.flush()

    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=type,
        message=message,
        link=link,
        related_type=related_type,
        related_id=related_id,
    )
    try:
        with db.begin_nested():
            db.add(notification)
    except Exception as exc:
        logger.warning("Notification to user %s not sent: %s", recipient_id, exc)
        return None
    return notification
