import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from propmgr.models.audit_log import AuditLog
from propmgr.models.user import User

logger = logging.getLogger(__name__)


def log_audit(
    db: Session,
    *,
    actor: User,
    action: str,
    entity_type: str,
    entity_id: Any,
    property_id: Optional[int] = None,
    status: Optional[str] = "success",
    description: Optional[str] = None,
    old_value: Optional[Any] = None,
    new_value: Optional[Any] = None,
    ip_address: Optional[str] = None,
) -> Optional[AuditLog]:
    """
    Append an audit row inside the caller's transaction.

    The row is written in a SAVEPOINT: if the primary operation rolls back the
    row goes with it, and if writing the row fails the primary operation carries on.
    """
    # pending work belongs to the caller; surface its errors to the caller
    db.flush()

    log = AuditLog(
        actor_id=actor.id,
        actor_email=actor.email,
        actor_role=actor.role,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        property_id=property_id,
        status=status,
        description=description,
        old_value=jsonable_encoder(old_value) if old_value is not None else None,
        new_value=jsonable_encoder(new_value) if new_value is not None else None,
        ip_address=ip_address or db.info.get("client_ip"),
    )
    try:
        with db.begin_nested():
            db.add(log)
    except Exception:
        logger.exception("Audit write failed: %s %s %s", action, entity_type, entity_id)
        return None
    return log
