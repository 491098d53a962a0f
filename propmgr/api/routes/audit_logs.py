from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from propmgr.api.deps import get_db
from propmgr.core.auth import require_role, User
from propmgr.core.enums import AuditAction, UserRole
from propmgr.core.errors import ValidationError
from propmgr.models.audit_log import AuditLog
from propmgr.schemas.audit_log import AuditLogOut, AuditLogStatsOut

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])

admin_only = require_role(UserRole.ADMIN.value)


def _parse_dt(value: str, name: str) -> datetime:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date-time")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@router.get("", response_model=List[AuditLogOut])
def list_audit_logs(
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
    start_date: Optional[str] = Query(None, description="ISO date-time"),
    end_date: Optional[str] = Query(None, description="ISO date-time"),
    actor: Optional[str] = Query(None, description="Filter by actor email"),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    property_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="success|failure"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = db.query(AuditLog)

    if start_date:
        q = q.filter(AuditLog.created_at >= _parse_dt(start_date, "start_date"))
    if end_date:
        q = q.filter(AuditLog.created_at <= _parse_dt(end_date, "end_date"))
    if actor:
        q = q.filter(AuditLog.actor_email == actor)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if property_id is not None:
        q = q.filter(AuditLog.property_id == property_id)
    if status:
        q = q.filter(AuditLog.status == status)

    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()


@router.get("/stats", response_model=AuditLogStatsOut)
def audit_log_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    now = datetime.now(timezone.utc)
    start_today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total = db.query(AuditLog).count()
    today = db.query(AuditLog).filter(AuditLog.created_at >= start_today).count()
    deletions = db.query(AuditLog).filter(AuditLog.action == AuditAction.DELETE.value).count()
    failures = db.query(AuditLog).filter(AuditLog.status != "success").count()
    by_action = dict(
        db.query(AuditLog.action, func.count(AuditLog.id)).group_by(AuditLog.action).all()
    )

    return {
        "total": total,
        "today": today,
        "deletions": deletions,
        "failures": failures,
        "by_action": by_action,
    }
