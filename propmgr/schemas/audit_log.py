from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[int] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    property_id: Optional[int] = None
    status: Optional[str] = None
    description: Optional[str] = None
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    ip_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogStatsOut(BaseModel):
    total: int
    today: int
    deletions: int
    failures: int
    by_action: Dict[str, int] = {}
