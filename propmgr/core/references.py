"""
Tagged references to other rows.

Comments point at a ``(context_type, context_id)`` pair and maintenance work is
assigned to either a User or a Vendor. Both are stored as two plain columns and
resolved through the dispatch tables below.
"""
from dataclasses import dataclass
from typing import Union

from sqlalchemy.orm import Session

from propmgr.core.enums import AssigneeType, ContextType
from propmgr.core.errors import NotFoundError, ValidationError
from propmgr.models.lease import Lease
from propmgr.models.maintenance import MaintenanceRequest, ScheduledMaintenance, Vendor
from propmgr.models.property import Property
from propmgr.models.unit import Unit
from propmgr.models.user import User

# context type -> (model, column holding the owning property id)
_CONTEXT_OWNERS = {
    ContextType.PROPERTY: (Property, Property.id),
    ContextType.UNIT: (Unit, Unit.property_id),
    ContextType.LEASE: (Lease, Lease.property_id),
    ContextType.REQUEST: (MaintenanceRequest, MaintenanceRequest.property_id),
    ContextType.SCHEDULED_MAINTENANCE: (ScheduledMaintenance, ScheduledMaintenance.property_id),
}

COMMENT_CONTEXTS = tuple(_CONTEXT_OWNERS)


@dataclass(frozen=True)
class ContextRef:
    type: ContextType
    id: int

    @classmethod
    def parse(cls, context_type: str, context_id: int) -> "ContextRef":
        try:
            ctype = ContextType(context_type)
        except ValueError:
            raise ValidationError(f"Unknown context type '{context_type}'")
        if ctype not in _CONTEXT_OWNERS:
            raise ValidationError(f"Comments are not supported on '{context_type}'")
        return cls(type=ctype, id=int(context_id))


def resolve_property_id(db: Session, ref: ContextRef) -> int:
    """Return the id of the property that owns the referenced row."""
    model, column = _CONTEXT_OWNERS[ref.type]
    row = db.query(column).filter(model.id == ref.id).first()
    if row is None:
        raise NotFoundError(f"{ref.type.value} {ref.id} not found")
    return row[0]


@dataclass(frozen=True)
class AssigneeRef:
    type: AssigneeType
    id: int

    @classmethod
    def parse(cls, assignee_type: str, assignee_id: int) -> "AssigneeRef":
        try:
            return cls(type=AssigneeType(assignee_type), id=int(assignee_id))
        except ValueError:
            raise ValidationError(f"Unknown assignee type '{assignee_type}'")


_ASSIGNEE_MODELS = {
    AssigneeType.USER: User,
    AssigneeType.VENDOR: Vendor,
}


def resolve_assignee(db: Session, ref: AssigneeRef) -> Union[User, Vendor]:
    model = _ASSIGNEE_MODELS[ref.type]
    obj = db.query(model).filter(model.id == ref.id).first()
    if obj is None:
        raise NotFoundError(f"{ref.type.value} {ref.id} not found")
    return obj
