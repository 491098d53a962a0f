"""
Association store: the (user, property, unit?, roles) graph.

This is the only source of truth for permission decisions; nothing here caches.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from propmgr.core.enums import AssociationRole
from propmgr.core.errors import ConflictError, NotFoundError, ValidationError
from propmgr.models.property_user import PropertyUser, PropertyUserRole

logger = logging.getLogger(__name__)

_VALID_ROLES = {r.value for r in AssociationRole}


def _check_roles(roles: Iterable[str]) -> List[str]:
    roles = list(dict.fromkeys(roles or []))
    if not roles:
        raise ValidationError("At least one role is required")
    unknown = [r for r in roles if r not in _VALID_ROLES]
    if unknown:
        raise ValidationError(f"Unknown role(s): {', '.join(unknown)}")
    return roles


def _base_query(db: Session, user_id: Optional[int] = None, property_id: Optional[int] = None,
                active_only: bool = True):
    q = db.query(PropertyUser)
    if user_id is not None:
        q = q.filter(PropertyUser.user_id == user_id)
    if property_id is not None:
        q = q.filter(PropertyUser.property_id == property_id)
    if active_only:
        q = q.filter(PropertyUser.is_active.is_(True))
    return q


def with_any_role(q, roles: Iterable[str]):
    return q.filter(PropertyUser.role_rows.any(PropertyUserRole.role.in_(list(roles))))


def associations_of(db: Session, user_id: int, active_only: bool = True) -> List[PropertyUser]:
    return _base_query(db, user_id=user_id, active_only=active_only).order_by(PropertyUser.id).all()


def associations_on(db: Session, property_id: int, roles: Optional[Iterable[str]] = None,
                    active_only: bool = True) -> List[PropertyUser]:
    q = _base_query(db, property_id=property_id, active_only=active_only)
    if roles:
        q = with_any_role(q, roles)
    return q.order_by(PropertyUser.id).all()


def exists_association(
    db: Session,
    *,
    user_id: int,
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    roles: Optional[Iterable[str]] = None,
    active_only: bool = True,
) -> bool:
    q = _base_query(db, user_id=user_id, property_id=property_id, active_only=active_only)
    if unit_id is not None:
        q = q.filter(PropertyUser.unit_id == unit_id)
    if roles:
        q = with_any_role(q, roles)
    return db.query(q.exists()).scalar()


def property_ids_for(db: Session, user_id: int, roles: Iterable[str]) -> List[int]:
    """Ids of properties on which the user holds an active association with any of ``roles``."""
    q = with_any_role(
        db.query(PropertyUser.property_id).filter(
            PropertyUser.user_id == user_id,
            PropertyUser.is_active.is_(True),
        ),
        roles,
    )
    return sorted({row[0] for row in q.distinct().all()})


def find_association(db: Session, user_id: int, property_id: int,
                     unit_id: Optional[int] = None) -> Optional[PropertyUser]:
    q = db.query(PropertyUser).filter(
        PropertyUser.user_id == user_id,
        PropertyUser.property_id == property_id,
    )
    if unit_id is None:
        q = q.filter(PropertyUser.unit_id.is_(None))
    else:
        q = q.filter(PropertyUser.unit_id == unit_id)
    return q.first()


def upsert_association(
    db: Session,
    *,
    user_id: int,
    property_id: int,
    roles: Iterable[str],
    unit_id: Optional[int] = None,
    invited_by_id: Optional[int] = None,
) -> PropertyUser:
    """
    Union ``roles`` into the (user, property, unit) record, creating it if needed.

    Re-opens an inactive record. Raises ConflictError when every requested role
    is already present on an active record.
    """
    roles = _check_roles(roles)
    assoc = find_association(db, user_id, property_id, unit_id)

    if assoc is None:
        assoc = PropertyUser(
            user_id=user_id,
            property_id=property_id,
            unit_id=unit_id,
            invited_by_id=invited_by_id,
            is_active=True,
        )
        for role in roles:
            assoc.add_role(role)
        db.add(assoc)
        db.flush()
        logger.info("Created association %s: user=%s property=%s unit=%s roles=%s",
                    assoc.id, user_id, property_id, unit_id, roles)
        return assoc

    if assoc.is_active and all(assoc.has_role(r) for r in roles):
        raise ConflictError(
            "User already holds the requested role(s) on this property",
            details={"roles": roles},
        )

    for role in roles:
        assoc.add_role(role)
    if not assoc.is_active:
        assoc.is_active = True
        assoc.start_date = datetime.now(timezone.utc)
        assoc.end_date = None
    if invited_by_id is not None:
        assoc.invited_by_id = invited_by_id
    db.flush()
    logger.info("Updated association %s: roles=%s", assoc.id, assoc.roles)
    return assoc


def deactivate_roles(
    db: Session,
    *,
    user_id: int,
    property_id: int,
    roles: Iterable[str],
    unit_id: Optional[int] = None,
) -> PropertyUser:
    """
    Remove ``roles`` from the active (user, property, unit) record.

    The record is deactivated when no roles remain, or when a tenant role on a
    specific unit was removed. The row is kept for audit.
    """
    roles = _check_roles(roles)
    assoc = find_association(db, user_id, property_id, unit_id)
    if assoc is None or not assoc.is_active:
        raise NotFoundError("No active association found for this user on this property")

    removed = [r for r in roles if assoc.has_role(r)]
    if not removed:
        raise NotFoundError(
            "User does not hold the requested role(s) on this property",
            details={"roles": roles},
        )

    for role in removed:
        assoc.remove_role(role)
    db.flush()

    tenant_removed = AssociationRole.TENANT.value in removed and unit_id is not None
    if not assoc.role_rows or tenant_removed:
        assoc.is_active = False
        assoc.end_date = datetime.now(timezone.utc)
        db.flush()

    logger.info("Removed roles %s from association %s (active=%s)", removed, assoc.id, assoc.is_active)
    return assoc


def count_active_tenants_on_unit(db: Session, unit_id: int) -> int:
    return with_any_role(
        db.query(PropertyUser).filter(
            PropertyUser.unit_id == unit_id,
            PropertyUser.is_active.is_(True),
        ),
        [AssociationRole.TENANT.value],
    ).count()
