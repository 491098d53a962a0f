"""
Property lifecycle: creation, queries, updates, membership and cascade deletion.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.database import transactional
from propmgr.core.enums import AssociationRole, AuditAction, LeaseStatus, UserRole
from propmgr.core.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.models.lease import Lease
from propmgr.models.property import Property
from propmgr.models.property_user import PropertyUser
from propmgr.models.user import User
from propmgr.schemas.property import PropertyCreate, PropertyUpdate
from propmgr.services import associations, cascade
from propmgr.services.authorization import Action, Resource, authorize, visible_property_ids
from propmgr.services.units import get_property_or_404, get_unit_in_property, sync_unit_status

logger = logging.getLogger(__name__)

TENANT = AssociationRole.TENANT.value


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def seeded_role_for(creator: User) -> str:
    """Association role given to the creator of a property."""
    if creator.role == UserRole.ADMIN.value:
        return AssociationRole.PROPERTY_MANAGER.value
    return creator.role


@transactional
def create_property(db: Session, principal: User, payload: PropertyCreate) -> Property:
    authorize(db, principal, Action.CREATE_PROPERTY, Resource.for_property(None))
    if payload.main_contact_user_id is not None:
        _get_user_or_404(db, payload.main_contact_user_id)

    prop = Property(**payload.model_dump(), created_by_id=principal.id, is_active=True)
    db.add(prop)
    db.flush()

    associations.upsert_association(
        db,
        user_id=principal.id,
        property_id=prop.id,
        roles=[seeded_role_for(principal)],
        invited_by_id=principal.id,
    )

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Property",
        entity_id=prop.id,
        property_id=prop.id,
        description=f"Created property {prop.name}",
        new_value=payload.model_dump(),
    )
    logger.info("Property %s created by user %s", prop.id, principal.id)
    return prop


def apply_property_filters(q, search: Optional[str], is_active: Optional[bool], property_type: Optional[str]):
    if is_active is not None:
        q = q.filter(Property.is_active.is_(is_active))

    if property_type:
        q = q.filter(Property.property_type == property_type)

    # basic search: name/address/city/state/zip
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            Property.name.ilike(like)
            | Property.address.ilike(like)
            | Property.city.ilike(like)
            | Property.state.ilike(like)
            | Property.zip.ilike(like)
        )

    return q


def list_properties(
    db: Session,
    principal: User,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    property_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Property]:
    q = db.query(Property)
    visible = visible_property_ids(db, principal)
    if visible is not None:
        q = q.filter(Property.id.in_(visible))
    q = apply_property_filters(q, search, is_active, property_type)
    return q.order_by(Property.id.desc()).offset(offset).limit(limit).all()


def get_property(db: Session, principal: User, property_id: int) -> Property:
    """Property with landlords, property managers and tenants attached for display."""
    prop = get_property_or_404(db, property_id)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))

    landlords, managers, tenants = [], [], []
    for assoc in associations.associations_on(db, property_id):
        if assoc.has_role(AssociationRole.LANDLORD.value):
            landlords.append(assoc.user)
        if assoc.has_role(AssociationRole.PROPERTY_MANAGER.value):
            managers.append(assoc.user)
        if assoc.has_role(TENANT):
            tenants.append({
                "id": assoc.user.id,
                "email": assoc.user.email,
                "first_name": assoc.user.first_name,
                "last_name": assoc.user.last_name,
                "role": assoc.user.role,
                "unit_id": assoc.unit_id,
                "unit_name": assoc.unit.unit_name if assoc.unit else None,
            })

    prop.landlords = landlords
    prop.property_managers = managers
    prop.tenants = tenants
    return prop


@transactional
def update_property(db: Session, principal: User, property_id: int, payload: PropertyUpdate) -> Property:
    prop = get_property_or_404(db, property_id)
    authorize(db, principal, Action.UPDATE_PROPERTY, Resource.for_property(property_id))

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("main_contact_user_id") is not None:
        _get_user_or_404(db, changes["main_contact_user_id"])
    for required in ("name", "address", "property_type", "is_active"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} cannot be null")

    old = {k: getattr(prop, k) for k in changes}
    for k, v in changes.items():
        setattr(prop, k, v)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Property",
        entity_id=prop.id,
        property_id=prop.id,
        old_value=old,
        new_value=changes,
    )
    return prop


@transactional
def deactivate_property(db: Session, principal: User, property_id: int) -> Property:
    return update_property(db, principal, property_id, PropertyUpdate(is_active=False))


@transactional
def delete_property(db: Session, principal: User, property_id: int, blob_store=None) -> dict:
    """
    Hard-delete a property and everything it owns in one transaction.

    Refused with DependencyError while any lease on the property is active.
    """
    prop = get_property_or_404(db, property_id)
    authorize(db, principal, Action.DELETE_PROPERTY, Resource.for_property(property_id))

    active_leases = db.query(Lease).filter(
        Lease.property_id == property_id,
        Lease.status == LeaseStatus.ACTIVE.value,
    ).count()
    if active_leases:
        raise DependencyError(
            "Cannot delete property with active leases",
            details={"active_leases": active_leases},
        )

    name = prop.name
    log_audit(
        db,
        actor=principal,
        action=AuditAction.DELETE.value,
        entity_type="Property",
        entity_id=property_id,
        property_id=property_id,
        description=f"Deleted property {name} and all associated data",
        old_value={"name": name, "address": prop.address, "created_by_id": prop.created_by_id},
    )
    counts = cascade.purge_property(db, property_id, blob_store)
    logger.info("Property %s (%s) deleted by user %s: %s", property_id, name, principal.id, counts)
    return counts


def list_property_users(db: Session, principal: User, property_id: int,
                        include_inactive: bool = False) -> List[PropertyUser]:
    get_property_or_404(db, property_id)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))
    return associations.associations_on(db, property_id, active_only=not include_inactive)


@transactional
def assign_user_to_property(
    db: Session,
    principal: User,
    property_id: int,
    user_id: int,
    roles: List[str],
    unit_id: Optional[int] = None,
) -> PropertyUser:
    prop = get_property_or_404(db, property_id)
    authorize(db, principal, Action.ASSIGN_USER, Resource.for_property(property_id))
    user = _get_user_or_404(db, user_id)

    roles = list(dict.fromkeys(roles or []))
    unit = None
    if TENANT in roles:
        if len(roles) > 1:
            raise ValidationError("The tenant role cannot be combined with other roles")
        if unit_id is None:
            raise ValidationError("unit_id is required when assigning a tenant")
        unit = get_unit_in_property(db, property_id, unit_id)
        if db.query(Lease.id).filter(
            Lease.unit_id == unit.id, Lease.status == LeaseStatus.ACTIVE.value
        ).first():
            raise ConflictError("Unit already has an active lease")
        # one tenancy per property
        other = associations.with_any_role(
            db.query(PropertyUser).filter(
                PropertyUser.user_id == user_id,
                PropertyUser.property_id == property_id,
                PropertyUser.is_active.is_(True),
                PropertyUser.unit_id != unit.id,
            ),
            [TENANT],
        ).first()
        if other:
            raise ConflictError("User is already a tenant of another unit in this property")
    elif unit_id is not None:
        raise ValidationError("unit_id can only be given when assigning a tenant")

    assoc = associations.upsert_association(
        db,
        user_id=user_id,
        property_id=property_id,
        unit_id=unit_id,
        roles=roles,
        invited_by_id=principal.id,
    )

    if unit is not None:
        sync_unit_status(db, unit)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="PropertyUser",
        entity_id=assoc.id,
        property_id=property_id,
        description=f"Assigned {user.email} to property {prop.name} as {', '.join(roles)}",
        new_value={"user_id": user_id, "roles": assoc.roles, "unit_id": unit_id},
    )
    send_notification(
        db,
        recipient_id=user_id,
        sender_id=principal.id,
        type="property_assignment",
        message=f"You have been added to {prop.name} as {', '.join(roles)}.",
        link=frontend_link(f"properties/{property_id}"),
        related_type="Property",
        related_id=property_id,
    )
    logger.info("User %s assigned to property %s as %s by user %s", user_id, property_id, roles, principal.id)
    return assoc


@transactional
def remove_user_from_property(
    db: Session,
    principal: User,
    property_id: int,
    user_id: int,
    roles: List[str],
    unit_id: Optional[int] = None,
) -> PropertyUser:
    prop = get_property_or_404(db, property_id)
    authorize(db, principal, Action.REMOVE_USER, Resource.for_property(property_id))
    user = _get_user_or_404(db, user_id)

    unit = None
    if TENANT in roles:
        if unit_id is None:
            raise ValidationError("unit_id is required when removing a tenant")
        unit = get_unit_in_property(db, property_id, unit_id)
        if db.query(Lease.id).filter(
            Lease.unit_id == unit.id,
            Lease.tenant_id == user_id,
            Lease.status == LeaseStatus.ACTIVE.value,
        ).first():
            raise DependencyError("Tenant has an active lease on this unit; terminate it first")

    assoc = associations.deactivate_roles(
        db,
        user_id=user_id,
        property_id=property_id,
        unit_id=unit_id,
        roles=roles,
    )

    if unit is not None:
        sync_unit_status(db, unit)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="PropertyUser",
        entity_id=assoc.id,
        property_id=property_id,
        description=f"Removed {', '.join(roles)} from {user.email} on property {prop.name}",
        new_value={"roles": assoc.roles, "is_active": assoc.is_active},
    )
    send_notification(
        db,
        recipient_id=user_id,
        sender_id=principal.id,
        type="property_removal",
        message=f"Your {', '.join(roles)} access to {prop.name} has been removed.",
        link=frontend_link("properties"),
        related_type="Property",
        related_id=property_id,
    )
    logger.info("User %s removed from property %s (%s) by user %s", user_id, property_id, roles, principal.id)
    return assoc
