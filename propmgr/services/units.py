import logging
from typing import List

from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.database import transactional
from propmgr.core.enums import AuditAction, LeaseStatus, UnitStatus
from propmgr.core.errors import ConflictError, DependencyError, NotFoundError
from propmgr.models.lease import Lease
from propmgr.models.property import Property
from propmgr.models.unit import Unit
from propmgr.models.user import User
from propmgr.schemas.unit import UnitCreate, UnitUpdate
from propmgr.services import associations, cascade
from propmgr.services.authorization import Action, Resource, authorize

logger = logging.getLogger(__name__)


def has_active_lease(db: Session, unit_id: int) -> bool:
    q = db.query(Lease.id).filter(Lease.unit_id == unit_id, Lease.status == LeaseStatus.ACTIVE.value)
    return db.query(q.exists()).scalar()


def derive_unit_status(db: Session, unit: Unit) -> str:
    """
    Occupied while any active tenant association or active lease is on the unit,
    otherwise the manual maintenance flag, otherwise vacant.
    """
    if associations.count_active_tenants_on_unit(db, unit.id) or has_active_lease(db, unit.id):
        return UnitStatus.OCCUPIED.value
    if unit.manual_status:
        return unit.manual_status
    return UnitStatus.VACANT.value


def sync_unit_status(db: Session, unit: Unit) -> str:
    """Recompute and store ``unit.status``. The only writer of that column."""
    db.flush()
    status = derive_unit_status(db, unit)
    if unit.status != status:
        logger.info("Unit %s status %s -> %s", unit.id, unit.status, status)
        unit.status = status
        db.flush()
    return status


def get_property_or_404(db: Session, property_id: int) -> Property:
    prop = db.query(Property).filter(Property.id == property_id).first()
    if not prop:
        raise NotFoundError("Property not found")
    return prop


def get_unit_or_404(db: Session, unit_id: int) -> Unit:
    unit = db.query(Unit).filter(Unit.id == unit_id).first()
    if not unit:
        raise NotFoundError("Unit not found")
    return unit


def get_unit_in_property(db: Session, property_id: int, unit_id: int) -> Unit:
    unit = db.query(Unit).filter(Unit.id == unit_id, Unit.property_id == property_id).first()
    if not unit:
        raise NotFoundError("Unit not found in this property")
    return unit


def _ensure_unique_name(db: Session, property_id: int, unit_name: str, exclude_id: int = None) -> None:
    q = db.query(Unit.id).filter(Unit.property_id == property_id, Unit.unit_name == unit_name)
    if exclude_id is not None:
        q = q.filter(Unit.id != exclude_id)
    if q.first():
        raise ConflictError(f"Unit '{unit_name}' already exists in this property")


def list_units(db: Session, principal: User, property_id: int) -> List[Unit]:
    get_property_or_404(db, property_id)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))
    return db.query(Unit).filter(Unit.property_id == property_id).order_by(Unit.unit_name).all()


def get_unit(db: Session, principal: User, unit_id: int) -> Unit:
    unit = get_unit_or_404(db, unit_id)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(unit.property_id))
    return unit


@transactional
def create_unit(db: Session, principal: User, property_id: int, payload: UnitCreate) -> Unit:
    get_property_or_404(db, property_id)
    authorize(db, principal, Action.MANAGE_UNITS, Resource.for_property(property_id))
    _ensure_unique_name(db, property_id, payload.unit_name)

    unit = Unit(property_id=property_id, **payload.model_dump())
    unit.status = payload.manual_status or UnitStatus.VACANT.value
    db.add(unit)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Unit",
        entity_id=unit.id,
        property_id=property_id,
        description=f"Created unit {unit.unit_name}",
        new_value=payload.model_dump(),
    )
    logger.info("Unit %s created in property %s by user %s", unit.id, property_id, principal.id)
    return unit


@transactional
def update_unit(db: Session, principal: User, unit_id: int, payload: UnitUpdate) -> Unit:
    unit = get_unit_or_404(db, unit_id)
    authorize(db, principal, Action.MANAGE_UNITS, Resource.for_property(unit.property_id))

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("unit_name") is not None and changes["unit_name"] != unit.unit_name:
        _ensure_unique_name(db, unit.property_id, changes["unit_name"], exclude_id=unit.id)
    if "unit_name" in changes and changes["unit_name"] is None:
        del changes["unit_name"]

    old = {k: getattr(unit, k) for k in changes}
    for k, v in changes.items():
        setattr(unit, k, v)
    sync_unit_status(db, unit)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Unit",
        entity_id=unit.id,
        property_id=unit.property_id,
        old_value=old,
        new_value=changes,
    )
    return unit


@transactional
def delete_unit(db: Session, principal: User, unit_id: int, blob_store=None) -> None:
    unit = get_unit_or_404(db, unit_id)
    authorize(db, principal, Action.MANAGE_UNITS, Resource.for_property(unit.property_id))

    if has_active_lease(db, unit.id):
        raise DependencyError("Unit has an active lease")
    if associations.count_active_tenants_on_unit(db, unit.id):
        raise DependencyError("Unit has active tenants")

    property_id, name = unit.property_id, unit.unit_name
    log_audit(
        db,
        actor=principal,
        action=AuditAction.DELETE.value,
        entity_type="Unit",
        entity_id=unit.id,
        property_id=property_id,
        description=f"Deleted unit {name}",
    )
    counts = cascade.purge_units(db, [unit.id], blob_store)
    logger.info("Unit %s (%s) deleted by user %s: %s", unit_id, name, principal.id, counts)
