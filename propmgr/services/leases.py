import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.config import settings
from propmgr.core.database import transactional
from propmgr.core.enums import AssociationRole, AuditAction, LeaseStatus, UserRole
from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.models.lease import Lease
from propmgr.models.user import User
from propmgr.schemas.lease import LeaseCreate
from propmgr.services import associations
from propmgr.services.authorization import (
    Action,
    Resource,
    authorize,
    can_manage_property,
    managed_property_ids,
)
from propmgr.services.units import get_property_or_404, get_unit_in_property, sync_unit_status

logger = logging.getLogger(__name__)


def get_lease_or_404(db: Session, lease_id: int) -> Lease:
    lease = db.query(Lease).filter(Lease.id == lease_id).first()
    if not lease:
        raise NotFoundError("Lease not found")
    return lease


def can_view_lease(db: Session, principal: User, lease: Lease) -> bool:
    return lease.tenant_id == principal.id or principal.role == UserRole.ADMIN.value or can_manage_property(
        db, principal, lease.property_id
    )


@transactional
def create_lease(db: Session, principal: User, payload: LeaseCreate) -> Lease:
    prop = get_property_or_404(db, payload.property_id)
    authorize(db, principal, Action.MANAGE_LEASES, Resource.for_property(prop.id))
    unit = get_unit_in_property(db, prop.id, payload.unit_id)

    tenant = db.query(User).filter(User.id == payload.tenant_id).first()
    if not tenant:
        raise NotFoundError("Tenant not found")
    if not associations.exists_association(
        db,
        user_id=tenant.id,
        property_id=prop.id,
        unit_id=unit.id,
        roles=[AssociationRole.TENANT.value],
    ):
        raise ValidationError("Tenant is not actively associated with this unit")

    if db.query(Lease.id).filter(
        Lease.unit_id == unit.id, Lease.status == LeaseStatus.ACTIVE.value
    ).first():
        raise ConflictError("Unit already has an active lease")

    lease = Lease(
        **payload.model_dump(exclude={"currency"}),
        currency=payload.currency or settings.DEFAULT_CURRENCY,
        status=LeaseStatus.ACTIVE.value,
        created_by_id=principal.id,
    )
    db.add(lease)
    db.flush()
    sync_unit_status(db, unit)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Lease",
        entity_id=lease.id,
        property_id=prop.id,
        description=f"Created lease for unit {unit.unit_name}",
        new_value=payload.model_dump(),
    )
    send_notification(
        db,
        recipient_id=tenant.id,
        sender_id=principal.id,
        type="lease",
        message=f"A lease for {prop.name}, unit {unit.unit_name} has been created for you.",
        link=frontend_link(f"leases/{lease.id}"),
        related_type="Lease",
        related_id=lease.id,
    )
    logger.info("Lease %s created for unit %s by user %s", lease.id, unit.id, principal.id)
    return lease


@transactional
def terminate_lease(db: Session, principal: User, lease_id: int, reason: Optional[str] = None) -> Lease:
    lease = get_lease_or_404(db, lease_id)
    authorize(db, principal, Action.MANAGE_LEASES, Resource.for_property(lease.property_id))
    if lease.status != LeaseStatus.ACTIVE.value:
        raise ConflictError(f"Lease is {lease.status}, not active")

    lease.status = LeaseStatus.TERMINATED.value
    lease.terminated_at = datetime.now(timezone.utc)
    lease.terminated_by_id = principal.id
    lease.termination_reason = reason
    db.flush()
    sync_unit_status(db, lease.unit)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Lease",
        entity_id=lease.id,
        property_id=lease.property_id,
        description="Terminated lease",
        old_value={"status": LeaseStatus.ACTIVE.value},
        new_value={"status": lease.status, "reason": reason},
    )
    send_notification(
        db,
        recipient_id=lease.tenant_id,
        sender_id=principal.id,
        type="lease",
        message="Your lease has been terminated.",
        link=frontend_link(f"leases/{lease.id}"),
        related_type="Lease",
        related_id=lease.id,
    )
    return lease


def get_lease(db: Session, principal: User, lease_id: int) -> Lease:
    lease = get_lease_or_404(db, lease_id)
    if not can_view_lease(db, principal, lease):
        raise AuthorizationError("Not authorized to view this lease")
    return lease


def list_leases(
    db: Session,
    principal: User,
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    tenant_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Lease]:
    q = db.query(Lease)
    managed = managed_property_ids(db, principal)
    if managed is not None:
        q = q.filter(or_(Lease.property_id.in_(managed), Lease.tenant_id == principal.id))
    if property_id is not None:
        q = q.filter(Lease.property_id == property_id)
    if unit_id is not None:
        q = q.filter(Lease.unit_id == unit_id)
    if tenant_id is not None:
        q = q.filter(Lease.tenant_id == tenant_id)
    if status:
        q = q.filter(Lease.status == status)
    return q.order_by(Lease.start_date.desc(), Lease.id.desc()).offset(offset).limit(limit).all()
