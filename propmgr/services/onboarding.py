import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, false, or_, true
from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.database import transactional
from propmgr.core.enums import AssociationRole, AuditAction, OnboardingVisibility, UserRole
from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.core.storage import BlobStore
from propmgr.models.onboarding import Onboarding
from propmgr.models.user import User
from propmgr.schemas.onboarding import OnboardingCreate
from propmgr.services import associations
from propmgr.services.authorization import Action, Resource, authorize, decide, tenant_units
from propmgr.services.media import IncomingFile, store_file
from propmgr.services.units import get_property_or_404, get_unit_or_404

logger = logging.getLogger(__name__)

TENANT = AssociationRole.TENANT.value
OWNER_ROLES = (AssociationRole.LANDLORD.value, AssociationRole.PROPERTY_MANAGER.value)


def _get_doc_or_404(db: Session, doc_id: int) -> Onboarding:
    doc = db.query(Onboarding).filter(Onboarding.id == doc_id, Onboarding.is_active.is_(True)).first()
    if not doc:
        raise NotFoundError("Onboarding document not found")
    return doc


def _tenant_recipients(db: Session, doc: Onboarding) -> List[int]:
    if doc.visibility == OnboardingVisibility.SPECIFIC_TENANT.value:
        return [doc.tenant_id]
    if doc.visibility == OnboardingVisibility.UNIT_TENANTS.value:
        links = associations.associations_on(db, doc.property_id, roles=[TENANT])
        return sorted({a.user_id for a in links if a.unit_id == doc.unit_id})
    if doc.visibility == OnboardingVisibility.PROPERTY_TENANTS.value:
        return sorted({a.user_id for a in associations.associations_on(db, doc.property_id, roles=[TENANT])})
    return []


@transactional
def create_onboarding(
    db: Session,
    principal: User,
    payload: OnboardingCreate,
    file: Optional[IncomingFile] = None,
    blob_store: Optional[BlobStore] = None,
) -> Onboarding:
    property_id, unit_id, tenant_id = payload.property_id, payload.unit_id, payload.tenant_id
    visibility = payload.visibility

    if unit_id is not None:
        unit = get_unit_or_404(db, unit_id)
        if property_id is not None and unit.property_id != property_id:
            raise ValidationError("Unit does not belong to the given property")
        property_id = unit.property_id
    if property_id is not None:
        get_property_or_404(db, property_id)

    if visibility == OnboardingVisibility.PROPERTY_TENANTS.value and property_id is None:
        raise ValidationError("property_id is required for property_tenants visibility")
    if visibility == OnboardingVisibility.UNIT_TENANTS.value and unit_id is None:
        raise ValidationError("unit_id is required for unit_tenants visibility")
    if visibility == OnboardingVisibility.SPECIFIC_TENANT.value:
        if tenant_id is None:
            raise ValidationError("tenant_id is required for specific_tenant visibility")
        if not db.query(User.id).filter(User.id == tenant_id).first():
            raise NotFoundError("Tenant not found")

    if property_id is None:
        # documents for every tenant without a property are an admin matter
        if principal.role != UserRole.ADMIN.value:
            raise AuthorizationError("Only admins can create onboarding documents without a property")
    else:
        authorize(db, principal, Action.MANAGE_ONBOARDING, Resource.for_property(property_id))

    doc = Onboarding(
        title=payload.title,
        description=payload.description,
        category=payload.category,
        visibility=visibility,
        property_id=property_id,
        unit_id=unit_id,
        tenant_id=tenant_id,
        created_by_id=principal.id,
    )
    db.add(doc)
    db.flush()

    if file is not None:
        if blob_store is None:
            raise ValidationError("File uploads are not available")
        doc.media = store_file(
            db,
            blob_store,
            file,
            uploaded_by=principal,
            folder=f"onboarding/{doc.id}",
            related_type="Onboarding",
            related_id=doc.id,
        )
        db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Onboarding",
        entity_id=doc.id,
        property_id=property_id,
        description=f"Created onboarding document {doc.title}",
    )
    for recipient_id in _tenant_recipients(db, doc):
        send_notification(
            db,
            recipient_id=recipient_id,
            sender_id=principal.id,
            type="onboarding",
            message=f"New onboarding item: {doc.title}",
            link=frontend_link(f"onboarding/{doc.id}"),
            related_type="Onboarding",
            related_id=doc.id,
        )
    logger.info("Onboarding %s created by user %s", doc.id, principal.id)
    return doc


def list_onboarding(
    db: Session,
    principal: User,
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    category: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Onboarding]:
    q = db.query(Onboarding).filter(Onboarding.is_active.is_(True))

    if principal.role != UserRole.ADMIN.value:
        owned = associations.property_ids_for(db, principal.id, OWNER_ROLES)
        tenancies = tenant_units(db, principal)
        tenant_property_ids = sorted({a.property_id for a in tenancies})
        tenant_unit_ids = sorted({a.unit_id for a in tenancies})
        conds = [
            Onboarding.created_by_id == principal.id,
            Onboarding.property_id.in_(owned),
            and_(Onboarding.visibility == OnboardingVisibility.SPECIFIC_TENANT.value,
                 Onboarding.tenant_id == principal.id),
            and_(Onboarding.visibility == OnboardingVisibility.PROPERTY_TENANTS.value,
                 Onboarding.property_id.in_(tenant_property_ids)),
            and_(Onboarding.visibility == OnboardingVisibility.UNIT_TENANTS.value,
                 Onboarding.unit_id.in_(tenant_unit_ids)),
            and_(Onboarding.visibility == OnboardingVisibility.ALL_TENANTS.value,
                 true() if tenancies else false()),
        ]
        q = q.filter(or_(*conds))

    if property_id is not None:
        q = q.filter(Onboarding.property_id == property_id)
    if unit_id is not None:
        q = q.filter(Onboarding.unit_id == unit_id)
    if category:
        q = q.filter(Onboarding.category == category)
    return q.order_by(Onboarding.created_at.desc(), Onboarding.id.desc()).offset(offset).limit(limit).all()


def get_onboarding(db: Session, principal: User, doc_id: int) -> Onboarding:
    doc = _get_doc_or_404(db, doc_id)
    authorize(db, principal, Action.VIEW_ONBOARDING, Resource.for_onboarding(doc),
              message="Not authorized to view this onboarding document")
    return doc


@transactional
def mark_onboarding_completed(db: Session, principal: User, doc_id: int) -> Onboarding:
    doc = _get_doc_or_404(db, doc_id)
    if principal.role != UserRole.TENANT.value or not decide(
        db, principal, Action.VIEW_ONBOARDING, Resource.for_onboarding(doc)
    ):
        raise AuthorizationError("Only a tenant this document is addressed to can complete it")
    if doc.is_completed:
        raise ConflictError("Onboarding item is already completed")

    doc.is_completed = True
    doc.completed_by_id = principal.id
    doc.completed_at = datetime.now(timezone.utc)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Onboarding",
        entity_id=doc.id,
        property_id=doc.property_id,
        description="Marked onboarding item completed",
    )
    return doc


@transactional
def delete_onboarding(db: Session, principal: User, doc_id: int) -> None:
    doc = _get_doc_or_404(db, doc_id)
    if doc.created_by_id != principal.id:
        if doc.property_id is None:
            if principal.role != UserRole.ADMIN.value:
                raise AuthorizationError("Not authorized to delete this onboarding document")
        else:
            authorize(db, principal, Action.MANAGE_ONBOARDING, Resource.for_property(doc.property_id))

    doc.is_active = False
    db.flush()
    log_audit(
        db,
        actor=principal,
        action=AuditAction.DELETE.value,
        entity_type="Onboarding",
        entity_id=doc.id,
        property_id=doc.property_id,
    )
