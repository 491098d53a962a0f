"""
Rent records and the payment state machine.

    due --(partial payment)--> partially_paid --(remaining balance)--> paid

``overdue`` is never stored: it is computed on read whenever the due date has
passed and the rent is still due or partially paid.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.config import settings
from propmgr.core.database import transactional
from propmgr.core.enums import AuditAction, RentStatus, UserRole
from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.core.storage import BlobStore
from propmgr.models.media import Media
from propmgr.models.rent import Rent
from propmgr.models.rent_payments import RentPayment
from propmgr.models.user import User
from propmgr.schemas.rent import PaymentCreate, RentCreate, RentUpdate, check_billing_period
from propmgr.services.authorization import (
    Action,
    Resource,
    authorize,
    can_manage_property,
    managed_property_ids,
)
from propmgr.services.leases import can_view_lease, get_lease_or_404
from propmgr.services.media import IncomingFile, discard_file, store_file

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (RentStatus.DUE.value, RentStatus.PARTIALLY_PAID.value, RentStatus.OVERDUE.value)


def derive_status(amount_paid: Decimal, amount_due: Decimal) -> str:
    if amount_paid >= amount_due:
        return RentStatus.PAID.value
    if amount_paid > 0:
        return RentStatus.PARTIALLY_PAID.value
    return RentStatus.DUE.value


def billing_period_of(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def find_active_rent(db: Session, lease_id: int, billing_period: str) -> Optional[Rent]:
    return db.query(Rent).filter(
        Rent.lease_id == lease_id,
        Rent.billing_period == billing_period,
        Rent.is_active.is_(True),
    ).first()


def get_rent_or_404(db: Session, rent_id: int) -> Rent:
    rent = db.query(Rent).filter(Rent.id == rent_id, Rent.is_active.is_(True)).first()
    if not rent:
        raise NotFoundError("Rent record not found")
    return rent


def _snapshot(rent: Rent) -> dict:
    return {
        "amount_due": rent.amount_due,
        "amount_paid": rent.amount_paid,
        "due_date": rent.due_date,
        "status": rent.status,
        "notes": rent.notes,
    }


@transactional
def create_rent_record(db: Session, principal: User, payload: RentCreate) -> Rent:
    lease = get_lease_or_404(db, payload.lease_id)
    authorize(db, principal, Action.CREATE_RENT, Resource.for_property(lease.property_id))
    try:
        check_billing_period(payload.billing_period)
    except ValueError as e:
        raise ValidationError(str(e))

    if find_active_rent(db, lease.id, payload.billing_period):
        raise ConflictError(
            f"A rent record for billing period {payload.billing_period} already exists for this lease"
        )

    rent = Rent(
        lease_id=lease.id,
        tenant_id=lease.tenant_id,
        property_id=lease.property_id,
        unit_id=lease.unit_id,
        billing_period=payload.billing_period,
        amount_due=payload.amount_due,
        amount_paid=Decimal("0"),
        currency=payload.currency or lease.currency or settings.DEFAULT_CURRENCY,
        due_date=payload.due_date,
        status=RentStatus.DUE.value,
        notes=payload.notes,
        created_by_id=principal.id,
    )
    db.add(rent)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Rent",
        entity_id=rent.id,
        property_id=rent.property_id,
        description=f"Created rent record for {rent.billing_period}",
        new_value=_snapshot(rent),
    )
    send_notification(
        db,
        recipient_id=rent.tenant_id,
        sender_id=principal.id,
        type="rent",
        message=f"Rent of {rent.amount_due} {rent.currency} for {rent.billing_period} is due on {rent.due_date}.",
        link=frontend_link(f"rents/{rent.id}"),
        related_type="Rent",
        related_id=rent.id,
    )
    logger.info("Rent %s created for lease %s (%s)", rent.id, lease.id, rent.billing_period)
    return rent


def _scope_to_principal(db: Session, principal: User, q):
    """Tenants see their own rents; managers see rents on properties they manage."""
    managed = managed_property_ids(db, principal)
    if managed is None:
        return q
    return q.filter(or_(Rent.tenant_id == principal.id, Rent.property_id.in_(managed)))


def filter_by_status(q, status: str, today: date):
    """
    Filter on the status a reader sees.

    ``overdue`` is not stored: it matches unpaid rents whose due date has passed,
    and those rents no longer match ``due`` or ``partially_paid``.
    """
    unpaid = (RentStatus.DUE.value, RentStatus.PARTIALLY_PAID.value)
    if status == RentStatus.OVERDUE.value:
        return q.filter(Rent.status.in_(unpaid), Rent.due_date < today)
    if status in unpaid:
        return q.filter(Rent.status == status, Rent.due_date >= today)
    if status == RentStatus.PAID.value:
        return q.filter(Rent.status == status)
    raise ValidationError(f"Unknown rent status '{status}'")


def list_rents(
    db: Session,
    principal: User,
    status: Optional[str] = None,
    billing_period: Optional[str] = None,
    lease_id: Optional[int] = None,
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    tenant_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
    today: Optional[date] = None,
) -> List[Rent]:
    q = _scope_to_principal(db, principal, db.query(Rent).filter(Rent.is_active.is_(True)))
    if status:
        q = filter_by_status(q, status, today or datetime.now(timezone.utc).date())
    if billing_period:
        q = q.filter(Rent.billing_period == billing_period)
    if lease_id is not None:
        q = q.filter(Rent.lease_id == lease_id)
    if property_id is not None:
        q = q.filter(Rent.property_id == property_id)
    if unit_id is not None:
        q = q.filter(Rent.unit_id == unit_id)
    if tenant_id is not None:
        q = q.filter(Rent.tenant_id == tenant_id)
    return q.order_by(Rent.due_date.desc(), Rent.id.desc()).offset(offset).limit(limit).all()


def get_rent(db: Session, principal: User, rent_id: int) -> Rent:
    rent = get_rent_or_404(db, rent_id)
    authorize(db, principal, Action.VIEW_RENT, Resource.for_rent(rent))
    return rent


@transactional
def update_rent_record(db: Session, principal: User, rent_id: int, payload: RentUpdate) -> Rent:
    rent = get_rent_or_404(db, rent_id)
    authorize(db, principal, Action.UPDATE_RENT, Resource.for_property(rent.property_id))

    old = _snapshot(rent)
    changes = payload.model_dump(exclude_unset=True)
    if "amount_due" in changes and changes["amount_due"] is None:
        raise ValidationError("amount_due cannot be null")
    if "due_date" in changes and changes["due_date"] is None:
        raise ValidationError("due_date cannot be null")
    for k, v in changes.items():
        setattr(rent, k, v)
    # keeps paid <=> amount_paid >= amount_due
    rent.status = derive_status(rent.amount_paid, rent.amount_due)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Rent",
        entity_id=rent.id,
        property_id=rent.property_id,
        old_value=old,
        new_value=_snapshot(rent),
    )
    return rent


def _replace_proof(db: Session, principal: User, rent: Rent, proof: IncomingFile,
                   blob_store: BlobStore) -> Media:
    media = store_file(
        db,
        blob_store,
        proof,
        uploaded_by=principal,
        folder=f"rents/{rent.id}",
        related_type="Rent",
        related_id=rent.id,
    )
    previous = rent.payment_proof
    rent.payment_proof = media
    db.flush()
    if previous is not None:
        discard_file(db, blob_store, previous)
    return media


@transactional
def record_payment(
    db: Session,
    principal: User,
    rent_id: int,
    payload: PaymentCreate,
    proof: Optional[IncomingFile] = None,
    blob_store: Optional[BlobStore] = None,
) -> Rent:
    if payload.amount is None or payload.amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    rent = get_rent_or_404(db, rent_id)
    authorize(db, principal, Action.RECORD_PAYMENT, Resource.for_rent(rent))

    old = _snapshot(rent)
    rent.payments.append(RentPayment(
        amount=payload.amount,
        payment_date=payload.payment_date,
        payment_method=payload.payment_method,
        transaction_id=payload.transaction_id,
        notes=payload.notes,
        recorded_by_id=principal.id,
    ))
    rent.amount_paid = Decimal(rent.amount_paid or 0) + payload.amount
    rent.payment_date = payload.payment_date
    rent.status = derive_status(rent.amount_paid, rent.amount_due)
    db.flush()

    if proof is not None:
        if blob_store is None:
            raise ValidationError("File uploads are not available")
        _replace_proof(db, principal, rent, proof, blob_store)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.RECORD_PAYMENT.value,
        entity_type="Rent",
        entity_id=rent.id,
        property_id=rent.property_id,
        description=f"Recorded payment of {payload.amount} for {rent.billing_period}",
        old_value=old,
        new_value=_snapshot(rent),
    )
    if rent.tenant_id != principal.id:
        send_notification(
            db,
            recipient_id=rent.tenant_id,
            sender_id=principal.id,
            type="rent",
            message=f"A payment of {payload.amount} {rent.currency} was recorded for {rent.billing_period}.",
            link=frontend_link(f"rents/{rent.id}"),
            related_type="Rent",
            related_id=rent.id,
        )
    logger.info("Payment of %s recorded on rent %s (status=%s)", payload.amount, rent.id, rent.status)
    return rent


@transactional
def upload_payment_proof(db: Session, principal: User, rent_id: int, proof: IncomingFile,
                         blob_store: BlobStore) -> Rent:
    rent = get_rent_or_404(db, rent_id)
    authorize(db, principal, Action.RECORD_PAYMENT, Resource.for_rent(rent))
    media = _replace_proof(db, principal, rent, proof, blob_store)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.FILE_UPLOAD.value,
        entity_type="Rent",
        entity_id=rent.id,
        property_id=rent.property_id,
        description=f"Uploaded payment proof {media.filename}",
    )
    return rent


def get_payment_proof(db: Session, principal: User, rent_id: int) -> Media:
    rent = get_rent(db, principal, rent_id)
    if rent.payment_proof is None:
        raise NotFoundError("No payment proof found for this rent record")
    return rent.payment_proof


@transactional
def delete_rent_record(db: Session, principal: User, rent_id: int) -> None:
    """Soft delete: hidden from queries, kept with its payment history and proof."""
    rent = get_rent_or_404(db, rent_id)
    authorize(db, principal, Action.DELETE_RENT, Resource.for_property(rent.property_id))

    rent.is_active = False
    rent.deleted_at = datetime.now(timezone.utc)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.DELETE.value,
        entity_type="Rent",
        entity_id=rent.id,
        property_id=rent.property_id,
        description=f"Deleted rent record for {rent.billing_period}",
        old_value=_snapshot(rent),
    )
    logger.info("Rent %s deleted by user %s", rent.id, principal.id)


def get_upcoming_rent(
    db: Session,
    principal: User,
    days_ahead: int = 30,
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Rent]:
    if days_ahead < 0:
        raise ValidationError("days_ahead cannot be negative")
    today = today or datetime.now(timezone.utc).date()

    if property_id is not None and principal.role != UserRole.ADMIN.value:
        if not can_manage_property(db, principal, property_id) and not db.query(Rent.id).filter(
            Rent.property_id == property_id, Rent.tenant_id == principal.id
        ).first():
            raise AuthorizationError("Not authorized to filter by this property")

    q = db.query(Rent).filter(
        Rent.is_active.is_(True),
        Rent.status.in_(UNPAID_STATUSES),
        Rent.due_date >= today,
        Rent.due_date <= today + timedelta(days=days_ahead),
    )
    q = _scope_to_principal(db, principal, q)
    if property_id is not None:
        q = q.filter(Rent.property_id == property_id)
    if unit_id is not None:
        q = q.filter(Rent.unit_id == unit_id)
    return q.order_by(Rent.due_date.asc(), Rent.id.asc()).all()


def get_rent_history(
    db: Session,
    principal: User,
    lease_id: Optional[int] = None,
    tenant_id: Optional[int] = None,
    property_id: Optional[int] = None,
    start_period: Optional[str] = None,
    end_period: Optional[str] = None,
) -> List[Rent]:
    """Rent records (with their payment history) for a lease, tenant or property."""
    if lease_id is not None:
        lease = get_lease_or_404(db, lease_id)
        if not can_view_lease(db, principal, lease):
            raise AuthorizationError("Not authorized to view rent history for this lease")
    for period in (start_period, end_period):
        if period is not None:
            try:
                check_billing_period(period)
            except ValueError as e:
                raise ValidationError(str(e))

    q = _scope_to_principal(db, principal, db.query(Rent).filter(Rent.is_active.is_(True)))
    if lease_id is not None:
        q = q.filter(Rent.lease_id == lease_id)
    if tenant_id is not None:
        q = q.filter(Rent.tenant_id == tenant_id)
    if property_id is not None:
        q = q.filter(Rent.property_id == property_id)
    if start_period:
        q = q.filter(Rent.billing_period >= start_period)
    if end_period:
        q = q.filter(Rent.billing_period <= end_period)
    return q.order_by(Rent.billing_period.desc(), Rent.id.desc()).all()
