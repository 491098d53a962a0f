"""
Maintenance requests, scheduled maintenance and vendors.

Anyone with access to a property may open a request; assigning work and
scheduling maintenance is a management action. Assignees are tagged
references resolved through :mod:`propmgr.core.references`.

Request lifecycle::

    new -> triaged / assigned -> in_progress <-> on_hold -> completed
    completed -> verified
    completed / verified -> reopened
    completed / verified / reopened -> archived

Managers may also share a request through an expiring public link. Outside
workers use it to post progress and comments without an account; each one is
recorded as a ``vendor`` user keyed on their phone number.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.config import settings
from propmgr.core.database import transactional
from propmgr.core.enums import (
    PUBLIC_REQUEST_STATUSES,
    REQUEST_STATUSES,
    AssigneeType,
    AuditAction,
    ContextType,
    RequestStatus,
    UserRole,
)
from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from propmgr.core.notifications import frontend_link, send_notification
from propmgr.core.references import AssigneeRef, resolve_assignee
from propmgr.models.comment import Comment
from propmgr.models.maintenance import MaintenanceRequest, ScheduledMaintenance, Vendor
from propmgr.models.property import Property
from propmgr.models.unit import Unit
from propmgr.models.user import User
from propmgr.schemas.maintenance import (
    AssigneeIn,
    MaintenanceRequestCreate,
    MaintenanceRequestUpdate,
    PublicRequestUpdate,
    ScheduledMaintenanceCreate,
    VendorCreate,
)
from propmgr.services import associations
from propmgr.services.authorization import (
    Action,
    Resource,
    authorize,
    can_manage_property,
    decide,
    visible_property_ids,
)
from propmgr.services.units import get_property_or_404, get_unit_in_property

logger = logging.getLogger(__name__)

VENDOR_MANAGER_ROLES = (UserRole.ADMIN.value, UserRole.LANDLORD.value, UserRole.PROPERTY_MANAGER.value)

TENANT_EDITABLE_FIELDS = {"title", "description"}

PUBLIC_LINK_DAYS = 7
EXTERNAL_EMAIL_DOMAIN = "external.com"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply_assignee(db: Session, row, assignee: Optional[AssigneeIn]):
    if assignee is None:
        return None
    target = resolve_assignee(db, AssigneeRef.parse(assignee.type, assignee.id))
    row.assigned_to_type = assignee.type
    row.assigned_to_id = target.id
    return target


def _notify_assignee(db: Session, principal: User, row, target, kind: str) -> None:
    # vendors have no account to notify
    if not isinstance(target, User):
        return
    send_notification(
        db,
        recipient_id=target.id,
        sender_id=principal.id,
        type="maintenance",
        message=f"You have been assigned: {row.title}",
        link=frontend_link(f"maintenance/{row.id}"),
        related_type=kind,
        related_id=row.id,
    )


def _notify_about_request(db: Session, sender: User, request: MaintenanceRequest,
                          recipient_ids, message: str, type: str = "status_update") -> None:
    for recipient_id in sorted(set(recipient_ids) - {None}):
        send_notification(
            db,
            recipient_id=recipient_id,
            sender_id=sender.id,
            type=type,
            message=message,
            link=frontend_link(f"requests/{request.id}"),
            related_type=ContextType.REQUEST.value,
            related_id=request.id,
        )


def _assigned_user_id(request: MaintenanceRequest) -> Optional[int]:
    if request.assigned_to_type == AssigneeType.USER.value:
        return request.assigned_to_id
    return None


def _manager_ids(db: Session, property_id: int) -> List[int]:
    links = associations.associations_on(db, property_id, roles=settings.MANAGEMENT_ROLES)
    return sorted({a.user_id for a in links})


def _snapshot(request: MaintenanceRequest) -> dict:
    return {
        "title": request.title,
        "description": request.description,
        "priority": request.priority,
        "status": request.status,
    }


def _set_status(request: MaintenanceRequest, status: str, now: Optional[datetime] = None) -> None:
    if status not in REQUEST_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'",
            details={"allowed": list(REQUEST_STATUSES)},
        )
    request.status = status
    if status == RequestStatus.COMPLETED.value:
        request.resolved_at = now or _now()
    elif status == RequestStatus.REOPENED.value:
        request.resolved_at = None
        request.verified_by_id = None


def get_request_or_404(db: Session, request_id: int) -> MaintenanceRequest:
    request = db.query(MaintenanceRequest).filter(MaintenanceRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Maintenance request not found")
    return request


def _managed_request(db: Session, principal: User, request_id: int) -> MaintenanceRequest:
    request = get_request_or_404(db, request_id)
    authorize(db, principal, Action.MANAGE_MAINTENANCE, Resource.for_property(request.property_id))
    return request


@transactional
def create_request(db: Session, principal: User, payload: MaintenanceRequestCreate) -> MaintenanceRequest:
    get_property_or_404(db, payload.property_id)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(payload.property_id))
    if payload.unit_id is not None:
        get_unit_in_property(db, payload.property_id, payload.unit_id)

    request = MaintenanceRequest(
        property_id=payload.property_id,
        unit_id=payload.unit_id,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        status=RequestStatus.NEW.value,
        created_by_id=principal.id,
    )
    target = None
    if payload.assigned_to is not None:
        authorize(db, principal, Action.MANAGE_MAINTENANCE, Resource.for_property(payload.property_id))
        target = _apply_assignee(db, request, payload.assigned_to)
        request.status = RequestStatus.ASSIGNED.value
    db.add(request)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Request",
        entity_id=request.id,
        property_id=request.property_id,
        description=f"Opened maintenance request {request.title}",
    )
    if target is not None:
        _notify_assignee(db, principal, request, target, "Request")
    return request


def list_requests(db: Session, principal: User, property_id: Optional[int] = None,
                  status: Optional[str] = None) -> List[MaintenanceRequest]:
    q = db.query(MaintenanceRequest)
    if property_id is not None:
        authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))
        q = q.filter(MaintenanceRequest.property_id == property_id)
        if principal.role != UserRole.ADMIN.value and not can_manage_property(db, principal, property_id):
            q = q.filter(MaintenanceRequest.created_by_id == principal.id)
    else:
        visible = visible_property_ids(db, principal)
        if visible is not None:
            q = q.filter(MaintenanceRequest.property_id.in_(visible))
    if status:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Invalid status filter '{status}'")
        q = q.filter(MaintenanceRequest.status == status)
    return q.order_by(MaintenanceRequest.created_at.desc(), MaintenanceRequest.id.desc()).all()


def get_request(db: Session, principal: User, request_id: int) -> MaintenanceRequest:
    request = get_request_or_404(db, request_id)
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(request.property_id))
    if (
        request.created_by_id != principal.id
        and _assigned_user_id(request) != principal.id
        and not decide(db, principal, Action.MANAGE_MAINTENANCE, Resource.for_property(request.property_id))
    ):
        raise AuthorizationError("Not authorized to view this request")
    return request


@transactional
def update_request(db: Session, principal: User, request_id: int,
                   payload: MaintenanceRequestUpdate) -> MaintenanceRequest:
    """
    Edit a request and move it through its lifecycle.

    Managers may change any field. The tenant who opened the request may only
    edit its title and description, and only while it is still ``new``.
    """
    request = get_request_or_404(db, request_id)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}

    if not decide(db, principal, Action.MANAGE_MAINTENANCE, Resource.for_property(request.property_id)):
        if request.created_by_id != principal.id or principal.role != UserRole.TENANT.value:
            raise AuthorizationError("Not authorized to update this request")
        if request.status != RequestStatus.NEW.value:
            raise AuthorizationError("Tenants can only update new requests")
        if set(changes) - TENANT_EDITABLE_FIELDS:
            raise AuthorizationError("Tenants can only update title and description for new requests")

    old = _snapshot(request)
    new_status = changes.pop("status", None)
    if "priority" in changes:
        changes["priority"] = changes["priority"].lower()
    for field, value in changes.items():
        setattr(request, field, value)

    status_changed = new_status is not None and new_status.lower() != request.status
    if status_changed:
        _set_status(request, new_status.lower())
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Request",
        entity_id=request.id,
        property_id=request.property_id,
        old_value=old,
        new_value=_snapshot(request),
        description=f"Request {request.title} updated by {principal.email}",
    )
    if status_changed:
        _notify_about_request(
            db, principal, request, [request.created_by_id],
            f'Your request "{request.title}" is now {request.status}.',
        )
        _notify_about_request(
            db, principal, request, [_assigned_user_id(request)],
            f'Assigned request "{request.title}" is now {request.status}.',
        )
    logger.info("Request %s updated by user %s", request.id, principal.id)
    return request


@transactional
def assign_request(db: Session, principal: User, request_id: int, assignee: AssigneeIn) -> MaintenanceRequest:
    request = _managed_request(db, principal, request_id)

    old = {
        "assigned_to_type": request.assigned_to_type,
        "assigned_to_id": request.assigned_to_id,
        "status": request.status,
    }
    target = _apply_assignee(db, request, assignee)
    request.status = RequestStatus.ASSIGNED.value
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="Request",
        entity_id=request.id,
        property_id=request.property_id,
        old_value=old,
        new_value={
            "assigned_to_type": request.assigned_to_type,
            "assigned_to_id": request.assigned_to_id,
            "status": request.status,
        },
    )
    _notify_assignee(db, principal, request, target, "Request")
    return request


def _transition(db: Session, principal: User, request_id: int, allowed_from, target: RequestStatus,
                action: AuditAction) -> MaintenanceRequest:
    request = _managed_request(db, principal, request_id)
    if request.status not in allowed_from:
        raise ValidationError(
            f"Cannot move a {request.status} request to {target.value}",
            details={"allowed_from": list(allowed_from)},
        )
    old_status = request.status
    _set_status(request, target.value)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=action.value,
        entity_type="Request",
        entity_id=request.id,
        property_id=request.property_id,
        old_value={"status": old_status},
        new_value={"status": request.status},
    )
    return request


@transactional
def verify_request(db: Session, principal: User, request_id: int) -> MaintenanceRequest:
    request = _transition(
        db, principal, request_id, (RequestStatus.COMPLETED.value,), RequestStatus.VERIFIED, AuditAction.VERIFY,
    )
    request.verified_by_id = principal.id
    db.flush()
    _notify_about_request(
        db, principal, request, [request.created_by_id],
        f'Your request "{request.title}" has been verified as complete.',
    )
    return request


@transactional
def reopen_request(db: Session, principal: User, request_id: int) -> MaintenanceRequest:
    request = _transition(
        db, principal, request_id,
        (RequestStatus.COMPLETED.value, RequestStatus.VERIFIED.value),
        RequestStatus.REOPENED, AuditAction.REOPEN,
    )
    _notify_about_request(
        db, principal, request, [request.created_by_id, _assigned_user_id(request)],
        f'Request "{request.title}" has been reopened.',
    )
    return request


@transactional
def archive_request(db: Session, principal: User, request_id: int) -> MaintenanceRequest:
    return _transition(
        db, principal, request_id,
        (RequestStatus.COMPLETED.value, RequestStatus.VERIFIED.value, RequestStatus.REOPENED.value),
        RequestStatus.ARCHIVED, AuditAction.ARCHIVE,
    )


def public_request_url(token: str) -> str:
    return frontend_link(f"public/requests/{token}")


@transactional
def enable_public_link(db: Session, principal: User, request_id: int,
                       expires_in_days: int = PUBLIC_LINK_DAYS,
                       now: Optional[datetime] = None) -> MaintenanceRequest:
    """Share a request through an expiring link; an existing live token is kept."""
    if expires_in_days < 1:
        raise ValidationError("expires_in_days must be at least 1")
    request = _managed_request(db, principal, request_id)

    if not request.public_token or not request.public_link_enabled:
        request.public_token = secrets.token_hex(24)
    request.public_link_enabled = True
    request.public_link_expires_at = (now or _now()) + timedelta(days=expires_in_days)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.ENABLE_PUBLIC_LINK.value,
        entity_type="Request",
        entity_id=request.id,
        property_id=request.property_id,
        new_value={"expires_at": request.public_link_expires_at},
    )
    logger.info("Public link enabled for request %s by user %s", request.id, principal.id)
    return request


@transactional
def disable_public_link(db: Session, principal: User, request_id: int) -> MaintenanceRequest:
    request = _managed_request(db, principal, request_id)
    request.public_token = None
    request.public_link_enabled = False
    request.public_link_expires_at = None
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.DISABLE_PUBLIC_LINK.value,
        entity_type="Request",
        entity_id=request.id,
        property_id=request.property_id,
    )
    return request


def _get_public_request(db: Session, token: str, now: Optional[datetime] = None) -> MaintenanceRequest:
    request = db.query(MaintenanceRequest).filter(
        MaintenanceRequest.public_token == token,
        MaintenanceRequest.public_link_enabled.is_(True),
        MaintenanceRequest.public_link_expires_at > (now or _now()),
    ).first()
    if not request:
        raise NotFoundError("Invalid, expired, or disabled public link")
    return request


def get_public_request(db: Session, token: str, now: Optional[datetime] = None) -> dict:
    """Limited view of a shared request: no people, no internal comments."""
    request = _get_public_request(db, token, now)
    prop = db.query(Property).filter(Property.id == request.property_id).one()
    unit = None
    if request.unit_id is not None:
        unit = db.query(Unit).filter(Unit.id == request.unit_id).first()
    comments = db.query(Comment).filter(
        Comment.context_type == ContextType.REQUEST.value,
        Comment.context_id == request.id,
        Comment.is_internal.is_(False),
    ).order_by(Comment.created_at, Comment.id).all()

    return {
        "id": request.id,
        "title": request.title,
        "description": request.description,
        "priority": request.priority,
        "status": request.status,
        "property_name": prop.name,
        "unit_name": unit.unit_name if unit else None,
        "created_at": request.created_at,
        "comments": [
            {"content": c.content, "author_name": c.author.full_name, "created_at": c.created_at}
            for c in comments
        ],
    }


def _external_updater(db: Session, name: str, phone: str) -> User:
    email = f"{phone}@{EXTERNAL_EMAIL_DOMAIN}"
    user = db.query(User).filter(User.email == email).first()
    if user:
        if user.role != UserRole.VENDOR.value:
            raise ConflictError("This phone number belongs to a registered account")
        return user

    first_name, _, last_name = name.partition(" ")
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name.strip() or None,
        phone=phone,
        role=UserRole.VENDOR.value,
    )
    db.add(user)
    db.flush()
    logger.info("Created external vendor user %s for phone %s", user.id, phone)
    return user


@transactional
def public_request_update(db: Session, token: str, payload: PublicRequestUpdate,
                          now: Optional[datetime] = None) -> MaintenanceRequest:
    """Progress update or comment posted by an outside worker through a public link."""
    name = (payload.name or "").strip()
    phone = (payload.phone or "").strip()
    if not name or not phone:
        raise ValidationError("Name and phone are required")
    if payload.status is None and not (payload.comment or "").strip():
        raise ValidationError("Provide a status or a comment")

    request = _get_public_request(db, token, now)
    updater = _external_updater(db, name, phone)
    managers = _manager_ids(db, request.property_id)

    if payload.status is not None:
        status = payload.status.lower()
        if status not in PUBLIC_REQUEST_STATUSES:
            raise ValidationError(
                f"Invalid status '{payload.status}' for a public update",
                details={"allowed": list(PUBLIC_REQUEST_STATUSES)},
            )
        old_status = request.status
        _set_status(request, status, now)
        db.flush()
        log_audit(
            db,
            actor=updater,
            action=AuditAction.PUBLIC_UPDATE.value,
            entity_type="Request",
            entity_id=request.id,
            property_id=request.property_id,
            old_value={"status": old_status},
            new_value={"status": request.status},
            description=f"{name} ({phone}) updated the request through its public link",
        )
        _notify_about_request(
            db, updater, request, managers,
            f'Request "{request.title}" is now {request.status} (updated by {name}).',
        )

    if (payload.comment or "").strip():
        comment = Comment(
            context_type=ContextType.REQUEST.value,
            context_id=request.id,
            content=payload.comment.strip(),
            author_id=updater.id,
            is_internal=False,
        )
        db.add(comment)
        db.flush()
        log_audit(
            db,
            actor=updater,
            action=AuditAction.COMMENT_ADDED.value,
            entity_type="Comment",
            entity_id=comment.id,
            property_id=request.property_id,
            description=f"{name} commented on request {request.id} through its public link",
        )
        recipients = {request.created_by_id, _assigned_user_id(request), *managers} - {updater.id}
        _notify_about_request(
            db, updater, request, recipients,
            f'New comment on request "{request.title}" from {name}.',
            type="new_comment",
        )
    return request


@transactional
def schedule_maintenance(db: Session, principal: User,
                         payload: ScheduledMaintenanceCreate) -> ScheduledMaintenance:
    get_property_or_404(db, payload.property_id)
    authorize(db, principal, Action.MANAGE_MAINTENANCE, Resource.for_property(payload.property_id))
    if payload.unit_id is not None:
        get_unit_in_property(db, payload.property_id, payload.unit_id)

    item = ScheduledMaintenance(
        property_id=payload.property_id,
        unit_id=payload.unit_id,
        title=payload.title,
        description=payload.description,
        scheduled_date=payload.scheduled_date,
        frequency=payload.frequency,
        created_by_id=principal.id,
    )
    target = _apply_assignee(db, item, payload.assigned_to)
    db.add(item)
    db.flush()

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="ScheduledMaintenance",
        entity_id=item.id,
        property_id=item.property_id,
        description=f"Scheduled maintenance {item.title}",
    )
    if target is not None:
        _notify_assignee(db, principal, item, target, "ScheduledMaintenance")
    return item


def list_scheduled_maintenance(db: Session, principal: User, property_id: int) -> List[ScheduledMaintenance]:
    authorize(db, principal, Action.VIEW_PROPERTY, Resource.for_property(property_id))
    return db.query(ScheduledMaintenance).filter(
        ScheduledMaintenance.property_id == property_id
    ).order_by(ScheduledMaintenance.scheduled_date).all()


@transactional
def create_vendor(db: Session, principal: User, payload: VendorCreate) -> Vendor:
    if principal.role not in VENDOR_MANAGER_ROLES:
        raise AuthorizationError("Not authorized to create vendors")
    vendor = Vendor(**payload.model_dump())
    db.add(vendor)
    db.flush()
    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="Vendor",
        entity_id=vendor.id,
        new_value=payload.model_dump(),
    )
    logger.info("Vendor %s created by user %s", vendor.id, principal.id)
    return vendor


def list_vendors(db: Session, include_inactive: bool = False) -> List[Vendor]:
    q = db.query(Vendor)
    if not include_inactive:
        q = q.filter(Vendor.is_active.is_(True))
    return q.order_by(Vendor.name).all()
