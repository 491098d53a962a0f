"""
Authorization engine.

``decide(db, principal, action, resource)`` evaluates the rules below in order;
the first rule that matches wins and anything unmatched is denied:

1. admins may do anything
2. a user may act on their own User record
3. property management actions need an active association on the property
   carrying one of the action's required roles
4. property view needs an active association with any role
5. messaging needs a shared property, or a manager who has the recipient on
   one of their properties
6. rent records are visible to their tenant and to the property's managers
7. onboarding documents follow their visibility setting

Any error raised while evaluating a rule is logged and the request is denied.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from propmgr.core.config import settings
from propmgr.core.enums import (
    AssociationRole,
    MANAGER_ROLES,
    OnboardingVisibility,
    UserRole,
    VIEW_ROLES,
)
from propmgr.core.errors import AuthorizationError
from propmgr.models.user import User
from propmgr.services import associations

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE_PROPERTY = "create_property"
    UPDATE_PROPERTY = "update_property"
    DELETE_PROPERTY = "delete_property"
    ASSIGN_USER = "assign_user"
    REMOVE_USER = "remove_user"
    MANAGE_UNITS = "manage_units"
    MANAGE_LEASES = "manage_leases"
    CREATE_RENT_SCHEDULE = "create_rent_schedule"
    UPDATE_RENT_SCHEDULE = "update_rent_schedule"
    CREATE_RENT = "create_rent"
    UPDATE_RENT = "update_rent"
    DELETE_RENT = "delete_rent"
    GENERATE_RENT = "generate_rent"
    MANAGE_ONBOARDING = "manage_onboarding"
    MANAGE_MAINTENANCE = "manage_maintenance"

    VIEW_PROPERTY = "view_property"
    VIEW_USER = "view_user"
    UPDATE_USER = "update_user"
    SEND_MESSAGE = "send_message"
    VIEW_RENT = "view_rent"
    RECORD_PAYMENT = "record_payment"
    VIEW_ONBOARDING = "view_onboarding"


MANAGEMENT_ACTIONS = frozenset({
    Action.UPDATE_PROPERTY,
    Action.DELETE_PROPERTY,
    Action.ASSIGN_USER,
    Action.REMOVE_USER,
    Action.MANAGE_UNITS,
    Action.MANAGE_LEASES,
    Action.CREATE_RENT_SCHEDULE,
    Action.UPDATE_RENT_SCHEDULE,
    Action.CREATE_RENT,
    Action.UPDATE_RENT,
    Action.DELETE_RENT,
    Action.GENERATE_RENT,
    Action.MANAGE_ONBOARDING,
    Action.MANAGE_MAINTENANCE,
})

RENT_ACTIONS = frozenset({Action.VIEW_RENT, Action.RECORD_PAYMENT})

# Destructive and membership actions are reserved for owners and delegated admins.
REQUIRED_ROLES: Dict[Action, Sequence[str]] = {
    Action.DELETE_PROPERTY: (AssociationRole.LANDLORD.value, AssociationRole.ADMIN_ACCESS.value),
    Action.ASSIGN_USER: (AssociationRole.LANDLORD.value, AssociationRole.ADMIN_ACCESS.value),
    Action.REMOVE_USER: (AssociationRole.LANDLORD.value, AssociationRole.ADMIN_ACCESS.value),
}

# global roles allowed to create a property (admins pass rule 1)
PROPERTY_CREATOR_ROLES = (UserRole.LANDLORD.value, UserRole.PROPERTY_MANAGER.value)


@dataclass(frozen=True)
class Resource:
    """The target of an action. ``kind`` is User, Property, Rent or Onboarding."""
    kind: str
    id: Optional[int] = None
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    target: Any = None

    @classmethod
    def for_property(cls, property_id: Optional[int]) -> "Resource":
        return cls(kind="Property", id=property_id, property_id=property_id)

    @classmethod
    def for_user(cls, user_id: int, property_id: Optional[int] = None,
                 unit_id: Optional[int] = None) -> "Resource":
        return cls(kind="User", id=user_id, property_id=property_id, unit_id=unit_id)

    @classmethod
    def for_rent(cls, rent) -> "Resource":
        return cls(kind="Rent", id=rent.id, property_id=rent.property_id, unit_id=rent.unit_id, target=rent)

    @classmethod
    def for_onboarding(cls, doc) -> "Resource":
        return cls(kind="Onboarding", id=doc.id, property_id=doc.property_id, unit_id=doc.unit_id, target=doc)


def required_roles_for(action: Action) -> Sequence[str]:
    return REQUIRED_ROLES.get(action, tuple(settings.MANAGEMENT_ROLES))


def can_manage_property(db: Session, principal: User, property_id: Optional[int],
                        required_roles: Optional[Iterable[str]] = None) -> bool:
    if property_id is None:
        return False
    return associations.exists_association(
        db,
        user_id=principal.id,
        property_id=property_id,
        roles=list(required_roles or settings.MANAGEMENT_ROLES),
    )


def can_view_property(db: Session, principal: User, property_id: Optional[int]) -> bool:
    if property_id is None:
        return False
    return associations.exists_association(
        db, user_id=principal.id, property_id=property_id, roles=VIEW_ROLES,
    )


def can_message(db: Session, sender: User, recipient_id: int,
                property_id: Optional[int] = None, unit_id: Optional[int] = None) -> bool:
    sender_links = associations.associations_of(db, sender.id)
    recipient_links = associations.associations_of(db, recipient_id)

    # shared property
    common = {a.property_id for a in sender_links} & {a.property_id for a in recipient_links}
    if common:
        shared_ok = True
        if property_id is not None and property_id not in common:
            shared_ok = False
        if shared_ok and unit_id is not None:
            sender_on_unit = any(a.unit_id == unit_id for a in sender_links)
            recipient_on_unit = any(a.unit_id == unit_id for a in recipient_links)
            shared_ok = sender_on_unit and recipient_on_unit
        if shared_ok:
            return True

    # manager override
    if sender.role in (UserRole.LANDLORD.value, UserRole.PROPERTY_MANAGER.value):
        managed = {
            a.property_id for a in sender_links
            if any(a.has_role(r) for r in MANAGER_ROLES)
        }
        recipient_properties = {a.property_id for a in recipient_links}
        if property_id is not None:
            return property_id in managed and property_id in recipient_properties
        return bool(managed & recipient_properties)

    return False


def can_view_onboarding(db: Session, principal: User, doc) -> bool:
    if doc.created_by_id == principal.id:
        return True
    if doc.property_id is not None and can_manage_property(
        db, principal, doc.property_id, (AssociationRole.LANDLORD.value, AssociationRole.PROPERTY_MANAGER.value)
    ):
        return True

    tenant = [AssociationRole.TENANT.value]
    visibility = doc.visibility
    if visibility == OnboardingVisibility.ALL_TENANTS.value:
        return associations.exists_association(db, user_id=principal.id, roles=tenant)
    if visibility == OnboardingVisibility.PROPERTY_TENANTS.value:
        return doc.property_id is not None and associations.exists_association(
            db, user_id=principal.id, property_id=doc.property_id, roles=tenant,
        )
    if visibility == OnboardingVisibility.UNIT_TENANTS.value:
        return doc.unit_id is not None and associations.exists_association(
            db, user_id=principal.id, unit_id=doc.unit_id, roles=tenant,
        )
    if visibility == OnboardingVisibility.SPECIFIC_TENANT.value:
        return doc.tenant_id == principal.id
    return False


def _evaluate(db: Session, principal: User, action: Action, resource: Resource) -> bool:
    # 1. admin
    if principal.role == UserRole.ADMIN.value:
        return True

    # 2. self-access
    if resource.kind == "User" and resource.id == principal.id:
        return True

    # property creation has no association to check yet
    if action == Action.CREATE_PROPERTY:
        return principal.role in PROPERTY_CREATOR_ROLES

    # 3. property management
    if action in MANAGEMENT_ACTIONS:
        return can_manage_property(db, principal, resource.property_id, required_roles_for(action))

    # 4. property view
    if action == Action.VIEW_PROPERTY:
        return can_view_property(db, principal, resource.property_id)

    # 5. messaging
    if action == Action.SEND_MESSAGE and resource.kind == "User":
        return can_message(db, principal, resource.id, resource.property_id, resource.unit_id)

    # 6. rent records
    if action in RENT_ACTIONS and resource.kind == "Rent":
        rent = resource.target
        if rent.tenant_id == principal.id:
            return True
        return can_manage_property(db, principal, rent.property_id)

    # 7. onboarding
    if action == Action.VIEW_ONBOARDING and resource.kind == "Onboarding":
        return can_view_onboarding(db, principal, resource.target)

    # 8. default deny
    return False


def decide(db: Session, principal: User, action: Action, resource: Resource) -> bool:
    try:
        allowed = _evaluate(db, principal, action, resource)
    except Exception:
        logger.exception(
            "Authorization check failed; denying %s on %s %s for user %s",
            action.value, resource.kind, resource.id, getattr(principal, "id", None),
        )
        return False
    logger.debug("%s %s on %s %s for user %s", "allow" if allowed else "deny",
                 action.value, resource.kind, resource.id, principal.id)
    return allowed


def authorize(db: Session, principal: User, action: Action, resource: Resource,
              message: Optional[str] = None) -> None:
    """Raise AuthorizationError unless ``decide`` allows the action."""
    if not decide(db, principal, action, resource):
        raise AuthorizationError(
            message or f"Not authorized to {action.value.replace('_', ' ')}",
            details={"action": action.value, "resource": resource.kind, "id": resource.id},
        )


def visible_property_ids(db: Session, principal: User) -> Optional[list]:
    """Property ids the principal may view, or None for unrestricted (admin)."""
    if principal.role == UserRole.ADMIN.value:
        return None
    return associations.property_ids_for(db, principal.id, VIEW_ROLES)


def managed_property_ids(db: Session, principal: User) -> Optional[list]:
    """Property ids the principal may manage, or None for unrestricted (admin)."""
    if principal.role == UserRole.ADMIN.value:
        return None
    return associations.property_ids_for(db, principal.id, settings.MANAGEMENT_ROLES)


def tenant_units(db: Session, principal: User) -> list:
    """Active tenant associations of the principal."""
    return [
        a for a in associations.associations_of(db, principal.id)
        if a.has_role(AssociationRole.TENANT.value) and a.unit_id is not None
    ]
