from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    LANDLORD = "landlord"
    PROPERTY_MANAGER = "propertymanager"
    TENANT = "tenant"
    VENDOR = "vendor"


class AssociationRole(str, Enum):
    """Roles a user can hold on a property (PropertyUser.roles)."""
    LANDLORD = "landlord"
    PROPERTY_MANAGER = "propertymanager"
    TENANT = "tenant"
    ADMIN_ACCESS = "admin_access"


MANAGER_ROLES = (AssociationRole.LANDLORD.value, AssociationRole.PROPERTY_MANAGER.value)
VIEW_ROLES = tuple(r.value for r in AssociationRole)


class UnitStatus(str, Enum):
    VACANT = "vacant"
    OCCUPIED = "occupied"
    UNDER_MAINTENANCE = "under_maintenance"
    UNAVAILABLE = "unavailable"


# statuses a user may pin on a unit; everything else is derived
MANUAL_UNIT_STATUSES = (UnitStatus.UNDER_MAINTENANCE.value, UnitStatus.UNAVAILABLE.value)


class LeaseStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"
    PENDING = "pending"


class BillingFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"


BILLING_FREQUENCY_MONTHS = {
    BillingFrequency.MONTHLY.value: 1,
    BillingFrequency.QUARTERLY.value: 3,
    BillingFrequency.SEMI_ANNUAL.value: 6,
    BillingFrequency.ANNUAL.value: 12,
}


class RentStatus(str, Enum):
    DUE = "due"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"


class RequestStatus(str, Enum):
    NEW = "new"
    TRIAGED = "triaged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    VERIFIED = "verified"
    REOPENED = "reopened"
    CANCELED = "canceled"
    ARCHIVED = "archived"


REQUEST_STATUSES = tuple(s.value for s in RequestStatus)

# statuses an outside worker may set through a public link
PUBLIC_REQUEST_STATUSES = (RequestStatus.IN_PROGRESS.value, RequestStatus.COMPLETED.value)


class MessageCategory(str, Enum):
    GENERAL = "general"
    MAINTENANCE = "maintenance"
    BILLING = "billing"
    ONBOARDING = "onboarding"
    URGENT = "urgent"


class OnboardingVisibility(str, Enum):
    ALL_TENANTS = "all_tenants"
    PROPERTY_TENANTS = "property_tenants"
    UNIT_TENANTS = "unit_tenants"
    SPECIFIC_TENANT = "specific_tenant"


class OnboardingCategory(str, Enum):
    DOCUMENT = "document"
    CHECKLIST = "checklist"
    WELCOME = "welcome"
    POLICY = "policy"
    GUIDE = "guide"
    OTHER = "other"


class ContextType(str, Enum):
    """Entity kinds a comment or notification can point at."""
    PROPERTY = "Property"
    UNIT = "Unit"
    LEASE = "Lease"
    RENT = "Rent"
    MESSAGE = "Message"
    ONBOARDING = "Onboarding"
    PROPERTY_USER = "PropertyUser"
    REQUEST = "Request"
    SCHEDULED_MAINTENANCE = "ScheduledMaintenance"


class AssigneeType(str, Enum):
    USER = "User"
    VENDOR = "Vendor"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    FILE_UPLOAD = "FILE_UPLOAD"
    GENERATE = "GENERATE"
    VERIFY = "VERIFY"
    REOPEN = "REOPEN"
    ARCHIVE = "ARCHIVE"
    ENABLE_PUBLIC_LINK = "ENABLE_PUBLIC_LINK"
    DISABLE_PUBLIC_LINK = "DISABLE_PUBLIC_LINK"
    PUBLIC_UPDATE = "PUBLIC_UPDATE"
    COMMENT_ADDED = "COMMENT_ADDED"
