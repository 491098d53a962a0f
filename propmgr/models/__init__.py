# Import every model so Base.metadata knows all tables and string relationships resolve.
from propmgr.models.user import User
from propmgr.models.property import Property
from propmgr.models.unit import Unit
from propmgr.models.property_user import PropertyUser, PropertyUserRole
from propmgr.models.lease import Lease
from propmgr.models.rent_schedule import RentSchedule
from propmgr.models.rent import Rent
from propmgr.models.rent_payments import RentPayment
from propmgr.models.media import Media
from propmgr.models.message import Message, message_attachments
from propmgr.models.comment import Comment
from propmgr.models.onboarding import Onboarding
from propmgr.models.maintenance import Vendor, MaintenanceRequest, ScheduledMaintenance
from propmgr.models.notification import Notification
from propmgr.models.audit_log import AuditLog

__all__ = [
    "User",
    "Property",
    "Unit",
    "PropertyUser",
    "PropertyUserRole",
    "Lease",
    "RentSchedule",
    "Rent",
    "RentPayment",
    "Media",
    "Message",
    "message_attachments",
    "Comment",
    "Onboarding",
    "Vendor",
    "MaintenanceRequest",
    "ScheduledMaintenance",
    "Notification",
    "AuditLog",
]
