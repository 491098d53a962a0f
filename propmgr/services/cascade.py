"""
Hard-delete cascades for properties and units.

Rows are removed children first so foreign keys hold at every step:
rents (with payment history and schedules), leases, maintenance work, comments,
messages and onboarding documents, associations, units, and finally the
property itself. Media rows owned by deleted records go last; their blobs are
removed only after the transaction commits.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import false, or_
from sqlalchemy.orm import Session

from propmgr.core.database import on_commit
from propmgr.core.enums import ContextType
from propmgr.core.storage import BlobStore, delete_quietly
from propmgr.models.comment import Comment
from propmgr.models.lease import Lease
from propmgr.models.maintenance import MaintenanceRequest, ScheduledMaintenance
from propmgr.models.media import Media
from propmgr.models.message import Message, message_attachments
from propmgr.models.onboarding import Onboarding
from propmgr.models.property import Property
from propmgr.models.property_user import PropertyUser, PropertyUserRole
from propmgr.models.rent import Rent
from propmgr.models.rent_payments import RentPayment
from propmgr.models.rent_schedule import RentSchedule
from propmgr.models.unit import Unit

logger = logging.getLogger(__name__)


def _ids(q) -> List[int]:
    return [row[0] for row in q.all()]


def _scope(model, property_id: Optional[int], unit_ids: List[int]):
    conds = []
    if property_id is not None and hasattr(model, "property_id"):
        conds.append(model.property_id == property_id)
    if unit_ids and hasattr(model, "unit_id"):
        conds.append(model.unit_id.in_(unit_ids))
    return or_(*conds) if conds else false()


def _delete(db: Session, model, ids: List[int]) -> int:
    if not ids:
        return 0
    return db.query(model).filter(model.id.in_(ids)).delete(synchronize_session=False)


def _purge(db: Session, property_id: Optional[int], unit_ids: List[int],
           blob_store: Optional[BlobStore]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    media_ids: List[int] = []

    # 1. rents, their payment history and the schedules that produce them
    lease_ids = _ids(db.query(Lease.id).filter(_scope(Lease, property_id, unit_ids)))
    rent_q = db.query(Rent.id, Rent.payment_proof_id).filter(
        or_(_scope(Rent, property_id, unit_ids), Rent.lease_id.in_(lease_ids))
    )
    rent_rows = rent_q.all()
    rent_ids = [r[0] for r in rent_rows]
    media_ids += [r[1] for r in rent_rows if r[1] is not None]
    if rent_ids:
        db.query(RentPayment).filter(RentPayment.rent_id.in_(rent_ids)).delete(synchronize_session=False)
    counts["rents"] = _delete(db, Rent, rent_ids)
    schedule_ids = _ids(db.query(RentSchedule.id).filter(
        or_(_scope(RentSchedule, property_id, []), RentSchedule.lease_id.in_(lease_ids))
    ))
    counts["rent_schedules"] = _delete(db, RentSchedule, schedule_ids)

    # 2. leases
    counts["leases"] = _delete(db, Lease, lease_ids)

    # 3. maintenance requests and scheduled maintenance
    request_ids = _ids(db.query(MaintenanceRequest.id).filter(_scope(MaintenanceRequest, property_id, unit_ids)))
    counts["requests"] = _delete(db, MaintenanceRequest, request_ids)
    sm_ids = _ids(db.query(ScheduledMaintenance.id).filter(_scope(ScheduledMaintenance, property_id, unit_ids)))
    counts["scheduled_maintenance"] = _delete(db, ScheduledMaintenance, sm_ids)

    # 4. comments on any of the rows above
    contexts = [
        (ContextType.UNIT, unit_ids),
        (ContextType.LEASE, lease_ids),
        (ContextType.REQUEST, request_ids),
        (ContextType.SCHEDULED_MAINTENANCE, sm_ids),
    ]
    if property_id is not None:
        contexts.insert(0, (ContextType.PROPERTY, [property_id]))
    comment_conds = [
        (Comment.context_type == ctype.value) & Comment.context_id.in_(ids)
        for ctype, ids in contexts if ids
    ]
    counts["comments"] = 0
    if comment_conds:
        counts["comments"] = db.query(Comment).filter(or_(*comment_conds)).delete(synchronize_session=False)

    # 5. messages and onboarding documents
    message_ids = _ids(db.query(Message.id).filter(_scope(Message, property_id, unit_ids)))
    if message_ids:
        media_ids += [
            row[0] for row in db.query(message_attachments.c.media_id)
            .filter(message_attachments.c.message_id.in_(message_ids)).all()
        ]
        db.execute(message_attachments.delete().where(message_attachments.c.message_id.in_(message_ids)))
        # replies that live outside the deleted set lose their parent link
        db.query(Message).filter(
            Message.parent_message_id.in_(message_ids),
            Message.id.notin_(message_ids),
        ).update({Message.parent_message_id: None}, synchronize_session=False)
        db.query(Message).filter(Message.id.in_(message_ids)).update(
            {Message.parent_message_id: None}, synchronize_session=False
        )
    counts["messages"] = _delete(db, Message, message_ids)

    onboarding_rows = db.query(Onboarding.id, Onboarding.media_id).filter(
        _scope(Onboarding, property_id, unit_ids)
    ).all()
    media_ids += [r[1] for r in onboarding_rows if r[1] is not None]
    counts["onboardings"] = _delete(db, Onboarding, [r[0] for r in onboarding_rows])

    # 6. associations
    association_ids = _ids(db.query(PropertyUser.id).filter(_scope(PropertyUser, property_id, unit_ids)))
    if association_ids:
        db.query(PropertyUserRole).filter(
            PropertyUserRole.property_user_id.in_(association_ids)
        ).delete(synchronize_session=False)
    counts["associations"] = _delete(db, PropertyUser, association_ids)

    # 7. units
    counts["units"] = _delete(db, Unit, unit_ids)

    # 8. the property
    if property_id is not None:
        counts["properties"] = _delete(db, Property, [property_id])

    # owned media; blobs go once the deletion is durable
    media_ids = list(dict.fromkeys(media_ids))
    keys = _ids(db.query(Media.storage_key).filter(Media.id.in_(media_ids))) if media_ids else []
    counts["media"] = _delete(db, Media, media_ids)
    if blob_store is not None:
        for key in keys:
            on_commit(db, lambda key=key: delete_quietly(blob_store, key))

    db.flush()
    # bulk deletes bypass the identity map
    db.expire_all()
    return counts


def purge_property(db: Session, property_id: int, blob_store: Optional[BlobStore] = None) -> Dict[str, int]:
    unit_ids = _ids(db.query(Unit.id).filter(Unit.property_id == property_id))
    return _purge(db, property_id, unit_ids, blob_store)


def purge_units(db: Session, unit_ids: List[int], blob_store: Optional[BlobStore] = None) -> Dict[str, int]:
    return _purge(db, None, list(unit_ids), blob_store)
