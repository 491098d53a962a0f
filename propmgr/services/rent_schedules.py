"""
Rent schedules and rent materialization.

A schedule is a recurrence rule on a lease. ``generate_rent_records`` turns every
eligible schedule into a Rent for the billing period of a target date. Each
schedule is processed in its own SAVEPOINT so one failure is reported in the
summary without aborting the batch.
"""
import calendar
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from propmgr.core.audit import log_audit
from propmgr.core.config import settings
from propmgr.core.database import transaction, transactional
from propmgr.core.enums import AuditAction, BILLING_FREQUENCY_MONTHS, LeaseStatus, RentStatus
from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from propmgr.models.rent import Rent
from propmgr.models.rent_schedule import RentSchedule
from propmgr.models.user import User
from propmgr.schemas.rent_schedule import RentScheduleCreate, RentScheduleUpdate
from propmgr.services.authorization import (
    Action,
    Resource,
    authorize,
    managed_property_ids,
)
from propmgr.services.leases import can_view_lease, get_lease_or_404
from propmgr.services.rents import billing_period_of, derive_status, find_active_rent

logger = logging.getLogger(__name__)


def due_date_for(year: int, month: int, due_date_day: int) -> date:
    """The schedule's due day in the given month, clamped to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_date_day, last_day))


def _months_between(start: date, target: date) -> int:
    return (target.year - start.year) * 12 + (target.month - start.month)


def is_billing_month(schedule: RentSchedule, target: date) -> bool:
    step = BILLING_FREQUENCY_MONTHS.get(schedule.billing_frequency, 1)
    return _months_between(schedule.effective_start, target) % step == 0


def _overlaps(start_a: date, end_a: Optional[date], start_b: date, end_b: Optional[date]) -> bool:
    # ranges are inclusive; a missing end is open-ended
    return (end_b is None or start_a <= end_b) and (end_a is None or start_b <= end_a)


def _assert_no_overlap(db: Session, lease_id: int, start: date, end: Optional[date],
                       exclude_id: Optional[int] = None) -> None:
    q = db.query(RentSchedule).filter(
        RentSchedule.lease_id == lease_id,
        RentSchedule.is_active.is_(True),
    )
    if exclude_id is not None:
        q = q.filter(RentSchedule.id != exclude_id)
    for other in q.all():
        if _overlaps(start, end, other.effective_start, other.effective_end):
            raise ConflictError(
                "Rent schedule overlaps an existing active schedule for this lease",
                details={"schedule_id": other.id},
            )


def get_schedule_or_404(db: Session, schedule_id: int) -> RentSchedule:
    schedule = db.query(RentSchedule).filter(RentSchedule.id == schedule_id).first()
    if not schedule:
        raise NotFoundError("Rent schedule not found")
    return schedule


@transactional
def create_rent_schedule(db: Session, principal: User, payload: RentScheduleCreate) -> RentSchedule:
    lease = get_lease_or_404(db, payload.lease_id)
    authorize(db, principal, Action.CREATE_RENT_SCHEDULE, Resource.for_property(lease.property_id))
    _assert_no_overlap(db, lease.id, payload.effective_start, payload.effective_end)

    schedule = RentSchedule(
        **payload.model_dump(exclude={"currency"}),
        currency=payload.currency or lease.currency or settings.DEFAULT_CURRENCY,
        property_id=lease.property_id,
        is_active=True,
        created_by_id=principal.id,
    )
    db.add(schedule)
    db.flush()
    # re-check after the write so concurrent inserts cannot both pass
    _assert_no_overlap(db, lease.id, schedule.effective_start, schedule.effective_end, exclude_id=schedule.id)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.CREATE.value,
        entity_type="RentSchedule",
        entity_id=schedule.id,
        property_id=lease.property_id,
        new_value=payload.model_dump(),
    )
    logger.info("Rent schedule %s created for lease %s", schedule.id, lease.id)
    return schedule


@transactional
def update_rent_schedule(db: Session, principal: User, schedule_id: int,
                         payload: RentScheduleUpdate) -> RentSchedule:
    schedule = get_schedule_or_404(db, schedule_id)
    authorize(db, principal, Action.UPDATE_RENT_SCHEDULE, Resource.for_property(schedule.property_id))

    changes = payload.model_dump(exclude_unset=True)
    for required in ("amount", "currency", "due_date_day", "billing_frequency", "effective_start",
                     "auto_generate", "is_active"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} cannot be null")

    start = changes.get("effective_start", schedule.effective_start)
    end = changes["effective_end"] if "effective_end" in changes else schedule.effective_end
    if end is not None and end < start:
        raise ValidationError("effective_end cannot be before effective_start")

    old = {k: getattr(schedule, k) for k in changes}
    for k, v in changes.items():
        setattr(schedule, k, v)
    db.flush()
    if schedule.is_active:
        _assert_no_overlap(db, schedule.lease_id, schedule.effective_start, schedule.effective_end,
                           exclude_id=schedule.id)

    log_audit(
        db,
        actor=principal,
        action=AuditAction.UPDATE.value,
        entity_type="RentSchedule",
        entity_id=schedule.id,
        property_id=schedule.property_id,
        old_value=old,
        new_value=changes,
    )
    return schedule


@transactional
def deactivate_rent_schedule(db: Session, principal: User, schedule_id: int) -> RentSchedule:
    return update_rent_schedule(db, principal, schedule_id, RentScheduleUpdate(is_active=False))


def list_rent_schedules(db: Session, principal: User, lease_id: int,
                        include_inactive: bool = False) -> List[RentSchedule]:
    lease = get_lease_or_404(db, lease_id)
    if not can_view_lease(db, principal, lease):
        raise AuthorizationError("Not authorized to view schedules for this lease")
    q = db.query(RentSchedule).filter(RentSchedule.lease_id == lease_id)
    if not include_inactive:
        q = q.filter(RentSchedule.is_active.is_(True))
    return q.order_by(RentSchedule.effective_start).all()


def _materialize(db: Session, schedule: RentSchedule, for_date: date, billing_period: str,
                 force_generation: bool, actor: User) -> dict:
    lease = schedule.lease
    detail = {"schedule_id": schedule.id, "lease_id": schedule.lease_id, "billing_period": billing_period}

    if lease is None or lease.status != LeaseStatus.ACTIVE.value:
        return {**detail, "result": "skipped", "reason": "lease not active"}
    if not is_billing_month(schedule, for_date):
        return {**detail, "result": "skipped", "reason": "not a billing month"}

    existing = find_active_rent(db, lease.id, billing_period)
    if existing is not None and not force_generation:
        return {**detail, "result": "skipped", "reason": "already exists", "rent_id": existing.id}

    due = due_date_for(for_date.year, for_date.month, schedule.due_date_day)
    if existing is None:
        rent = Rent(
            lease_id=lease.id,
            tenant_id=lease.tenant_id,
            property_id=lease.property_id,
            unit_id=lease.unit_id,
            billing_period=billing_period,
            amount_due=schedule.amount,
            amount_paid=Decimal("0"),
            currency=schedule.currency,
            due_date=due,
            status=RentStatus.DUE.value,
            created_by_id=actor.id,
        )
        db.add(rent)
        action = "created"
    else:
        # payments already recorded stay; the status follows the new amount
        rent = existing
        rent.amount_due = schedule.amount
        rent.currency = schedule.currency
        rent.due_date = due
        rent.status = derive_status(rent.amount_paid, rent.amount_due)
        action = "updated"

    schedule.last_generated_date = datetime.now(timezone.utc)
    db.flush()
    return {**detail, "result": "generated", "action": action, "rent_id": rent.id}


def generate_rent_records(
    db: Session,
    principal: User,
    for_date: Optional[date] = None,
    force_generation: bool = False,
    property_id: Optional[int] = None,
) -> dict:
    """
    Materialize rents for the billing period containing ``for_date``.

    Admins generate for every property; managers for the properties they
    manage (or the one given). Returns {generated, skipped, failed, details}.
    """
    for_date = for_date or datetime.now(timezone.utc).date()
    billing_period = billing_period_of(for_date)

    if property_id is not None:
        authorize(db, principal, Action.GENERATE_RENT, Resource.for_property(property_id))
        scope = [property_id]
    else:
        scope = managed_property_ids(db, principal)
        if scope is not None and not scope:
            raise AuthorizationError("Not authorized to generate rent records")

    q = db.query(RentSchedule).filter(
        RentSchedule.is_active.is_(True),
        RentSchedule.auto_generate.is_(True),
        RentSchedule.effective_start <= for_date,
        or_(RentSchedule.effective_end.is_(None), RentSchedule.effective_end >= for_date),
    )
    if scope is not None:
        q = q.filter(RentSchedule.property_id.in_(scope))
    schedules = q.order_by(RentSchedule.id).all()

    summary = {
        "for_date": for_date,
        "billing_period": billing_period,
        "generated": 0,
        "skipped": 0,
        "failed": 0,
        "details": [],
    }
    with transaction(db):
        for schedule in schedules:
            schedule_id = schedule.id
            try:
                with db.begin_nested():
                    detail = _materialize(db, schedule, for_date, billing_period, force_generation, principal)
            except Exception as e:
                logger.exception("Rent generation failed for schedule %s", schedule_id)
                detail = {
                    "schedule_id": schedule_id,
                    "billing_period": billing_period,
                    "result": "failed",
                    "reason": str(e),
                }
            summary[detail["result"]] += 1
            summary["details"].append(detail)

        if summary["generated"]:
            log_audit(
                db,
                actor=principal,
                action=AuditAction.GENERATE.value,
                entity_type="Rent",
                entity_id=billing_period,
                property_id=property_id,
                description=(
                    f"Generated rent for {billing_period}: {summary['generated']} generated, "
                    f"{summary['skipped']} skipped, {summary['failed']} failed"
                ),
            )

    logger.info(
        "Rent generation for %s by user %s: generated=%s skipped=%s failed=%s",
        billing_period, principal.id, summary["generated"], summary["skipped"], summary["failed"],
    )
    return summary
