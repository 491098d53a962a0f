from datetime import date
from decimal import Decimal

import pytest

from propmgr.core.errors import AuthorizationError, ConflictError, ValidationError
from propmgr.models.audit_log import AuditLog
from propmgr.models.rent import Rent
from propmgr.schemas.rent import PaymentCreate
from propmgr.schemas.rent_schedule import RentScheduleCreate, RentScheduleUpdate
from propmgr.services import rent_schedules, rents
from propmgr.services.rent_schedules import due_date_for, generate_rent_records


@pytest.fixture
def lease(world, make):
    return make.lease(world["property"], world["unit"], world["tenant"])


def _create(db, principal, lease, **kw):
    data = dict(lease_id=lease.id, amount=Decimal("1000"), due_date_day=5, effective_start=date(2024, 1, 1))
    data.update(kw)
    return rent_schedules.create_rent_schedule(db, principal, RentScheduleCreate(**data))


def test_generation_is_idempotent(db, world, lease):
    _create(db, world["landlord"], lease)

    first = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    assert (first["generated"], first["skipped"], first["failed"]) == (1, 0, 0)
    assert first["billing_period"] == "2024-03"

    rent = db.query(Rent).one()
    assert rent.billing_period == "2024-03"
    assert rent.amount_due == Decimal("1000")
    assert rent.due_date == date(2024, 3, 5)
    assert rent.status == "due"

    second = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    assert (second["generated"], second["skipped"]) == (0, 1)
    assert second["details"][0]["reason"] == "already exists"
    assert db.query(Rent).count() == 1


def test_generation_stamps_schedule_and_audits(db, world, lease):
    schedule = _create(db, world["landlord"], lease)
    assert schedule.last_generated_date is None

    generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    db.refresh(schedule)
    assert schedule.last_generated_date is not None
    assert db.query(AuditLog).filter(AuditLog.action == "GENERATE").count() == 1


def test_overlapping_schedule_is_rejected(db, world, lease):
    _create(db, world["landlord"], lease)
    with pytest.raises(ConflictError):
        _create(db, world["landlord"], lease, effective_start=date(2024, 6, 1))


def test_back_to_back_schedules_are_allowed(db, world, lease):
    _create(db, world["landlord"], lease, effective_end=date(2024, 5, 31))
    second = _create(db, world["landlord"], lease, effective_start=date(2024, 6, 1), amount=Decimal("1200"))
    assert second.is_active is True


def test_update_into_overlap_conflicts(db, world, lease):
    _create(db, world["landlord"], lease, effective_end=date(2024, 5, 31))
    later = _create(db, world["landlord"], lease, effective_start=date(2024, 6, 1))

    with pytest.raises(ConflictError):
        rent_schedules.update_rent_schedule(db, world["landlord"], later.id,
                                            RentScheduleUpdate(effective_start=date(2024, 5, 1)))
    db.refresh(later)
    assert later.effective_start == date(2024, 6, 1)


def test_deactivated_schedule_no_longer_blocks(db, world, lease):
    first = _create(db, world["landlord"], lease)
    rent_schedules.deactivate_rent_schedule(db, world["landlord"], first.id)
    assert _create(db, world["landlord"], lease, effective_start=date(2024, 6, 1)).is_active


def test_update_rejects_inverted_range(db, world, lease):
    schedule = _create(db, world["landlord"], lease)
    with pytest.raises(ValidationError):
        rent_schedules.update_rent_schedule(db, world["landlord"], schedule.id,
                                            RentScheduleUpdate(effective_end=date(2023, 12, 31)))


def test_due_day_is_clamped_to_month_end(db, world, lease):
    assert due_date_for(2024, 2, 31) == date(2024, 2, 29)
    assert due_date_for(2023, 2, 31) == date(2023, 2, 28)
    assert due_date_for(2024, 4, 31) == date(2024, 4, 30)

    _create(db, world["landlord"], lease, due_date_day=31)
    generate_rent_records(db, world["landlord"], for_date=date(2024, 2, 10))
    assert db.query(Rent).one().due_date == date(2024, 2, 29)


def test_quarterly_schedule_skips_off_months(db, world, lease):
    _create(db, world["landlord"], lease, billing_frequency="quarterly")

    off = generate_rent_records(db, world["landlord"], for_date=date(2024, 2, 10))
    assert off["skipped"] == 1
    assert off["details"][0]["reason"] == "not a billing month"

    on = generate_rent_records(db, world["landlord"], for_date=date(2024, 4, 10))
    assert on["generated"] == 1
    assert db.query(Rent).one().billing_period == "2024-04"


def test_inactive_lease_is_skipped(db, world, make):
    lease = make.lease(world["property"], world["unit"], world["tenant"], status="terminated")
    make.schedule(lease)

    summary = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    assert summary["skipped"] == 1
    assert summary["details"][0]["reason"] == "lease not active"
    assert db.query(Rent).count() == 0


def test_schedules_outside_their_window_are_ignored(db, world, make, lease):
    make.schedule(lease, effective_start=date(2024, 6, 1))
    summary = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    assert summary["details"] == []


def test_force_generation_updates_but_keeps_payments(db, world, make, lease):
    schedule = make.schedule(lease, amount=Decimal("1000"))
    generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    rent = db.query(Rent).one()
    rents.record_payment(db, world["landlord"], rent.id,
                         PaymentCreate(amount=Decimal("600"), payment_date=date(2024, 3, 6)))

    schedule.amount = Decimal("600")
    db.commit()
    summary = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15), force_generation=True)

    assert summary["generated"] == 1
    assert summary["details"][0]["action"] == "updated"
    rent = db.query(Rent).one()
    assert rent.amount_due == Decimal("600")
    assert rent.amount_paid == Decimal("600")
    assert rent.status == "paid"
    assert len(rent.payments) == 1


def test_one_failing_schedule_does_not_abort_the_batch(db, world, make, lease, monkeypatch):
    prop = world["property"]
    other_unit = make.unit(prop, "B1")
    other_lease = make.lease(prop, other_unit, make.user("tenant"))
    bad = make.schedule(lease)
    make.schedule(other_lease)
    bad_id = bad.id

    real = rent_schedules._materialize

    def flaky(db, schedule, *args, **kwargs):
        if schedule.id == bad_id:
            raise RuntimeError("boom")
        return real(db, schedule, *args, **kwargs)

    monkeypatch.setattr(rent_schedules, "_materialize", flaky)
    summary = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))

    assert (summary["generated"], summary["failed"]) == (1, 1)
    failed = [d for d in summary["details"] if d["result"] == "failed"]
    assert failed[0]["schedule_id"] == bad_id
    assert failed[0]["reason"] == "boom"
    assert db.query(Rent).one().lease_id == other_lease.id


def test_generation_is_scoped_to_managed_properties(db, world, make, lease):
    make.schedule(lease)
    other_landlord = make.user("landlord")
    other_prop = make.property(other_landlord)
    other_lease = make.lease(other_prop, make.unit(other_prop), make.user("tenant"))
    make.schedule(other_lease)

    mine = generate_rent_records(db, world["landlord"], for_date=date(2024, 3, 15))
    assert mine["generated"] == 1

    everything = generate_rent_records(db, make.user("admin"), for_date=date(2024, 3, 15))
    assert (everything["generated"], everything["skipped"]) == (1, 1)


def test_tenants_cannot_generate(db, world, lease):
    with pytest.raises(AuthorizationError):
        generate_rent_records(db, world["tenant"], for_date=date(2024, 3, 15))
    with pytest.raises(AuthorizationError):
        generate_rent_records(db, world["tenant"], for_date=date(2024, 3, 15), property_id=world["property"].id)


def test_list_schedules_for_lease(db, world, make, lease):
    first = _create(db, world["landlord"], lease, effective_end=date(2024, 5, 31))
    _create(db, world["landlord"], lease, effective_start=date(2024, 6, 1))
    rent_schedules.deactivate_rent_schedule(db, world["landlord"], first.id)

    assert len(rent_schedules.list_rent_schedules(db, world["tenant"], lease.id)) == 1
    assert len(rent_schedules.list_rent_schedules(db, world["tenant"], lease.id, include_inactive=True)) == 2
    with pytest.raises(AuthorizationError):
        rent_schedules.list_rent_schedules(db, make.user("tenant"), lease.id)
