from datetime import date, timedelta
from decimal import Decimal

import pytest

from propmgr.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from propmgr.models.audit_log import AuditLog
from propmgr.models.media import Media
from propmgr.models.rent import Rent
from propmgr.schemas.rent import PaymentCreate, RentCreate, RentOut, RentUpdate, is_overdue
from propmgr.services import rents
from propmgr.services.media import IncomingFile


@pytest.fixture
def lease(world, make):
    return make.lease(world["property"], world["unit"], world["tenant"])


def _pay(amount, day=10):
    return PaymentCreate(amount=Decimal(amount), payment_date=date(2024, 3, day))


def _proof(name="receipt.png"):
    return IncomingFile(name, "image/png", b"\x89PNG")


def _assert_ledger_consistent(rent):
    assert rent.amount_paid == sum((p.amount for p in rent.payments), Decimal("0"))
    assert (rent.status == "paid") == (rent.amount_paid >= rent.amount_due)


def test_create_rent_record(db, world, lease):
    rent = rents.create_rent_record(db, world["landlord"], RentCreate(
        lease_id=lease.id, amount_due=Decimal("1000"), due_date=date(2024, 4, 5), billing_period="2024-04",
    ))
    assert rent.status == "due"
    assert rent.amount_paid == Decimal("0")
    assert rent.tenant_id == world["tenant"].id
    assert rent.unit_id == world["unit"].id


def test_duplicate_billing_period_conflicts(db, world, lease):
    payload = RentCreate(lease_id=lease.id, amount_due=Decimal("1000"), due_date=date(2024, 4, 5),
                         billing_period="2024-04")
    rents.create_rent_record(db, world["landlord"], payload)
    with pytest.raises(ConflictError):
        rents.create_rent_record(db, world["landlord"], payload)


@pytest.mark.parametrize("period", ["2024-4", "2024-13", "April 2024", "2024/04"])
def test_billing_period_must_be_year_month(period):
    with pytest.raises(ValueError):
        RentCreate(lease_id=1, amount_due=Decimal("1"), due_date=date(2024, 4, 5), billing_period=period)


def test_tenant_cannot_create_rent(db, world, lease):
    with pytest.raises(AuthorizationError):
        rents.create_rent_record(db, world["tenant"], RentCreate(
            lease_id=lease.id, amount_due=Decimal("1000"), due_date=date(2024, 4, 5), billing_period="2024-04",
        ))


def test_partial_payment_then_completion(db, world, make, lease):
    rent = make.rent(lease, amount_due=Decimal("500"))

    rent = rents.record_payment(db, world["landlord"], rent.id, _pay("200", day=10))
    assert rent.status == "partially_paid"
    assert rent.amount_paid == Decimal("200")
    _assert_ledger_consistent(rent)

    rent = rents.record_payment(db, world["landlord"], rent.id, _pay("300", day=20))
    assert rent.status == "paid"
    assert rent.amount_paid == Decimal("500")
    assert rent.payment_date == date(2024, 3, 20)
    assert len(rent.payments) == 2
    _assert_ledger_consistent(rent)


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_non_positive_payment_is_rejected(db, world, make, lease, amount):
    rent = make.rent(lease)
    with pytest.raises(ValidationError):
        rents.record_payment(db, world["landlord"], rent.id, _pay(amount))
    db.refresh(rent)
    assert rent.amount_paid == Decimal("0")
    assert rent.payments == []


@pytest.mark.parametrize("paid,status", [
    ("499.99", "partially_paid"),
    ("500.00", "paid"),
    ("500.01", "paid"),
])
def test_paid_boundary(db, world, make, lease, paid, status):
    rent = make.rent(lease, amount_due=Decimal("500"))
    rent = rents.record_payment(db, world["landlord"], rent.id, _pay(paid))
    assert rent.status == status


def test_tenant_may_pay_own_rent_but_not_others(db, world, make, lease):
    rent = make.rent(lease)
    rents.record_payment(db, world["tenant"], rent.id, _pay("100"))

    with pytest.raises(AuthorizationError):
        rents.record_payment(db, make.user("tenant"), rent.id, _pay("100"))


def test_payment_with_proof_stores_blob(db, world, make, lease, blob_store):
    rent = make.rent(lease)
    rent = rents.record_payment(db, world["tenant"], rent.id, _pay("100"), proof=_proof(), blob_store=blob_store)

    assert rent.payment_proof is not None
    assert rent.payment_proof.related_type == "Rent"
    assert list(blob_store.blobs) == [rent.payment_proof.storage_key]


def test_replacing_proof_deletes_previous_blob_after_commit(db, world, make, lease, blob_store):
    rent = make.rent(lease)
    first = rents.upload_payment_proof(db, world["tenant"], rent.id, _proof("a.png"), blob_store)
    old_key = first.payment_proof.storage_key

    rent = rents.upload_payment_proof(db, world["tenant"], rent.id, _proof("b.png"), blob_store)

    assert rent.payment_proof.filename == "b.png"
    assert old_key not in blob_store.blobs
    assert list(blob_store.blobs) == [rent.payment_proof.storage_key]
    assert db.query(Media).count() == 1
    assert rents.get_payment_proof(db, world["landlord"], rent.id).filename == "b.png"


def test_blob_upload_failure_fails_the_payment(db, world, make, lease, blob_store):
    rent = make.rent(lease)
    blob_store.fail_uploads = True

    with pytest.raises(IOError):
        rents.record_payment(db, world["tenant"], rent.id, _pay("100"), proof=_proof(), blob_store=blob_store)

    db.refresh(rent)
    assert rent.amount_paid == Decimal("0")
    assert rent.payments == []


def test_rollback_after_upload_deletes_the_blob(db, world, make, lease, blob_store, monkeypatch):
    rent = make.rent(lease)

    def broken_audit(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(rents, "log_audit", broken_audit)
    with pytest.raises(RuntimeError):
        rents.upload_payment_proof(db, world["tenant"], rent.id, _proof(), blob_store)

    assert blob_store.blobs == {}
    assert db.query(Media).count() == 0


def test_audit_rows_record_payments(db, world, make, lease):
    rent = make.rent(lease)
    rents.record_payment(db, world["landlord"], rent.id, _pay("100"))

    row = db.query(AuditLog).filter(AuditLog.action == "RECORD_PAYMENT").one()
    assert row.entity_id == str(rent.id)
    assert row.actor_id == world["landlord"].id
    assert row.new_value["status"] == "partially_paid"


def test_missing_proof_is_not_found(db, world, make, lease):
    rent = make.rent(lease)
    with pytest.raises(NotFoundError):
        rents.get_payment_proof(db, world["tenant"], rent.id)


def test_update_rent_rederives_status(db, world, make, lease):
    rent = make.rent(lease, amount_due=Decimal("500"))
    rents.record_payment(db, world["landlord"], rent.id, _pay("300"))

    rent = rents.update_rent_record(db, world["landlord"], rent.id, RentUpdate(amount_due=Decimal("300")))
    assert rent.status == "paid"
    rent = rents.update_rent_record(db, world["landlord"], rent.id, RentUpdate(amount_due=Decimal("800")))
    assert rent.status == "partially_paid"
    _assert_ledger_consistent(rent)


def test_soft_delete_hides_rent_and_frees_the_period(db, world, make, lease):
    rent = make.rent(lease, billing_period="2024-05", due_date=date(2024, 5, 5))
    rent_id = rent.id
    rents.delete_rent_record(db, world["landlord"], rent_id)

    with pytest.raises(NotFoundError):
        rents.get_rent(db, world["landlord"], rent_id)
    assert rents.list_rents(db, world["landlord"]) == []
    assert db.query(Rent).filter(Rent.id == rent_id).one().is_active is False

    again = rents.create_rent_record(db, world["landlord"], RentCreate(
        lease_id=lease.id, amount_due=Decimal("1000"), due_date=date(2024, 5, 5), billing_period="2024-05",
    ))
    assert again.id != rent_id


def test_list_rents_scoping_and_filters(db, world, make, lease):
    march = make.rent(lease)
    april = make.rent(lease, billing_period="2024-04", due_date=date(2024, 4, 5))

    other_landlord = make.user("landlord")
    other_prop = make.property(other_landlord)
    other_unit = make.unit(other_prop)
    other_lease = make.lease(other_prop, other_unit, make.user("tenant"))
    make.rent(other_lease)

    assert [r.id for r in rents.list_rents(db, world["tenant"])] == [april.id, march.id]
    assert [r.id for r in rents.list_rents(db, world["landlord"], billing_period="2024-03")] == [march.id]
    assert len(rents.list_rents(db, make.user("admin"))) == 3


def test_status_filter_splits_overdue_from_due(db, world, make, lease):
    today = date(2024, 3, 20)
    late = make.rent(lease, billing_period="2024-01", due_date=date(2020, 1, 5))
    late_partial = make.rent(lease, billing_period="2024-02", due_date=date(2024, 2, 5))
    rents.record_payment(db, world["landlord"], late_partial.id, _pay("200"))
    upcoming = make.rent(lease, billing_period="2024-04", due_date=date(2024, 4, 5))
    settled = make.rent(lease, billing_period="2023-12", due_date=date(2023, 12, 5))
    rents.record_payment(db, world["landlord"], settled.id, _pay("500"))

    def ids(status):
        return {r.id for r in rents.list_rents(db, world["landlord"], status=status, today=today)}

    assert ids("overdue") == {late.id, late_partial.id}
    assert ids("due") == {upcoming.id}
    assert ids("partially_paid") == set()
    assert ids("paid") == {settled.id}
    with pytest.raises(ValidationError):
        rents.list_rents(db, world["landlord"], status="late", today=today)


def test_upcoming_rent_window(db, world, make, lease):
    today = date(2024, 3, 1)
    inside = make.rent(lease, billing_period="2024-03", due_date=today + timedelta(days=10))
    make.rent(lease, billing_period="2024-05", due_date=today + timedelta(days=70))
    paid = make.rent(lease, billing_period="2024-04", due_date=today + timedelta(days=20))
    rents.record_payment(db, world["landlord"], paid.id, _pay("500"))

    upcoming = rents.get_upcoming_rent(db, world["tenant"], days_ahead=30, today=today)
    assert [r.id for r in upcoming] == [inside.id]

    with pytest.raises(ValidationError):
        rents.get_upcoming_rent(db, world["tenant"], days_ahead=-1, today=today)
    with pytest.raises(AuthorizationError):
        rents.get_upcoming_rent(db, make.user("tenant"), property_id=world["property"].id, today=today)


def test_rent_history_for_a_lease(db, world, make, lease):
    make.rent(lease, billing_period="2024-01", due_date=date(2024, 1, 5))
    make.rent(lease, billing_period="2024-02", due_date=date(2024, 2, 5))
    make.rent(lease)

    history = rents.get_rent_history(db, world["tenant"], lease_id=lease.id, start_period="2024-02")
    assert [r.billing_period for r in history] == ["2024-03", "2024-02"]

    with pytest.raises(ValidationError):
        rents.get_rent_history(db, world["tenant"], lease_id=lease.id, end_period="March")
    with pytest.raises(AuthorizationError):
        rents.get_rent_history(db, make.user("tenant"), lease_id=lease.id)


def test_overdue_is_computed_on_read(db, world, make, lease):
    rent = make.rent(lease, due_date=date(2000, 1, 1))
    assert RentOut.model_validate(rent).is_overdue is True
    assert rent.status == "due"

    rents.record_payment(db, world["landlord"], rent.id, _pay("500"))
    db.refresh(rent)
    assert RentOut.model_validate(rent).is_overdue is False


def test_is_overdue_boundaries():
    due = date(2024, 3, 5)
    assert is_overdue("due", due, today=date(2024, 3, 5)) is False
    assert is_overdue("due", due, today=date(2024, 3, 6)) is True
    assert is_overdue("partially_paid", due, today=date(2024, 3, 6)) is True
    assert is_overdue("paid", due, today=date(2024, 3, 6)) is False
