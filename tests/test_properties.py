import pytest

from propmgr.core.errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from propmgr.models.audit_log import AuditLog
from propmgr.models.comment import Comment
from propmgr.models.lease import Lease
from propmgr.models.message import Message
from propmgr.models.notification import Notification
from propmgr.models.onboarding import Onboarding
from propmgr.models.property import Property
from propmgr.models.property_user import PropertyUser
from propmgr.models.rent import Rent
from propmgr.models.rent_schedule import RentSchedule
from propmgr.models.unit import Unit
from propmgr.schemas.comment import CommentCreate
from propmgr.schemas.message import MessageCreate
from propmgr.schemas.onboarding import OnboardingCreate
from propmgr.schemas.property import PropertyCreate, PropertyUpdate
from propmgr.services import cascade, comments, messages, onboarding, properties
from propmgr.services.associations import exists_association
from propmgr.services.media import IncomingFile


def test_create_property_seeds_creator_association(db, make):
    landlord = make.user("landlord")
    prop = properties.create_property(db, landlord, PropertyCreate(name="Elm Court", address="1 Elm St"))

    assert prop.created_by_id == landlord.id
    assert prop.is_active is True
    assert exists_association(db, user_id=landlord.id, property_id=prop.id, roles=["landlord"])
    audit = db.query(AuditLog).filter(AuditLog.entity_type == "Property").one()
    assert audit.action == "CREATE"
    assert audit.entity_id == str(prop.id)


def test_admin_creator_is_seeded_as_manager(db, make):
    admin = make.user("admin")
    prop = properties.create_property(db, admin, PropertyCreate(name="HQ", address="2 Oak St"))
    assert exists_association(db, user_id=admin.id, property_id=prop.id, roles=["propertymanager"])


def test_tenant_cannot_create_property(db, make):
    with pytest.raises(AuthorizationError):
        properties.create_property(db, make.user("tenant"), PropertyCreate(name="X", address="Y"))
    assert db.query(Property).count() == 0


def test_list_properties_is_scoped_to_associations(db, world, make):
    other_landlord = make.user("landlord")
    other = make.property(other_landlord)

    visible = properties.list_properties(db, world["tenant"])
    assert [p.id for p in visible] == [world["property"].id]

    everything = properties.list_properties(db, make.user("admin"))
    assert {p.id for p in everything} == {world["property"].id, other.id}


def test_property_detail_lists_members(db, world):
    detail = properties.get_property(db, world["tenant"], world["property"].id)
    assert [u.id for u in detail.landlords] == [world["landlord"].id]
    assert detail.property_managers == []
    assert detail.tenants[0]["id"] == world["tenant"].id
    assert detail.tenants[0]["unit_name"] == "A1"


def test_update_and_deactivate(db, world):
    prop = world["property"]
    updated = properties.update_property(db, world["landlord"], prop.id, PropertyUpdate(city="Kampala"))
    assert updated.city == "Kampala"

    with pytest.raises(ValidationError):
        properties.update_property(db, world["landlord"], prop.id, PropertyUpdate(name=None))

    deactivated = properties.deactivate_property(db, world["landlord"], prop.id)
    assert deactivated.is_active is False


def test_tenant_cannot_update_property(db, world):
    with pytest.raises(AuthorizationError):
        properties.update_property(db, world["tenant"], world["property"].id, PropertyUpdate(city="X"))


def test_assign_then_remove_tenant_round_trip(db, world, make):
    prop, landlord = world["property"], world["landlord"]
    unit = make.unit(prop, "B1")
    tenant = make.user("tenant")
    assert unit.status == "vacant"

    assoc = properties.assign_user_to_property(db, landlord, prop.id, tenant.id, ["tenant"], unit_id=unit.id)
    assert assoc.is_active is True
    db.refresh(unit)
    assert unit.status == "occupied"
    note = db.query(Notification).filter(Notification.recipient_id == tenant.id).one()
    assert note.type == "property_assignment"
    assert note.link == f"http://frontend.test/properties/{prop.id}"

    assoc = properties.remove_user_from_property(db, landlord, prop.id, tenant.id, ["tenant"], unit_id=unit.id)
    assert assoc.is_active is False
    db.refresh(unit)
    assert unit.status == "vacant"


def test_assign_tenant_rules(db, world, make):
    prop, landlord = world["property"], world["landlord"]
    unit = make.unit(prop, "B1")
    tenant = make.user("tenant")

    with pytest.raises(ValidationError):
        properties.assign_user_to_property(db, landlord, prop.id, tenant.id, ["tenant"])
    with pytest.raises(ValidationError):
        properties.assign_user_to_property(db, landlord, prop.id, tenant.id, ["tenant", "propertymanager"],
                                           unit_id=unit.id)
    with pytest.raises(ValidationError):
        properties.assign_user_to_property(db, landlord, prop.id, tenant.id, ["propertymanager"],
                                           unit_id=unit.id)
    with pytest.raises(NotFoundError):
        properties.assign_user_to_property(db, landlord, prop.id, 9999, ["propertymanager"])

    # the world tenant already lives in A1
    with pytest.raises(ConflictError):
        properties.assign_user_to_property(db, landlord, prop.id, world["tenant"].id, ["tenant"],
                                           unit_id=unit.id)


def test_assign_tenant_to_unit_with_active_lease_conflicts(db, world, make):
    make.lease(world["property"], world["unit"], world["tenant"])
    newcomer = make.user("tenant")
    with pytest.raises(ConflictError):
        properties.assign_user_to_property(db, world["landlord"], world["property"].id, newcomer.id,
                                           ["tenant"], unit_id=world["unit"].id)


def test_only_owners_assign_users(db, world, make):
    prop = world["property"]
    manager = make.user("propertymanager")
    make.associate(manager, prop, ["propertymanager"])
    with pytest.raises(AuthorizationError):
        properties.assign_user_to_property(db, manager, prop.id, make.user("tenant").id, ["propertymanager"])


def test_removing_tenant_with_active_lease_is_blocked(db, world, make):
    make.lease(world["property"], world["unit"], world["tenant"])
    with pytest.raises(DependencyError):
        properties.remove_user_from_property(db, world["landlord"], world["property"].id, world["tenant"].id,
                                             ["tenant"], unit_id=world["unit"].id)


def test_list_property_users_can_include_inactive(db, world, make):
    prop = world["property"]
    manager = make.user("propertymanager")
    make.associate(manager, prop, ["propertymanager"])
    properties.remove_user_from_property(db, world["landlord"], prop.id, manager.id, ["propertymanager"])

    active = properties.list_property_users(db, world["landlord"], prop.id)
    assert manager.id not in [a.user_id for a in active]
    everyone = properties.list_property_users(db, world["landlord"], prop.id, include_inactive=True)
    assert manager.id in [a.user_id for a in everyone]


def test_delete_blocked_by_active_lease(db, world, make):
    make.lease(world["property"], world["unit"], world["tenant"])
    with pytest.raises(DependencyError):
        properties.delete_property(db, world["landlord"], world["property"].id)
    assert db.query(Property).filter(Property.id == world["property"].id).count() == 1


def test_delete_with_terminated_lease_succeeds(db, world, make):
    prop_id = world["property"].id
    lease = make.lease(world["property"], world["unit"], world["tenant"], status="terminated")
    make.rent(lease)

    properties.delete_property(db, world["landlord"], prop_id)

    assert db.query(Property).filter(Property.id == prop_id).count() == 0
    assert db.query(Lease).filter(Lease.property_id == prop_id).count() == 0
    assert db.query(Rent).filter(Rent.property_id == prop_id).count() == 0


def test_delete_cascades_to_everything_on_the_property(db, world, make, blob_store):
    landlord, tenant, prop, unit = world["landlord"], world["tenant"], world["property"], world["unit"]
    prop_id = prop.id
    lease = make.lease(prop, unit, tenant, status="terminated")
    make.schedule(lease)
    make.rent(lease)
    doc = onboarding.create_onboarding(
        db, landlord, OnboardingCreate(title="House rules", property_id=prop_id),
        file=IncomingFile("rules.pdf", "application/pdf", b"%PDF"), blob_store=blob_store,
    )
    messages.send_message(db, landlord, MessageCreate(recipient_id=tenant.id, content="hi", property_id=prop_id))
    comments.add_comment(db, landlord, CommentCreate(context_type="Property", context_id=prop_id, content="note"))
    comments.add_comment(db, landlord, CommentCreate(context_type="Unit", context_id=unit.id, content="paint"))
    assert len(blob_store.blobs) == 1
    doc_id = doc.id

    counts = properties.delete_property(db, landlord, prop_id, blob_store=blob_store)

    assert counts["properties"] == 1
    assert counts["units"] == 1
    assert db.query(Unit).filter(Unit.property_id == prop_id).count() == 0
    assert db.query(PropertyUser).filter(PropertyUser.property_id == prop_id).count() == 0
    assert db.query(Lease).filter(Lease.property_id == prop_id).count() == 0
    assert db.query(Rent).filter(Rent.property_id == prop_id).count() == 0
    assert db.query(RentSchedule).filter(RentSchedule.property_id == prop_id).count() == 0
    assert db.query(Message).filter(Message.property_id == prop_id).count() == 0
    assert db.query(Onboarding).filter(Onboarding.id == doc_id).count() == 0
    assert db.query(Comment).count() == 0
    # blob removed once the deletion committed
    assert blob_store.blobs == {}
    audit = db.query(AuditLog).filter(AuditLog.entity_type == "Property", AuditLog.action == "DELETE").one()
    assert audit.entity_id == str(prop_id)


def test_failed_cascade_rolls_back_everything(db, world, monkeypatch):
    prop_id = world["property"].id
    real_purge = cascade.purge_property

    def purge_then_fail(*args, **kwargs):
        real_purge(*args, **kwargs)
        raise RuntimeError("disk full")

    monkeypatch.setattr(cascade, "purge_property", purge_then_fail)

    with pytest.raises(RuntimeError):
        properties.delete_property(db, world["landlord"], prop_id)

    assert db.query(Property).filter(Property.id == prop_id).count() == 1
    assert db.query(Unit).filter(Unit.property_id == prop_id).count() == 1
    assert db.query(PropertyUser).filter(PropertyUser.property_id == prop_id).count() == 2
    assert db.query(AuditLog).filter(AuditLog.action == "DELETE").count() == 0


def test_manager_without_admin_access_cannot_delete(db, world, make):
    manager = make.user("propertymanager")
    make.associate(manager, world["property"], ["propertymanager"])
    with pytest.raises(AuthorizationError):
        properties.delete_property(db, manager, world["property"].id)
