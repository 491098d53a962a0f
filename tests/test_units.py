import pytest

from propmgr.core.errors import AuthorizationError, ConflictError, DependencyError
from propmgr.models.comment import Comment
from propmgr.models.property_user import PropertyUser
from propmgr.models.unit import Unit
from propmgr.schemas.comment import CommentCreate
from propmgr.schemas.unit import UnitCreate, UnitUpdate
from propmgr.services import associations, comments, units


def test_create_unit_starts_vacant(db, world):
    unit = units.create_unit(db, world["landlord"], world["property"].id, UnitCreate(unit_name=" B2 ", bedrooms=2))
    assert unit.unit_name == "B2"
    assert unit.status == "vacant"


def test_create_unit_with_maintenance_flag(db, world):
    unit = units.create_unit(db, world["landlord"], world["property"].id,
                             UnitCreate(unit_name="B3", manual_status="under_maintenance"))
    assert unit.status == "under_maintenance"


def test_unit_names_are_unique_per_property(db, world, make):
    with pytest.raises(ConflictError):
        units.create_unit(db, world["landlord"], world["property"].id, UnitCreate(unit_name="A1"))

    other = make.property(world["landlord"])
    assert units.create_unit(db, world["landlord"], other.id, UnitCreate(unit_name="A1")).unit_name == "A1"


def test_tenant_cannot_manage_units(db, world):
    with pytest.raises(AuthorizationError):
        units.create_unit(db, world["tenant"], world["property"].id, UnitCreate(unit_name="Z"))


def test_manual_status_is_overridden_by_occupancy(db, world, make):
    unit = world["unit"]
    updated = units.update_unit(db, world["landlord"], unit.id, UnitUpdate(manual_status="under_maintenance"))
    # the tenant still lives there
    assert updated.status == "occupied"

    associations.deactivate_roles(db, user_id=world["tenant"].id, property_id=world["property"].id,
                                  roles=["tenant"], unit_id=unit.id)
    units.sync_unit_status(db, unit)
    db.commit()
    assert unit.status == "under_maintenance"

    cleared = units.update_unit(db, world["landlord"], unit.id, UnitUpdate(manual_status=None))
    assert cleared.status == "vacant"


def test_occupied_units_always_have_a_tenant_or_lease(db, world, make):
    prop = world["property"]
    spare = make.unit(prop, "C1")
    lease_only = make.unit(prop, "C2")
    make.lease(prop, lease_only, make.user("tenant"))

    for unit in db.query(Unit).filter(Unit.property_id == prop.id).all():
        units.sync_unit_status(db, unit)
        if unit.status == "occupied":
            assert associations.count_active_tenants_on_unit(db, unit.id) or units.has_active_lease(db, unit.id)
    db.refresh(spare)
    assert spare.status == "vacant"
    db.refresh(lease_only)
    assert lease_only.status == "occupied"


def test_delete_unit_blocked_by_tenant_or_lease(db, world, make):
    with pytest.raises(DependencyError):
        units.delete_unit(db, world["landlord"], world["unit"].id)

    leased = make.unit(world["property"], "D1")
    make.lease(world["property"], leased, make.user("tenant"))
    with pytest.raises(DependencyError):
        units.delete_unit(db, world["landlord"], leased.id)


def test_delete_unit_cascades(db, world, make):
    prop = world["property"]
    unit = make.unit(prop, "E1")
    unit_id = unit.id
    former = make.user("tenant")
    make.associate(former, prop, ["tenant"], unit=unit)
    associations.deactivate_roles(db, user_id=former.id, property_id=prop.id, roles=["tenant"], unit_id=unit_id)
    db.commit()
    comments.add_comment(db, world["landlord"], CommentCreate(context_type="Unit", context_id=unit_id,
                                                              content="repaint"))

    units.delete_unit(db, world["landlord"], unit_id)

    assert db.query(Unit).filter(Unit.id == unit_id).count() == 0
    assert db.query(PropertyUser).filter(PropertyUser.unit_id == unit_id).count() == 0
    assert db.query(Comment).count() == 0
    assert db.query(Unit).filter(Unit.property_id == prop.id).count() == 1
