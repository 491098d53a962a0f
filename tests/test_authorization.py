import logging

import pytest

from propmgr.core.errors import AuthorizationError
from propmgr.models.onboarding import Onboarding
from propmgr.services import associations
from propmgr.services.authorization import Action, Resource, authorize, decide


def test_admin_is_allowed_everything(db, world, make):
    admin = make.user("admin")
    prop_id = world["property"].id
    for action in (Action.DELETE_PROPERTY, Action.ASSIGN_USER, Action.VIEW_PROPERTY, Action.GENERATE_RENT):
        assert decide(db, admin, action, Resource.for_property(prop_id))


def test_self_access(db, make):
    user = make.user("tenant")
    other = make.user("tenant")
    assert decide(db, user, Action.UPDATE_USER, Resource.for_user(user.id))
    assert not decide(db, user, Action.UPDATE_USER, Resource.for_user(other.id))


def test_management_requires_role_on_the_property(db, world, make):
    prop_id = world["property"].id
    assert decide(db, world["landlord"], Action.UPDATE_PROPERTY, Resource.for_property(prop_id))
    assert not decide(db, world["tenant"], Action.UPDATE_PROPERTY, Resource.for_property(prop_id))

    stranger = make.user("landlord")
    make.property(stranger)
    assert not decide(db, stranger, Action.UPDATE_PROPERTY, Resource.for_property(prop_id))


def test_destructive_actions_need_landlord_or_admin_access(db, world, make):
    prop = world["property"]
    manager = make.user("propertymanager")
    make.associate(manager, prop, ["propertymanager"])

    assert decide(db, manager, Action.MANAGE_UNITS, Resource.for_property(prop.id))
    assert not decide(db, manager, Action.DELETE_PROPERTY, Resource.for_property(prop.id))
    assert not decide(db, manager, Action.ASSIGN_USER, Resource.for_property(prop.id))

    delegate = make.user("propertymanager")
    make.associate(delegate, prop, ["admin_access"])
    assert decide(db, delegate, Action.DELETE_PROPERTY, Resource.for_property(prop.id))


def test_view_property_needs_any_active_association(db, world, make):
    prop_id = world["property"].id
    assert decide(db, world["tenant"], Action.VIEW_PROPERTY, Resource.for_property(prop_id))
    assert not decide(db, make.user("tenant"), Action.VIEW_PROPERTY, Resource.for_property(prop_id))

    associations.deactivate_roles(db, user_id=world["tenant"].id, property_id=prop_id, roles=["tenant"],
                                  unit_id=world["unit"].id)
    db.commit()
    assert not decide(db, world["tenant"], Action.VIEW_PROPERTY, Resource.for_property(prop_id))


def test_only_landlords_and_managers_create_properties(db, make):
    assert decide(db, make.user("landlord"), Action.CREATE_PROPERTY, Resource.for_property(None))
    assert decide(db, make.user("propertymanager"), Action.CREATE_PROPERTY, Resource.for_property(None))
    assert not decide(db, make.user("tenant"), Action.CREATE_PROPERTY, Resource.for_property(None))


def test_messaging_needs_a_shared_property(db, world, make):
    landlord, tenant = world["landlord"], world["tenant"]
    assert decide(db, landlord, Action.SEND_MESSAGE, Resource.for_user(tenant.id))
    assert decide(db, tenant, Action.SEND_MESSAGE, Resource.for_user(landlord.id))

    other_landlord = make.user("landlord")
    other_prop = make.property(other_landlord)
    outsider = make.user("tenant")
    make.associate(outsider, other_prop, ["tenant"], unit=make.unit(other_prop))
    assert not decide(db, outsider, Action.SEND_MESSAGE, Resource.for_user(tenant.id))


def test_messaging_scoped_to_a_unit_needs_both_on_it(db, world, make):
    prop = world["property"]
    neighbour = make.user("tenant")
    make.associate(neighbour, prop, ["tenant"], unit=make.unit(prop, "B2"))

    assert decide(db, neighbour, Action.SEND_MESSAGE, Resource.for_user(world["tenant"].id, prop.id))
    assert not decide(db, neighbour, Action.SEND_MESSAGE,
                      Resource.for_user(world["tenant"].id, prop.id, world["unit"].id))
    # the landlord manages the property, so the unit scope does not stop them
    assert decide(db, world["landlord"], Action.SEND_MESSAGE,
                  Resource.for_user(world["tenant"].id, prop.id, world["unit"].id))


def test_rent_access_for_tenant_and_managers(db, world, make):
    lease = make.lease(world["property"], world["unit"], world["tenant"])
    rent = make.rent(lease)

    assert decide(db, world["tenant"], Action.VIEW_RENT, Resource.for_rent(rent))
    assert decide(db, world["landlord"], Action.RECORD_PAYMENT, Resource.for_rent(rent))
    assert not decide(db, make.user("tenant"), Action.VIEW_RENT, Resource.for_rent(rent))


@pytest.mark.parametrize("visibility,field,expected", [
    ("all_tenants", None, True),
    ("property_tenants", None, True),
    ("unit_tenants", None, True),
    ("specific_tenant", "tenant", True),
    ("specific_tenant", "other", False),
])
def test_onboarding_visibility(db, world, make, visibility, field, expected):
    other = make.user("tenant")
    doc = Onboarding(
        title="Welcome pack",
        category="welcome",
        visibility=visibility,
        property_id=world["property"].id,
        unit_id=world["unit"].id,
        tenant_id={"tenant": world["tenant"].id, "other": other.id}.get(field),
        created_by_id=world["landlord"].id,
    )
    db.add(doc)
    db.commit()

    assert decide(db, world["tenant"], Action.VIEW_ONBOARDING, Resource.for_onboarding(doc)) is expected
    assert decide(db, world["landlord"], Action.VIEW_ONBOARDING, Resource.for_onboarding(doc))


def test_unmatched_requests_are_denied(db, world):
    assert not decide(db, world["tenant"], Action.VIEW_RENT, Resource.for_property(world["property"].id))


def test_internal_errors_fail_closed(db, world, monkeypatch, caplog):
    def boom(*args, **kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(associations, "exists_association", boom)
    resource = Resource.for_property(world["property"].id)

    with caplog.at_level(logging.ERROR, logger="propmgr.services.authorization"):
        assert decide(db, world["landlord"], Action.UPDATE_PROPERTY, resource) is False
    assert "Authorization check failed" in caplog.text

    with pytest.raises(AuthorizationError):
        authorize(db, world["landlord"], Action.UPDATE_PROPERTY, resource)
