import pytest

from propmgr.core.errors import AuthorizationError, ConflictError, NotFoundError
from propmgr.schemas.user import UserCreate, UserUpdate
from propmgr.services import users


def test_users_see_and_edit_themselves(db, make):
    me = make.user("tenant")
    assert users.get_user(db, me, me.id).id == me.id
    updated = users.update_user(db, me, me.id, UserUpdate(phone="+256700000000"))
    assert updated.phone == "+256700000000"


def test_users_cannot_touch_others(db, make):
    me, other = make.user("tenant"), make.user("landlord")
    with pytest.raises(AuthorizationError):
        users.get_user(db, me, other.id)
    with pytest.raises(AuthorizationError):
        users.update_user(db, me, other.id, UserUpdate(first_name="Mallory"))
    with pytest.raises(NotFoundError):
        users.get_user(db, me, 9999)


def test_admin_provisions_users(db, make):
    admin = make.user("admin")
    created = users.create_user(db, admin, UserCreate(email=" New@Example.com ", role="landlord"))
    assert created.email == "new@example.com"

    with pytest.raises(ConflictError):
        users.create_user(db, admin, UserCreate(email="new@example.com"))
    with pytest.raises(AuthorizationError):
        users.create_user(db, make.user("landlord"), UserCreate(email="x@example.com"))


def test_admin_lists_users(db, make):
    admin = make.user("admin")
    make.user("tenant", first_name="Grace")
    make.user("landlord")

    assert [u.first_name for u in users.list_users(db, admin, search="grace")] == ["Grace"]
    assert len(users.list_users(db, admin, role="landlord")) == 1
    with pytest.raises(AuthorizationError):
        users.list_users(db, make.user("tenant"))
