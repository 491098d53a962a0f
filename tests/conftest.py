import itertools
import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["FRONTEND_URL"] = "http://frontend.test"

from datetime import date
from decimal import Decimal

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import propmgr.models  # noqa: F401
from propmgr.api.deps import client_ip, get_blob_store, get_db
from propmgr.core.database import Base, create_db_engine
from propmgr.core.storage import BlobStore, StoredBlob
from propmgr.main import app
from propmgr.models.lease import Lease
from propmgr.models.property import Property
from propmgr.models.rent import Rent
from propmgr.models.rent_schedule import RentSchedule
from propmgr.models.unit import Unit
from propmgr.models.user import User
from propmgr.services import associations
from propmgr.services.units import sync_unit_status


class MemoryBlobStore(BlobStore):
    def __init__(self):
        self.blobs = {}
        self.fail_uploads = False
        self._seq = itertools.count(1)

    def upload(self, data, content_type, filename, folder):
        if self.fail_uploads:
            raise IOError("blob store unavailable")
        key = f"{folder}/{next(self._seq)}-{filename}"
        self.blobs[key] = data
        return StoredBlob(key=key, url=f"memory://{key}")

    def delete(self, key):
        self.blobs.pop(key, None)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


class Factory:
    """Direct-to-database builders; bypass the services' authorization checks."""

    def __init__(self, db):
        self.db = db
        self._seq = itertools.count(1)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, role="tenant", **kw):
        n = next(self._seq)
        kw.setdefault("email", f"{role}{n}@example.com")
        kw.setdefault("first_name", role.capitalize())
        kw.setdefault("last_name", str(n))
        return self._save(User(role=role, **kw))

    def property(self, owner, roles=None, **kw):
        n = next(self._seq)
        kw.setdefault("name", f"Property {n}")
        kw.setdefault("address", f"{n} Main Street")
        prop = self._save(Property(created_by_id=owner.id, **kw))
        self.associate(owner, prop, roles or [owner.role if owner.role != "admin" else "propertymanager"])
        return prop

    def unit(self, prop, unit_name=None, **kw):
        n = next(self._seq)
        return self._save(Unit(property_id=prop.id, unit_name=unit_name or f"U{n}", **kw))

    def associate(self, user, prop, roles, unit=None):
        assoc = associations.upsert_association(
            self.db, user_id=user.id, property_id=prop.id, roles=roles,
            unit_id=unit.id if unit is not None else None,
        )
        if unit is not None:
            sync_unit_status(self.db, unit)
        self.db.commit()
        return assoc

    def lease(self, prop, unit, tenant, status="active", start=date(2024, 1, 1), end=date(2024, 12, 31),
              monthly_rent=Decimal("1000")):
        lease = Lease(
            property_id=prop.id,
            unit_id=unit.id,
            tenant_id=tenant.id,
            start_date=start,
            end_date=end,
            monthly_rent=monthly_rent,
            currency="UGX",
            status=status,
        )
        self.db.add(lease)
        self.db.flush()
        sync_unit_status(self.db, unit)
        self.db.commit()
        return lease

    def schedule(self, lease, **kw):
        kw.setdefault("amount", Decimal("1000"))
        kw.setdefault("currency", "UGX")
        kw.setdefault("due_date_day", 5)
        kw.setdefault("billing_frequency", "monthly")
        kw.setdefault("effective_start", date(2024, 1, 1))
        return self._save(RentSchedule(lease_id=lease.id, property_id=lease.property_id, **kw))

    def rent(self, lease, billing_period="2024-03", due_date=date(2024, 3, 5), amount_due=Decimal("500"), **kw):
        return self._save(Rent(
            lease_id=lease.id,
            tenant_id=lease.tenant_id,
            property_id=lease.property_id,
            unit_id=lease.unit_id,
            billing_period=billing_period,
            amount_due=amount_due,
            amount_paid=Decimal("0"),
            currency="UGX",
            due_date=due_date,
            status="due",
            **kw,
        ))


@pytest.fixture
def make(db):
    return Factory(db)


@pytest.fixture
def world(make):
    """Landlord L owning property P with unit U occupied by tenant T."""
    landlord = make.user("landlord")
    prop = make.property(landlord)
    unit = make.unit(prop, "A1")
    tenant = make.user("tenant")
    make.associate(tenant, prop, ["tenant"], unit=unit)
    return {"landlord": landlord, "property": prop, "unit": unit, "tenant": tenant}


@pytest.fixture
def client(db, blob_store):
    def override_get_db(request: Request):
        db.info["client_ip"] = client_ip(request)
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def token_for(user, **claims):
    payload = {"sub": str(user.id), "aud": "authenticated", **claims}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for(user)}"}
    return _headers
