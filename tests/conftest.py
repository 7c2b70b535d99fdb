import os
import tempfile

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["LOCAL_STORAGE_DIR"] = tempfile.mkdtemp(prefix="autonostalgia-")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ.pop("EMAIL_FUNCTION_URL", None)
os.environ.pop("SMTP_HOST", None)

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from autonostalgia.auth.security import create_access_token, get_password_hash  # noqa: E402
from autonostalgia.db import Base, get_db  # noqa: E402
from autonostalgia.main import app  # noqa: E402
from autonostalgia.models.models import AssessmentRequest, Profile, Vehicle  # noqa: E402
from autonostalgia.routes.vehicles import get_nhtsa_client  # noqa: E402
from autonostalgia.storage.factory import get_storage  # noqa: E402
from autonostalgia.storage.local_provider import LocalStorageProvider  # noqa: E402

PASSWORD = "Sup3rSecret!"


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def storage(tmp_path):
    return LocalStorageProvider(base_dir=str(tmp_path / "storage"), public_base_url="http://testserver")


@pytest.fixture()
def client(session_factory, storage):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_storage, None)
    app.dependency_overrides.pop(get_nhtsa_client, None)


@pytest.fixture()
def make_profile(db):
    def _make(email, role="customer", province=None, account_status="active", **kwargs):
        profile = Profile(
            email=email,
            password_hash=get_password_hash(PASSWORD),
            full_name=kwargs.pop("full_name", email.split("@")[0].replace(".", " ").title()),
            role=role,
            province=province,
            account_status=account_status,
            **kwargs,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture()
def customer(make_profile):
    return make_profile("carla@example.com", province="Gauteng", city="Pretoria", phone="012 555 0100")


@pytest.fixture()
def assessor(make_profile):
    return make_profile("sam@example.com", role="assessor", province="Gauteng", phone="082 555 0101")


@pytest.fixture()
def admin(make_profile):
    return make_profile("ada@example.com", role="admin")


@pytest.fixture()
def make_vehicle(db):
    def _make(owner, registration_number="CA123456", **kwargs):
        vehicle = Vehicle(
            user_id=owner.id,
            make=kwargs.pop("make", "Jaguar"),
            model=kwargs.pop("model", "E-Type"),
            year=kwargs.pop("year", 1965),
            registration_number=registration_number,
            **kwargs,
        )
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture()
def vehicle(customer, make_vehicle):
    return make_vehicle(customer, vin="1E12345", mileage=84000, color="Green")


@pytest.fixture()
def make_request(db):
    def _make(vehicle, status="pending", **kwargs):
        request = AssessmentRequest(
            vehicle_id=vehicle.id,
            user_id=vehicle.user_id,
            status=status,
            urgency=kwargs.pop("urgency", "normal"),
            assessment_type=kwargs.pop("assessment_type", "valuation"),
            **kwargs,
        )
        db.add(request)
        db.commit()
        db.refresh(request)
        return request

    return _make


@pytest.fixture()
def auth_headers():
    def _headers(profile):
        return {"Authorization": f"Bearer {create_access_token(str(profile.id), role=profile.role)}"}

    return _headers


@pytest.fixture()
def password():
    return PASSWORD


@pytest.fixture()
def tomorrow():
    return date.today() + timedelta(days=1)
