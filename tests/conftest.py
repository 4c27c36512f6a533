# tests/conftest.py
import os
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath("."))

from kontakthub.client import ClientStore, EventBus, KontaktHubApi
from kontakthub.database import Base, configure_sqlite, get_db
from kontakthub.importer import ImportRegistry
from kontakthub import models  # noqa: F401  (registers tables on Base)
from main import app


API = "/api/v1"

# DB (SQLite in-memory for tests)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
configure_sqlite(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def prepare_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeClock:
    """Monotonic clock the tests move forward by hand."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def registry(clock):
    return ImportRegistry(decision_timeout=60, session_ttl=600, clock=clock)


# Client fixture: override DB dependency and import registry per test
@pytest.fixture()
def client(db_session, registry):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    previous_registry = app.state.imports
    app.state.imports = registry

    c = TestClient(app)
    try:
        yield c
    finally:
        app.dependency_overrides.clear()
        app.state.imports = previous_registry
        c.close()


@pytest.fixture()
def api(client):
    return KontaktHubApi(client, prefix=API)


@pytest.fixture()
def bus():
    return EventBus()


@pytest.fixture()
def store(api, bus):
    return ClientStore(api, bus)


@pytest.fixture()
def make_contact(client):
    def _make(first_name="", last_name="", email="", group_ids=None, **fields):
        payload = {
            "fields": {
                "firstName": first_name,
                "lastName": last_name,
                "email": email,
                **fields,
            },
            "groupIds": group_ids or [],
        }
        response = client.post(f"{API}/contacts", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture()
def make_group(client):
    def _make(name, contact_ids=None, **extra):
        payload = {"name": name, "contactIds": contact_ids or [], **extra}
        response = client.post(f"{API}/groups", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture()
def make_event(client):
    def _make(name, group_ids=None, contact_ids=None, **extra):
        payload = {
            "name": name,
            "attendees": {
                "groupIds": group_ids or [],
                "contactIds": contact_ids or [],
            },
            **extra,
        }
        response = client.post(f"{API}/events", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _make
