"""Pytest fixtures."""

import os

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["ESCALATION_SWEEP_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import safecircle.models  # noqa: E402,F401 - register for create_all
from safecircle.core import clock  # noqa: E402
from safecircle.core.deps import get_event_bus  # noqa: E402
from safecircle.core.events import EventBus  # noqa: E402
from safecircle.db.base import Base  # noqa: E402
from safecircle.db.session import get_db  # noqa: E402
from safecircle.main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite:///./test.db"
PASSWORD = "Passw0rd1"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class RecordingEventBus(EventBus):
    """Keeps every published event in order."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def named(self, name):
        return [e for e in self.events if e.name == name]


class FrozenClock:
    """Stand-in for ``clock.utcnow`` that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(setup_db):
    """Every test starts from empty tables."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


@pytest.fixture
def client(setup_db):
    """Test client with overridden DB."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def events(client):
    """Capture events published by HTTP commands instead of fanning them out."""
    bus = RecordingEventBus()
    app.dependency_overrides[get_event_bus] = lambda: bus
    yield bus
    app.dependency_overrides.pop(get_event_bus, None)


@pytest.fixture
def db_session(setup_db):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def frozen_clock(monkeypatch):
    # Start at real time so JWT expiry (checked against the real clock) still holds
    fc = FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))
    monkeypatch.setattr(clock, "utcnow", fc)
    return fc


# ---------- helpers ----------


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email, name="Test User", password=PASSWORD):
    """Register a user. Returns (access token, user id)."""
    r = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    return data["accessToken"], data["user"]["id"]


def create_circle(client, token, name="Family", **extra):
    r = client.post("/circles", headers=auth(token), json={"name": name, **extra})
    assert r.status_code == 201, r.text
    return r.json()["data"]


def join(client, token, invite_code):
    return client.post("/circles/join", headers=auth(token), json={"inviteCode": invite_code})


def setup_circle(client, member_count=1):
    """Owner plus ``member_count`` joined members.

    Returns (circle, owner token, owner id, [(member token, member id), ...]).
    """
    owner_token, owner_id = register(client, "owner@test.com", "Owner")
    circle = create_circle(client, owner_token)
    members = []
    for i in range(member_count):
        token, user_id = register(client, f"member{i}@test.com", f"Member {i}")
        assert join(client, token, circle["inviteCode"]).status_code == 200
        members.append((token, user_id))
    return circle, owner_token, owner_id, members


def location(lng=-122.42, lat=37.77, address="Market St"):
    return {"coordinates": [lng, lat], "address": address}


def raise_alert(client, token, circle_id, title="Help", **extra):
    body = {"circle": circle_id, "title": title, "location": location(), **extra}
    r = client.post("/alerts", headers=auth(token), json=body)
    assert r.status_code == 201, r.text
    return r.json()["data"]
