import os

# Must be set before any app module reads core.config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BACKGROUND_MODE", "inline")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ADMIN_EMAILS", "ops@portal.test,audit@portal.test")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from core.database import Base, SessionLocal, init_db, utcnow
from core.errors import InvalidCredential
from models.venue import Venue, VenueAd
from utils.background import InlineDispatcher, get_dispatcher
from utils.emailing import EmailDeliveryError, get_mailer
from utils.google_identity import FederatedIdentity, INVALID_GOOGLE_MESSAGE, get_google_verifier
from utils.verification import get_clock

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


class FakeClock:
    def __init__(self, start=None):
        self.now = start or utcnow()

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


class RecordingMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def __call__(self, email, code, purpose="wifi_access", venue_name=None, expiry_minutes=10):
        if self.fail:
            raise EmailDeliveryError("connection refused")
        self.sent.append({"email": email, "code": code, "purpose": purpose, "venue_name": venue_name})

    @property
    def last_code(self):
        return self.sent[-1]["code"]


class FakeGoogleVerifier:
    """Accepts tokens registered in `identities`, rejects everything else."""

    def __init__(self):
        self.identities = {}
        self.calls = 0

    def verify(self, token, audience=None):
        self.calls += 1
        identity = self.identities.get(token)
        if identity is None:
            raise InvalidCredential(INVALID_GOOGLE_MESSAGE)
        return identity


@pytest.fixture(autouse=True)
def schema():
    SessionLocal.configure(bind=test_engine)
    init_db(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def google():
    verifier = FakeGoogleVerifier()
    verifier.identities["good-token"] = FederatedIdentity(
        subject="10987654321",
        email="asha.rao@gmail.com",
        email_verified=True,
        name="Asha Rao",
        given_name="Asha",
        family_name="Rao",
        picture="https://lh3.googleusercontent.com/a/asha",
        locale="en",
    )
    return verifier


@pytest.fixture
def venue(db):
    v = Venue(name="Cafe Blue", status="active", review_url="https://g.page/r/cafe-blue/review")
    db.add(v)
    db.commit()
    return v.id


@pytest.fixture
def ad(db, venue):
    a = VenueAd(venue_id=venue, title="Happy hour", cta_url="https://cafeblue.in/menu")
    db.add(a)
    db.commit()
    return a.id


@pytest.fixture
def client(mailer, google, clock, monkeypatch):
    from main import app

    # Per-IP throttles have their own test; keep them out of the way elsewhere
    monkeypatch.setattr("routers.splash.check_throttle", lambda throttle, key: True)
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_dispatcher] = lambda: InlineDispatcher()
    app.dependency_overrides[get_google_verifier] = lambda: google
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def threaded_db(schema, tmp_path):
    """
    File-backed SQLite so each worker thread gets its own connection.
    Binds SessionLocal to it for the duration of the test.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'portal.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SessionLocal.configure(bind=file_engine)
    init_db(bind=file_engine)
    yield SessionLocal
    SessionLocal.configure(bind=test_engine)
    file_engine.dispose()
