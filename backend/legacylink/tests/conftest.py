import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import uuid
from datetime import datetime, timedelta, timezone

from legacylink.main import app
from legacylink.database import Base, get_db
from legacylink.routes.sweep import get_session_factory
from legacylink import auth, models, notify
from legacylink.clock import get_clock
from legacylink.services.errors import NotificationDeliveryError

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
app.dependency_overrides[get_clock] = lambda: (lambda: NOW)


@pytest.fixture(autouse=True)
def clear_outboxes():
    notify.EMAIL_OUTBOX.clear()
    notify.SMS_OUTBOX.clear()
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class RecordingNotifier:
    """Notifier double that remembers what it was asked to send."""

    def __init__(self, fail_for=(), crash_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.crash_for = set(crash_for)

    def send(self, trustee, message_kind):
        if trustee.id in self.fail_for:
            raise NotificationDeliveryError(f"mailbox for {trustee.email} unavailable")
        if trustee.id in self.crash_for:
            raise RuntimeError("template renderer exploded")
        self.sent.append((trustee.id, message_kind))


def create_owner(db, *, days_since_check_in=0, frequency=30, created_at=None, **kwargs):
    owner = models.Owner(
        email=kwargs.pop("email", f"{uuid.uuid4()}@ex.com"),
        full_name=kwargs.pop("full_name", "Pat Example"),
        last_check_in=NOW - timedelta(days=days_since_check_in),
        check_in_frequency_days=frequency,
        created_at=created_at or datetime.now(timezone.utc),
        **kwargs,
    )
    db.add(owner)
    db.commit()
    db.refresh(owner)
    return owner


def create_trustee(db, owner, **kwargs):
    trustee = models.Trustee(
        owner_id=owner.id,
        name=kwargs.pop("name", "Sam Trustee"),
        email=kwargs.pop("email", f"{uuid.uuid4()}@ex.com"),
        notification_trigger=kwargs.pop("notification_trigger", "inactivity"),
        verification_status=kwargs.pop("verification_status", "verified"),
        notified=kwargs.pop("notified", False),
        created_at=kwargs.pop("created_at", NOW - timedelta(days=400)),
        **kwargs,
    )
    db.add(trustee)
    db.commit()
    db.refresh(trustee)
    return trustee


def create_item(db, owner, **kwargs):
    item = models.ProtectedItem(
        owner_id=owner.id,
        title=kwargs.pop("title", "Letter"),
        item_type=kwargs.pop("item_type", "document"),
        is_public=kwargs.pop("is_public", False),
        **kwargs,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def owner_headers(owner_or_id):
    owner_id = getattr(owner_or_id, "id", owner_or_id)
    token = auth.create_access_token({"sub": str(owner_id)})
    return {"Authorization": f"Bearer {token}"}


def create_owner_with_headers(**kwargs):
    session = TestingSessionLocal()
    try:
        owner = create_owner(session, **kwargs)
        owner_id = owner.id
    finally:
        session.close()
    return owner_id, owner_headers(owner_id)
