import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["EMAIL_SEND_IMMEDIATE"] = "false"

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookon.core.security import create_access_token, hash_password
from bookon.db.session import Base, get_db
from bookon.main import app
from bookon.models.activity import Activity
from bookon.models.audit_log import AuditLog  # noqa: F401
from bookon.models.booking import Booking
from bookon.models.email_log import EmailLog  # noqa: F401
from bookon.models.refund_transaction import RefundTransaction  # noqa: F401
from bookon.models.user import User
from bookon.models.wallet_credit import WalletCredit  # noqa: F401

VENUE_ID = "venue-0001"


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role="parent", email=None, password="secret123"):
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{role}-{uuid.uuid4().hex[:8]}@bookon.test",
            full_name=role.title(),
            role=role,
            password_hash=hash_password(password),
            is_active=True,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def parent(make_user):
    return make_user("parent")


@pytest.fixture
def staff(make_user):
    return make_user("staff")


@pytest.fixture
def make_activity(db):
    def _make(start_at, course_weeks=None, total_sessions=None, venue_id=VENUE_ID):
        activity = Activity(id=str(uuid.uuid4()), venue_id=venue_id, name="Swim Club", start_at=start_at)
        if course_weeks is not None:
            activity.course_start = start_at
            activity.course_end = start_at + timedelta(weeks=course_weeks)
            activity.total_sessions = total_sessions
            activity.session_duration_minutes = 60
        db.add(activity)
        db.commit()
        return activity
    return _make


@pytest.fixture
def make_booking(db, make_activity):
    def _make(parent, activity_at=None, amount="20.00", payment_method="card", status="confirmed", activity=None):
        if activity is None:
            activity = make_activity(activity_at)
        booking = Booking(
            id=str(uuid.uuid4()),
            parent_id=parent.id,
            child_id=str(uuid.uuid4()),
            activity_id=activity.id,
            amount=Decimal(amount),
            payment_method=payment_method,
            status=status,
            activity_at=activity_at or activity.start_at,
        )
        db.add(booking)
        db.commit()
        return booking
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers


@pytest.fixture
def utcnow():
    return datetime.now(timezone.utc)
