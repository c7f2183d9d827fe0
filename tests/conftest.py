import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["LOG_TO_FILES"] = "false"
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = ""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api.deps import get_clock, get_payment_gateway
from app.core.security import create_access_token
from app.db.session import Base, get_db
from app.models.booking import Booking
from app.models.user import User
from app.services.payment_gateway import GatewayRefund

# 15:00 UTC, so a trip booked for (NOW + n days).date() is exactly n days away after rounding up
NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


def frozen_clock():
    return NOW


class FakeGateway:
    def __init__(self, refund_id: str = "rfnd_test_0001", error: Exception | None = None):
        self.refund_id = refund_id
        self.error = error
        self.calls = []

    def issue_refund(self, payment_id: str, amount_minor_units: int, metadata: dict) -> GatewayRefund:
        self.calls.append({"payment_id": payment_id, "amount": amount_minor_units, "metadata": metadata})
        if self.error is not None:
            raise self.error
        return GatewayRefund(refund_id=self.refund_id, status="processed")


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


def _make_user(db, role: str, email: str) -> User:
    u = User(id=str(uuid.uuid4()), email=email, full_name=email.split("@")[0], role=role, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def customer(db):
    return _make_user(db, "customer", "asha@example.com")


@pytest.fixture
def other_customer(db):
    return _make_user(db, "customer", "ravi@example.com")


@pytest.fixture
def admin(db):
    return _make_user(db, "admin", "ops@example.com")


@pytest.fixture
def make_booking(db, customer):
    counter = {"n": 0}

    def _make(total_price=18500, days=35, status="confirmed", payment_status="paid", payment_id="pay_test_0001", **extra):
        counter["n"] += 1
        b = Booking(
            id=str(uuid.uuid4()),
            booking_ref=f"TUR{counter['n']:03d}",
            user_id=extra.pop("user_id", customer.id),
            package_name="Kerala Backwaters",
            travelers=2,
            total_price=total_price,
            trip_date=(NOW + timedelta(days=days)).date(),
            status=status,
            payment_status=payment_status,
            payment_id=payment_id,
            **extra,
        )
        db.add(b)
        db.commit()
        db.refresh(b)
        return b

    return _make


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: frozen_clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
