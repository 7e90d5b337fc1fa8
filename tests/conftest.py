"""
Shared pytest fixtures for all tests.

Every test gets a fresh in-memory SQLite database; the FastAPI app is
pointed at it through a ``get_db`` dependency override.
"""

import os
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ["RATE_LIMIT"] = "10000/minute"

import httpx
import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

from deplasari.config import settings
from deplasari.db import Base, get_db
from deplasari.models.models import (
    Assignment,
    User,
    VehiclePresence,
    STATUS_ASSIGNED,
    USER_FREE,
)
from deplasari.auth.security import create_access_token, get_password_hash


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=pytz.UTC)


@pytest.fixture(scope="function")
def db_engine():
    """Private in-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, autocommit=False, future=True)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture(scope="function")
def test_client(db):
    """Starlette TestClient with full application."""
    from deplasari.main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(name: str, **kwargs) -> User:
        kwargs.setdefault("status", USER_FREE)
        kwargs.setdefault("total_hours", 0)
        user = User(name=name, **kwargs)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_assignment(db):
    def _make(**kwargs) -> Assignment:
        kwargs.setdefault("type", "Deschidere")
        kwargs.setdefault("location", "Ploiesti, Prahova")
        kwargs.setdefault("team_lead", "Ion")
        kwargs.setdefault("members", [])
        kwargs.setdefault("status", STATUS_ASSIGNED)
        kwargs.setdefault("start_date", utc(2024, 5, 10, 8))
        kwargs.setdefault("created_at", utc(2024, 5, 10, 7))
        assignment = Assignment(**kwargs)
        db.add(assignment)
        db.commit()
        db.refresh(assignment)
        return assignment

    return _make


@pytest.fixture
def add_presence(db):
    def _add(car_plate: str, detected_at: datetime, near: bool, distance: str = None) -> VehiclePresence:
        row = VehiclePresence(
            car_plate=car_plate,
            detected_at=detected_at,
            was_near_chitila=near,
            distance_from_chitila=distance,
        )
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture
def admin_headers(make_user):
    admin = make_user(
        "Admin",
        username="admin",
        role="admin",
        password_hash=get_password_hash("password123"),
    )
    token = create_access_token(str(admin.id), roles=["admin"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def mock_http():
    """Build an httpx.Client whose requests are answered by ``handler``."""
    def _client(handler) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(handler))

    return _client


@pytest.fixture
def configured(monkeypatch):
    """Override settings values for one test."""
    def _set(**values):
        for key, value in values.items():
            monkeypatch.setattr(settings, key, value)

    return _set
