"""Shared fixtures: an isolated in-memory database, the services bound to it, and an HTTP client."""

import itertools
import os
from datetime import datetime, timedelta

# Must be set before the app modules read their configuration
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "unit-test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token
from app.database import Base, get_db, get_session_factory
from app.main import app
from app.models import SlotAvailability, User, UserRole
from app.services.coordinator import ExchangeCoordinator
from app.services.slots import SlotService

BASE_TIME = datetime(2030, 1, 7, 9, 0)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def file_session_factory(tmp_path):
    """A database file with a connection per session, for interleaved and threaded writers."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'exchange.db'}",
        connect_args={"check_same_thread": False, "timeout": 5},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def coordinator(session_factory):
    return ExchangeCoordinator(session_factory)


@pytest.fixture()
def slot_service(session_factory):
    return SlotService(session_factory)


@pytest.fixture()
def make_user(session_factory):
    counter = itertools.count(1)

    def _make(username=None, role=UserRole.USER):
        n = next(counter)
        username = username or f"user{n}"
        user = User(username=username, email=f"{username}@example.com", name=username.title(), role=role)
        with session_factory() as session:
            session.add(user)
            session.commit()
        return user

    return _make


@pytest.fixture()
def alice(make_user):
    return make_user("alice")


@pytest.fixture()
def bob(make_user):
    return make_user("bob")


@pytest.fixture()
def carol(make_user):
    return make_user("carol")


@pytest.fixture()
def make_slot(slot_service):
    counter = itertools.count(0)

    def _make(owner, availability=SlotAvailability.OFFERED, title=None, hours=1):
        n = next(counter)
        start = BASE_TIME + timedelta(days=n)
        return slot_service.create_slot(
            owner.id,
            title=title or f"{owner.username} shift {n}",
            start_time=start,
            end_time=start + timedelta(hours=hours),
            availability=availability,
        )

    return _make


@pytest.fixture()
def fetch(session_factory):
    """Re-read a row from the store in a fresh session."""

    def _fetch(model, pk):
        with session_factory() as session:
            return session.get(model, pk)

    return _fetch


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(user):
        token = create_access_token({"sub": user.username, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers
