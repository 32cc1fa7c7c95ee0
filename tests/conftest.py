"""
Test configuration and fixtures.

Settings are read from the environment on first use, so the overrides below
must be in place BEFORE anything from the booking package is imported.
"""

import os

os.environ["BOOKING_JWT_SECRET"] = "test-secret-key-that-is-long-enough"
os.environ["BOOKING_DATABASE_URL"] = "sqlite://"
os.environ["BOOKING_BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from booking.auth import Identity, create_access_token, hash_password
from booking.db import create_db_and_tables, get_engine, get_session
from booking.main import app
from booking.models import Client, Role, Service, User
from booking.notifications import NotificationEmitter
from booking.scheduling import SchedulingEngine
from booking.store import AppointmentStore, CalendarLocks


@pytest.fixture
def engine():
    # one shared in-memory database for every session in a test
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make_user(email: str = "u1@example.com", role: Role = Role.user, password: str = "password123") -> User:
        user = User(name=email.split("@")[0], email=email, password_hash=hash_password(password), role=role)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_service(session):
    def _make_service(name: str = "Haircut", duration_minutes: int = 30, resource=None) -> Service:
        service = Service(name=name, duration_minutes=duration_minutes, price=25.0, resource=resource)
        session.add(service)
        session.commit()
        session.refresh(service)
        return service

    return _make_service


@pytest.fixture
def make_customer(session):
    def _make_customer(owner: User, name: str = "Client C", account_id=None) -> Client:
        customer = Client(name=name, owner_id=owner.id, account_id=account_id)
        session.add(customer)
        session.commit()
        session.refresh(customer)
        return customer

    return _make_customer


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def actor(user):
    return Identity(user_id=user.id, role=Role.user)


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def customer(make_customer, user):
    return make_customer(user)


@pytest.fixture
def scheduler(session, engine):
    return SchedulingEngine(
        AppointmentStore(session),
        NotificationEmitter(engine),
        locks=CalendarLocks(),
        lock_timeout=2.0,
    )


@pytest.fixture
def api(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _auth_headers
