"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kmt.database import Base
from kmt.models.actor import Actor
from kmt.models.domain import MaterialRequest, PpeRegisterEntry, RequestItem  # noqa: F401
from kmt.models.audit import AuditEntry  # noqa: F401
from kmt.models.catalog import Material  # noqa: F401
from kmt.models.enums import Role
from kmt.services.audit_log import AuditLog
from kmt.services.locks import KeyedLock
from kmt.services.recovery import RecoveryManager
from kmt.services.request_store import RequestStore
from kmt.services.state_machine import WorkflowEngine


class FakeClock:
    """Deterministic clock; only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_engine():
    """In-memory SQLite shared across threads (the API tests need that)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Create a fresh database session for each test."""
    TestingSessionLocal = sessionmaker(bind=db_engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 11, 15, 8, 0, 0))


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def store(db_session, locks, clock):
    return RequestStore(db_session, locks=locks, clock=clock)


@pytest.fixture
def audit(db_session):
    return AuditLog(db_session)


@pytest.fixture
def workflow(db_session, store, audit):
    return WorkflowEngine(db_session, store=store, audit=audit)


@pytest.fixture
def recovery(db_session, store, audit):
    return RecoveryManager(db_session, store=store, audit=audit)


@pytest.fixture
def staff():
    return Actor(id="staff_1", role=Role.STAFF, area="Rustaq")


@pytest.fixture
def supervisor():
    return Actor(id="sup_rustaq", role=Role.SUPERVISOR, area="Rustaq")


@pytest.fixture
def other_supervisor():
    return Actor(id="sup_hazam", role=Role.SUPERVISOR, area="Hazam")


@pytest.fixture
def admin():
    return Actor(id="admin_1", role=Role.ADMIN, area="")


@pytest.fixture
def pending_request(store, staff, clock):
    """A pending request for one ring spanner in Rustaq."""
    request_id = store.create(
        staff,
        area="Rustaq",
        items=[RequestItem(material_name="Ring spanner 10", qty=1)]
    )
    clock.advance(minutes=5)
    return request_id
