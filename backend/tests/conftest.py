"""
Test configuration and shared fixtures for the booking engine test suite.

Each test gets its own SQLite database file (or TEST_DATABASE_URL when set),
created from the model metadata. The engine clock is frozen per test through
the ``clock`` fixture.
"""

import os

# The module-level engine in core.database is built at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import uuid
from contextlib import ExitStack
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator, Optional
from unittest.mock import patch

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from auth.user_context import AuthenticatedUser, UserRole
from core.database import Base, build_engine
from models import AppointmentSlot, AppointmentSlotStatus, Service
from services.notification_service import notification_emitter


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

FIXED_NOW = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)

# Every module that reads the engine clock
CLOCK_TARGETS = (
    "services.booking_service.utc_now",
    "services.appointment_service.utc_now",
    "services.queue_service.utc_now",
    "services.availability_service.utc_now",
)


class FrozenClock:
    """Controllable stand-in for utc_now."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def clock() -> Generator[FrozenClock, None, None]:
    """Freeze the engine clock at FIXED_NOW for the duration of a test."""
    frozen = FrozenClock(FIXED_NOW)
    with ExitStack() as stack:
        for target in CLOCK_TARGETS:
            stack.enter_context(patch(target, side_effect=frozen))
        yield frozen


@pytest.fixture(autouse=True)
def clear_notifications():
    """Start and finish every test with an empty notification stream."""
    notification_emitter.clear()
    yield notification_emitter
    notification_emitter.clear()


@pytest.fixture
def db_engine(tmp_path) -> Generator[Engine, None, None]:
    """
    Create a fresh database for one test.

    Uses NullPool so every session (and every thread in concurrency tests)
    gets its own connection.
    """
    url = TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'booking_engine_test.db'}"
    engine = build_engine(url, poolclass=NullPool)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def client_user() -> AuthenticatedUser:
    return AuthenticatedUser(id="user-alice", role=UserRole.CLIENT, locale="fr")


@pytest.fixture
def other_user() -> AuthenticatedUser:
    return AuthenticatedUser(id="user-bob", role=UserRole.CLIENT)


@pytest.fixture
def admin_user() -> AuthenticatedUser:
    return AuthenticatedUser(id="staff-admin", role=UserRole.ADMIN)


@pytest.fixture
def specialist_user() -> AuthenticatedUser:
    return AuthenticatedUser(id="staff-specialist", role=UserRole.SPECIALIST)


@pytest.fixture
def make_service(db_session) -> Callable[..., Service]:
    """Factory for catalog services."""
    def _make(slug: Optional[str] = None, duration_minutes: int = 30) -> Service:
        service = Service(slug=slug or f"service-{uuid.uuid4().hex[:8]}", duration_minutes=duration_minutes)
        db_session.add(service)
        db_session.commit()
        return service
    return _make


@pytest.fixture
def service(make_service) -> Service:
    return make_service(slug="consultation")


@pytest.fixture
def make_slot(db_session) -> Callable[..., AppointmentSlot]:
    """
    Factory for appointment slots.

    ``starts_in`` is relative to the frozen clock.
    """
    def _make(
        service: Service,
        starts_in: timedelta = timedelta(days=1),
        duration: timedelta = timedelta(hours=1),
        capacity: int = 1,
        buffer_before_minutes: int = 0,
        buffer_after_minutes: int = 0,
        status: AppointmentSlotStatus = AppointmentSlotStatus.AVAILABLE,
        timezone_name: str = "UTC",
        notes: Optional[str] = None,
    ) -> AppointmentSlot:
        start_at = FIXED_NOW + starts_in
        slot = AppointmentSlot(
            service_id=service.id,
            start_at=start_at,
            end_at=start_at + duration,
            timezone=timezone_name,
            capacity=capacity,
            buffer_before_minutes=buffer_before_minutes,
            buffer_after_minutes=buffer_after_minutes,
            status=status,
            notes=notes,
        )
        db_session.add(slot)
        db_session.commit()
        return slot
    return _make
