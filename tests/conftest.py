# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

# Set test environment
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")


class FakeClock:
    """Settable clock for retention-window tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    from healthmon import models  # noqa: F401
    from healthmon.database import Base, build_engine

    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    from sqlalchemy.orm import sessionmaker

    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        future=True,
        expire_on_commit=False,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 10, 0, 0, 0))


@pytest.fixture
def seeded(session_factory):
    """
    Seed accounts:
    - admin-1 (administrator), clinician-7 (clinician)
    - patient-42 with 3 measurements, patient-43, patient-44
    """
    from healthmon.models import Account, Measurement, UserRole

    db = session_factory()
    db.add_all([
        Account(id="admin-1", email="admin@clinic.test", first_name="Ada", last_name="Admin",
                role=UserRole.ADMINISTRATOR.value, created_at=datetime(2023, 1, 1)),
        Account(id="clinician-7", email="dr.lee@clinic.test", first_name="Sam", last_name="Lee",
                role=UserRole.CLINICIAN.value, created_at=datetime(2023, 1, 1)),
        Account(id="patient-42", email="p42@mail.test", first_name="Jo", last_name="Martin",
                role=UserRole.PATIENT.value, created_at=datetime(2023, 6, 1)),
        Account(id="patient-43", email="p43@mail.test", first_name="Kim", last_name="Dupont",
                role=UserRole.PATIENT.value, created_at=datetime(2023, 6, 1)),
        Account(id="patient-44", email="p44@mail.test", first_name="Lou", last_name="Bernard",
                role=UserRole.PATIENT.value, created_at=datetime(2023, 6, 1)),
    ])
    db.add_all([
        Measurement(account_id="patient-42", kind="heart_rate", value=72.0, measured_at=datetime(2023, 12, 1)),
        Measurement(account_id="patient-42", kind="heart_rate", value=75.0, measured_at=datetime(2023, 12, 2)),
        Measurement(account_id="patient-42", kind="spo2", value=97.0, measured_at=datetime(2023, 12, 2)),
        Measurement(account_id="patient-43", kind="spo2", value=98.0, measured_at=datetime(2023, 12, 3)),
    ])
    db.commit()
    db.close()


@pytest.fixture
def notifier():
    from healthmon.services.archival.collaborators import NotificationSink

    return MagicMock(spec=NotificationSink)


@pytest.fixture
def services(session_factory, seeded, clock, notifier):
    """Full archival stack on the seeded in-memory database."""
    from healthmon.services.archival.factory import create_archival_services

    return create_archival_services(session_factory, clock=clock, notifier=notifier)
