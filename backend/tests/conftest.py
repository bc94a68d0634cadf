"""
Shared pytest fixtures for the Moove backend test suite.

Provides:
  - db:           An in-memory SQLite session (isolated per test).
  - client:       A FastAPI TestClient wired to the in-memory DB.
  - sample_data:  One stored workout, body metric and activity day.
  - write_export: Factory writing an Apple Health export.xml to tmp_path.
"""

import os

# Keep the app's startup hook away from the on-disk default database.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from moove.database import Base, get_db
from moove.main import app
from moove import models


EXPORT_HEADER = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE HealthData [
<!ELEMENT HealthData (ExportDate,Me,(Record|Correlation|Workout|ActivitySummary|ClinicalRecord)*)>
]>
<HealthData locale="en_US">
 <ExportDate value="2024-06-20 09:00:00 -0500"/>
 <Me HKCharacteristicTypeIdentifierDateOfBirth="1990-04-02" HKCharacteristicTypeIdentifierBiologicalSex="HKBiologicalSexNotSet"/>
"""
EXPORT_FOOTER = "</HealthData>\n"


def build_export(body: str) -> str:
    return EXPORT_HEADER + body + EXPORT_FOOTER


# ---------------------------------------------------------------------------
# Database fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def db():
    """Create a fresh in-memory SQLite database for each test.

    Uses ``StaticPool`` so that the same underlying connection is shared
    across threads. FastAPI's ``TestClient`` dispatches requests in a
    separate thread, and SQLite in-memory databases are per-connection.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine
    )
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# ---------------------------------------------------------------------------
# FastAPI TestClient fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(db):
    """Return a TestClient whose dependency on ``get_db`` is overridden
    to use the in-memory test database session.
    """

    def _override_get_db():
        try:
            yield db
        finally:
            pass  # session lifecycle managed by the db fixture

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Sample-data fixture
# ---------------------------------------------------------------------------

_TARGET_DATE = date(2024, 6, 15)


@pytest.fixture()
def sample_data(db):
    """Insert one record of each stored category.

    Returns a dict mapping short names to the ORM objects that were
    persisted, so tests can assert against known values.
    """
    records = {}

    workout = models.WorkoutSession(
        id="c0a8012e-0000-4000-8000-000000000001",
        name="Run",
        started_at=datetime(2024, 6, 15, 11, 0, 0),
        completed_at=datetime(2024, 6, 15, 11, 45, 0),
        total_duration=2700,
        overall_effort=6,
        cardio_type="run",
        distance=4.35,
        source="apple_health",
    )
    db.add(workout)
    records["workout"] = workout

    block = models.WorkoutBlock(
        id="c0a8012e-0000-4000-8000-000000000002",
        session_id=workout.id,
        position=0,
        type="cardio",
        name="Run",
    )
    db.add(block)
    records["block"] = block

    metric = models.BodyMetric(
        date=_TARGET_DATE, weight=172.4, body_fat=18.2, source="apple_health"
    )
    db.add(metric)
    records["body_metric"] = metric

    activity = models.ActivityDay(
        date=_TARGET_DATE, active_energy=640, exercise_minutes=52, stand_hours=11
    )
    db.add(activity)
    records["activity_day"] = activity

    db.commit()

    for obj in records.values():
        db.refresh(obj)

    return records


# ---------------------------------------------------------------------------
# Export file fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def write_export(tmp_path):
    """Return a function writing ``build_export(body)`` to a file under tmp_path."""

    def _write(body: str, name: str = "export.xml") -> str:
        path = tmp_path / name
        path.write_text(build_export(body), encoding="utf-8")
        return str(path)

    return _write
