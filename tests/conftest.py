import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from coachspace.api import deps
from coachspace.api.routes import bookings, classes, misc, users
from coachspace.core.security import create_access_token
from coachspace.db import models
from coachspace.db.session import Base, get_db
from coachspace.services.booking_service import BookingManager
from coachspace.services.events import RecordingEventSink


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'bookings.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def sink():
    return RecordingEventSink()


@pytest.fixture()
def manager(session_factory, sink):
    return BookingManager(session_factory, sink, lock_timeout=5.0)


@pytest.fixture()
def make_class(db_session):
    def factory(
        capacity=2,
        *,
        name="Morning Flow",
        instructor_id="instructor-1",
        venue_id="venue-1",
        category=models.ClassCategory.yoga,
        starts_at=None,
    ):
        fitness_class = models.FitnessClass(
            name=name,
            instructor_id=instructor_id,
            venue_id=venue_id,
            category=category,
            level=models.ClassLevel.all_levels,
            starts_at=starts_at or datetime.now(timezone.utc) + timedelta(days=2),
            duration_min=60,
            price=25,
            max_participants=capacity,
        )
        db_session.add(fitness_class)
        db_session.commit()
        db_session.refresh(fitness_class)
        return fitness_class

    return factory


@pytest.fixture()
def auth_headers():
    def factory(user_id, role="student"):
        token = create_access_token({"sub": user_id, "role": role})
        return {"Authorization": f"Bearer {token}"}

    return factory


@pytest.fixture()
def api_client(session_factory, manager):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_app = FastAPI()
    for router in (classes.router, bookings.router, users.router, misc.router):
        test_app.include_router(router, prefix="/api/v1")
    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[deps.get_manager] = lambda: manager

    with TestClient(test_app) as client:
        yield client

    test_app.dependency_overrides.clear()
