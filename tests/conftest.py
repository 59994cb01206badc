"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldjobs import models  # noqa: F401  (registers tables on Base)
from fieldjobs.database import Base, get_db
from fieldjobs.domain.lifecycle.service import LifecycleService
from fieldjobs.domain.scheduling.repository import JobRepository
from fieldjobs.domain.scheduling.service import SchedulingService

# Fixed "now" for service tests: Tuesday 2025-06-10 12:00 UTC
NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    # One shared in-memory connection so the TestClient thread sees the same data
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    yield db

    db.close()
    engine.dispose()


@pytest.fixture
def scheduling_service(test_db):
    return SchedulingService(test_db, clock=lambda: NOW)


@pytest.fixture
def lifecycle_service(test_db):
    return LifecycleService(test_db, clock=lambda: NOW)


@pytest.fixture
def make_job(test_db):
    """Factory that persists a job with sensible defaults."""

    def _make_job(**fields):
        fields.setdefault("title", "Deep clean")
        fields.setdefault("customer_name", "Dana")
        fields.setdefault("last_activity", NOW)
        fields.setdefault("created_at", NOW)
        return JobRepository.create_job(test_db, **fields)

    return _make_job


@pytest.fixture
def client(test_db):
    """FastAPI test client backed by the per-test database."""
    from fieldjobs.main import app

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
