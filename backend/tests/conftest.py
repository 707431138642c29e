"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.fms import get_event_publisher, get_provider_registry
from database import Base, enable_sqlite_savepoints, get_db
from main import app
from services.assignment_events import InMemoryEventPublisher
from tests.fixtures import actor_headers
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    assignment,
    facility,
    facility_admin,
    fms_config,
    other_facility,
    other_fms_config,
    other_unit,
    tenant_user,
    unit,
)
from tests.fixtures.mocks import (
    SAMPLE_TENANTS,
    SAMPLE_UNITS,
    MockFMSProvider,
    MockProviderRegistry,
)


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_provider")
def mock_provider_fixture():
    """Create a mock FMS provider with sample data."""
    return MockFMSProvider(tenants=list(SAMPLE_TENANTS), units=list(SAMPLE_UNITS))


@pytest.fixture(name="mock_registry")
def mock_registry_fixture(mock_provider):
    """Create a registry holding the mock provider."""
    return MockProviderRegistry(mock_provider)


@pytest.fixture(name="publisher")
def publisher_fixture():
    """Collect assignment events published during a test."""
    return InMemoryEventPublisher()


@pytest.fixture(name="client")
def client_fixture(db, mock_registry, publisher):
    """Create a test client with the test database and mock FMS provider."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_registry] = lambda: mock_registry
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="admin_headers")
def admin_headers_fixture():
    """Headers for a global administrator."""
    return actor_headers("admin", "admin-1")


@pytest.fixture(name="facility_admin_headers")
def facility_admin_headers_fixture(facility, facility_admin):
    """Headers for an administrator scoped to the primary facility only."""
    return actor_headers("facility_admin", facility_admin.id, [facility.id])
