import os
from datetime import datetime, timedelta, timezone

# Keep the app's own engine and GeoIP lookups away from real files
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("GEOIP_DB_DIR", os.path.join(os.path.dirname(__file__), "no-geoip"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from iplookup.main import app
from iplookup.core.database import Base, get_db
from iplookup.routes.lookup import get_lookup_service
from iplookup.services.lookup import LookupService

# In-memory SQLite; StaticPool ensures one shared DB across all connections
SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

REGISTRY_BASE_URL = "http://registry.test/rdap/"
DAILY_LIMIT = 3
CACHE_TTL_SECONDS = 3600


def override_get_db():
    database = TestingSessionLocal()
    try:
        yield database
    finally:
        database.close()


class FakeClock:
    """Controllable UTC clock for the lookup service."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class StubRegistry:
    """Stands in for fetch_rdap: records every call, returns a canned document."""

    def __init__(self):
        self.calls = []
        self.error = None

    def __call__(self, ip: str, base_url: str):
        self.calls.append((ip, base_url))
        if self.error is not None:
            raise self.error
        return {
            "objectClassName": "ip network",
            "handle": "TEST-HANDLE",
            "name": "TEST-NET",
            "query": ip,
        }


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def registry():
    return StubRegistry()


@pytest.fixture
def service(registry, clock):
    return LookupService(
        cache_ttl_seconds=CACHE_TTL_SECONDS,
        daily_limit=DAILY_LIMIT,
        rdap_base_url=REGISTRY_BASE_URL,
        fetch_document=registry,
        clock=clock,
    )


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(service):
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lookup_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
