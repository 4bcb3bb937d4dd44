"""Test fixtures for the URL shortener application."""

import os

# Settings are read at import time; configure the test environment first
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["QUEUE_BACKEND"] = "memory"
os.environ["CACHE_ENABLED"] = "false"
os.environ["OTEL_ENABLED"] = "false"
os.environ["IP_HASH_SALT"] = "test-salt"
os.environ["GEOIP_DATABASE_PATH"] = ""
os.environ["DB_AUTO_CREATE"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import AsyncGenerator, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from snaplink.core.cache import URLCache  # noqa: E402
from snaplink.core.geoip import GeoIPResolver  # noqa: E402
from snaplink.db.session import get_db  # noqa: E402
from snaplink.main import app as main_app  # noqa: E402
# Import models to ensure they're registered with SQLModel metadata
from snaplink.models.url import ShortURL  # noqa: E402,F401
from snaplink.models.analytics import AnalyticsEvent  # noqa: E402,F401
from snaplink.queue.analytics_queue import AnalyticsQueue  # noqa: E402
from snaplink.queue.backends import InMemoryQueueBackend  # noqa: E402
from snaplink.queue.worker import AnalyticsWorker  # noqa: E402
from snaplink.repositories.analytics_repository import AnalyticsRepository  # noqa: E402
from snaplink.repositories.url_repository import URLRepository  # noqa: E402
from snaplink.services.analytics import AnalyticsProcessor  # noqa: E402


# Test database URL - using SQLite in-memory
TEST_SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_IP_SALT = "test-salt"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Database session bound to the per-test engine."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def transaction_factory(session_factory):
    """Committing session context, like SessionManager.transaction_context, on the test engine."""
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def _transaction():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _transaction


class MockRedis:
    """In-memory stand-in for the cache's Redis client."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex:
            self.expiry[key] = ex
        return True

    async def ping(self):
        return True


class FailingRedis:
    """Redis client whose every call fails as if the server were down."""

    async def get(self, key):
        raise RedisConnectionError("Connection refused")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("Connection refused")

    async def ping(self):
        raise RedisConnectionError("Connection refused")


@pytest.fixture
def mock_redis() -> MockRedis:
    return MockRedis()


@pytest.fixture
def url_cache(mock_redis) -> URLCache:
    return URLCache(mock_redis, ttl_seconds=3600, key_prefix="url:")


@pytest.fixture
def failing_cache() -> URLCache:
    return URLCache(FailingRedis(), ttl_seconds=3600, key_prefix="url:")


@pytest.fixture
def queue_backend() -> InMemoryQueueBackend:
    return InMemoryQueueBackend()


@pytest.fixture
def analytics_queue(queue_backend) -> AnalyticsQueue:
    return AnalyticsQueue(queue_backend)


class StubGeoIPReader:
    """geoip2 reader replacement answering from a fixed table."""

    class _Country:
        def __init__(self, iso_code: Optional[str]):
            self.iso_code = iso_code

    class _Response:
        def __init__(self, iso_code: Optional[str]):
            self.country = StubGeoIPReader._Country(iso_code)

    def __init__(self, table=None):
        self.table = table or {}

    def country(self, ip):
        if ip not in self.table:
            raise ValueError(f"{ip} not found")
        return self._Response(self.table[ip])

    def close(self):
        pass


@pytest.fixture
def geoip_resolver() -> GeoIPResolver:
    return GeoIPResolver(reader=StubGeoIPReader({
        "203.0.113.5": "BR",
        "198.51.100.7": "US",
        "192.0.2.10": "DE",
    }))


@pytest.fixture
def analytics_processor(geoip_resolver) -> AnalyticsProcessor:
    return AnalyticsProcessor(
        url_repository=URLRepository(),
        analytics_repository=AnalyticsRepository(),
        geoip_resolver=geoip_resolver,
        ip_hash_salt=TEST_IP_SALT,
    )


@pytest.fixture
def analytics_worker(queue_backend, analytics_processor, transaction_factory) -> AnalyticsWorker:
    return AnalyticsWorker(
        queue_backend,
        analytics_processor,
        session_factory=transaction_factory,
        concurrency=2,
        max_attempts=3,
        backoff_seconds=0.01,
        poll_timeout=0.05,
        promote_interval=0.01,
    )


@pytest_asyncio.fixture
async def async_client(session_factory, url_cache, analytics_queue) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with test database, cache and queue."""
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.state.url_cache = url_cache
    main_app.state.analytics_queue = analytics_queue

    transport = ASGITransport(app=main_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    main_app.dependency_overrides.clear()
    main_app.state.url_cache = None
    main_app.state.analytics_queue = None
