"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
import sqlalchemy as sa
from prometheus_client import CollectorRegistry
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dnstest_queue.batch import BatchAggregator
from dnstest_queue.db import Base, InMemoryJobStore, InMemoryUserStore
from dnstest_queue.db.connection import create_session_factory, get_test_engine
from dnstest_queue.dispatcher import Dispatcher
from dnstest_queue.observability.metrics import MetricsCollector
from dnstest_queue.profile import StaticProfile
from dnstest_queue.queue import JobQueue
from dnstest_queue.results import ResultLog
from dnstest_queue.types import ProfileDefaults

# PostgreSQL integration tests only run against an explicitly configured database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryJobStore:
    """Create an empty in-memory job store."""
    return InMemoryJobStore(clock=clock)


@pytest.fixture
def user_store() -> InMemoryUserStore:
    """Create an empty in-memory user store."""
    return InMemoryUserStore()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Create a metrics collector on an isolated registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def profile_defaults() -> ProfileDefaults:
    """Profile with both address families enabled."""
    return ProfileDefaults(ipv4_default=True, ipv6_default=True)


@pytest.fixture
def job_queue(store: InMemoryJobStore, metrics: MetricsCollector) -> JobQueue:
    """Create a submission facade with a ten minute reuse window."""
    return JobQueue(
        store,
        profile=StaticProfile(),
        reuse_window_seconds=600,
        default_priority=10,
        default_queue_label=0,
        metrics=metrics,
    )


@pytest.fixture
def dispatcher(store: InMemoryJobStore, metrics: MetricsCollector) -> Dispatcher:
    """Create a dispatcher."""
    return Dispatcher(store, metrics=metrics)


@pytest.fixture
def result_log(store: InMemoryJobStore, metrics: MetricsCollector) -> ResultLog:
    """Create a result log."""
    return ResultLog(store, metrics=metrics)


@pytest.fixture
def aggregator(store: InMemoryJobStore) -> BatchAggregator:
    """Create a batch aggregator."""
    return BatchAggregator(store)


@pytest.fixture
def sample_params() -> dict[str, Any]:
    """Create sample undelegated test parameters."""
    return {
        "domain": "Example.COM",
        "ipv4": True,
        "ds_info": [
            {"algorithm": 8, "digest": "bb", "digtype": 2, "keytag": 20},
            {"algorithm": 8, "digest": "aa", "digtype": 2, "keytag": 10},
        ],
        "nameservers": [
            {"ns": "NS2.Example.com.", "ip": "192.0.2.2"},
            {"ns": "ns1.example.com.", "ip": ""},
        ],
        "client_id": "test-suite",
    }


@pytest.fixture(scope="session")
def database_url() -> str:
    """Get the test database URL, skipping when none is configured."""
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL is not set")
    return TEST_DATABASE_URL


@pytest_asyncio.fixture
async def session_factory(database_url: str) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Create the schema on the test database and yield a session factory."""
    engine = get_test_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(
            sa.text("TRUNCATE TABLE result_entries, jobs, users RESTART IDENTITY CASCADE")
        )

    yield create_session_factory(engine)

    await engine.dispose()
