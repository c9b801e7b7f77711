"""Pytest fixtures for the replica tests."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from todo_replica.config import Settings
from todo_replica.core.identity import LocalAuthProvider
from todo_replica.core.session import Session
from todo_replica.storage.memory_gateway import InMemoryGateway
from todo_replica.utils.metrics import Metrics
from tests.fixtures.doubles import FakeClock
from tests.fixtures.factories import reset_all_factories


@pytest.fixture(autouse=True)
def reset_factories() -> None:
    """Start every test from fresh factory counters."""
    reset_all_factories()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings independent of the environment."""
    return Settings(
        database_path="unused.db",
        log_level="DEBUG",
        log_format="console",
        reorder_persist_siblings=True,
        refresh_on_stale=True,
    )


@pytest.fixture
def metrics() -> Metrics:
    """Metrics bound to a private registry."""
    return Metrics(registry=CollectorRegistry())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def auth() -> LocalAuthProvider:
    return LocalAuthProvider()


@pytest_asyncio.fixture
async def session(
    gateway: InMemoryGateway,
    auth: LocalAuthProvider,
    test_settings: Settings,
    clock: FakeClock,
    metrics: Metrics,
) -> AsyncGenerator[Session, None]:
    """Attached session with ``user-1`` signed in over an in-memory store."""
    session = Session(gateway, auth, test_settings, clock=clock, metrics=metrics)
    await session.attach()
    await auth.sign_in("user-1")
    yield session
    await session.detach()
