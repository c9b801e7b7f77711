"""Integration fixtures: sessions over real gateway implementations."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from todo_replica.storage.memory_gateway import InMemoryGateway
from todo_replica.storage.sqlite_gateway import SqliteGateway


@pytest.fixture
def slow_gateway() -> InMemoryGateway:
    """In-memory store with a small round-trip delay so calls interleave."""
    return InMemoryGateway(latency=0.01)


@pytest_asyncio.fixture
async def sqlite_gateway(tmp_path: Path) -> AsyncGenerator[SqliteGateway, None]:
    gateway = SqliteGateway(tmp_path / "store.db")
    await gateway.initialize()
    yield gateway
    await gateway.close()
