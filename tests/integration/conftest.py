"""
Integration test configuration and fixtures.

These tests run against a real Redis server. They are skipped unless the
TEST_REDIS_URL environment variable points at a database that may be
written to, e.g. ``redis://localhost:6379/15``.
"""
import os
import uuid

import pytest
import pytest_asyncio

from session.connection import RedisConnectionProvider
from session.redis_store import RedisSessionStore

TEST_REDIS_URL = os.getenv("TEST_REDIS_URL", "")


def pytest_collection_modifyitems(config, items):
    if TEST_REDIS_URL:
        return
    skip = pytest.mark.skip(reason="TEST_REDIS_URL not set")
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(skip)


@pytest_asyncio.fixture
async def live_provider():
    provider = RedisConnectionProvider(TEST_REDIS_URL, max_connections=4, pool_timeout=1.0)
    await provider.connect()
    yield provider
    await provider.close()


@pytest_asyncio.fixture
async def live_store(live_provider):
    """Store under a unique prefix; its keys are deleted afterwards."""
    prefix = f"it-{uuid.uuid4().hex[:8]}"
    yield RedisSessionStore(live_provider, prefix=prefix)

    client = live_provider.client
    keys = [key async for key in client.scan_iter(match=f"{prefix}:*")]
    if keys:
        await client.delete(*keys)
