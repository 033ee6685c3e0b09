"""
Unit tests for RedisConnectionProvider.

Tests cover:
- Pool construction from a URL and from settings
- Pipeline borrowing and the not-connected guard
- Ping and close behaviour
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from session.connection import RedisConnectionProvider


class TestConnect:
    """Tests for connect()."""

    @pytest.mark.asyncio
    async def test_builds_blocking_pool(self):
        provider = RedisConnectionProvider(
            "redis://cache:6379/1", max_connections=8, pool_timeout=0.5
        )

        with patch("session.connection.redis.BlockingConnectionPool.from_url") as from_url, \
                patch("session.connection.redis.Redis") as client_cls:
            await provider.connect()

        from_url.assert_called_once_with(
            "redis://cache:6379/1",
            max_connections=8,
            timeout=0.5,
            decode_responses=True,
        )
        client_cls.assert_called_once_with(connection_pool=from_url.return_value)
        assert provider.client is client_cls.return_value

    @pytest.mark.asyncio
    async def test_existing_client_is_kept(self):
        client = MagicMock()
        provider = RedisConnectionProvider(client=client)

        await provider.connect()

        assert provider.client is client

    @pytest.mark.asyncio
    async def test_url_required(self):
        with pytest.raises(ValueError, match="redis_url"):
            await RedisConnectionProvider().connect()

    def test_from_settings(self):
        settings = SimpleNamespace(
            redis_url="redis://cache:6379/0",
            redis_max_connections=20,
            redis_pool_timeout_seconds=2.0,
        )

        provider = RedisConnectionProvider.from_settings(settings)

        assert provider.redis_url == "redis://cache:6379/0"
        assert provider.max_connections == 20
        assert provider.pool_timeout == 2.0
        assert provider.client is None


class TestPipelineAndPing:
    """Tests for pipeline(), ping() and close()."""

    @pytest.mark.asyncio
    async def test_pipeline_requires_connection(self):
        with pytest.raises(RuntimeError, match="not connected"):
            async with RedisConnectionProvider("redis://cache:6379/0").pipeline():
                pass

    @pytest.mark.asyncio
    async def test_pipeline_is_released(self, provider, redis_server):
        async with provider.pipeline(transaction=False) as pipe:
            assert redis_server.open_pipelines == 1
            assert pipe.transaction is False

        assert redis_server.open_pipelines == 0

    @pytest.mark.asyncio
    async def test_ping(self, provider):
        assert await provider.ping() is True
        assert await RedisConnectionProvider().ping() is False

    @pytest.mark.asyncio
    async def test_close_disconnects_pool(self):
        client = MagicMock()
        client.aclose = AsyncMock()
        client.connection_pool.disconnect = AsyncMock()
        provider = RedisConnectionProvider(client=client)

        await provider.close()
        await provider.close()

        client.aclose.assert_awaited_once()
        client.connection_pool.disconnect.assert_awaited_once()
        assert provider.client is None
