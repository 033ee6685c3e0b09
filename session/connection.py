"""
Connection provider for the Redis session store.

The store never builds Redis clients itself. It asks a ConnectionProvider
for a pipeline bound to one pooled connection, runs its WATCH / MULTI /
EXEC sequence on it and gives it back. This keeps the store independent
of how the pool is constructed and lets tests substitute their own client.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Optional

import redis.asyncio as redis
from redis.asyncio.client import Pipeline


class ConnectionProvider(ABC):
    """Capability to borrow a pooled Redis connection for one operation."""

    @abstractmethod
    def pipeline(self, transaction: bool = True) -> AsyncContextManager[Pipeline]:
        """
        Borrow a pipeline for the duration of an ``async with`` block.

        With ``transaction=True`` the pipeline supports WATCH / MULTI / EXEC;
        while watching, commands execute immediately on the held connection.
        Leaving the block resets the pipeline, which releases any WATCH and
        returns the connection to the pool.
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if Redis answers PING."""

    @abstractmethod
    async def close(self) -> None:
        """Release all pooled connections."""


class RedisConnectionProvider(ConnectionProvider):
    """
    ConnectionProvider backed by a redis.asyncio client.

    Connections come from a BlockingConnectionPool so that, once
    ``max_connections`` are checked out, callers wait at most
    ``pool_timeout`` seconds for one to be returned before
    redis.exceptions.ConnectionError is raised.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        max_connections: Size of the connection pool
        pool_timeout: Seconds to wait for a free connection
        client: Redis async client instance (initialized via connect())
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_connections: int = 50,
        pool_timeout: float = 5.0,
        client: Optional[Any] = None
    ):
        """
        Initialize the provider.

        Args:
            redis_url: Redis connection URL. Required unless ``client`` is given.
            max_connections: Maximum number of pooled connections.
            pool_timeout: Seconds to wait for a free connection.
            client: An already constructed async client to use instead of
                building one from ``redis_url``.
        """
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.pool_timeout = pool_timeout
        self.client = client

    @classmethod
    def from_settings(cls, settings: Any) -> "RedisConnectionProvider":
        """Build a provider from application settings."""
        return cls(
            redis_url=settings.redis_url,
            max_connections=settings.redis_max_connections,
            pool_timeout=settings.redis_pool_timeout_seconds,
        )

    async def connect(self) -> None:
        """
        Create the connection pool and client.

        Connections are opened lazily, so this does not contact Redis.
        Calling it when a client is already set is a no-op.

        Raises:
            ValueError: If neither a client nor a URL was provided.
        """
        if self.client is not None:
            return
        if not self.redis_url:
            raise ValueError("redis_url is required to connect")

        pool = redis.BlockingConnectionPool.from_url(
            self.redis_url,
            max_connections=self.max_connections,
            timeout=self.pool_timeout,
            decode_responses=True,
        )
        self.client = redis.Redis(connection_pool=pool)

    async def close(self) -> None:
        """
        Close the client and disconnect its pool.

        Should be called during application shutdown to cleanly
        release resources.
        """
        if self.client is None:
            return
        await self.client.aclose()
        await self.client.connection_pool.disconnect()
        self.client = None

    @asynccontextmanager
    async def pipeline(self, transaction: bool = True) -> AsyncIterator[Pipeline]:
        if self.client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        async with self.client.pipeline(transaction=transaction) as pipe:
            yield pipe

    async def ping(self) -> bool:
        if self.client is None:
            return False
        return await self.client.ping() is True
