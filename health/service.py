"""
Health check service for the session store.

This module provides the HealthCheckService class that reports whether the
Redis backing the session store is reachable, with the time each check took.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Any

from session.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "session_store")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status.

    Attributes:
        status: Overall status - "healthy" or "unhealthy"
        timestamp: When the health check was performed
        dependencies: List of individual dependency health statuses
    """
    status: str
    timestamp: datetime
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Service for checking the health of the session store.

    Attributes:
        session_store: The session store to check
        check_timeout: Timeout in seconds for the check (default: 5.0)
    """

    def __init__(self, session_store: SessionStore, check_timeout: float = 5.0):
        self.session_store = session_store
        self.check_timeout = check_timeout

    @classmethod
    def from_settings(cls, session_store: SessionStore, settings: Any) -> "HealthCheckService":
        return cls(session_store, check_timeout=settings.health_check_timeout_seconds)

    async def check_readiness(self) -> HealthStatus:
        """
        Check that the session store can serve requests.

        Returns:
            HealthStatus: "healthy" if Redis answered within the timeout,
            "unhealthy" otherwise.
        """
        dependency = await self._check_session_store()
        return HealthStatus(
            status="healthy" if dependency.healthy else "unhealthy",
            timestamp=datetime.now(timezone.utc),
            dependencies=[dependency]
        )

    async def check_liveness(self) -> dict[str, Any]:
        """
        Simple liveness check - process is running.

        It does not check external dependencies.
        """
        return {
            "status": "alive",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    async def _check_session_store(self) -> DependencyHealth:
        """Ping the session store with a timeout and time the response."""
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self.session_store.health_check(),
                timeout=self.check_timeout
            )
        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Session store health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(
                name="session_store",
                healthy=False,
                response_time_ms=elapsed_ms,
                error=error_msg
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000

        if result:
            logger.debug(f"Session store health check passed in {elapsed_ms:.2f}ms")
            return DependencyHealth(
                name="session_store",
                healthy=True,
                response_time_ms=elapsed_ms
            )

        logger.warning(f"Session store health check returned False after {elapsed_ms:.2f}ms")
        return DependencyHealth(
            name="session_store",
            healthy=False,
            response_time_ms=elapsed_ms,
            error="Session store health check returned False"
        )
