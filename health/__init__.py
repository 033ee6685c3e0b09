"""
Health check module for the session store.

This module reports whether the Redis backing the session store is
reachable, including the response time of the check.
"""

from health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
