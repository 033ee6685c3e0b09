"""
Resilience patterns for session store callers.

The store reports optimistic-locking conflicts immediately; this package
provides the bounded exponential-backoff retry policy applied on top.
"""

from resilience.retry import (
    RetryConfig,
    RetryExhaustedException,
    calculate_delay,
    retry,
    retry_async,
)

__all__ = [
    "RetryConfig",
    "RetryExhaustedException",
    "calculate_delay",
    "retry",
    "retry_async",
]
