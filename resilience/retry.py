"""
Retry logic with exponential backoff.

The session store itself never retries: an optimistic-locking conflict is
reported to the caller as soon as it happens. This module supplies the
bounded retry policy that callers (and RetryingSessionStore) can opt into.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, including the first.
        initial_delay: Delay before the first retry in seconds.
        exponential_base: Base for exponential backoff calculation.
            Default is 2.0 (delays: 1s, 2s, 4s).
        max_delay: Maximum delay between retries in seconds.
            Default is None (no maximum).
        retryable_exceptions: Tuple of exception types that should
            trigger a retry. Default is (Exception,) to retry all.
        reraise: When True, the last exception is re-raised unchanged
            after the final attempt instead of being wrapped in
            RetryExhaustedException.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: Optional[float] = None
    retryable_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (Exception,)
    )
    reraise: bool = False


class RetryExhaustedException(Exception):
    """
    Exception raised when all retry attempts have been exhausted.

    This exception wraps the last exception that caused the retry
    to fail, providing context about the retry attempts.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_exception: Exception,
        operation_name: Optional[str] = None
    ):
        """
        Initialize a RetryExhaustedException.

        Args:
            message: Human-readable error message
            attempts: Number of attempts made
            last_exception: The last exception that caused failure
            operation_name: Optional name of the operation that failed
        """
        self.attempts = attempts
        self.last_exception = last_exception
        self.operation_name = operation_name
        super().__init__(message)


def calculate_delay(
    attempt: int,
    initial_delay: float,
    exponential_base: float,
    max_delay: Optional[float] = None
) -> float:
    """
    Calculate the delay for a given retry attempt using exponential backoff.

    The delay is calculated as: initial_delay * (exponential_base ^ attempt)

    For initial_delay=1.0 and exponential_base=2.0:
    - Attempt 0: 1.0 second
    - Attempt 1: 2.0 seconds
    - Attempt 2: 4.0 seconds

    Args:
        attempt: The current attempt number (0-indexed)
        initial_delay: The initial delay in seconds
        exponential_base: The base for exponential calculation
        max_delay: Optional maximum delay cap

    Returns:
        The calculated delay in seconds
    """
    delay = initial_delay * (exponential_base ** attempt)

    if max_delay is not None:
        delay = min(delay, max_delay)

    return delay


async def _run_with_retry(
    call: Callable[[], Awaitable[T]],
    config: RetryConfig,
    op_name: str
) -> T:
    """Run ``call`` until it succeeds, a non-retryable error occurs or attempts run out."""
    for attempt in range(config.max_attempts):
        try:
            return await call()
        except config.retryable_exceptions as e:
            if attempt == config.max_attempts - 1:
                logger.error(
                    "Retry exhausted for operation '%s' after %d attempts. "
                    "Last error: %s",
                    op_name,
                    config.max_attempts,
                    str(e),
                    extra={
                        "extra_data": {
                            "operation": op_name,
                            "attempts": config.max_attempts,
                            "last_error": str(e),
                            "error_type": type(e).__name__,
                        }
                    }
                )
                if config.reraise:
                    raise
                raise RetryExhaustedException(
                    f"Operation '{op_name}' failed after {config.max_attempts} attempts",
                    attempts=config.max_attempts,
                    last_exception=e,
                    operation_name=op_name
                ) from e

            delay = calculate_delay(
                attempt,
                config.initial_delay,
                config.exponential_base,
                config.max_delay
            )

            logger.warning(
                "Retry attempt %d/%d for operation '%s' failed with %s: %s. "
                "Retrying in %.2f seconds...",
                attempt + 1,
                config.max_attempts,
                op_name,
                type(e).__name__,
                str(e),
                delay,
                extra={
                    "extra_data": {
                        "operation": op_name,
                        "attempt": attempt + 1,
                        "max_attempts": config.max_attempts,
                        "delay_seconds": delay,
                        "error_type": type(e).__name__,
                    }
                }
            )

            await asyncio.sleep(delay)

    raise ValueError(f"max_attempts must be at least 1, got {config.max_attempts}")


def retry(
    config: Optional[RetryConfig] = None,
    *,
    max_attempts: Optional[int] = None,
    initial_delay: Optional[float] = None,
    exponential_base: Optional[float] = None,
    max_delay: Optional[float] = None,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    reraise: Optional[bool] = None,
    operation_name: Optional[str] = None
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator that adds retry logic with exponential backoff to async functions.

    The decorator can be configured either by passing a RetryConfig object
    or by specifying individual parameters. Individual parameters take
    precedence over the config object.

    Example usage:
        @retry(max_attempts=5, initial_delay=0.05,
               retryable_exceptions=(TransactionConflictError,))
        async def login(store, session):
            await store.create(session)
    """
    base_config = config or RetryConfig()
    overrides = {
        "max_attempts": max_attempts,
        "initial_delay": initial_delay,
        "exponential_base": exponential_base,
        "max_delay": max_delay,
        "retryable_exceptions": retryable_exceptions,
        "reraise": reraise,
    }
    effective_config = RetryConfig(**{
        name: value if value is not None else getattr(base_config, name)
        for name, value in overrides.items()
    })

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await _run_with_retry(
                lambda: func(*args, **kwargs),
                effective_config,
                operation_name or func.__name__
            )

        return wrapper

    return decorator


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: Optional[RetryConfig] = None,
    operation_name: Optional[str] = None,
    **kwargs: Any
) -> T:
    """
    Execute an async function with retry logic.

    This is a functional alternative to the @retry decorator for cases
    where the retry policy is chosen at runtime.

    Raises:
        RetryExhaustedException: When all attempts fail and the config
            does not ask for the last exception to be re-raised.
    """
    return await _run_with_retry(
        lambda: func(*args, **kwargs),
        config or RetryConfig(),
        operation_name or getattr(func, "__name__", "operation")
    )
