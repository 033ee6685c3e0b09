"""
Operation logging wrapper for session store methods.

This module provides a decorator that wraps async store operations to log
their invocations with timing and success/failure status, and to record
duration and count metrics through the TelemetryService.
"""

import functools
import logging
import time
from typing import Any, Callable, Optional

from telemetry.service import get_telemetry_service

logger = logging.getLogger(__name__)


def logged_operation(operation_name: Optional[str] = None) -> Callable:
    """
    Decorator that wraps an async store operation with invocation logging.

    This decorator:
    1. Records the start time before the operation
    2. Executes the operation
    3. Records duration and success/failure status
    4. Logs the invocation via TelemetryService when it is initialized,
       falling back to the module logger otherwise
    5. Records duration and count metrics

    Exceptions are always re-raised unchanged.

    Args:
        operation_name: Name used in logs and metric tags. Defaults to
            the wrapped function's name.
    """
    def decorator(func: Callable) -> Callable:
        name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            success = False
            error_message = None
            error_code = None

            try:
                result = await func(*args, **kwargs)
                success = True
                return result

            except Exception as e:
                error_message = str(e)
                code = getattr(e, "error_code", None)
                error_code = getattr(code, "value", None)
                raise

            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000

                telemetry = get_telemetry_service()
                if telemetry:
                    telemetry.log_store_operation(
                        operation=name,
                        duration_ms=duration_ms,
                        success=success,
                        error=error_message,
                        error_code=error_code
                    )

                    tags = {"operation": name, "success": str(success).lower()}
                    telemetry.record_metric(
                        name="session_store_operation_duration_ms",
                        value=duration_ms,
                        tags=tags
                    )
                    telemetry.record_metric(
                        name="session_store_operation_count",
                        value=1,
                        tags=tags
                    )
                else:
                    logger.debug(
                        f"Session store operation: {name} - "
                        f"duration={duration_ms:.2f}ms, success={success}"
                        + (f", error={error_message}" if error_message else "")
                    )

        return wrapper

    return decorator
