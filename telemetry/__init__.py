"""
Telemetry module for structured logging and observability.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for centralized logging and metrics
- logged_operation decorator timing session store operations
"""

from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    get_telemetry_service,
    initialize_telemetry,
    set_correlation_id,
    get_correlation_id,
)
from telemetry.instrumentation import logged_operation

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "get_telemetry_service",
    "initialize_telemetry",
    "set_correlation_id",
    "get_correlation_id",
    "logged_operation",
]
