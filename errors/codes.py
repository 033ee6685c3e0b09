"""
Error code catalog for the session store.

This module defines all error codes raised by the session store,
covering caller validation errors, duplicate identifiers, optimistic
locking conflicts, corrupted stored records and Redis failures.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used by the session store.

    Each error code maps to a default HTTP status code so that the
    session-management layer on top can surface them directly:
    - Validation errors (4xx): Caller passed an unusable session
    - Conflict errors (4xx): Duplicate IDs and aborted transactions
    - Store errors (5xx): Corrupted records and Redis failures
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Session is missing its ID or user key (HTTP 400)"""

    # Conflict errors (4xx)
    DUPLICATE_SESSION_ID = "DUPLICATE_SESSION_ID"
    """A session with the same ID already exists (HTTP 409)"""

    TRANSACTION_CONFLICT = "TRANSACTION_CONFLICT"
    """A watched key changed before EXEC, transaction discarded (HTTP 409)"""

    # Store errors (5xx)
    SESSION_DECODE_ERROR = "SESSION_DECODE_ERROR"
    """Stored session record is missing a field or is malformed (HTTP 500)"""

    SESSION_STORE_UNAVAILABLE = "SESSION_STORE_UNAVAILABLE"
    """Redis unreachable, pool exhausted or command failed (HTTP 503)"""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.DUPLICATE_SESSION_ID: 409,
    ErrorCode.TRANSACTION_CONFLICT: 409,
    ErrorCode.SESSION_DECODE_ERROR: 500,
    ErrorCode.SESSION_STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
