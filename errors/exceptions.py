"""
Exception classes for the session store.

This module provides the AppException base class and the session store
exception hierarchy. Every exception carries a standardized error code,
a default HTTP status code and an optional details dictionary so the
session-management layer can report failures without inspecting Redis
internals.

Not-found is never an exception: fetch operations return a found flag
or an empty list instead.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context (e.g., the offending key)

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Session ID must not be empty",
            details={"field": "id"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class SessionStoreError(AppException):
    """
    Base class for every error raised by a session store.

    Catching SessionStoreError catches all store failures. The transport
    category (the operation did not complete) is represented by the
    SessionStoreUnavailableError and TransactionConflictError subclasses;
    the remaining subclasses describe caller or data problems.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(error_code=error_code, message=message, details=details)


class SessionValidationError(SessionStoreError):
    """Raised when a session passed to create lacks an ID or user key,
    or carries a timestamp without a timezone."""

    def __init__(self, field_name: str, reason: str = "must not be empty"):
        self.field_name = field_name
        super().__init__(
            f"Session {field_name} {reason}",
            error_code=ErrorCode.VALIDATION_ERROR,
            details={"field": field_name}
        )


class DuplicateSessionIDError(SessionStoreError):
    """
    Raised by create when a session with the same ID already exists.

    Callers retrying a create must treat this as "already exists",
    never as a transient failure.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"Session with ID {session_id!r} already exists",
            error_code=ErrorCode.DUPLICATE_SESSION_ID,
            details={"session_id": session_id}
        )


class SessionDecodeError(SessionStoreError):
    """
    Raised when a stored session hash is missing a required field or
    holds a malformed value.

    This always indicates data corruption and is never skipped.
    """

    def __init__(self, field_name: str, reason: str, key: Optional[str] = None):
        self.field_name = field_name
        self.key = key
        details: dict[str, Any] = {"field": field_name, "reason": reason}
        if key is not None:
            details["key"] = key
        super().__init__(
            f"Stored session field {field_name!r} is invalid: {reason}",
            error_code=ErrorCode.SESSION_DECODE_ERROR,
            details=details
        )

    def with_key(self, key: str) -> "SessionDecodeError":
        """Return a copy of this error annotated with the Redis key it came from."""
        return SessionDecodeError(self.field_name, self.details["reason"], key=key)


class TransactionConflictError(SessionStoreError):
    """
    Raised when EXEC is discarded because a watched key changed.

    The transaction was not applied. The store never retries on its own;
    wrap it in RetryingSessionStore to retry conflicts with backoff.
    """

    def __init__(self, operation: str, keys: list[str]):
        self.operation = operation
        self.keys = keys
        super().__init__(
            f"Transaction for {operation} aborted: watched keys were modified",
            error_code=ErrorCode.TRANSACTION_CONFLICT,
            details={"operation": operation, "keys": keys}
        )


class SessionStoreUnavailableError(SessionStoreError):
    """
    Raised when Redis cannot be reached, the connection pool is exhausted
    or a command fails.

    The underlying exception is chained as __cause__ and summarized in
    details for diagnostics.
    """

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        super().__init__(
            f"Session store unavailable during {operation}",
            error_code=ErrorCode.SESSION_STORE_UNAVAILABLE,
            details={
                "operation": operation,
                "error_type": type(cause).__name__,
                "error": str(cause),
            }
        )
