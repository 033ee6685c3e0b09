"""
Error handling module for the session store.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException base class carrying code, status and details
- The session store exception hierarchy
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    DuplicateSessionIDError,
    SessionDecodeError,
    SessionStoreError,
    SessionStoreUnavailableError,
    SessionValidationError,
    TransactionConflictError,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "SessionStoreError",
    "SessionValidationError",
    "DuplicateSessionIDError",
    "SessionDecodeError",
    "TransactionConflictError",
    "SessionStoreUnavailableError",
]
