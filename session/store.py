"""
Session store abstraction.

This module defines the storage contract required by the session-management
layer: sessions are created, fetched and deleted both by session ID and by
the key of the user that owns them.
"""

from abc import ABC, abstractmethod
from typing import Optional

from session.models import Session


class SessionStore(ABC):
    """
    Abstract base class for session storage implementations.

    Every operation is a single logically atomic unit. Not-found is never
    an error: fetches return a found flag or an empty list, and deletes of
    absent records are no-ops.

    All methods are async to support non-blocking I/O with the
    underlying store.
    """

    @abstractmethod
    async def create(self, session: Session) -> None:
        """
        Insert a new session and index it under its user key.

        Args:
            session: Fully populated session. ``id`` and ``user_key``
                must be non-empty and both timestamps timezone-aware.

        Raises:
            SessionValidationError: If the ID or user key is empty, or a
                timestamp has no timezone.
            DuplicateSessionIDError: If a session with the same ID exists.
            SessionStoreError: On any other store failure.
        """
        pass

    @abstractmethod
    async def fetch_by_id(self, session_id: str) -> tuple[Optional[Session], bool]:
        """
        Retrieve a session by its ID.

        Returns:
            ``(session, True)`` if found, ``(None, False)`` otherwise.

        Raises:
            SessionDecodeError: If the stored record is malformed.
            SessionStoreError: On any other store failure.
        """
        pass

    @abstractmethod
    async def fetch_by_user_key(self, user_key: str) -> list[Session]:
        """
        Retrieve all live sessions of a user, ordered by ascending
        expiration time.

        Returns:
            The sessions found; an empty list if there are none.

        Raises:
            SessionDecodeError: If any stored record is malformed.
            SessionStoreError: On any other store failure.
        """
        pass

    @abstractmethod
    async def delete_by_id(self, session_id: str) -> None:
        """
        Delete a session by its ID. Deleting an absent session is a no-op.

        Raises:
            SessionStoreError: On store failure.
        """
        pass

    @abstractmethod
    async def delete_by_user_key(self, user_key: str, *except_ids: str) -> None:
        """
        Delete all sessions of a user except those whose IDs are listed.

        Args:
            user_key: The owning user's key.
            *except_ids: Session IDs to keep, e.g. the caller's current
                session for "log out everywhere else".

        Raises:
            SessionStoreError: On store failure.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity and health of the session store.

        Returns:
            True if the store is healthy and accessible, False otherwise.

        Note:
            This method should not raise exceptions - connectivity issues
            should be caught and result in a False return value.
        """
        pass
