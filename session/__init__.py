"""
Session storage module.

This module provides the storage contract of the session-management layer
and its Redis implementation: sessions are indexed both by session ID and
by owning user, kept consistent with optimistic WATCH / MULTI / EXEC
transactions and expired through Redis native key expiration.
"""

from session.models import Session
from session.store import SessionStore
from session.connection import ConnectionProvider, RedisConnectionProvider
from session.redis_store import RedisSessionStore
from session.retrying import RetryingSessionStore

__all__ = [
    "Session",
    "SessionStore",
    "ConnectionProvider",
    "RedisConnectionProvider",
    "RedisSessionStore",
    "RetryingSessionStore",
]
