"""
Bounded-retry decorator for session stores.

RetryingSessionStore wraps any SessionStore and retries operations that
failed because the transaction was discarded by a concurrent writer or
because Redis was briefly unreachable. Everything else (duplicate IDs,
corrupted records, invalid input) is passed straight through.
"""

from typing import Optional

from errors.exceptions import SessionStoreUnavailableError, TransactionConflictError
from resilience.retry import RetryConfig, retry_async
from session.models import Session
from session.store import SessionStore

RETRYABLE_STORE_ERRORS = (TransactionConflictError, SessionStoreUnavailableError)


class RetryingSessionStore(SessionStore):
    """
    SessionStore decorator applying exponential backoff to retryable failures.

    After the last attempt the final store error is raised unchanged, so
    callers see the same exception types as with the wrapped store.

    Note that a create retried after a transport failure may find its own
    earlier write and raise DuplicateSessionIDError.
    """

    def __init__(self, store: SessionStore, config: Optional[RetryConfig] = None):
        base = config or RetryConfig(max_attempts=3, initial_delay=0.05)
        self.store = store
        self.config = RetryConfig(
            max_attempts=base.max_attempts,
            initial_delay=base.initial_delay,
            exponential_base=base.exponential_base,
            max_delay=base.max_delay,
            retryable_exceptions=RETRYABLE_STORE_ERRORS,
            reraise=True,
        )

    @classmethod
    def from_settings(cls, store: SessionStore, settings) -> "RetryingSessionStore":
        return cls(store, RetryConfig(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        ))

    async def create(self, session: Session) -> None:
        await retry_async(
            self.store.create, session,
            config=self.config, operation_name="create"
        )

    async def fetch_by_id(self, session_id: str) -> tuple[Optional[Session], bool]:
        return await retry_async(
            self.store.fetch_by_id, session_id,
            config=self.config, operation_name="fetch_by_id"
        )

    async def fetch_by_user_key(self, user_key: str) -> list[Session]:
        return await retry_async(
            self.store.fetch_by_user_key, user_key,
            config=self.config, operation_name="fetch_by_user_key"
        )

    async def delete_by_id(self, session_id: str) -> None:
        await retry_async(
            self.store.delete_by_id, session_id,
            config=self.config, operation_name="delete_by_id"
        )

    async def delete_by_user_key(self, user_key: str, *except_ids: str) -> None:
        await retry_async(
            self.store.delete_by_user_key, user_key, *except_ids,
            config=self.config, operation_name="delete_by_user_key"
        )

    async def health_check(self) -> bool:
        return await self.store.health_check()
