"""
Redis-based session store implementation.

Sessions are kept in two structures under a configurable key prefix:

- ``<prefix>:session:<id>`` is a hash holding the session fields. It
  expires natively at the session's expiration time.
- ``<prefix>:user:<user_key>`` is a sorted set whose members are full
  session keys scored by their expiration time in nanoseconds. It expires
  at the latest expiration of any session it lists.

Writes keep both structures consistent with optimistic locking: the keys
involved are WATCHed, read, and then modified in a single MULTI / EXEC
transaction. If another client touches a watched key in between, Redis
discards the transaction and TransactionConflictError is raised. The
store never retries on its own.

Index members may point at sessions that have already expired. They are
skipped on read and removed on the next create for the same user.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, WatchError

from errors.exceptions import (
    DuplicateSessionIDError,
    SessionDecodeError,
    SessionStoreUnavailableError,
    SessionValidationError,
    TransactionConflictError,
)
from session.codec import (
    FIELD_USER_KEY,
    decode_session,
    encode_session,
    to_milliseconds,
    to_nanoseconds,
)
from session.connection import ConnectionProvider
from session.models import Session
from session.store import SessionStore
from telemetry.instrumentation import logged_operation

logger = logging.getLogger(__name__)

SESSION_NAMESPACE = "session"
USER_NAMESPACE = "user"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedisSessionStore(SessionStore):
    """
    Redis-backed session store with a session-by-ID hash and a
    sessions-by-user sorted set.

    The store holds no state besides the key prefix and the connection
    provider, so a single instance can be shared by concurrent tasks.

    Attributes:
        provider: Supplies pipelines bound to pooled connections.
        prefix: Namespace prepended to every key (may be empty).
        eager_index_cleanup: When True, fetch_by_user_key removes index
            members whose session hash no longer exists.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        prefix: str = "",
        eager_index_cleanup: bool = False,
        clock: Callable[[], datetime] = _utcnow
    ):
        """
        Initialize the Redis session store.

        Args:
            provider: Connection provider used for every operation.
            prefix: Key namespace, useful when several session managers
                share one Redis database.
            eager_index_cleanup: Remove stale index members during
                fetch_by_user_key instead of waiting for the next create.
            clock: Returns the current time; used to compute index
                expirations and to prune expired index members.
        """
        self.provider = provider
        self.prefix = prefix
        self.eager_index_cleanup = eager_index_cleanup
        self._clock = clock

    @classmethod
    def from_settings(cls, provider: ConnectionProvider, settings) -> "RedisSessionStore":
        """Build a store using the key prefix and cleanup mode from settings."""
        return cls(
            provider,
            prefix=settings.session_key_prefix,
            eager_index_cleanup=settings.eager_index_cleanup,
        )

    def key(self, namespace: str, value: str) -> str:
        """Build a key in the given namespace, e.g. ``"<prefix>:session:<id>"``."""
        return f"{self.prefix}:{namespace}:{value}"

    def session_key(self, session_id: str) -> str:
        return self.key(SESSION_NAMESPACE, session_id)

    def user_index_key(self, user_key: str) -> str:
        return self.key(USER_NAMESPACE, user_key)

    def extract_id(self, session_key: str) -> str:
        """
        Strip the prefix and namespace from a session key.

        Returns an empty string if the key does not belong to this
        store's session namespace.
        """
        head = self.session_key("")
        if not session_key.startswith(head):
            return ""
        return session_key[len(head):]

    @asynccontextmanager
    async def _connection(
        self,
        operation: str,
        keys: list[str],
        transaction: bool = True
    ) -> AsyncIterator[Pipeline]:
        """
        Borrow a pipeline and translate Redis failures into store errors.

        Leaving the block resets the pipeline, which releases any WATCH
        still held and returns the connection to the pool.
        """
        try:
            async with self.provider.pipeline(transaction=transaction) as pipe:
                yield pipe
        except WatchError as e:
            logger.warning(
                "Transaction for %s aborted by concurrent modification",
                operation,
                extra={"extra_data": {"operation": operation, "keys": keys}}
            )
            raise TransactionConflictError(operation, keys) from e
        except RedisError as e:
            logger.error(
                "Session store command failed during %s: %s",
                operation,
                str(e),
                extra={
                    "extra_data": {
                        "operation": operation,
                        "keys": keys,
                        "error_type": type(e).__name__,
                    }
                }
            )
            raise SessionStoreUnavailableError(operation, e) from e

    @staticmethod
    def _decode(key: str, fields: dict[str, str]) -> Session:
        try:
            return decode_session(fields)
        except SessionDecodeError as e:
            logger.error(
                "Malformed session record at %s: %s",
                key,
                e.message,
                extra={"extra_data": {"key": key, "field": e.field_name}}
            )
            raise e.with_key(key) from e

    @logged_operation("create")
    async def create(self, session: Session) -> None:
        """
        Insert the session and add it to its user's index.

        Both keys are watched; the session key must not exist yet. The
        user index expiration is extended to cover the new session, and
        index members that have already expired are pruned in the same
        transaction.

        Raises:
            SessionValidationError: If the ID or user key is empty, or a
                timestamp has no timezone.
            DuplicateSessionIDError: If the session ID is already taken.
            TransactionConflictError: If a watched key changed before EXEC.
            SessionStoreUnavailableError: On connection or command failure.
        """
        if not session.id:
            raise SessionValidationError("id")
        if not session.user_key:
            raise SessionValidationError("user_key")
        # Stored values always carry an offset, so a naive input would not
        # read back equal to itself.
        if session.created_at.tzinfo is None:
            raise SessionValidationError("created_at", "must be timezone-aware")
        if session.expires_at.tzinfo is None:
            raise SessionValidationError("expires_at", "must be timezone-aware")

        s_key = self.session_key(session.id)
        u_key = self.user_index_key(session.user_key)

        async with self._connection("create", [s_key, u_key]) as pipe:
            await pipe.watch(s_key, u_key)

            if await pipe.exists(s_key):
                await pipe.unwatch()
                logger.warning(
                    "Rejected duplicate session ID",
                    extra={"extra_data": {"session_id": session.id}}
                )
                raise DuplicateSessionIDError(session.id)

            # PTTL is negative when the index is missing or has no expiration.
            remaining_ms = await pipe.pttl(u_key)

            now = self._clock()
            session_exp_ms = to_milliseconds(session.expires_at)
            index_exp_ms = max(
                to_milliseconds(now) + max(remaining_ms, 0),
                session_exp_ms,
            )

            pipe.multi()
            pipe.zremrangebyscore(u_key, "-inf", to_nanoseconds(now))
            pipe.zadd(u_key, {s_key: to_nanoseconds(session.expires_at)})
            pipe.pexpireat(u_key, index_exp_ms)
            pipe.hset(s_key, mapping=encode_session(session))
            pipe.pexpireat(s_key, session_exp_ms)
            await pipe.execute()

    @logged_operation("fetch_by_id")
    async def fetch_by_id(self, session_id: str) -> tuple[Optional[Session], bool]:
        """
        Retrieve a session by ID.

        A missing key and an empty hash both mean not found.

        Raises:
            SessionDecodeError: If the stored hash is malformed.
            SessionStoreUnavailableError: On connection or command failure.
        """
        s_key = self.session_key(session_id)

        async with self._connection("fetch_by_id", [s_key], transaction=False) as pipe:
            pipe.hgetall(s_key)
            (fields,) = await pipe.execute()

        if not fields:
            return None, False

        return self._decode(s_key, fields), True

    @logged_operation("fetch_by_user_key")
    async def fetch_by_user_key(self, user_key: str) -> list[Session]:
        """
        Retrieve all sessions listed in the user's index, ordered by
        ascending expiration.

        The index read and the hash reads share one pooled connection:
        WATCH pins it for the index read and is released right away, then
        all hashes are read in a single MULTI / EXEC. Nothing is watched at
        EXEC, so the read never conflicts. Members whose hash has vanished
        (expired or deleted after the index read, or never cleaned up) are
        skipped.

        Raises:
            SessionDecodeError: If any existing hash is malformed.
            SessionStoreUnavailableError: On connection or command failure.
        """
        u_key = self.user_index_key(user_key)

        async with self._connection("fetch_by_user_key", [u_key]) as pipe:
            await pipe.watch(u_key)
            members = await pipe.zrangebyscore(u_key, "-inf", "+inf")
            await pipe.unwatch()

            if not members:
                return []

            pipe.multi()
            for member in members:
                pipe.hgetall(member)
            replies = await pipe.execute()

        sessions: list[Session] = []
        stale: list[str] = []

        for member, fields in zip(members, replies):
            if not fields:
                stale.append(member)
                continue
            sessions.append(self._decode(member, fields))

        if stale:
            logger.debug(
                "Skipped %d stale index members",
                len(stale),
                extra={"extra_data": {"user_index_key": u_key, "stale": stale}}
            )
            if self.eager_index_cleanup:
                await self._remove_stale_members(u_key, stale)

        return sessions

    async def _remove_stale_members(self, u_key: str, stale: list[str]) -> None:
        """
        Remove index members whose session hash no longer exists.

        The stale session keys are watched so that a session recreated in
        the meantime keeps its index entry. Failures are logged and
        ignored: the members are pruned by the next create anyway.
        """
        try:
            async with self.provider.pipeline() as pipe:
                await pipe.watch(*stale)
                if await pipe.exists(*stale):
                    await pipe.unwatch()
                    return
                pipe.multi()
                pipe.zrem(u_key, *stale)
                await pipe.execute()
        except RedisError as e:
            logger.warning(
                "Failed to remove stale index members from %s: %s",
                u_key,
                str(e),
                extra={"extra_data": {"user_index_key": u_key, "error_type": type(e).__name__}}
            )

    @logged_operation("delete_by_id")
    async def delete_by_id(self, session_id: str) -> None:
        """
        Delete a session and remove it from its user's index.

        If the session was the only member of the index, the index key is
        deleted as well. Deleting an absent session is a no-op.

        Raises:
            SessionDecodeError: If the stored hash has no user key.
            TransactionConflictError: If a watched key changed before EXEC.
            SessionStoreUnavailableError: On connection or command failure.
        """
        s_key = self.session_key(session_id)

        async with self._connection("delete_by_id", [s_key]) as pipe:
            await pipe.watch(s_key)

            fields = await pipe.hgetall(s_key)
            if not fields:
                await pipe.unwatch()
                return

            owner = fields.get(FIELD_USER_KEY)
            if not owner:
                await pipe.unwatch()
                raise SessionDecodeError(FIELD_USER_KEY, "field is missing", key=s_key)

            u_key = self.user_index_key(owner)
            await pipe.watch(u_key)
            members = await pipe.zrangebyscore(u_key, "-inf", "+inf")

            pipe.multi()
            pipe.zrem(u_key, s_key)
            if members == [s_key]:
                pipe.delete(u_key)
            pipe.delete(s_key)
            await pipe.execute()

    @logged_operation("delete_by_user_key")
    async def delete_by_user_key(self, user_key: str, *except_ids: str) -> None:
        """
        Delete every session of a user except the listed ones.

        Without exceptions the index key is deleted too. With exceptions
        only the deleted sessions are removed from the index, so the
        excepted ones stay listed. Deleting for an unknown user is a no-op.

        Raises:
            TransactionConflictError: If the index changed before EXEC.
            SessionStoreUnavailableError: On connection or command failure.
        """
        u_key = self.user_index_key(user_key)
        keep = set(except_ids)

        async with self._connection("delete_by_user_key", [u_key]) as pipe:
            await pipe.watch(u_key)
            members = await pipe.zrangebyscore(u_key, "-inf", "+inf")

            pipe.multi()
            for member in members:
                if self.extract_id(member) in keep:
                    continue
                pipe.delete(member)
                if except_ids:
                    pipe.zrem(u_key, member)

            if not except_ids or not members:
                pipe.delete(u_key)

            await pipe.execute()

    async def health_check(self) -> bool:
        """
        Check connectivity and health of the Redis store.

        Returns:
            True if Redis answers PING, False otherwise.

        Note:
            This method does not raise exceptions - connectivity issues
            are caught and result in a False return value.
        """
        try:
            return await self.provider.ping()
        except Exception as e:
            logger.warning(
                "Session store health check failed: %s",
                str(e),
                extra={"extra_data": {"error_type": type(e).__name__}}
            )
            return False
