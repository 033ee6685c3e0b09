"""
Shared pytest fixtures and configuration for all tests.

Besides the Hypothesis profiles, this module provides an in-memory Redis
double covering the commands the session store issues. Its pipeline
mirrors redis.asyncio's Pipeline: after WATCH commands run immediately,
after MULTI they are queued, and EXEC raises WatchError when a watched key
was modified in between.
"""
import math
import os
from datetime import datetime, timedelta, timezone
from ipaddress import ip_address
from typing import Any, Callable, Optional

import pytest
from hypothesis import settings, Verbosity, Phase
from redis.exceptions import RedisError, WatchError

from session.connection import RedisConnectionProvider
from session.models import Session
from session.redis_store import RedisSessionStore

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


TEST_PREFIX = "test"


class FakeClock:
    """Controllable UTC clock shared by the store and the fake server."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta

    def millis(self) -> int:
        return (self.now - datetime(1970, 1, 1, tzinfo=timezone.utc)) // timedelta(milliseconds=1)


def _score_bound(value: Any) -> float:
    if value in ("-inf", b"-inf"):
        return -math.inf
    if value in ("+inf", "inf", b"+inf"):
        return math.inf
    return float(value)


class FakeRedisServer:
    """
    Minimal in-memory Redis keyspace with millisecond expirations.

    Attributes:
        hashes / zsets: The stored values by key.
        expires: Absolute expiration in epoch milliseconds by key.
        versions: Bumped on every modification; used for WATCH.
        commands: Log of every command executed, as (NAME, args) tuples.
        failures: Command name -> exception raised when it is executed.
        before_exec: Optional hook run right before EXEC, used to
            simulate a concurrent writer.
        open_pipelines: Pipelines currently open.
        checkouts: Connections taken from the pool so far. A pipeline
            takes one on WATCH or EXEC and returns it on reset.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.expires: dict[str, int] = {}
        self.versions: dict[str, int] = {}
        self.commands: list[tuple[str, tuple]] = []
        self.failures: dict[str, Exception] = {}
        self.before_exec: Optional[Callable[["FakeRedisServer"], None]] = None
        self.open_pipelines = 0
        self.checkouts = 0

    def command_names(self) -> list[str]:
        return [name for name, _ in self.commands]

    def touch(self, key: str) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    def version(self, key: str) -> int:
        self._purge(key)
        return self.versions.get(key, 0)

    def _purge(self, key: str) -> None:
        expires_at = self.expires.get(key)
        if expires_at is not None and expires_at <= self.clock.millis():
            self.hashes.pop(key, None)
            self.zsets.pop(key, None)
            del self.expires[key]

    def _exists(self, key: str) -> bool:
        self._purge(key)
        return key in self.hashes or key in self.zsets

    def _remove(self, key: str) -> bool:
        existed = self._exists(key)
        self.hashes.pop(key, None)
        self.zsets.pop(key, None)
        self.expires.pop(key, None)
        if existed:
            self.touch(key)
        return existed

    def run(self, name: str, *args: Any, **kwargs: Any) -> Any:
        self.commands.append((name.upper(), args))
        failure = self.failures.get(name.upper())
        if failure is not None:
            raise failure
        return getattr(self, f"cmd_{name}")(*args, **kwargs)

    def cmd_ping(self) -> bool:
        return True

    def cmd_exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._exists(key))

    def cmd_pttl(self, key: str) -> int:
        if not self._exists(key):
            return -2
        if key not in self.expires:
            return -1
        return self.expires[key] - self.clock.millis()

    def cmd_pexpireat(self, key: str, when: int) -> bool:
        if not self._exists(key):
            return False
        self.expires[key] = int(when)
        self.touch(key)
        return True

    def cmd_hgetall(self, key: str) -> dict[str, str]:
        self._purge(key)
        return dict(self.hashes.get(key, {}))

    def cmd_hset(self, key: str, mapping: dict[str, str]) -> int:
        self._purge(key)
        target = self.hashes.setdefault(key, {})
        added = sum(1 for field in mapping if field not in target)
        target.update({field: str(value) for field, value in mapping.items()})
        self.touch(key)
        return added

    def cmd_zadd(self, key: str, mapping: dict[str, float]) -> int:
        self._purge(key)
        target = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in target)
        target.update({member: float(score) for member, score in mapping.items()})
        self.touch(key)
        return added

    def cmd_zrem(self, key: str, *members: str) -> int:
        self._purge(key)
        target = self.zsets.get(key, {})
        removed = sum(1 for member in members if target.pop(member, None) is not None)
        if removed:
            self.touch(key)
            if not target:
                self._remove(key)
        return removed

    def cmd_zrangebyscore(self, key: str, low: Any, high: Any) -> list[str]:
        self._purge(key)
        low_f, high_f = _score_bound(low), _score_bound(high)
        members = [
            (score, member)
            for member, score in self.zsets.get(key, {}).items()
            if low_f <= score <= high_f
        ]
        return [member for _, member in sorted(members)]

    def cmd_zremrangebyscore(self, key: str, low: Any, high: Any) -> int:
        doomed = self.cmd_zrangebyscore(key, low, high)
        if not doomed:
            return 0
        return self.cmd_zrem(key, *doomed)

    def cmd_delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._remove(key))

    # Helpers for arranging state directly in tests.

    def put_hash(self, key: str, fields: dict[str, str]) -> None:
        self.hashes[key] = dict(fields)
        self.touch(key)


class FakePipeline:
    """Pipeline double following redis.asyncio.client.Pipeline semantics."""

    def __init__(self, server: FakeRedisServer, transaction: bool = True):
        self.server = server
        self.transaction = transaction
        self.connection = False
        self.watching = False
        self.explicit_transaction = False
        self.watched: dict[str, int] = {}
        self.command_stack: list[tuple[str, tuple, dict]] = []

    async def __aenter__(self) -> "FakePipeline":
        self.server.open_pipelines += 1
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.reset()
        self.server.open_pipelines -= 1

    async def reset(self) -> None:
        if self.watching:
            self.server.commands.append(("UNWATCH", ()))
        self.command_stack = []
        self.watching = False
        self.explicit_transaction = False
        self.watched = {}
        self.connection = False

    def _acquire(self) -> None:
        if not self.connection:
            self.server.checkouts += 1
            self.connection = True

    async def watch(self, *keys: str) -> bool:
        if self.explicit_transaction:
            raise RedisError("Cannot issue a WATCH after a MULTI")
        self._acquire()
        self.server.commands.append(("WATCH", keys))
        failure = self.server.failures.get("WATCH")
        if failure is not None:
            raise failure
        for key in keys:
            self.watched[key] = self.server.version(key)
        self.watching = True
        return True

    async def unwatch(self) -> bool:
        if self.watching:
            self.server.commands.append(("UNWATCH", ()))
        self.watching = False
        self.watched = {}
        return True

    def multi(self) -> None:
        if self.explicit_transaction:
            raise RedisError("Cannot issue nested calls to MULTI")
        self.explicit_transaction = True

    def _call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        if self.watching and not self.explicit_transaction:
            return self._immediate(name, *args, **kwargs)
        self.command_stack.append((name, args, kwargs))
        return self

    async def _immediate(self, name: str, *args: Any, **kwargs: Any) -> Any:
        return self.server.run(name, *args, **kwargs)

    async def execute(self) -> list[Any]:
        stack = self.command_stack
        self._acquire()
        try:
            if self.transaction:
                self.server.commands.append(("MULTI", ()))
                if self.server.before_exec is not None:
                    hook, self.server.before_exec = self.server.before_exec, None
                    hook(self.server)
                self.server.commands.append(("EXEC", ()))
                failure = self.server.failures.get("EXEC")
                if failure is not None:
                    raise failure
                if any(self.server.version(k) != v for k, v in self.watched.items()):
                    raise WatchError("Watched variable changed.")
            return [self.server.run(name, *args, **kwargs) for name, args, kwargs in stack]
        finally:
            self.command_stack = []
            self.watching = False
            self.explicit_transaction = False
            self.watched = {}
            self.connection = False

    def exists(self, *keys: str):
        return self._call("exists", *keys)

    def pttl(self, key: str):
        return self._call("pttl", key)

    def pexpireat(self, key: str, when: int):
        return self._call("pexpireat", key, when)

    def hgetall(self, key: str):
        return self._call("hgetall", key)

    def hset(self, key: str, mapping: dict[str, str]):
        return self._call("hset", key, mapping=mapping)

    def zadd(self, key: str, mapping: dict[str, float]):
        return self._call("zadd", key, mapping)

    def zrem(self, key: str, *members: str):
        return self._call("zrem", key, *members)

    def zrangebyscore(self, key: str, low: Any, high: Any):
        return self._call("zrangebyscore", key, low, high)

    def zremrangebyscore(self, key: str, low: Any, high: Any):
        return self._call("zremrangebyscore", key, low, high)

    def delete(self, *keys: str):
        return self._call("delete", *keys)


class FakeRedis:
    """Client double handing out FakePipelines over one shared keyspace."""

    def __init__(self, server: FakeRedisServer):
        self.server = server

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self.server, transaction=transaction)

    async def ping(self) -> bool:
        return self.server.run("ping")


@pytest.fixture
def clock() -> FakeClock:
    """A fixed clock at 2024-01-15T10:30:00Z."""
    return FakeClock()


@pytest.fixture
def redis_server(clock: FakeClock) -> FakeRedisServer:
    """In-memory keyspace sharing the test clock."""
    return FakeRedisServer(clock)


@pytest.fixture
def provider(redis_server: FakeRedisServer) -> RedisConnectionProvider:
    """Connection provider backed by the in-memory keyspace."""
    return RedisConnectionProvider(client=FakeRedis(redis_server))


@pytest.fixture
def store(provider: RedisConnectionProvider, clock: FakeClock) -> RedisSessionStore:
    """Session store under the "test" prefix using the test clock."""
    return RedisSessionStore(provider, prefix=TEST_PREFIX, clock=clock)


@pytest.fixture
def make_session(clock: FakeClock) -> Callable[..., Session]:
    """Factory for sessions created now and expiring in 24 hours by default."""
    def _make(
        session_id: str = "id123",
        user_key: str = "u123",
        ttl: timedelta = timedelta(hours=24),
        **overrides: Any
    ) -> Session:
        values = {
            "id": session_id,
            "user_key": user_key,
            "created_at": clock.now,
            "expires_at": clock.now + ttl,
            "ip": ip_address("127.0.0.1"),
            "agent_os": "gnu/linux",
            "agent_browser": "firefox",
            "meta": {},
        }
        values.update(overrides)
        return Session(**values)

    return _make
