"""Redis-backed cache store and lock provider.

Both classes wrap a ``redis.asyncio.Redis`` client, so several application
processes sharing one Redis deployment coordinate through it:

- entries are plain string keys written with ``SET ... PX``
- ``add`` is ``SET ... NX PX``
- ``increment`` and owner-checked ``release`` run as Lua scripts so they are
  atomic on the server
- locks are ``SET name token NX PX lease`` polled until the wait expires

Redis failures are re-raised as StorageError and never swallowed.

Examples:
    Wiring the backend::

        import redis.asyncio as redis
        from request_dedup.storage.redis import RedisCacheStore, RedisLockProvider

        client = redis.from_url("redis://localhost:6379/0")
        cache = RedisCacheStore(client)
        locks = RedisLockProvider(client)
"""

import asyncio
import uuid
from typing import Any

from redis.exceptions import RedisError

from request_dedup.exceptions import StorageError
from request_dedup.models import LockHandle

INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
redis.call('PEXPIRE', KEYS[1], ARGV[1])
return count
"""

RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


def _to_millis(seconds: float) -> int:
    return max(1, int(seconds * 1000))


def _decode(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisCacheStore:
    """CacheStore backed by Redis string keys.

    Attributes:
        _client: Async Redis client.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    async def has(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as e:
            raise StorageError(f"Failed to check {key} in Redis: {e}", cause=e) from e

    async def get(self, key: str) -> str | None:
        try:
            return _decode(await self._client.get(key))
        except RedisError as e:
            raise StorageError(f"Failed to read {key} from Redis: {e}", cause=e) from e

    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        try:
            await self._client.set(key, value, px=_to_millis(ttl_seconds))
        except RedisError as e:
            raise StorageError(f"Failed to write {key} to Redis: {e}", cause=e) from e

    async def add(self, key: str, value: str, ttl_seconds: float) -> bool:
        try:
            return bool(await self._client.set(key, value, nx=True, px=_to_millis(ttl_seconds)))
        except RedisError as e:
            raise StorageError(f"Failed to add {key} to Redis: {e}", cause=e) from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StorageError(f"Failed to delete {key} from Redis: {e}", cause=e) from e

    async def increment(self, key: str, ttl_seconds: float) -> int:
        try:
            count = await self._client.eval(INCREMENT_SCRIPT, 1, key, _to_millis(ttl_seconds))
        except RedisError as e:
            raise StorageError(f"Failed to increment {key} in Redis: {e}", cause=e) from e
        return int(count)


class RedisLockProvider:
    """LockProvider built on ``SET NX PX`` leases.

    Attributes:
        _client: Async Redis client.
        _poll_interval: Seconds between acquire attempts while waiting.
    """

    def __init__(self, client: Any, poll_interval: float = 0.05) -> None:
        self._client = client
        self._poll_interval = poll_interval

    async def _try_acquire(self, name: str, token: str, lease_seconds: float) -> bool:
        try:
            return bool(
                await self._client.set(name, token, nx=True, px=_to_millis(lease_seconds))
            )
        except RedisError as e:
            raise StorageError(f"Failed to acquire lock {name}: {e}", cause=e) from e

    async def acquire(
        self,
        name: str,
        lease_seconds: float,
        wait_seconds: float,
    ) -> LockHandle | None:
        token = str(uuid.uuid4())
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds

        while True:
            if await self._try_acquire(name, token, lease_seconds):
                return LockHandle(name=name, token=token, lease_seconds=lease_seconds)
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self._poll_interval, remaining))

    async def release(self, handle: LockHandle) -> bool:
        try:
            released = await self._client.eval(RELEASE_SCRIPT, 1, handle.name, handle.token)
        except RedisError as e:
            raise StorageError(f"Failed to release lock {handle.name}: {e}", cause=e) from e
        return bool(released)
