"""Unit tests for RedisCacheStore and RedisLockProvider.

The Redis client is replaced with an AsyncMock, so these tests check the
commands issued and the error wrapping, not a live server.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from request_dedup.exceptions import StorageError
from request_dedup.models import LockHandle
from request_dedup.storage.redis import (
    INCREMENT_SCRIPT,
    RELEASE_SCRIPT,
    RedisCacheStore,
    RedisLockProvider,
)


@pytest.fixture
def client():
    return AsyncMock()


# ============================================================================
# Cache Store
# ============================================================================


@pytest.mark.asyncio
async def test_get_decodes_bytes(client):
    """Test that byte replies are decoded to str."""
    client.get.return_value = b'{"status": 201}'
    store = RedisCacheStore(client)

    assert await store.get("k") == '{"status": 201}'
    client.get.assert_awaited_once_with("k")


@pytest.mark.asyncio
async def test_get_missing(client):
    """Test that a nil reply becomes None."""
    client.get.return_value = None

    assert await RedisCacheStore(client).get("k") is None


@pytest.mark.asyncio
async def test_has(client):
    """Test that has() maps EXISTS to a bool."""
    client.exists.return_value = 1

    assert await RedisCacheStore(client).has("k") is True


@pytest.mark.asyncio
async def test_put_uses_millisecond_ttl(client):
    """Test that put() writes with SET ... PX."""
    await RedisCacheStore(client).put("k", "v", ttl_seconds=2.5)

    client.set.assert_awaited_once_with("k", "v", px=2500)


@pytest.mark.asyncio
async def test_add_uses_nx(client):
    """Test that add() writes with SET ... NX PX and reports the result."""
    client.set.return_value = None
    store = RedisCacheStore(client)

    assert await store.add("k", "v", ttl_seconds=60) is False
    client.set.assert_awaited_once_with("k", "v", nx=True, px=60000)


@pytest.mark.asyncio
async def test_delete(client):
    """Test that delete() issues DEL."""
    await RedisCacheStore(client).delete("k")

    client.delete.assert_awaited_once_with("k")


@pytest.mark.asyncio
async def test_increment_runs_script(client):
    """Test that increment() runs the atomic Lua script."""
    client.eval.return_value = 3

    assert await RedisCacheStore(client).increment("hits", ttl_seconds=60) == 3
    client.eval.assert_awaited_once_with(INCREMENT_SCRIPT, 1, "hits", 60000)


@pytest.mark.asyncio
async def test_redis_errors_become_storage_errors(client):
    """Test that Redis failures surface as StorageError with the cause kept."""
    failure = RedisConnectionError("connection refused")
    client.get.side_effect = failure

    with pytest.raises(StorageError) as exc_info:
        await RedisCacheStore(client).get("k")

    assert exc_info.value.cause is failure
    assert "connection refused" in exc_info.value.message


# ============================================================================
# Lock Provider
# ============================================================================


@pytest.mark.asyncio
async def test_acquire_free_lock(client):
    """Test that a successful SET NX yields a handle carrying the token."""
    client.set.return_value = True

    handle = await RedisLockProvider(client).acquire("lock", lease_seconds=30, wait_seconds=0)

    assert handle is not None
    assert handle.name == "lock"
    client.set.assert_awaited_once_with("lock", handle.token, nx=True, px=30000)


@pytest.mark.asyncio
async def test_acquire_busy_lock_times_out(client):
    """Test that acquire() polls until the wait expires, then gives up."""
    client.set.return_value = None
    provider = RedisLockProvider(client, poll_interval=0.01)

    handle = await provider.acquire("lock", lease_seconds=30, wait_seconds=0.05)

    assert handle is None
    assert client.set.await_count >= 2


@pytest.mark.asyncio
async def test_acquire_after_retry(client):
    """Test that a lock freed during the wait is acquired."""
    client.set.side_effect = [None, None, True]
    provider = RedisLockProvider(client, poll_interval=0.01)

    handle = await provider.acquire("lock", lease_seconds=30, wait_seconds=1)

    assert handle is not None
    assert client.set.await_count == 3


@pytest.mark.asyncio
async def test_release_runs_owner_checked_script(client):
    """Test that release() deletes only when the token matches."""
    client.eval.return_value = 1
    handle = LockHandle(name="lock", token="tok", lease_seconds=30)

    assert await RedisLockProvider(client).release(handle) is True
    client.eval.assert_awaited_once_with(RELEASE_SCRIPT, 1, "lock", "tok")


@pytest.mark.asyncio
async def test_release_not_owner(client):
    """Test that release() reports False when the script deleted nothing."""
    client.eval.return_value = 0
    handle = LockHandle(name="lock", token="tok", lease_seconds=30)

    assert await RedisLockProvider(client).release(handle) is False


@pytest.mark.asyncio
async def test_acquire_error_wrapped(client):
    """Test that lock store failures surface as StorageError."""
    client.set.side_effect = RedisConnectionError("down")

    with pytest.raises(StorageError):
        await RedisLockProvider(client).acquire("lock", lease_seconds=30, wait_seconds=0)
