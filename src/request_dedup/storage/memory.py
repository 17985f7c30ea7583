"""In-memory cache store and lock provider.

This module provides process-local implementations of the CacheStore and
LockProvider protocols. They honour the same atomicity and expiry contract as
a networked backend, which makes them the deterministic fakes used in tests
and a workable backend for single-process deployments.

Thread Safety:
    - All state lives behind a single threading.Lock per instance
    - No await happens while the lock is held, so the instances are safe to
      share between event loops and threads
    - Expired entries are dropped lazily on access and by purge_expired()

Time:
    Entry and lease expiry are measured with an injectable ``clock``
    (default ``time.monotonic``). Tests pass a fake clock to move time
    forward without sleeping. Lock acquire waits are measured in real time
    on the running event loop.

Examples:
    Basic usage::

        from request_dedup.storage.memory import MemoryCacheStore, MemoryLockProvider

        cache = MemoryCacheStore()
        locks = MemoryLockProvider()

        await cache.put("idempotency:abc:processing", "1", ttl_seconds=300)
        handle = await locks.acquire("idempotency:abc:lock", lease_seconds=30, wait_seconds=5)
        if handle is not None:
            try:
                ...
            finally:
                await locks.release(handle)
"""

import asyncio
import threading
import time
import uuid
from collections.abc import Callable

from request_dedup.models import LockHandle


class MemoryCacheStore:
    """Dictionary-backed CacheStore with per-entry TTLs.

    Attributes:
        _entries: Mapping of key to (value, expires_at).
        _clock: Monotonic time source in seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._clock = clock
        self._mutex = threading.Lock()

    def _live_value(self, key: str) -> str | None:
        # Caller must hold _mutex
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def has(self, key: str) -> bool:
        with self._mutex:
            return self._live_value(key) is not None

    async def get(self, key: str) -> str | None:
        with self._mutex:
            return self._live_value(key)

    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        with self._mutex:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def add(self, key: str, value: str, ttl_seconds: float) -> bool:
        with self._mutex:
            if self._live_value(key) is not None:
                return False
            self._entries[key] = (value, self._clock() + ttl_seconds)
            return True

    async def delete(self, key: str) -> None:
        with self._mutex:
            self._entries.pop(key, None)

    async def increment(self, key: str, ttl_seconds: float) -> int:
        with self._mutex:
            current = self._live_value(key)
            count = int(current) + 1 if current is not None else 1
            self._entries[key] = (str(count), self._clock() + ttl_seconds)
            return count

    def purge_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            The number of entries removed.
        """
        now = self._clock()
        with self._mutex:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._mutex:
            now = self._clock()
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)


class MemoryLockProvider:
    """Lease-based LockProvider kept in a dictionary.

    A lease is a (token, expires_at) pair. A lease past its expiry is free to
    be taken by the next caller, which models a crashed holder whose lock
    times out in a networked lock store.

    Attributes:
        _leases: Mapping of lock name to (token, expires_at).
        _clock: Monotonic time source in seconds, used for lease expiry.
        _poll_interval: Seconds between acquire attempts while waiting.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.01,
    ) -> None:
        self._leases: dict[str, tuple[str, float]] = {}
        self._clock = clock
        self._poll_interval = poll_interval
        self._mutex = threading.Lock()

    def _try_acquire(self, name: str, lease_seconds: float) -> LockHandle | None:
        now = self._clock()
        with self._mutex:
            lease = self._leases.get(name)
            if lease is not None and lease[1] > now:
                return None
            token = str(uuid.uuid4())
            self._leases[name] = (token, now + lease_seconds)
        return LockHandle(name=name, token=token, lease_seconds=lease_seconds)

    async def acquire(
        self,
        name: str,
        lease_seconds: float,
        wait_seconds: float,
    ) -> LockHandle | None:
        handle = self._try_acquire(name, lease_seconds)
        if handle is not None or wait_seconds <= 0:
            return handle

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self._poll_interval, remaining))
            handle = self._try_acquire(name, lease_seconds)
            if handle is not None:
                return handle

    async def release(self, handle: LockHandle) -> bool:
        now = self._clock()
        with self._mutex:
            lease = self._leases.get(handle.name)
            if lease is None or lease[0] != handle.token:
                return False
            del self._leases[handle.name]
            # An expired lease was already free; releasing it changes nothing
            return lease[1] > now

    def is_locked(self, name: str) -> bool:
        """Return True if a live lease exists for name."""
        with self._mutex:
            lease = self._leases.get(name)
            return lease is not None and lease[1] > self._clock()

    def purge_expired(self) -> int:
        """Remove every expired lease.

        Returns:
            The number of leases removed.
        """
        now = self._clock()
        with self._mutex:
            expired = [name for name, (_, expires_at) in self._leases.items() if expires_at <= now]
            for name in expired:
                del self._leases[name]
        return len(expired)
