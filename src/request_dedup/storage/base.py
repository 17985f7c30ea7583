"""Storage protocols for the request deduplication middleware.

The engine keeps no shared state in process memory. Every piece of
coordination goes through two collaborators defined here:

- ``CacheStore``: a networked key-value store with per-entry TTLs holding the
  cached responses, processing markers, metadata records, hit counters and
  alert fingerprints.
- ``LockProvider``: a per-key mutual-exclusion lease with a bounded hold time
  and a blocking acquire with timeout.

Values in the cache store are strings. The engine serializes its pydantic
models to JSON before writing them, so any backend able to store text works.

Atomicity Requirements:
    Implementations MUST guarantee:

    1. **add is set-if-absent**: concurrent ``add`` calls for the same key
       succeed for exactly one caller while the entry lives.
    2. **increment is check-and-increment**: concurrent increments never
       lose an update; a missing or expired counter counts as 0.
    3. **acquire is exclusive**: while a lease is live, no other caller
       obtains a handle for the same name.
    4. **release is owner-checked**: a handle whose lease already expired and
       was taken over must not release the new owner's lease.
    5. **Expiration**: expired entries and leases behave exactly like absent ones.

Examples:
    Implementing a custom store::

        class MyCacheStore:
            async def get(self, key: str) -> str | None:
                return await self.backend.read(key)
            ...

        assert isinstance(MyCacheStore(), CacheStore)
"""

from typing import Protocol, runtime_checkable

from request_dedup.models import LockHandle


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for the shared key-value store with TTLs.

    All methods are async and must be safe to call concurrently from many
    tasks, threads and processes. Backend failures should surface as
    ``StorageError``, never as backend-specific exceptions.
    """

    async def has(self, key: str) -> bool:
        """Return True if a live entry exists for key."""
        ...

    async def get(self, key: str) -> str | None:
        """Return the live value for key, or None if absent or expired."""
        ...

    async def put(self, key: str, value: str, ttl_seconds: float) -> None:
        """Write value for key, replacing any existing entry, expiring after ttl_seconds."""
        ...

    async def add(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Atomically write value only if no live entry exists.

        Returns:
            True if the value was written, False if an entry was already present.
        """
        ...

    async def delete(self, key: str) -> None:
        """Remove the entry for key. Missing keys are ignored."""
        ...

    async def increment(self, key: str, ttl_seconds: float) -> int:
        """Atomically increment an integer counter and refresh its TTL.

        Returns:
            The post-increment value.
        """
        ...


@runtime_checkable
class LockProvider(Protocol):
    """Protocol for per-key distributed locks with leases."""

    async def acquire(
        self,
        name: str,
        lease_seconds: float,
        wait_seconds: float,
    ) -> LockHandle | None:
        """Acquire the lock, blocking up to wait_seconds.

        Args:
            name: Lock key.
            lease_seconds: Hold time after which the lease expires unreleased.
            wait_seconds: Maximum time to wait for a busy lock. 0 tries once.

        Returns:
            A handle when acquired, None when the wait timed out.
        """
        ...

    async def release(self, handle: LockHandle) -> bool:
        """Release a held lease.

        Returns:
            True if the lease was released, False if it had already expired
            or belongs to another owner.
        """
        ...
