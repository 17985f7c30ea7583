"""Storage backends for the request deduplication middleware.

All backends implement the CacheStore and LockProvider protocols defined in
base.py.

Available Backends:
    - MemoryCacheStore / MemoryLockProvider: process-local, used in tests
    - RedisCacheStore / RedisLockProvider: shared Redis deployment
"""

from request_dedup.storage.base import CacheStore, LockProvider
from request_dedup.storage.memory import MemoryCacheStore, MemoryLockProvider
from request_dedup.storage.redis import RedisCacheStore, RedisLockProvider

__all__ = [
    "CacheStore",
    "LockProvider",
    "MemoryCacheStore",
    "MemoryLockProvider",
    "RedisCacheStore",
    "RedisLockProvider",
]
