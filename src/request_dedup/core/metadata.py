"""Per-key usage tracking.

The metadata record remembers who first used a key and how often its
response has been replayed since. The replay count is kept in a separate
atomic counter so concurrent replays never lose an increment; the counter is
authoritative for ``hit_count`` whenever a record is read back.

Examples:
    >>> tracker = MetadataTracker(cache, ttl_seconds=3600)
    >>> await tracker.record_first_execution(key, "/api/payments", None, "10.0.0.1")
    >>> record = await tracker.record_hit(key)
    >>> record.hit_count
    1
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from request_dedup.core.keys import hits_key, metadata_key
from request_dedup.models import MetadataRecord
from request_dedup.observability.logging import get_logger
from request_dedup.storage.base import CacheStore

logger = get_logger(__name__)

# Age given to a synthesized record when the real one expired before the response
MISSING_RECORD_AGE = timedelta(minutes=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MetadataTracker:
    """Maintains MetadataRecords in the cache store.

    Attributes:
        cache: Shared cache store
        ttl_seconds: Lifetime of records and counters, same as cached responses
    """

    def __init__(
        self,
        cache: CacheStore,
        ttl_seconds: float,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self._now = now

    async def record_first_execution(
        self,
        key: str,
        endpoint: str | None,
        client_identity: str | None,
        client_ip: str | None,
    ) -> MetadataRecord:
        """Write a fresh record with hit_count 0 and reset the replay counter."""
        record = MetadataRecord(
            created_at=self._now(),
            hit_count=0,
            endpoint=endpoint,
            client_identity=client_identity,
            client_ip=client_ip,
        )
        await self.cache.put(metadata_key(key), record.model_dump_json(), self.ttl_seconds)
        await self.cache.put(hits_key(key), "0", self.ttl_seconds)
        return record

    async def record_hit(self, key: str) -> MetadataRecord:
        """Count one replay of key and return the updated record.

        If the record expired on its own while the cached response is still
        alive, a stand-in dated one minute back is used so the replay is
        still counted and stamped.
        """
        count = await self.cache.increment(hits_key(key), self.ttl_seconds)
        now = self._now()

        record = await self._load(key)
        if record is None:
            logger.debug("dedup.metadata_missing", key=key)
            record = MetadataRecord(created_at=now - MISSING_RECORD_AGE, hit_count=0)

        record = record.model_copy(update={"hit_count": count, "last_hit_at": now})
        await self.cache.put(metadata_key(key), record.model_dump_json(), self.ttl_seconds)
        return record

    async def get(self, key: str) -> MetadataRecord | None:
        """Return the current record for key, or None if it expired."""
        record = await self._load(key)
        if record is None:
            return None

        raw_count = await self.cache.get(hits_key(key))
        if raw_count is not None and int(raw_count) > record.hit_count:
            record = record.model_copy(update={"hit_count": int(raw_count)})
        return record

    async def _load(self, key: str) -> MetadataRecord | None:
        raw = await self.cache.get(metadata_key(key))
        if raw is None:
            return None
        return MetadataRecord.model_validate_json(raw)
