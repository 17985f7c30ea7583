"""Deduplication engine.

This module implements the cache-lookup / lock-acquire / execute / cache-store
protocol that guarantees a state-changing handler runs at most once per
idempotency key. All coordination goes through the shared CacheStore and
LockProvider; the engine itself holds no mutable state between requests.

Per request the engine ends in exactly one DedupOutcome:

    REPLAYED            cached response found up front
    EXECUTED            lock acquired, handler ran
    LATE_REPLAYED       a concurrent execution finished while we waited
    CONFLICT            lock busy and the processing marker is present
    LOCK_INCONSISTENCY  lock busy, no marker, no cached response
    PAYLOAD_MISMATCH    key reused for a different payload (opt-in)

A cached response always wins over the processing marker: a completed result
is authoritative over an in-flight indicator.

Examples:
    Running a handler under deduplication::

        engine = DeduplicationEngine(cache, locks, DedupConfig())

        async def handler(request):
            return HttpResponse(201, {"content-type": "application/json"}, b'{"id": 1}')

        result = await engine.process(key, request, handler)
        if result.outcome is DedupOutcome.EXECUTED:
            ...
"""

import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from request_dedup.config import DedupConfig
from request_dedup.core.debounce import AlertDebouncer
from request_dedup.core.envelope import HttpResponse, replay, tag, to_cached
from request_dedup.core.keys import lock_key, processing_key, response_key
from request_dedup.core.metadata import MetadataTracker
from request_dedup.fingerprint import fingerprint_request
from request_dedup.models import (
    CachedResponse,
    DedupOutcome,
    DedupStatus,
    LockHandle,
    MetadataRecord,
    Request,
)
from request_dedup.observability.alerts import EventType, LoggingAlertChannel
from request_dedup.observability.logging import get_logger
from request_dedup.observability.telemetry import NullTelemetrySink, TelemetrySink
from request_dedup.storage.base import CacheStore, LockProvider

logger = get_logger(__name__)

Handler = Callable[[Request], Awaitable[HttpResponse]]


class DedupResult:
    """Result of running one request through the engine.

    Attributes:
        outcome: Which branch of the protocol the request took
        response: Response to return; None for CONFLICT, LOCK_INCONSISTENCY
            and PAYLOAD_MISMATCH, which the caller renders itself
        metadata: Metadata record after a replay, None otherwise
    """

    def __init__(
        self,
        outcome: DedupOutcome,
        response: HttpResponse | None = None,
        metadata: MetadataRecord | None = None,
    ) -> None:
        self.outcome = outcome
        self.response = response
        self.metadata = metadata

    @property
    def was_replayed(self) -> bool:
        return self.outcome in (DedupOutcome.REPLAYED, DedupOutcome.LATE_REPLAYED)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class DeduplicationEngine:
    """Runs requests through the deduplication protocol.

    Attributes:
        cache: Shared cache store
        locks: Shared lock provider
        config: Middleware configuration
        telemetry: Sink for metrics, timings and sizes
        alerts: Debouncer through which every alert is fired
        metadata: Per-key usage tracker
    """

    def __init__(
        self,
        cache: CacheStore,
        locks: LockProvider,
        config: DedupConfig,
        telemetry: TelemetrySink | None = None,
        alerts: AlertDebouncer | None = None,
    ) -> None:
        self.cache = cache
        self.locks = locks
        self.config = config
        self.telemetry = telemetry or NullTelemetrySink()
        self.alerts = alerts or AlertDebouncer(
            cache, LoggingAlertChannel(), config.alert_cooldown_seconds
        )
        self.metadata = MetadataTracker(cache, config.ttl_seconds)

    async def process(self, key: str, request: Request, handler: Handler) -> DedupResult:
        """Run a validated request through the deduplication protocol.

        Args:
            key: Validated idempotency key
            request: The inbound request
            handler: Downstream handler; invoked only on first execution

        Returns:
            DedupResult describing the outcome

        Raises:
            Exception: Whatever the handler raises, unchanged. Storage
                failures propagate the same way.
        """
        segment = self.telemetry.start_segment(
            "idempotency.request", f"{request.method} {request.path}"
        )
        self.telemetry.add_segment_context(segment, "idempotency_key", key)
        outcome = "exception"
        try:
            result = await self._run(key, request, handler)
            outcome = result.outcome.value
            return result
        finally:
            self.telemetry.add_segment_context(segment, "outcome", outcome)
            self.telemetry.end_segment(segment)

    async def _run(self, key: str, request: Request, handler: Handler) -> DedupResult:
        fingerprint = None
        if self.config.payload_validation:
            fingerprint = fingerprint_request(request, list(self.config.fingerprint_headers))

        entry = await self._load_response(key)
        if entry is not None:
            return await self._replay(key, entry, request, fingerprint, late=False)

        wait_started = time.perf_counter()
        handle = await self.locks.acquire(
            lock_key(key),
            lease_seconds=self.config.lock_timeout,
            wait_seconds=self.config.lock_wait,
        )
        self.telemetry.record_timing("idempotency.lock_wait", _elapsed_ms(wait_started))

        if handle is None:
            return await self._resolve_contention(key, request, fingerprint)

        return await self._execute(key, request, handler, handle, fingerprint)

    async def _execute(
        self,
        key: str,
        request: Request,
        handler: Handler,
        handle: LockHandle,
        fingerprint: str | None,
    ) -> DedupResult:
        marker_written = False
        try:
            try:
                # The previous holder may have finished between our cache
                # lookup and the lock grant
                entry = await self._load_response(key)
                if entry is not None:
                    return await self._replay(key, entry, request, fingerprint, late=True)

                # Lease expired under a holder that is still presumed running
                if await self.cache.has(processing_key(key)):
                    return await self._conflict(key, request)

                await self.cache.put(processing_key(key), "1", self.config.processing_ttl_seconds)
                marker_written = True
                await self.metadata.record_first_execution(
                    key,
                    endpoint=request.path,
                    client_identity=request.client_identity,
                    client_ip=request.client_ip,
                )

                started = time.perf_counter()
                response = await handler(request)
                execution_ms = _elapsed_ms(started)
                self.telemetry.record_timing("idempotency.execution_time", execution_ms)

                if response.is_successful:
                    await self._store(key, request, response, fingerprint)
                else:
                    self.telemetry.record_metric("idempotency.not_cached")
                    logger.info("dedup.not_cached", key=key, status=response.status)

                self.telemetry.record_metric("idempotency.original")
                logger.info(
                    "dedup.executed",
                    key=key,
                    endpoint=request.path,
                    status=response.status,
                    execution_time_ms=round(execution_ms, 3),
                )
                return DedupResult(
                    DedupOutcome.EXECUTED,
                    tag(response, self.config.header_name, key, DedupStatus.ORIGINAL),
                )
            except Exception as e:
                self.telemetry.record_metric("idempotency.exception")
                logger.error(
                    "dedup.handler_failed",
                    key=key,
                    endpoint=request.path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._fire_alert(
                    EventType.EXCEPTION_THROWN,
                    {
                        "idempotency_key": key,
                        "endpoint": request.path,
                        "exception": type(e).__name__,
                    },
                    {"message": str(e)},
                )
                raise
        finally:
            try:
                if marker_written:
                    await self.cache.delete(processing_key(key))
            finally:
                await self.locks.release(handle)

    async def _store(
        self,
        key: str,
        request: Request,
        response: HttpResponse,
        fingerprint: str | None,
    ) -> None:
        entry = to_cached(response, fingerprint)
        written = await self.cache.add(
            response_key(key), entry.model_dump_json(), self.config.ttl_seconds
        )
        if not written:
            logger.warning("dedup.cache_write_skipped", key=key)

        size = len(response.body)
        self.telemetry.record_size("idempotency.response_size", size)
        if self.config.size_warning and size > self.config.size_warning:
            await self._fire_alert(
                EventType.RESPONSE_SIZE_WARNING,
                {"endpoint": request.path},
                {
                    "idempotency_key": key,
                    "size_bytes": size,
                    "limit_bytes": self.config.size_warning,
                },
            )

    async def _replay(
        self,
        key: str,
        entry: CachedResponse,
        request: Request,
        fingerprint: str | None,
        late: bool,
    ) -> DedupResult:
        if fingerprint is not None and entry.fingerprint is not None:
            if entry.fingerprint != fingerprint:
                return await self._payload_mismatch(key, request)

        record = await self.metadata.record_hit(key)

        if record.hit_count > self.config.alert_threshold:
            await self._fire_alert(
                EventType.RESPONSE_DUPLICATE,
                {"idempotency_key": key, "endpoint": request.path},
                {"hit_count": record.hit_count},
            )

        age_ms = (datetime.now(UTC) - entry.cached_at).total_seconds() * 1000
        self.telemetry.record_timing("idempotency.original_age", max(age_ms, 0.0))
        self.telemetry.record_metric("idempotency.late_hit" if late else "idempotency.cache_hit")
        logger.info(
            "dedup.late_hit" if late else "dedup.cache_hit",
            key=key,
            endpoint=request.path,
            hit_count=record.hit_count,
        )

        outcome = DedupOutcome.LATE_REPLAYED if late else DedupOutcome.REPLAYED
        return DedupResult(outcome, replay(entry, self.config.header_name, key), record)

    async def _resolve_contention(
        self,
        key: str,
        request: Request,
        fingerprint: str | None,
    ) -> DedupResult:
        entry = await self._load_response(key)
        if entry is not None:
            return await self._replay(key, entry, request, fingerprint, late=True)

        if await self.cache.has(processing_key(key)):
            return await self._conflict(key, request)

        self.telemetry.record_metric("idempotency.lock_inconsistency")
        logger.error("dedup.lock_inconsistency", key=key, endpoint=request.path)
        await self._fire_alert(
            EventType.LOCK_INCONSISTENCY,
            {"idempotency_key": key, "endpoint": request.path},
        )
        return DedupResult(DedupOutcome.LOCK_INCONSISTENCY)

    async def _conflict(self, key: str, request: Request) -> DedupResult:
        self.telemetry.record_metric("idempotency.conflict")
        logger.warning("dedup.conflict", key=key, endpoint=request.path)
        await self._fire_alert(
            EventType.CONCURRENT_CONFLICT,
            {"idempotency_key": key, "endpoint": request.path},
        )
        return DedupResult(DedupOutcome.CONFLICT)

    async def _payload_mismatch(self, key: str, request: Request) -> DedupResult:
        self.telemetry.record_metric("idempotency.payload_mismatch")
        logger.warning("dedup.payload_mismatch", key=key, endpoint=request.path)
        await self._fire_alert(
            EventType.PAYLOAD_MISMATCH,
            {"idempotency_key": key, "endpoint": request.path},
        )
        return DedupResult(DedupOutcome.PAYLOAD_MISMATCH)

    async def _load_response(self, key: str) -> CachedResponse | None:
        raw = await self.cache.get(response_key(key))
        if raw is None:
            return None
        return CachedResponse.model_validate_json(raw)

    async def _fire_alert(
        self,
        event_type: EventType,
        context: dict[str, Any],
        details: dict[str, Any] | None = None,
    ) -> None:
        # Delivery failures are logged only; they never change the outcome
        # of the request or replace a handler exception
        try:
            await self.alerts.maybe_fire(event_type, context, details)
        except Exception as alert_error:
            logger.error(
                "alert.delivery_failed",
                event_type=event_type.value,
                error=str(alert_error),
                error_type=type(alert_error).__name__,
            )
