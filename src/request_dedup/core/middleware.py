"""Framework-agnostic entry point for request deduplication.

The middleware decides whether a request is deduplicated at all, validates
its key, runs it through the DeduplicationEngine and turns the engine's
outcome into an HTTP response. Framework adapters wrap it.

The middleware:
1. Passes everything through when disabled
2. Passes through methods that are not deduplicated
3. Validates the idempotency key (400 on missing or malformed keys)
4. Delegates to the engine
5. Renders conflicts (409), lock inconsistencies (500) and payload
   mismatches (422) as JSON errors

Examples:
    Using the middleware directly::

        from request_dedup.core.middleware import IdempotencyMiddleware
        from request_dedup.storage.memory import MemoryCacheStore, MemoryLockProvider

        middleware = IdempotencyMiddleware(MemoryCacheStore(), MemoryLockProvider())

        async def handler(request):
            return HttpResponse(201, {"content-type": "application/json"}, b'{"ok": true}')

        response = await middleware.process(request, handler)
"""

import math
from collections.abc import Awaitable, Callable

from request_dedup.config import DedupConfig
from request_dedup.core.debounce import AlertDebouncer
from request_dedup.core.engine import DeduplicationEngine, DedupResult
from request_dedup.core.envelope import HttpResponse, error_response
from request_dedup.core.validator import KeyValidator
from request_dedup.exceptions import KeyValidationError
from request_dedup.models import DedupOutcome, Request
from request_dedup.observability.alerts import AlertChannel, LoggingAlertChannel
from request_dedup.observability.logging import get_logger, request_context
from request_dedup.observability.telemetry import TelemetrySink, create_telemetry_sink
from request_dedup.storage.base import CacheStore, LockProvider
from request_dedup.utils.headers import get_header_value

logger = get_logger(__name__)


class IdempotencyMiddleware:
    """Framework-agnostic deduplication middleware.

    Attributes:
        config: Configuration object
        telemetry: Telemetry sink, built from config unless given
        validator: Key validator
        engine: Deduplication engine
    """

    def __init__(
        self,
        cache: CacheStore,
        locks: LockProvider,
        config: DedupConfig | None = None,
        telemetry: TelemetrySink | None = None,
        alert_channel: AlertChannel | None = None,
    ) -> None:
        """Wire the validator, engine and alerting from configuration.

        Args:
            cache: Shared cache store
            locks: Shared lock provider
            config: Configuration (defaults if not provided)
            telemetry: Telemetry sink; built from config.telemetry if not provided
            alert_channel: Alert delivery; logs alerts if not provided
        """
        self.config = config or DedupConfig()
        self.telemetry = telemetry or create_telemetry_sink(self.config.telemetry)
        self.validator = KeyValidator(self.config, self.telemetry)
        self.engine = DeduplicationEngine(
            cache,
            locks,
            self.config,
            telemetry=self.telemetry,
            alerts=AlertDebouncer(
                cache,
                alert_channel or LoggingAlertChannel(),
                self.config.alert_cooldown_seconds,
            ),
        )

    async def process(
        self,
        request: Request,
        handler: Callable[[Request], Awaitable[HttpResponse]],
    ) -> HttpResponse:
        """Process a request with deduplication.

        Args:
            request: The incoming request
            handler: Async function producing the real response

        Returns:
            The response to send

        Raises:
            Exception: Whatever the handler raises, unchanged
        """
        if not self.config.enabled:
            return await handler(request)

        if not self.validator.is_applicable(request.method):
            logger.debug("dedup.skipped", method=request.method, path=request.path)
            return await handler(request)

        header_name = self.config.header_name
        raw_key = get_header_value(request.headers, header_name)

        if raw_key is None and not self.config.require_header:
            logger.debug("dedup.skipped", reason="no_key", path=request.path)
            return await handler(request)

        try:
            key = self.validator.validate(raw_key)
        except KeyValidationError as e:
            return error_response(e.status_code, e.message)

        with request_context(key, request.path):
            result = await self.engine.process(key, request, handler)
        return self._render(result, key)

    def _render(self, result: DedupResult, key: str) -> HttpResponse:
        header_name = self.config.header_name

        if result.outcome is DedupOutcome.CONFLICT:
            return error_response(
                409,
                f"A request with this {header_name} is currently being processed",
                header_name,
                key,
                {"retry-after": str(max(1, math.ceil(self.config.lock_wait)))},
            )

        if result.outcome is DedupOutcome.LOCK_INCONSISTENCY:
            return error_response(
                500,
                "Could not process request. Please try again.",
                header_name,
                key,
            )

        if result.outcome is DedupOutcome.PAYLOAD_MISMATCH:
            return error_response(
                422,
                f"{header_name} has already been used with a different request payload",
                header_name,
                key,
            )

        if result.response is None:
            raise RuntimeError(f"Outcome {result.outcome.value} produced no response")

        return result.response
