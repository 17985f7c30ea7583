"""Telemetry sinks for the request deduplication middleware.

The engine reports what it does through a TelemetrySink: segments that wrap a
whole request, counters, timings and sizes. The concrete sink is picked once,
when the middleware is built, by ``create_telemetry_sink``:

- ``NullTelemetrySink``: does nothing; used when telemetry is disabled
- ``LogTelemetrySink``: writes every measurement as a structlog debug event
- ``PrometheusTelemetrySink``: feeds the collectors in observability.metrics
- custom: any class named by ``telemetry.custom_driver_class``

Examples:
    >>> sink = create_telemetry_sink(TelemetryConfig(driver="log"))
    >>> segment = sink.start_segment("idempotency.request")
    >>> sink.add_segment_context(segment, "key", "a0eebc99-...")
    >>> sink.record_metric("idempotency.cache_hit")
    >>> sink.end_segment(segment)
"""

import importlib
import time
from typing import Any, Protocol, runtime_checkable

from request_dedup.config import TelemetryConfig
from request_dedup.exceptions import TelemetryConfigurationError
from request_dedup.observability import metrics
from request_dedup.observability.logging import get_logger

logger = get_logger(__name__)


class Segment:
    """An open telemetry span.

    Attributes:
        name: Segment name.
        description: Free-form description, defaults to the name.
        context: Key-value context attached while the segment is open.
        started_at: Monotonic start time in seconds.
    """

    def __init__(self, name: str, description: str | None = None) -> None:
        self.name = name
        self.description = description or name
        self.context: dict[str, Any] = {}
        self.started_at = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


@runtime_checkable
class TelemetrySink(Protocol):
    """Receives named metrics, timings and sizes from the engine."""

    def start_segment(self, name: str, description: str | None = None) -> Segment | None: ...

    def add_segment_context(self, segment: Segment | None, key: str, value: Any) -> None: ...

    def end_segment(self, segment: Segment | None) -> None: ...

    def record_metric(self, name: str, value: int = 1) -> None: ...

    def record_timing(self, name: str, milliseconds: float) -> None: ...

    def record_size(self, name: str, num_bytes: int) -> None: ...


class NullTelemetrySink:
    """Sink that discards everything."""

    def start_segment(self, name: str, description: str | None = None) -> Segment | None:
        return None

    def add_segment_context(self, segment: Segment | None, key: str, value: Any) -> None:
        pass

    def end_segment(self, segment: Segment | None) -> None:
        pass

    def record_metric(self, name: str, value: int = 1) -> None:
        pass

    def record_timing(self, name: str, milliseconds: float) -> None:
        pass

    def record_size(self, name: str, num_bytes: int) -> None:
        pass


class LogTelemetrySink:
    """Sink that writes each measurement as a structured debug log line."""

    def start_segment(self, name: str, description: str | None = None) -> Segment | None:
        return Segment(name, description)

    def add_segment_context(self, segment: Segment | None, key: str, value: Any) -> None:
        if segment is not None:
            segment.context[key] = value

    def end_segment(self, segment: Segment | None) -> None:
        if segment is None:
            return
        logger.debug(
            "telemetry.segment",
            segment=segment.name,
            description=segment.description,
            duration_ms=round(segment.elapsed_ms(), 3),
            **segment.context,
        )

    def record_metric(self, name: str, value: int = 1) -> None:
        logger.debug("telemetry.metric", metric=name, value=value)

    def record_timing(self, name: str, milliseconds: float) -> None:
        logger.debug("telemetry.timing", metric=name, value_ms=round(milliseconds, 3))

    def record_size(self, name: str, num_bytes: int) -> None:
        logger.debug("telemetry.size", metric=name, bytes=num_bytes)


class PrometheusTelemetrySink:
    """Sink that feeds the prometheus_client collectors."""

    def start_segment(self, name: str, description: str | None = None) -> Segment | None:
        metrics.active_segments.inc()
        return Segment(name, description)

    def add_segment_context(self, segment: Segment | None, key: str, value: Any) -> None:
        # Context values such as keys are unbounded, so they never become labels
        if segment is not None:
            segment.context[key] = value

    def end_segment(self, segment: Segment | None) -> None:
        if segment is None:
            return
        metrics.active_segments.dec()
        metrics.record_segment(segment.name, segment.elapsed_ms())

    def record_metric(self, name: str, value: int = 1) -> None:
        metrics.record_event(name, value)

    def record_timing(self, name: str, milliseconds: float) -> None:
        metrics.record_timing_ms(name, milliseconds)

    def record_size(self, name: str, num_bytes: int) -> None:
        metrics.record_size_bytes(name, num_bytes)


_DRIVERS: dict[str, type] = {
    "null": NullTelemetrySink,
    "log": LogTelemetrySink,
    "prometheus": PrometheusTelemetrySink,
}


def create_telemetry_sink(config: TelemetryConfig) -> TelemetrySink:
    """Build the sink selected by the telemetry configuration.

    Args:
        config: Telemetry section of the middleware configuration.

    Returns:
        A TelemetrySink. Disabled telemetry always yields NullTelemetrySink.

    Raises:
        TelemetryConfigurationError: If a custom driver cannot be imported or
            does not implement the TelemetrySink protocol.
    """
    if not config.enabled:
        return NullTelemetrySink()

    if config.driver != "custom":
        return _DRIVERS[config.driver]()

    return _load_custom_driver(config.custom_driver_class or "")


def _load_custom_driver(dotted_path: str) -> TelemetrySink:
    module_name, _, class_name = dotted_path.rpartition(".")
    if not module_name:
        raise TelemetryConfigurationError(
            f"Custom telemetry driver class [{dotted_path}] is not a dotted path."
        )

    try:
        driver_class = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise TelemetryConfigurationError(
            f"Custom telemetry driver class [{dotted_path}] not found."
        ) from e

    driver = driver_class()
    if not isinstance(driver, TelemetrySink):
        raise TelemetryConfigurationError(
            "Custom telemetry driver must implement the TelemetrySink protocol."
        )
    return driver
