"""Observability for the request deduplication middleware.

- Structured logging with structlog
- Telemetry sinks (null, log, Prometheus) selected from configuration
- Alert events and delivery channels
"""

from request_dedup.observability.alerts import (
    AlertChannel,
    AlertEvent,
    EventType,
    FanOutAlertChannel,
    LoggingAlertChannel,
)
from request_dedup.observability.logging import configure_logging, get_logger, request_context
from request_dedup.observability.telemetry import (
    LogTelemetrySink,
    NullTelemetrySink,
    PrometheusTelemetrySink,
    TelemetrySink,
    create_telemetry_sink,
)

__all__ = [
    "AlertChannel",
    "AlertEvent",
    "EventType",
    "FanOutAlertChannel",
    "LoggingAlertChannel",
    "configure_logging",
    "get_logger",
    "request_context",
    "LogTelemetrySink",
    "NullTelemetrySink",
    "PrometheusTelemetrySink",
    "TelemetrySink",
    "create_telemetry_sink",
]
