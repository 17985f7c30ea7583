"""Alert events and delivery channels.

Alerts flag anomalous deduplication patterns: replay storms, lock
contention, lock store inconsistencies, failing handlers and oversized
responses. The AlertDebouncer decides whether an alert goes out; an
AlertChannel decides how it is delivered.

Examples:
    Delivering alerts to the log and a custom channel::

        channel = FanOutAlertChannel([LoggingAlertChannel(), PagerChannel()])
        await channel.emit(AlertEvent(event_type=EventType.LOCK_INCONSISTENCY, context={...}))
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from request_dedup.observability.logging import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Names of deduplication events that can be alerted on."""

    LOCK_INCONSISTENCY = "lock.inconsistency"
    CONCURRENT_CONFLICT = "lock.concurrent_conflict"
    RESPONSE_DUPLICATE = "response.duplicate"
    RESPONSE_SIZE_WARNING = "response.size_warning"
    PAYLOAD_MISMATCH = "response.payload_mismatch"
    EXCEPTION_THROWN = "exception.thrown"


class AlertEvent(BaseModel):
    """A fired alert.

    Attributes:
        event_type: What happened.
        context: Identifying context; the debounce fingerprint covers it.
        details: Extra information that does not identify the alert, such
            as the current hit count.
        fired_at: When the alert passed the debouncer.
    """

    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    details: dict[str, Any] = Field(default_factory=dict)
    fired_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@runtime_checkable
class AlertChannel(Protocol):
    """Delivers fired alerts (log, webhook, email, ...)."""

    async def emit(self, event: AlertEvent) -> None: ...


class LoggingAlertChannel:
    """Writes alerts as structured warning log lines."""

    async def emit(self, event: AlertEvent) -> None:
        logger.warning(
            "alert.fired",
            event_type=event.event_type.value,
            fired_at=event.fired_at.isoformat(),
            **{**event.context, **event.details},
        )


class FanOutAlertChannel:
    """Delivers each alert to every wrapped channel, in order."""

    def __init__(self, channels: list[AlertChannel]) -> None:
        self.channels = list(channels)

    async def emit(self, event: AlertEvent) -> None:
        for channel in self.channels:
            await channel.emit(event)
