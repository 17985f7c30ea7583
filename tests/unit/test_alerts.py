"""Unit tests for alert events and channels."""

import pytest
from structlog.testing import capture_logs

from request_dedup.observability.alerts import (
    AlertChannel,
    AlertEvent,
    EventType,
    FanOutAlertChannel,
    LoggingAlertChannel,
)


def test_event_type_values():
    """Test the dotted names alerts are reported under."""
    assert EventType.LOCK_INCONSISTENCY.value == "lock.inconsistency"
    assert EventType.CONCURRENT_CONFLICT.value == "lock.concurrent_conflict"
    assert EventType.RESPONSE_DUPLICATE.value == "response.duplicate"
    assert EventType.RESPONSE_SIZE_WARNING.value == "response.size_warning"
    assert EventType.EXCEPTION_THROWN.value == "exception.thrown"


def test_event_types_are_fired_alerts():
    """Test that only alerts the engine actually fires are defined."""
    assert {event_type.value for event_type in EventType} == {
        "lock.inconsistency",
        "lock.concurrent_conflict",
        "response.duplicate",
        "response.size_warning",
        "response.payload_mismatch",
        "exception.thrown",
    }


def test_alert_event_defaults():
    """Test that context and details default to empty and fired_at is set."""
    event = AlertEvent(event_type=EventType.LOCK_INCONSISTENCY)

    assert event.context == {}
    assert event.details == {}
    assert event.fired_at.tzinfo is not None


@pytest.mark.asyncio
async def test_logging_channel_writes_warning():
    """Test that the logging channel emits one warning with context and details."""
    event = AlertEvent(
        event_type=EventType.RESPONSE_DUPLICATE,
        context={"idempotency_key": "k1", "endpoint": "/api/payments"},
        details={"hit_count": 7},
    )

    with capture_logs() as logs:
        await LoggingAlertChannel().emit(event)

    assert len(logs) == 1
    entry = logs[0]
    assert entry["event"] == "alert.fired"
    assert entry["log_level"] == "warning"
    assert entry["event_type"] == "response.duplicate"
    assert entry["idempotency_key"] == "k1"
    assert entry["hit_count"] == 7


@pytest.mark.asyncio
async def test_logging_channel_detail_overrides_context():
    """Test that a detail sharing a context name does not break logging."""
    event = AlertEvent(
        event_type=EventType.RESPONSE_SIZE_WARNING,
        context={"endpoint": "/a"},
        details={"endpoint": "/b"},
    )

    with capture_logs() as logs:
        await LoggingAlertChannel().emit(event)

    assert logs[0]["endpoint"] == "/b"


@pytest.mark.asyncio
async def test_fan_out_delivers_to_all(alert_channel):
    """Test that every wrapped channel receives each event."""
    second = type(alert_channel)()
    fan_out = FanOutAlertChannel([alert_channel, second])
    event = AlertEvent(event_type=EventType.CONCURRENT_CONFLICT, context={"idempotency_key": "k"})

    await fan_out.emit(event)

    assert alert_channel.events == [event]
    assert second.events == [event]
    assert isinstance(fan_out, AlertChannel)


@pytest.mark.asyncio
async def test_fan_out_propagates_channel_failure():
    """Test that a failing channel's error reaches the caller."""

    class BrokenChannel:
        async def emit(self, event):
            raise ConnectionError("webhook down")

    fan_out = FanOutAlertChannel([BrokenChannel()])

    with pytest.raises(ConnectionError):
        await fan_out.emit(AlertEvent(event_type=EventType.LOCK_INCONSISTENCY))
