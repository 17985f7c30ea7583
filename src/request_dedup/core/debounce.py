"""Alert debouncing.

A busy key can trip the same alert thousands of times. The debouncer turns
that stream into at most one delivered alert per cooldown window for each
distinct (event type, context) fingerprint, remembering fingerprints as
presence-only cache entries.

Examples:
    >>> debouncer = AlertDebouncer(cache, LoggingAlertChannel(), cooldown_seconds=3600)
    >>> await debouncer.maybe_fire(EventType.CONCURRENT_CONFLICT, {"idempotency_key": key})
    True
    >>> await debouncer.maybe_fire(EventType.CONCURRENT_CONFLICT, {"idempotency_key": key})
    False
"""

import hashlib
import json
from typing import Any

from request_dedup.core.keys import alert_key
from request_dedup.observability.alerts import AlertChannel, AlertEvent, EventType
from request_dedup.observability.logging import get_logger
from request_dedup.storage.base import CacheStore

logger = get_logger(__name__)


def alert_fingerprint(event_type: EventType, context: dict[str, Any]) -> str:
    """Hash an event type and its context into a stable fingerprint.

    Context keys are sorted, so dict ordering never changes the result.
    """
    payload = f"{event_type.value}:{json.dumps(context, sort_keys=True, default=str)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class AlertDebouncer:
    """Rate-limits alerts per fingerprint.

    Attributes:
        cache: Shared cache store holding the fingerprints
        channel: Where alerts that pass are delivered
        cooldown_seconds: Suppression window per fingerprint
    """

    def __init__(self, cache: CacheStore, channel: AlertChannel, cooldown_seconds: float) -> None:
        self.cache = cache
        self.channel = channel
        self.cooldown_seconds = cooldown_seconds

    async def maybe_fire(
        self,
        event_type: EventType,
        context: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver the alert unless an identical one went out within the cooldown.

        Args:
            event_type: What happened
            context: Identifying context, part of the fingerprint
            details: Extra data delivered with the alert, not fingerprinted

        Returns:
            True if the alert was delivered, False if it was suppressed

        Raises:
            Exception: Whatever the channel raises; the fingerprint is cleared first
        """
        context = context or {}
        fingerprint = alert_fingerprint(event_type, context)

        # Set-if-absent doubles as the presence check, so two racing
        # callers cannot both deliver
        if not await self.cache.add(alert_key(fingerprint), "1", self.cooldown_seconds):
            logger.debug("alert.suppressed", event_type=event_type.value, fingerprint=fingerprint)
            return False

        event = AlertEvent(event_type=event_type, context=context, details=details or {})
        try:
            await self.channel.emit(event)
        except Exception:
            # Undelivered alerts must not silence the next occurrence
            await self.cache.delete(alert_key(fingerprint))
            raise
        return True
