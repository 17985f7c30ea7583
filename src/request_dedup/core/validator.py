"""Idempotency key validation.

The validator answers two questions for every inbound request: does
deduplication apply to it at all, and if so, is its key usable.
"""

import re

from request_dedup.config import UUID_KEY_PATTERN, DedupConfig
from request_dedup.exceptions import InvalidKeyFormatError, MissingKeyError
from request_dedup.observability.logging import get_logger
from request_dedup.observability.telemetry import NullTelemetrySink, TelemetrySink

logger = get_logger(__name__)


class KeyValidator:
    """Applicability and format checks for idempotency keys.

    Attributes:
        config: Middleware configuration
        telemetry: Sink receiving skip and rejection metrics
    """

    def __init__(self, config: DedupConfig, telemetry: TelemetrySink | None = None) -> None:
        self.config = config
        self.telemetry = telemetry or NullTelemetrySink()
        self._methods = frozenset(config.methods)
        self._pattern = re.compile(config.key_pattern, re.IGNORECASE)

    def is_applicable(self, method: str) -> bool:
        """Return True if requests with this method are deduplicated.

        A False answer means the request bypasses deduplication entirely.
        """
        applicable = method.upper() in self._methods
        if not applicable:
            self.telemetry.record_metric("idempotency.skipped")
        return applicable

    def validate(self, key: str | None) -> str:
        """Check a key header value.

        Args:
            key: Raw header value, None if the header is absent

        Returns:
            The key, stripped of surrounding whitespace

        Raises:
            MissingKeyError: If the header is absent or blank
            InvalidKeyFormatError: If the key is too long or does not match
                the configured pattern
        """
        header_name = self.config.header_name

        if key is None or not key.strip():
            self.telemetry.record_metric("idempotency.missing_key")
            logger.info("dedup.key_missing", header=header_name)
            raise MissingKeyError(header_name)

        key = key.strip()

        if len(key) > self.config.key_max_length:
            self.telemetry.record_metric("idempotency.invalid_key")
            logger.info("dedup.key_invalid", reason="length", length=len(key))
            raise InvalidKeyFormatError(
                f"Invalid {header_name} format. "
                f"Must be at most {self.config.key_max_length} characters.",
                header_name=header_name,
                key=key,
                reason="length",
            )

        if self._pattern.fullmatch(key) is None:
            self.telemetry.record_metric("idempotency.invalid_key")
            logger.info("dedup.key_invalid", reason="pattern", key=key)
            raise InvalidKeyFormatError(
                f"Invalid {header_name} format. {self._format_hint()}",
                header_name=header_name,
                key=key,
                reason="pattern",
            )

        return key

    def _format_hint(self) -> str:
        if self.config.key_pattern == UUID_KEY_PATTERN:
            return "Must be a valid UUID."
        return "Must match the configured pattern."
