"""Configuration module for the request deduplication middleware.

This module provides the DedupConfig class that controls which requests are
deduplicated, how long responses are replayed, how the distributed lock is
held and awaited, how idempotency keys are validated, and how telemetry and
alerting behave.

Example:
    Basic usage with defaults:

        >>> config = DedupConfig()
        >>> config.methods
        ['POST', 'PUT', 'PATCH', 'DELETE']
        >>> config.ttl
        60

    Custom configuration:

        >>> config = DedupConfig(
        ...     methods=["POST"],
        ...     ttl=120,
        ...     lock_wait=2.5,
        ...     telemetry={"driver": "prometheus"},
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_TTL'] = '30'
        >>> os.environ['IDEMPOTENCY_TELEMETRY_DRIVER'] = 'log'
        >>> config = DedupConfig.from_env()
"""

import os
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Valid HTTP methods for deduplication
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

UUID_KEY_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


class TelemetryConfig(BaseModel):
    """Telemetry driver selection.

    Attributes:
        enabled: When False the null sink is used regardless of driver.
        driver: Which sink to build: "null", "log", "prometheus" or "custom".
        custom_driver_class: Dotted import path of a sink class, used when
            driver is "custom".
    """

    enabled: bool = Field(default=True, description="Enable telemetry emission")
    driver: Literal["null", "log", "prometheus", "custom"] = Field(
        default="null",
        description="Telemetry driver name",
    )
    custom_driver_class: str | None = Field(
        default=None,
        description="Dotted path to a custom TelemetrySink implementation",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_custom_driver(self) -> "TelemetryConfig":
        if self.enabled and self.driver == "custom" and not self.custom_driver_class:
            raise ValueError("custom_driver_class is required when driver is 'custom'")
        return self


class AlertsConfig(BaseModel):
    """Alert debounce settings.

    Attributes:
        threshold: Cooldown in minutes during which an identical alert
            (same event type and context) is suppressed.
    """

    threshold: int = Field(default=60, description="Alert cooldown in minutes")

    model_config = {"frozen": True}

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"alerts.threshold must be >= 1 minute, got {v}")
        return v


class DedupConfig(BaseModel):
    """Configuration for the request deduplication middleware.

    This immutable configuration class defines every knob of the
    deduplication protocol. Durations follow the units the settings are
    usually expressed in: cache lifetimes in minutes, lock timings in seconds.

    Attributes:
        enabled: Global kill switch. When False every request passes through
            untouched.
        methods: HTTP methods subject to deduplication.
        ttl: Minutes a successful response (and its metadata) is replayed.
        alert_threshold: Replay count above which a duplicate alert fires.
        size_warning: Cached response size in bytes that triggers a size
            alert. 0 disables the check.
        lock_timeout: Seconds the per-key lock lease is held before it
            expires on its own.
        lock_wait: Seconds a request blocks waiting for the per-key lock.
        processing_ttl: Minutes the in-flight processing marker survives if
            its owner never clears it.
        header_name: Request header carrying the idempotency key.
        key_pattern: Regular expression a key must fully match
            (case-insensitive). Defaults to an RFC-4122 UUID.
        key_max_length: Maximum key length in characters.
        require_header: When False, applicable requests without a key are
            passed through instead of rejected.
        payload_validation: When True, a replay whose payload fingerprint
            differs from the original is rejected.
        fingerprint_headers: Request headers included in the payload
            fingerprint.
        telemetry: Telemetry driver selection.
        alerts: Alert debounce settings.

    Example:
        >>> config = DedupConfig(methods=["post", "put"], lock_wait=1)
        >>> config.methods
        ['POST', 'PUT']
    """

    enabled: bool = Field(default=True, description="Global kill switch")
    methods: list[str] | str = Field(
        default=["POST", "PUT", "PATCH", "DELETE"],
        description="HTTP methods subject to deduplication",
    )
    ttl: int = Field(default=60, description="Response cache lifetime in minutes (1-10080)")
    alert_threshold: int = Field(default=5, description="Replay count that triggers an alert")
    size_warning: int = Field(
        default=1024 * 100,
        description="Response size in bytes that triggers a size alert (0=disabled)",
    )
    lock_timeout: float = Field(default=30, description="Lock lease hold time in seconds")
    lock_wait: float = Field(default=5, description="Lock acquire wait in seconds")
    processing_ttl: int = Field(default=5, description="Processing marker lifetime in minutes")
    header_name: str = Field(default="Idempotency-Key", description="Idempotency key header")
    key_pattern: str = Field(default=UUID_KEY_PATTERN, description="Key validation regex")
    key_max_length: int = Field(default=255, description="Maximum key length")
    require_header: bool = Field(default=True, description="Reject requests without a key")
    payload_validation: bool = Field(
        default=False,
        description="Reject replays whose payload differs from the original",
    )
    fingerprint_headers: list[str] | str = Field(
        default=["content-type"],
        description="Headers included in the payload fingerprint",
    )
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)

    model_config = {"frozen": True}

    @field_validator("methods", mode="before")
    @classmethod
    def validate_methods(cls, v: Any) -> list[str]:
        """Validate and normalize HTTP methods.

        Args:
            v: List of HTTP method strings or comma-separated string.

        Returns:
            List of uppercase, validated HTTP methods.

        Raises:
            ValueError: If any method is not a valid HTTP method.
        """
        if isinstance(v, str):
            v = [method.strip() for method in v.split(",") if method.strip()]

        if not isinstance(v, list):
            raise ValueError("methods must be a list or comma-separated string")

        methods = [method.upper() for method in v]

        invalid_methods = set(methods) - VALID_HTTP_METHODS
        if invalid_methods:
            raise ValueError(
                f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
                f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
            )

        return methods

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if not (1 <= v <= 10080):
            raise ValueError(f"ttl must be between 1 and 10080 minutes (7 days), got {v}")
        return v

    @field_validator("alert_threshold")
    @classmethod
    def validate_alert_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"alert_threshold must be >= 1, got {v}")
        return v

    @field_validator("size_warning")
    @classmethod
    def validate_size_warning(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"size_warning must be >= 0, got {v}")
        return v

    @field_validator("lock_timeout")
    @classmethod
    def validate_lock_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"lock_timeout must be > 0 seconds, got {v}")
        return v

    @field_validator("lock_wait")
    @classmethod
    def validate_lock_wait(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"lock_wait must be >= 0 seconds, got {v}")
        return v

    @field_validator("processing_ttl")
    @classmethod
    def validate_processing_ttl(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"processing_ttl must be >= 1 minute, got {v}")
        return v

    @field_validator("header_name")
    @classmethod
    def validate_header_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("header_name must not be empty")
        return v

    @field_validator("key_pattern")
    @classmethod
    def validate_key_pattern(cls, v: str) -> str:
        """Ensure the key pattern is a compilable regular expression.

        Raises:
            ValueError: If the pattern does not compile.
        """
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"key_pattern is not a valid regular expression: {e}") from e
        return v

    @field_validator("key_max_length")
    @classmethod
    def validate_key_max_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"key_max_length must be >= 1, got {v}")
        return v

    @field_validator("fingerprint_headers", mode="before")
    @classmethod
    def validate_fingerprint_headers(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = [header.strip() for header in v.split(",") if header.strip()]

        if not isinstance(v, list):
            raise ValueError("fingerprint_headers must be a list or comma-separated string")

        return [header.lower() for header in v]

    @property
    def ttl_seconds(self) -> int:
        """Response and metadata lifetime in seconds."""
        return self.ttl * 60

    @property
    def processing_ttl_seconds(self) -> int:
        """Processing marker lifetime in seconds."""
        return self.processing_ttl * 60

    @property
    def alert_cooldown_seconds(self) -> int:
        """Alert debounce cooldown in seconds."""
        return self.alerts.threshold * 60

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "DedupConfig":
        """Create configuration from environment variables.

        Variable names are the uppercase field names with the prefix. Nested
        sections use the section name as an extra prefix, e.g.
        ``IDEMPOTENCY_TELEMETRY_DRIVER`` or ``IDEMPOTENCY_ALERTS_THRESHOLD``.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            DedupConfig populated from the environment. Missing variables
            keep their defaults.

        Raises:
            ValueError: If a boolean variable holds an unrecognised value.
            ValidationError: If a value fails validation.
        """
        field_types: dict[str, type] = {
            "enabled": bool,
            "methods": list,
            "ttl": int,
            "alert_threshold": int,
            "size_warning": int,
            "lock_timeout": float,
            "lock_wait": float,
            "processing_ttl": int,
            "header_name": str,
            "key_pattern": str,
            "key_max_length": int,
            "require_header": bool,
            "payload_validation": bool,
            "fingerprint_headers": list,
        }
        section_types: dict[str, dict[str, type]] = {
            "telemetry": {"enabled": bool, "driver": str, "custom_driver_class": str},
            "alerts": {"threshold": int},
        }

        config_dict: dict[str, Any] = _read_env_fields(prefix, field_types)
        for section, types in section_types.items():
            values = _read_env_fields(f"{prefix}{section.upper()}_", types)
            if values:
                config_dict[section] = values

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "DedupConfig":
        """Create configuration from a (possibly nested) dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)


def _read_env_fields(prefix: str, field_types: dict[str, type]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field_name, field_type in field_types.items():
        env_value = os.environ.get(f"{prefix}{field_name.upper()}")
        if env_value is None:
            continue
        if field_type is bool:
            values[field_name] = _parse_bool(env_value)
        elif field_type is int:
            values[field_name] = int(env_value)
        elif field_type is float:
            values[field_name] = float(env_value)
        else:
            # Lists stay comma-separated strings, the validators split them
            values[field_name] = env_value
    return values
