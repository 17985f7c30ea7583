"""Unit tests for KeyValidator."""

import pytest

from request_dedup.config import DedupConfig
from request_dedup.core.validator import KeyValidator
from request_dedup.exceptions import InvalidKeyFormatError, MissingKeyError


@pytest.fixture
def validator(telemetry):
    return KeyValidator(DedupConfig(), telemetry)


# ============================================================================
# Applicability
# ============================================================================


@pytest.mark.parametrize("method", ["POST", "put", "Patch", "DELETE"])
def test_state_changing_methods_applicable(validator, method):
    """Test that the default methods are deduplicated in any case."""
    assert validator.is_applicable(method) is True


@pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
def test_safe_methods_skipped(validator, telemetry, method):
    """Test that other methods bypass deduplication and are counted."""
    assert validator.is_applicable(method) is False
    assert telemetry.metrics == ["idempotency.skipped"]


def test_custom_methods(telemetry):
    """Test that only the configured methods apply."""
    validator = KeyValidator(DedupConfig(methods=["POST"]), telemetry)

    assert validator.is_applicable("POST")
    assert not validator.is_applicable("PUT")


# ============================================================================
# Key Validation
# ============================================================================


def test_valid_uuid(validator, sample_idempotency_key):
    """Test that a UUID is accepted unchanged."""
    assert validator.validate(sample_idempotency_key) == sample_idempotency_key


def test_uppercase_uuid_accepted(validator, sample_idempotency_key):
    """Test that the UUID check is case-insensitive."""
    key = sample_idempotency_key.upper()

    assert validator.validate(key) == key


def test_surrounding_whitespace_stripped(validator, sample_idempotency_key):
    """Test that whitespace around the key is ignored."""
    assert validator.validate(f"  {sample_idempotency_key} ") == sample_idempotency_key


@pytest.mark.parametrize("key", [None, "", "   "])
def test_missing_key(validator, telemetry, key):
    """Test that an absent or blank key is a missing key."""
    with pytest.raises(MissingKeyError) as exc_info:
        validator.validate(key)

    assert exc_info.value.message == "Missing Idempotency-Key header"
    assert telemetry.metrics == ["idempotency.missing_key"]


@pytest.mark.parametrize(
    "key",
    [
        "not-a-uuid",
        "a0eebc99-9c0b-4ef8-bb6d-6bb9bd380a1",
        "a0eebc99-9c0b-4ef8-bb6d-6bb9bd380a11-extra",
        "a0eebc999c0b4ef8bb6d6bb9bd380a11",
        "g0eebc99-9c0b-4ef8-bb6d-6bb9bd380a11",
    ],
)
def test_invalid_format(validator, telemetry, key):
    """Test that keys not fully matching the UUID pattern are rejected."""
    with pytest.raises(InvalidKeyFormatError) as exc_info:
        validator.validate(key)

    assert exc_info.value.message == "Invalid Idempotency-Key format. Must be a valid UUID."
    assert exc_info.value.reason == "pattern"
    assert telemetry.metrics == ["idempotency.invalid_key"]


def test_key_too_long(telemetry):
    """Test that the length limit is checked before the pattern."""
    validator = KeyValidator(DedupConfig(key_pattern=r"[a-z]+", key_max_length=8), telemetry)

    with pytest.raises(InvalidKeyFormatError) as exc_info:
        validator.validate("abcdefghi")

    assert exc_info.value.reason == "length"
    assert "at most 8 characters" in exc_info.value.message


def test_custom_pattern(telemetry):
    """Test that a custom pattern replaces the UUID check."""
    validator = KeyValidator(DedupConfig(key_pattern=r"order-\d+"), telemetry)

    assert validator.validate("order-42") == "order-42"
    with pytest.raises(InvalidKeyFormatError, match="Must match the configured pattern"):
        validator.validate("order-x")


def test_custom_header_name_in_messages(telemetry):
    """Test that error messages name the configured header."""
    validator = KeyValidator(DedupConfig(header_name="X-Request-Key"), telemetry)

    with pytest.raises(MissingKeyError, match="Missing X-Request-Key header"):
        validator.validate(None)
