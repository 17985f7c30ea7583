"""
Pytest configuration and shared fixtures for request_dedup tests.
"""

import pytest
from helpers import CollectingAlertChannel, FakeClock, RecordingTelemetrySink

from request_dedup.config import DedupConfig
from request_dedup.storage.memory import MemoryCacheStore, MemoryLockProvider


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a valid UUID idempotency key."""
    return "a0eebc99-9c0b-4ef8-bb6d-6bb9bd380a11"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def locks() -> MemoryLockProvider:
    return MemoryLockProvider()


@pytest.fixture
def alert_channel() -> CollectingAlertChannel:
    return CollectingAlertChannel()


@pytest.fixture
def telemetry() -> RecordingTelemetrySink:
    return RecordingTelemetrySink()


@pytest.fixture
def config() -> DedupConfig:
    """Defaults with a short lock wait so contention tests stay fast."""
    return DedupConfig(lock_wait=0.2)
