"""Prometheus metrics for the request deduplication middleware.

The prometheus telemetry driver funnels every telemetry call into the
collectors defined here. Telemetry names such as ``idempotency.cache_hit``
become label values, so one collector covers each kind of measurement:

- ``idempotency_events_total{name}``: counters (record_metric)
- ``idempotency_timing_ms{name}``: durations (record_timing)
- ``idempotency_size_bytes{name}``: sizes (record_size)
- ``idempotency_segment_duration_ms{name}``: segment spans
- ``idempotency_active_segments``: segments currently open
- ``idempotency_purged_entries_total``: expired entries removed by cleanup

Examples:
    >>> record_event("idempotency.cache_hit")
    >>> record_timing_ms("idempotency.execution_time", 152.0)
    >>> record_size_bytes("idempotency.response_size", 2048)
"""

from prometheus_client import Counter, Gauge, Histogram

events_total = Counter(
    "idempotency_events_total",
    "Deduplication events by telemetry name",
    ["name"],
)

timing_ms = Histogram(
    "idempotency_timing_ms",
    "Deduplication timings in milliseconds",
    ["name"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 60000, 3600000],
)

size_bytes = Histogram(
    "idempotency_size_bytes",
    "Sizes of cached responses in bytes",
    ["name"],
    buckets=[256, 1024, 4096, 16384, 65536, 102400, 262144, 1048576, 4194304],
)

segment_duration_ms = Histogram(
    "idempotency_segment_duration_ms",
    "Duration of telemetry segments in milliseconds",
    ["name"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

active_segments = Gauge(
    "idempotency_active_segments",
    "Telemetry segments currently open",
)

purged_entries = Counter(
    "idempotency_purged_entries_total",
    "Expired in-memory entries and leases removed by cleanup",
)


def record_event(name: str, value: float = 1) -> None:
    """Increment the event counter for name."""
    events_total.labels(name=name).inc(value)


def record_timing_ms(name: str, milliseconds: float) -> None:
    """Observe a duration in milliseconds."""
    timing_ms.labels(name=name).observe(milliseconds)


def record_size_bytes(name: str, num_bytes: int) -> None:
    """Observe a size in bytes."""
    size_bytes.labels(name=name).observe(num_bytes)


def record_segment(name: str, milliseconds: float) -> None:
    """Observe the duration of a finished segment."""
    segment_duration_ms.labels(name=name).observe(milliseconds)


def record_purge(entries_removed: int) -> None:
    """Record entries removed by a cleanup pass."""
    purged_entries.inc(entries_removed)
