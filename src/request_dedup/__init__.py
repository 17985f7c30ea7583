"""
Request deduplication for HTTP APIs.

Given a client-supplied idempotency key, this package guarantees that a
state-changing operation executes at most once per key and that repeated
requests receive the original response instead of re-executing it.
"""

from request_dedup.config import DedupConfig
from request_dedup.core.engine import DeduplicationEngine, DedupResult
from request_dedup.core.envelope import HttpResponse
from request_dedup.core.middleware import IdempotencyMiddleware
from request_dedup.models import DedupOutcome, DedupStatus, Request

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "DedupConfig",
    "DedupOutcome",
    "DedupResult",
    "DedupStatus",
    "DeduplicationEngine",
    "HttpResponse",
    "IdempotencyMiddleware",
    "Request",
]
