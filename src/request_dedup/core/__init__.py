"""Core deduplication logic.

- Validator: applicability and key format checks
- Engine: cache lookup, lock acquisition, execution and caching per key
- Metadata: per-key usage tracking
- Debounce: alert rate limiting
- Envelope: response tagging, caching and replay
- Middleware: framework-agnostic request processing
- Cleanup: expiry sweeps for the in-memory backend

The core is framework-agnostic and wrapped by adapters for specific web
frameworks.
"""

from request_dedup.core.debounce import AlertDebouncer
from request_dedup.core.engine import DeduplicationEngine, DedupResult
from request_dedup.core.envelope import HttpResponse
from request_dedup.core.metadata import MetadataTracker
from request_dedup.core.middleware import IdempotencyMiddleware
from request_dedup.core.validator import KeyValidator

__all__ = [
    "AlertDebouncer",
    "DedupResult",
    "DeduplicationEngine",
    "HttpResponse",
    "IdempotencyMiddleware",
    "KeyValidator",
    "MetadataTracker",
]
