"""Framework adapters for the request deduplication middleware.

- asgi.py: ASGI middleware for FastAPI, Starlette, etc.

The adapters convert between framework-specific request/response objects and
the middleware's internal representation.
"""

from request_dedup.adapters.asgi import ASGIIdempotencyMiddleware

__all__ = ["ASGIIdempotencyMiddleware"]
