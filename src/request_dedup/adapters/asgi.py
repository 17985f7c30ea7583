"""ASGI middleware adapter for FastAPI and Starlette applications.

The middleware:
1. Converts the Starlette request to the internal Request format, including
   client IP and authenticated identity
2. Processes it through the core middleware
3. Converts the internal response back to a Starlette Response

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        import redis.asyncio as redis
        from request_dedup.adapters.asgi import ASGIIdempotencyMiddleware
        from request_dedup.config import DedupConfig
        from request_dedup.storage.redis import RedisCacheStore, RedisLockProvider

        client = redis.from_url("redis://localhost:6379/0")
        app = FastAPI()
        app.add_middleware(
            ASGIIdempotencyMiddleware,
            cache=RedisCacheStore(client),
            locks=RedisLockProvider(client),
            config=DedupConfig.from_env(),
        )

        @app.post("/api/payments", status_code=201)
        async def create_payment(data: PaymentData):
            # Runs at most once per Idempotency-Key
            return {"status": "created"}
"""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response

from request_dedup.config import DedupConfig
from request_dedup.core.envelope import HttpResponse
from request_dedup.core.middleware import IdempotencyMiddleware
from request_dedup.models import Request
from request_dedup.observability.alerts import AlertChannel
from request_dedup.observability.telemetry import TelemetrySink
from request_dedup.storage.base import CacheStore, LockProvider

IdentityResolver = Callable[[StarletteRequest], str | None]


def default_identity_resolver(request: StarletteRequest) -> str | None:
    """Return the authenticated user's identity, None when anonymous.

    Reads the user Starlette's AuthenticationMiddleware puts in the scope.
    """
    user = request.scope.get("user")
    if user is None or not getattr(user, "is_authenticated", False):
        return None

    for attribute in ("identity", "display_name"):
        try:
            value = getattr(user, attribute)
        except (AttributeError, NotImplementedError):
            continue
        if value:
            return str(value)

    return None


class ASGIIdempotencyMiddleware(BaseHTTPMiddleware):
    """ASGI middleware for request deduplication.

    Attributes:
        config: Configuration object
        middleware: Core middleware instance
        identity_resolver: Callable extracting the client identity
    """

    def __init__(
        self,
        app: Any,
        cache: CacheStore,
        locks: LockProvider,
        config: DedupConfig | None = None,
        telemetry: TelemetrySink | None = None,
        alert_channel: AlertChannel | None = None,
        identity_resolver: IdentityResolver | None = None,
    ) -> None:
        """Initialize the ASGI middleware.

        Args:
            app: The ASGI application
            cache: Shared cache store
            locks: Shared lock provider
            config: Configuration object (uses defaults if not provided)
            telemetry: Telemetry sink (built from config if not provided)
            alert_channel: Alert delivery (logged if not provided)
            identity_resolver: Extracts the client identity from a request
        """
        super().__init__(app)
        self.config = config or DedupConfig()
        self.middleware = IdempotencyMiddleware(
            cache,
            locks,
            self.config,
            telemetry=telemetry,
            alert_channel=alert_channel,
        )
        self.identity_resolver = identity_resolver or default_identity_resolver

    async def dispatch(
        self,
        request: StarletteRequest,
        call_next: Callable[[StarletteRequest], Awaitable[Response]],
    ) -> Response:
        internal_request = await self._convert_request(request)

        async def handler(_req: Request) -> HttpResponse:
            response = await call_next(request)

            body = b""
            if hasattr(response, "body_iterator"):
                async for chunk in response.body_iterator:
                    if isinstance(chunk, str):
                        chunk = chunk.encode(response.charset)
                    body += bytes(chunk)
            else:
                body = bytes(getattr(response, "body", b""))

            return HttpResponse(
                status=response.status_code,
                headers=dict(response.headers),
                body=body,
            )

        result = await self.middleware.process(internal_request, handler)
        return self._convert_response(result)

    async def _convert_request(self, request: StarletteRequest) -> Request:
        body = await request.body()

        headers: dict[str, str] = {}
        for key, value in request.headers.items():
            headers[key] = value

        return Request(
            method=request.method,
            path=request.url.path,
            query_string=request.url.query or "",
            headers=headers,
            body=body,
            client_ip=request.client.host if request.client else None,
            client_identity=self.identity_resolver(request),
        )

    def _convert_response(self, response: HttpResponse) -> Response:
        return Response(
            content=response.body,
            status_code=response.status,
            headers=response.headers,
        )
