"""Core type definitions for the request deduplication middleware.

This module provides the data structures shared by the engine, the storage
backends and the framework adapters: the inbound request representation, the
cached response entry, the per-key metadata record and the lock lease handle.

Examples:
    Caching a response::

        import base64
        from datetime import UTC, datetime
        from request_dedup.models import CachedResponse

        entry = CachedResponse(
            status=201,
            headers={"content-type": "application/json"},
            body_b64=base64.b64encode(b'{"id": "pay_1"}').decode("ascii"),
            cached_at=datetime.now(UTC),
        )
        payload = entry.model_dump_json()

    Reading it back::

        entry = CachedResponse.model_validate_json(payload)
        entry.get_body_bytes()
"""

import base64
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class DedupStatus(str, Enum):
    """Value of the status header on responses leaving the engine.

    Attributes:
        ORIGINAL: The protected operation ran for this request.
        REPEATED: The response was replayed from the cache.
    """

    ORIGINAL = "Original"
    REPEATED = "Repeated"


class DedupOutcome(str, Enum):
    """Closed set of results the engine can produce for one request.

    Attributes:
        EXECUTED: Lock acquired, handler ran, response cached if successful.
        REPLAYED: Cache entry found before locking.
        LATE_REPLAYED: Lock wait timed out but a cache entry appeared meanwhile.
        CONFLICT: Lock busy and another execution is in flight.
        LOCK_INCONSISTENCY: Lock busy with neither a marker nor a cached response.
        PAYLOAD_MISMATCH: Key reused with a different payload (opt-in check).
    """

    EXECUTED = "executed"
    REPLAYED = "replayed"
    LATE_REPLAYED = "late_replayed"
    CONFLICT = "conflict"
    LOCK_INCONSISTENCY = "lock_inconsistency"
    PAYLOAD_MISMATCH = "payload_mismatch"


class Request:
    """Framework-neutral request representation.

    Framework adapters convert their native request objects into this format.

    Attributes:
        method: HTTP method (GET, POST, etc.)
        path: URL path, used as the endpoint in metadata
        query_string: Query string without leading '?'
        headers: Request headers as dict
        body: Request body as bytes
        client_ip: Remote address, if known
        client_identity: Authenticated user identifier, None when anonymous
    """

    def __init__(
        self,
        method: str,
        path: str,
        query_string: str = "",
        headers: dict[str, str] | None = None,
        body: bytes = b"",
        client_ip: str | None = None,
        client_identity: str | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.query_string = query_string
        self.headers = headers or {}
        self.body = body
        self.client_ip = client_ip
        self.client_identity = client_identity


class CachedResponse(BaseModel):
    """The stored result of the first successful execution for a key.

    The body is base64-encoded so binary payloads survive JSON serialization
    in any backend. ``cached_at`` is the authoritative timestamp for the age
    of the original request.

    Attributes:
        status: HTTP status code.
        headers: Response headers, volatile ones already removed.
        body_b64: Base64-encoded response body.
        cached_at: When the entry was written.
        fingerprint: Payload fingerprint of the original request, present
            only when payload validation is enabled.
    """

    status: int = Field(..., description="HTTP status code", ge=100, le=599)
    headers: dict[str, str] = Field(default_factory=dict, description="HTTP response headers")
    body_b64: str = Field(..., description="Base64-encoded response body")
    cached_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the response was cached",
    )
    fingerprint: str | None = Field(
        default=None,
        description="SHA-256 payload fingerprint of the original request",
        pattern=r"^[a-f0-9]{64}$",
    )

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Validate that the body is properly base64-encoded.

        Raises:
            ValueError: If the string is not valid base64.
        """
        try:
            base64.b64decode(v, validate=True)
        except Exception as e:
            raise ValueError(f"Invalid base64 encoding: {e}") from e
        return v

    def get_body_bytes(self) -> bytes:
        """Decode and return the response body as bytes.

        Examples:
            >>> entry = CachedResponse(status=200, headers={}, body_b64="SGVsbG8=")
            >>> entry.get_body_bytes()
            b'Hello'
        """
        return base64.b64decode(self.body_b64)


class MetadataRecord(BaseModel):
    """Usage statistics for one idempotency key.

    Attributes:
        created_at: When the first request for the key executed.
        hit_count: Number of replays served so far.
        last_hit_at: When the latest replay was served.
        endpoint: Path of the first request.
        client_identity: Authenticated user of the first request, None when anonymous.
        client_ip: Remote address of the first request.
    """

    created_at: datetime = Field(..., description="Timestamp of the first request")
    hit_count: int = Field(default=0, ge=0, description="Number of replays served")
    last_hit_at: datetime | None = Field(default=None, description="Timestamp of the last replay")
    endpoint: str | None = Field(default=None, description="Endpoint of the first request")
    client_identity: str | None = Field(default=None, description="User id, None when anonymous")
    client_ip: str | None = Field(default=None, description="Client IP of the first request")


class LockHandle(BaseModel):
    """A held lease on a per-key distributed lock.

    The token identifies the owner, so only the holder can release the lease.

    Attributes:
        name: Lock key in the lock store.
        token: Random owner token.
        lease_seconds: Hold time after which the lease expires on its own.
    """

    name: str = Field(..., min_length=1, description="Lock key")
    token: str = Field(..., min_length=1, description="Owner token")
    lease_seconds: float = Field(..., gt=0, description="Lease hold time in seconds")
