"""Response envelope for the request deduplication middleware.

Every response leaving the engine carries the echoed idempotency key and an
``Idempotency-Status`` of exactly ``Original`` or ``Repeated``. This module
holds the response type passed between the engine and the adapters, the
conversion to and from cache entries, and the JSON error responses.

Examples:
    Caching and replaying a response::

        from request_dedup.core.envelope import HttpResponse, replay, to_cached

        response = HttpResponse(201, {"content-type": "application/json"}, b'{"id": 1}')
        entry = to_cached(response)
        replayed = replay(entry, "Idempotency-Key", "a0eebc99-...")
        # replayed.body == b'{"id": 1}'
        # replayed.headers["Idempotency-Status"] == "Repeated"
"""

import base64
import json

from request_dedup.models import CachedResponse, DedupStatus
from request_dedup.utils.headers import add_status_headers, filter_response_headers


class HttpResponse:
    """An HTTP response as seen by the engine.

    Attributes:
        status: HTTP status code (e.g., 200, 404, 500)
        headers: Response headers as key-value pairs
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: dict[str, str], body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body

    @property
    def is_successful(self) -> bool:
        """True for 2xx responses, the only ones that are cached."""
        return 200 <= self.status < 300


def to_cached(response: HttpResponse, fingerprint: str | None = None) -> CachedResponse:
    """Build the cache entry for a response.

    Volatile transport headers are dropped; the body is stored base64-encoded.

    Args:
        response: The response of the first execution
        fingerprint: Payload fingerprint of the request, if payload
            validation is enabled

    Returns:
        CachedResponse ready to be serialized
    """
    return CachedResponse(
        status=response.status,
        headers=filter_response_headers(response.headers),
        body_b64=base64.b64encode(response.body).decode("ascii"),
        fingerprint=fingerprint,
    )


def tag(response: HttpResponse, header_name: str, key: str, status: DedupStatus) -> HttpResponse:
    """Return response with the key and status headers attached."""
    response.headers = add_status_headers(response.headers, header_name, key, status.value)
    return response


def replay(entry: CachedResponse, header_name: str, key: str) -> HttpResponse:
    """Reconstruct the stored response, tagged as Repeated.

    Status and body are returned byte-for-byte as first produced.

    Raises:
        ValueError: If the stored body is not valid base64
    """
    try:
        body = entry.get_body_bytes()
    except Exception as e:
        raise ValueError(f"Failed to decode cached response body: {e}") from e

    response = HttpResponse(status=entry.status, headers=dict(entry.headers), body=body)
    return tag(response, header_name, key, DedupStatus.REPEATED)


def error_response(
    status: int,
    message: str,
    header_name: str | None = None,
    key: str | None = None,
    extra_headers: dict[str, str] | None = None,
) -> HttpResponse:
    """Build a JSON error response ``{"error": message}``.

    The key header is echoed when a key is known. Error responses never
    carry an Idempotency-Status.
    """
    headers = {"content-type": "application/json"}
    if header_name and key:
        headers[header_name] = key
    if extra_headers:
        headers.update(extra_headers)

    return HttpResponse(
        status=status,
        headers=headers,
        body=json.dumps({"error": message}).encode("utf-8"),
    )
