"""Request payload fingerprinting.

Fingerprints back the opt-in payload validation: when enabled, the engine
stores the fingerprint of the first request with its cached response and
refuses to replay that response to a request whose fingerprint differs.
"""

import hashlib
import json
from urllib.parse import parse_qs, urlencode

from request_dedup.models import Request


def compute_fingerprint(
    method: str,
    path: str,
    query_string: str,
    headers: dict[str, str],
    body: bytes,
    included_headers: list[str] | None = None,
) -> str:
    """Compute a deterministic fingerprint for a request.

    The fingerprint is a SHA-256 over, newline separated: the uppercase
    method, the lowercase path without trailing slash, the sorted query
    string, the selected headers as canonical JSON, and the body digest.

    Args:
        method: HTTP method (e.g., "POST", "PUT")
        path: URL path component
        query_string: Raw query string (without leading '?')
        headers: Request headers as key-value pairs
        body: Request body as bytes
        included_headers: Header names to include. Defaults to ["content-type"].

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)
    """
    if included_headers is None:
        included_headers = ["content-type"]

    canonical_path = path.lower() if path else "/"
    if canonical_path != "/" and canonical_path.endswith("/"):
        canonical_path = canonical_path.rstrip("/") or "/"

    components = [
        method.upper(),
        canonical_path,
        _canonicalize_query_string(query_string),
        _canonicalize_headers(headers, included_headers),
        hashlib.sha256(body).hexdigest(),
    ]
    return hashlib.sha256("\n".join(components).encode("utf-8")).hexdigest()


def fingerprint_request(request: Request, included_headers: list[str] | None = None) -> str:
    """Fingerprint a framework-neutral request."""
    return compute_fingerprint(
        method=request.method,
        path=request.path,
        query_string=request.query_string,
        headers=request.headers,
        body=request.body,
        included_headers=included_headers,
    )


def _canonicalize_query_string(query_string: str) -> str:
    if not query_string or not query_string.strip():
        return ""

    parsed = parse_qs(query_string, keep_blank_values=True)

    sorted_params: list[tuple[str, str]] = []
    for key in sorted(parsed.keys()):
        for value in sorted(parsed[key]):
            sorted_params.append((key, value))

    return urlencode(sorted_params, doseq=False)


def _canonicalize_headers(headers: dict[str, str], included_headers: list[str]) -> str:
    included_lower = {name.lower() for name in included_headers}

    canonical: dict[str, str] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if key_lower in included_lower:
            canonical[key_lower] = value.strip()

    return json.dumps(canonical, sort_keys=True, separators=(",", ":"))
