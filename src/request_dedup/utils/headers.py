"""Header helpers for the request deduplication middleware.

This module provides functions for:
- Looking up request headers case-insensitively
- Filtering volatile headers before a response is cached
- Tagging responses with the idempotency key and status headers
"""

STATUS_HEADER = "Idempotency-Status"

# Headers removed before a response is cached
# These describe the original transport, not the response itself
VOLATILE_HEADERS = {
    "date",
    "server",
    "connection",
    "transfer-encoding",
    "keep-alive",
    "trailer",
    "upgrade",
    "proxy-connection",
    "proxy-authenticate",
    "proxy-authorization",
}


def filter_response_headers(
    headers: dict[str, str],
    additional_volatile: list[str] | None = None,
) -> dict[str, str]:
    """Filter volatile headers from response headers.

    Args:
        headers: Original response headers
        additional_volatile: Additional header names to remove (case-insensitive)

    Returns:
        Filtered headers dictionary

    Example:
        >>> filter_response_headers({"Content-Type": "application/json", "Date": "..."})
        {'Content-Type': 'application/json'}
    """
    headers_to_remove = set(VOLATILE_HEADERS)
    if additional_volatile:
        headers_to_remove.update(h.lower() for h in additional_volatile)

    return {key: value for key, value in headers.items() if key.lower() not in headers_to_remove}


def get_header_value(
    headers: dict[str, str],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Get header value with case-insensitive lookup.

    Example:
        >>> get_header_value({"Content-Type": "application/json"}, "content-type")
        'application/json'
        >>> get_header_value({}, "missing", "default")
        'default'
    """
    header_name_lower = header_name.lower()

    for key, value in headers.items():
        if key.lower() == header_name_lower:
            return value

    return default


def set_header(headers: dict[str, str], name: str, value: str) -> dict[str, str]:
    """Return a copy of headers with name set to value, replacing any casing of name."""
    name_lower = name.lower()
    result = {key: existing for key, existing in headers.items() if key.lower() != name_lower}
    result[name] = value
    return result


def add_status_headers(
    headers: dict[str, str],
    header_name: str,
    idempotency_key: str,
    status: str,
) -> dict[str, str]:
    """Tag response headers with the echoed key and the dedup status.

    Args:
        headers: Existing response headers
        header_name: Name of the idempotency key header
        idempotency_key: The key of this request
        status: "Original" or "Repeated"

    Returns:
        New headers dict; the input is left untouched

    Example:
        >>> add_status_headers({}, "Idempotency-Key", "abc", "Repeated")
        {'Idempotency-Key': 'abc', 'Idempotency-Status': 'Repeated'}
    """
    result = set_header(headers, header_name, idempotency_key)
    return set_header(result, STATUS_HEADER, status)
