"""Utility modules for the request deduplication middleware."""

from .headers import (
    STATUS_HEADER,
    VOLATILE_HEADERS,
    add_status_headers,
    filter_response_headers,
    get_header_value,
    set_header,
)

__all__ = [
    "STATUS_HEADER",
    "VOLATILE_HEADERS",
    "add_status_headers",
    "filter_response_headers",
    "get_header_value",
    "set_header",
]
