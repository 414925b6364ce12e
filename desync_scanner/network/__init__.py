"""Network modules for desync-scanner."""

from .raw_socket import (
    AsyncRawHttpClient,
    RawConnection,
    ResponseHead,
    parse_response_head,
    parse_status_code,
)
from .cookies import fetch_cookies, parse_set_cookie_headers

__all__ = [
    # Raw transport
    "AsyncRawHttpClient",
    "RawConnection",
    "ResponseHead",
    "parse_response_head",
    "parse_status_code",
    # Cookie supplier
    "fetch_cookies",
    "parse_set_cookie_headers",
]
