"""Utility modules for desync-scanner."""

from .logging import (
    setup_logging,
    get_logger,
    ScanLogger,
    console,
)
from .helpers import (
    normalize_target_url,
    sanitize_hostname,
    parse_status_code,
    parse_header_arg,
    safe_decode,
    printable,
    gather_with_concurrency,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "ScanLogger",
    "console",
    # Helpers
    "normalize_target_url",
    "sanitize_hostname",
    "parse_status_code",
    "parse_header_arg",
    "safe_decode",
    "printable",
    "gather_with_concurrency",
]
