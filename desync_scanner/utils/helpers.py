"""Helper utilities for desync-scanner.

Common utilities for URL handling, status-line parsing, string display
and bounded async fan-out.
"""

import asyncio
import re
from typing import Optional, List, Any, Awaitable, Callable, Iterable, TypeVar


T = TypeVar('T')


# ============================================================================
# URL Utilities
# ============================================================================


def normalize_target_url(url: str, default_scheme: str = "https") -> str:
    """Add a scheme to bare ``host[:port][/path]`` input."""
    url = url.strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
        url = f"{default_scheme}://{url}"
    return url


def sanitize_hostname(host: str) -> str:
    """Make a host usable as part of a file name.

    ``:``, ``/`` and ``.`` become ``_`` so ``target.com:8443`` maps to
    ``target_com_8443``.
    """
    return re.sub(r"[:/.]", "_", host)


# ============================================================================
# Protocol Utilities
# ============================================================================


def parse_status_code(status_line: str) -> Optional[int]:
    """Extract the status code from an ``HTTP/1.x`` or ``HTTP/2`` status line.

    Args:
        status_line: First line of a response head

    Returns:
        Status code, or None when the line is not a status line
    """
    parts = status_line.split()
    if len(parts) < 2:
        return None
    if not (parts[0].startswith("HTTP/1.") or parts[0].startswith("HTTP/2")):
        return None
    if not (len(parts[1]) == 3 and parts[1].isdigit()):
        return None
    return int(parts[1])


def parse_header_arg(value: str) -> str:
    """Validate a ``Name: value`` header given on the command line.

    Raises:
        ValueError: If the header has no name, contains line breaks or
            has characters outside latin-1
    """
    if "\r" in value or "\n" in value:
        raise ValueError(f"Line breaks are not allowed in headers: {value!r}")
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        raise ValueError(f"Header is not latin-1 encodable: {value!r}")
    name, sep, rest = value.partition(":")
    if not sep or not name.strip():
        raise ValueError(f"Header must look like 'Name: value': {value!r}")
    return f"{name.strip()}: {rest.strip()}"


# ============================================================================
# String Utilities
# ============================================================================


def safe_decode(data: bytes, encoding: str = "utf-8") -> str:
    """Safely decode bytes to string."""
    return data.decode(encoding, errors="replace")


def printable(data: bytes) -> str:
    """Render raw request bytes with control characters escaped."""
    text = safe_decode(data)
    return re.sub(
        r'[\x00-\x1f\x7f]',
        lambda m: f"\\x{ord(m.group()):02x}",
        text,
    )


# ============================================================================
# Async Utilities
# ============================================================================


async def gather_with_concurrency(
    limit: int,
    factories: Iterable[Callable[[], Awaitable[T]]],
) -> List[Any]:
    """Run coroutine factories with a concurrency limit.

    Results are written into a list slot chosen by input position, so the
    returned order matches ``factories`` regardless of completion order.

    Args:
        limit: Maximum concurrent coroutines
        factories: Zero-argument callables returning awaitables

    Returns:
        List of results in input order
    """
    factories = list(factories)
    semaphore = asyncio.Semaphore(max(1, limit))
    results: List[Any] = [None] * len(factories)

    async def run_slot(position: int, factory: Callable[[], Awaitable[T]]) -> None:
        async with semaphore:
            results[position] = await factory()

    await asyncio.gather(*[run_slot(i, f) for i, f in enumerate(factories)])
    return results
