"""Shared request-building framework for desync payloads.

Every attack family is a plain function ``RequestParts -> List[CandidatePayload]``.
The helpers here assemble the byte-exact request prefix that all families
share, so caller headers and cookies always land in the same place: after
``Host``/``Connection`` and before the injected attack headers.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from desync_scanner.core.exceptions import PayloadGenerationError
from desync_scanner.core.models import CandidatePayload, CheckType, Target


@dataclass(frozen=True)
class RequestParts:
    """Inputs shared by every payload generator.

    Attributes:
        path: Request target (path plus optional query)
        host: Host header value
        method: Attack request method
        headers: Raw ``Name: value`` lines, in order
        cookies: ``name=value`` strings joined into one Cookie header
    """
    path: str
    host: str
    method: str = "POST"
    headers: Tuple[str, ...] = ()
    cookies: Tuple[str, ...] = ()

    @classmethod
    def from_target(cls, target: Target, method: str = "POST") -> "RequestParts":
        return cls(
            path=target.path,
            host=target.host_header,
            method=method,
            headers=tuple(target.headers),
            cookies=tuple(target.cookies),
        )

    def validate(self, family: str) -> None:
        """Reject parts that would break the request line or header block."""
        if not self.method or any(ch.isspace() for ch in self.method):
            raise PayloadGenerationError(family, f"invalid method {self.method!r}")
        if not self.path or any(ch in self.path for ch in " \r\n"):
            raise PayloadGenerationError(family, f"invalid path {self.path!r}")
        if not self.host or any(ch in self.host for ch in " \r\n"):
            raise PayloadGenerationError(family, f"invalid host {self.host!r}")
        for line in self.headers + self.cookies:
            if "\r" in line or "\n" in line:
                raise PayloadGenerationError(family, f"line break in {line!r}")
        for value in (self.method, self.path, self.host) + self.headers + self.cookies:
            if not is_latin1(value):
                raise PayloadGenerationError(family, f"not latin-1 encodable: {value!r}")


# Uniform contract for a family generator
GeneratorFn = Callable[[RequestParts], List[CandidatePayload]]


# ============================================================================
# Utility Functions for Payload Building
# ============================================================================


def build_request_line(method: str, path: str, version: str = "HTTP/1.1") -> str:
    """Build HTTP request line."""
    return f"{method} {path} {version}\r\n"


def format_custom_headers(headers: Sequence[str]) -> str:
    """Join caller headers with CRLF; empty input yields an empty string."""
    if not headers:
        return ""
    return "\r\n".join(headers) + "\r\n"


def format_cookies(cookies: Sequence[str]) -> str:
    """Build a single ``Cookie`` header line from ``name=value`` strings."""
    if not cookies:
        return ""
    return f"Cookie: {'; '.join(cookies)}\r\n"


def build_prefix(
    parts: RequestParts,
    connection: Optional[str] = "keep-alive",
    method: Optional[str] = None,
) -> str:
    """Request line, Host, Connection, caller headers and cookies.

    Args:
        parts: Shared request inputs
        connection: Connection header value, or None to omit it
        method: Override for the request method

    Returns:
        Prefix ending with CRLF, ready for attack headers
    """
    prefix = build_request_line(method or parts.method, parts.path)
    prefix += f"Host: {parts.host}\r\n"
    if connection is not None:
        prefix += f"Connection: {connection}\r\n"
    prefix += format_custom_headers(parts.headers)
    prefix += format_cookies(parts.cookies)
    return prefix


def build_baseline_request(parts: RequestParts) -> bytes:
    """Unmodified reference request used to measure normal timing."""
    return (build_prefix(parts, connection="close", method="GET") + "\r\n").encode("latin-1")


def is_latin1(text: str) -> bool:
    """True when ``text`` maps onto single bytes for the wire."""
    try:
        text.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def encode_request(text: str) -> bytes:
    """Encode a crafted request without touching control characters."""
    return text.encode("latin-1")


def number_variants(
    check_type: CheckType,
    variants: Iterable[Tuple[str, bytes]],
) -> List[CandidatePayload]:
    """Assign dense, ordered indexes to ``(description, raw)`` pairs."""
    return [
        CandidatePayload(
            check_type=check_type,
            index=index,
            description=description,
            raw=raw,
        )
        for index, (description, raw) in enumerate(variants)
    ]
