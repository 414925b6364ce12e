"""TE.TE (Transfer-Encoding obfuscation) timing payloads.

Both hops nominally support chunked encoding, but each request carries two
differently written Transfer-Encoding headers. When one hop honors the
obfuscated form and the other discards it and falls back to Content-Length,
the CL.TE-style body leaves the chunked side waiting for more data.
"""

from typing import List

from desync_scanner.core.models import CandidatePayload, CheckType
from desync_scanner.payloads.generator import (
    RequestParts,
    build_prefix,
    encode_request,
    number_variants,
)
from desync_scanner.payloads.obfuscation import TE_TE_PAIRS
from desync_scanner.payloads.classic.cl_te import BODY, CONTENT_LENGTH


def build_te_te_request(parts: RequestParts, first: str, second: str) -> bytes:
    return encode_request(
        build_prefix(parts)
        + "Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {CONTENT_LENGTH}\r\n"
        + f"{first}\r\n"
        + f"{second}\r\n"
        + "\r\n"
        + BODY
    )


def generate_te_te(parts: RequestParts) -> List[CandidatePayload]:
    parts.validate(CheckType.TE_TE.value)
    return number_variants(
        CheckType.TE_TE,
        (
            (description, build_te_te_request(parts, first, second))
            for first, second, description in TE_TE_PAIRS
        ),
    )
