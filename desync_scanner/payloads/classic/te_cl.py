"""TE.CL (Transfer-Encoding vs Content-Length) timing payloads.

In TE.CL smuggling:
- Frontend uses Transfer-Encoding: chunked
- Backend uses Content-Length

The probe declares ``Content-Length: 6`` over the body ``0\\r\\n\\r\\nX``. A
chunked front end stops at the terminating chunk and forwards five bytes, so
a Content-Length back end keeps waiting for the sixth.
"""

from typing import List

from desync_scanner.core.models import CandidatePayload, CheckType
from desync_scanner.payloads.generator import (
    RequestParts,
    build_prefix,
    encode_request,
    number_variants,
)
from desync_scanner.payloads.obfuscation import TE_OBFUSCATIONS

CONTENT_LENGTH = 6
BODY = "0\r\n\r\nX"


def build_te_cl_request(parts: RequestParts, te_header: str) -> bytes:
    return encode_request(
        build_prefix(parts)
        + "Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {CONTENT_LENGTH}\r\n"
        + f"{te_header}\r\n"
        + "\r\n"
        + BODY
    )


def generate_te_cl(parts: RequestParts) -> List[CandidatePayload]:
    """One variant per Transfer-Encoding obfuscation, in catalog order."""
    parts.validate(CheckType.TE_CL.value)
    return number_variants(
        CheckType.TE_CL,
        (
            (obfuscation.description, build_te_cl_request(parts, obfuscation.header))
            for obfuscation in TE_OBFUSCATIONS
        ),
    )
