"""CL.TE (Content-Length vs Transfer-Encoding) timing payloads.

In CL.TE smuggling:
- Frontend uses Content-Length to determine request boundary
- Backend uses Transfer-Encoding: chunked

The timing probe declares ``Content-Length: 4`` and sends ``1\\r\\nZ\\r\\nQ``.
A CL front end forwards only ``1\\r\\nZ``; a chunked back end then waits for
the rest of the chunk stream and the probe stalls until the deadline. Only
the Transfer-Encoding header form varies between variants.
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

CONTENT_LENGTH = 4
BODY = "1\r\nZ\r\nQ"


def build_cl_te_request(parts: RequestParts, te_header: str) -> bytes:
    """Build one CL.TE probe around the given Transfer-Encoding header."""
    return encode_request(
        build_prefix(parts)
        + "Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {CONTENT_LENGTH}\r\n"
        + f"{te_header}\r\n"
        + "\r\n"
        + BODY
    )


def generate_cl_te(parts: RequestParts) -> List[CandidatePayload]:
    """One variant per Transfer-Encoding obfuscation, in catalog order."""
    parts.validate(CheckType.CL_TE.value)
    return number_variants(
        CheckType.CL_TE,
        (
            (obfuscation.description, build_cl_te_request(parts, obfuscation.header))
            for obfuscation in TE_OBFUSCATIONS
        ),
    )
