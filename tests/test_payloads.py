"""Tests for payload generation."""

import base64
import re

import pytest
from hpack import Decoder
from hyperframe.frame import Frame, HeadersFrame, SettingsFrame

from desync_scanner.core.exceptions import PayloadGenerationError
from desync_scanner.core.models import CHECK_ORDER, CheckType
from desync_scanner.payloads.catalog import CATALOG, generate, variant_counts
from desync_scanner.payloads.classic import generate_cl_te, generate_te_cl, generate_te_te
from desync_scanner.payloads.generator import (
    RequestParts,
    build_baseline_request,
    format_cookies,
    format_custom_headers,
)
from desync_scanner.payloads.http2 import generate_h2, generate_h2c
from desync_scanner.payloads.http2.framing import (
    H2_PREFACE,
    settings_header_value,
    settings_payload,
)
from desync_scanner.payloads.obfuscation import (
    CONTROL_BYTES,
    TE_OBFUSCATIONS,
    TE_TE_PAIRS,
    ObfuscationCategory,
    get_categories_summary,
    get_te_mutations,
    get_te_mutations_by_category,
)


def _split_frames(data: bytes):
    """Parse a frame sequence following the connection preface."""
    assert data.startswith(H2_PREFACE)
    data = data[len(H2_PREFACE):]
    frames = []
    while data:
        frame, length = Frame.parse_frame_header(data[:9])
        frame.parse_body(memoryview(data[9:9 + length]))
        frames.append(frame)
        data = data[9 + length:]
    return frames


class TestSharedBuilders:
    """Tests for the shared request builders."""

    def test_custom_headers_empty(self):
        """No headers yields nothing."""
        assert format_custom_headers(()) == ""

    def test_custom_headers_joined(self):
        """Headers are CRLF-joined with a trailing CRLF."""
        assert format_custom_headers(("A: 1", "B: 2")) == "A: 1\r\nB: 2\r\n"

    def test_cookies(self):
        """Cookies collapse into one header."""
        assert format_cookies(("a=1", "b=2")) == "Cookie: a=1; b=2\r\n"
        assert format_cookies(()) == ""

    def test_baseline_request(self, decorated_parts):
        """Baseline is a plain GET that closes the connection."""
        raw = build_baseline_request(decorated_parts)

        assert raw == (
            b"GET /login?next=/ HTTP/1.1\r\n"
            b"Host: example.com\r\n"
            b"Connection: close\r\n"
            b"X-Test: 1\r\n"
            b"Cookie: session=abc; theme=dark\r\n"
            b"\r\n"
        )

    def test_invalid_method_rejected(self):
        """A method with a space cannot be rendered."""
        parts = RequestParts(path="/", host="example.com", method="PO ST")

        with pytest.raises(PayloadGenerationError):
            generate_cl_te(parts)

    @pytest.mark.parametrize("overrides", [
        {"path": "/日本"},
        {"host": "bücher.例え"},
        {"headers": ("X-Name: €",)},
        {"cookies": ("name=€",)},
    ])
    def test_non_latin1_rejected(self, overrides):
        """Text that has no single-byte form raises before any bytes are built."""
        parts = RequestParts(**{"path": "/", "host": "example.com", **overrides})

        with pytest.raises(PayloadGenerationError, match="latin-1"):
            generate_te_cl(parts)


class TestObfuscations:
    """Tests for the Transfer-Encoding obfuscation vocabulary."""

    def test_catalog_size(self):
        """At least seventy forms are available."""
        assert len(TE_OBFUSCATIONS) >= 70
        assert len(get_te_mutations()) == len(TE_OBFUSCATIONS)

    def test_headers_unique(self):
        """Every form is distinct."""
        headers = get_te_mutations()
        assert len(set(headers)) == len(headers)

    @pytest.mark.parametrize("byte", CONTROL_BYTES)
    def test_control_byte_positions(self, byte):
        """Each control byte appears as a name prefix and before the colon."""
        headers = get_te_mutations()

        assert f"{chr(byte)}Transfer-Encoding: chunked" in headers
        assert f"Transfer-Encoding{chr(byte)}: chunked" in headers

    def test_categories_cover_catalog(self):
        """Category counts sum to the catalog size."""
        summary = get_categories_summary()

        assert sum(summary.values()) == len(TE_OBFUSCATIONS)
        for category in (
            ObfuscationCategory.CAPITALIZATION,
            ObfuscationCategory.WHITESPACE,
            ObfuscationCategory.VALUE_MUTATION,
            ObfuscationCategory.HEADER_NAME,
            ObfuscationCategory.NEWLINE,
            ObfuscationCategory.ENCODING,
            ObfuscationCategory.DUPLICATE,
        ):
            assert summary[category] > 0

    def test_filter_by_category(self):
        """Filtering keeps only the requested category."""
        whitespace = get_te_mutations_by_category(ObfuscationCategory.WHITESPACE)

        assert whitespace
        assert all(te.category == ObfuscationCategory.WHITESPACE for te in whitespace)

    def test_every_form_carries_transfer_encoding(self):
        """Each form still presents a Transfer-Encoding style header line."""
        for header in get_te_mutations():
            lines = re.split(r"\r\n|\r|\n", header) + [header.replace("\r", "")]
            assert any(
                line.lstrip(" \t\x0b\x0c").lower().startswith("transfer") for line in lines
            ), header

    def test_pairs_differ(self):
        """Each TE.TE pair combines two different header lines."""
        assert len(TE_TE_PAIRS) >= 20
        for first, second, _ in TE_TE_PAIRS:
            assert first != second


class TestClassicPayloads:
    """Tests for CL.TE, TE.CL and TE.TE generation."""

    def test_cl_te_shape(self, parts):
        """First CL.TE variant is the plain header with the 4-byte body."""
        first = generate_cl_te(parts)[0]

        assert first.check_type == CheckType.CL_TE
        assert first.index == 0
        assert first.raw.startswith(b"POST / HTTP/1.1\r\nHost: example.com\r\nConnection: keep-alive\r\n")
        assert b"Content-Length: 4\r\nTransfer-Encoding: chunked\r\n\r\n1\r\nZ\r\nQ" in first.raw
        assert first.raw.endswith(b"\r\n\r\n1\r\nZ\r\nQ")

    def test_te_cl_shape(self, parts):
        """TE.CL uses a 6-byte declared length and a terminated chunk body."""
        first = generate_te_cl(parts)[0]

        assert b"Content-Length: 6\r\n" in first.raw
        assert first.raw.endswith(b"\r\n\r\n0\r\n\r\nX")

    def test_one_variant_per_obfuscation(self, parts):
        """CL.TE and TE.CL emit exactly one variant per form."""
        assert len(generate_cl_te(parts)) == len(TE_OBFUSCATIONS)
        assert len(generate_te_cl(parts)) == len(TE_OBFUSCATIONS)

    def test_te_te_two_headers(self, parts):
        """TE.TE variants carry both headers of their pair."""
        payloads = generate_te_te(parts)

        assert len(payloads) == len(TE_TE_PAIRS)
        first, second, _ = TE_TE_PAIRS[0]
        assert f"{first}\r\n{second}\r\n".encode("latin-1") in payloads[0].raw
        assert payloads[0].raw.endswith(b"1\r\nZ\r\nQ")

    def test_control_bytes_preserved(self, parts):
        """Raw bytes such as 0x0B survive encoding unchanged."""
        raws = [p.raw for p in generate_cl_te(parts)]

        assert any(b"\x0bTransfer-Encoding: chunked" in raw for raw in raws)

    def test_indexes_dense(self, parts):
        """Indexes run from zero without gaps."""
        for check_type in CHECK_ORDER:
            payloads = generate(check_type, parts)
            assert [p.index for p in payloads] == list(range(len(payloads)))

    def test_header_placement(self, decorated_parts):
        """Caller headers and cookies follow Connection and precede attack headers."""
        raw = generate_cl_te(decorated_parts)[0].raw

        connection = raw.index(b"Connection: keep-alive\r\n")
        custom = raw.index(b"X-Test: 1\r\n")
        cookie = raw.index(b"Cookie: session=abc; theme=dark\r\n")
        length = raw.index(b"Content-Length: 4")

        assert connection < custom < cookie < length


class TestH2CPayloads:
    """Tests for h2c upgrade payloads."""

    def test_count(self, parts):
        """At least twenty upgrade variants."""
        assert len(generate_h2c(parts)) >= 20

    def test_standard_upgrade(self, parts):
        """The first variant is a textbook h2c upgrade."""
        raw = generate_h2c(parts)[0].raw

        assert raw.startswith(b"POST / HTTP/1.1\r\nHost: example.com\r\n")
        assert b"Upgrade: h2c\r\n" in raw
        assert b"Connection: Upgrade, HTTP2-Settings\r\n" in raw
        assert f"HTTP2-Settings: {settings_header_value()}\r\n".encode("ascii") in raw

    def test_settings_encoding(self):
        """Settings are base64url without padding over a SETTINGS body."""
        value = settings_header_value()
        padded = value + "=" * (-len(value) % 4)

        assert "=" not in value
        assert base64.urlsafe_b64decode(padded) == settings_payload()
        assert len(settings_payload()) % 6 == 0

    def test_embedded_frames_variant(self, parts):
        """One variant carries a prior-knowledge preface in its body."""
        raws = [p.raw for p in generate_h2c(parts)]

        assert any(H2_PREFACE in raw for raw in raws)

    def test_embedded_request_length(self, parts):
        """The embedded request variant declares the exact body length."""
        payload = next(
            p for p in generate_h2c(parts) if p.description == "Embedded HTTP/1.1 request after upgrade"
        )
        head, body = payload.raw.split(b"\r\n\r\n", 1)

        assert f"Content-Length: {len(body)}".encode("ascii") in head
        assert body.startswith(b"GET /smuggled HTTP/1.1\r\n")


class TestH2Payloads:
    """Tests for HTTP/2 translation payloads."""

    def test_count_and_frames(self, parts):
        """Every variant has both renderings."""
        payloads = generate_h2(parts)

        assert len(payloads) >= 25
        for payload in payloads:
            assert payload.raw.startswith(b"POST / HTTP/1.1\r\n")
            assert b"Host: example.com\r\n" in payload.raw
            assert payload.frames is not None
            assert payload.frames.startswith(H2_PREFACE)

    def test_duplicate_method_frames(self, parts):
        """Duplicate :method survives hpack encoding on stream 1."""
        payload = generate_h2(parts)[0]
        frames = _split_frames(payload.frames)

        assert isinstance(frames[0], SettingsFrame)
        headers = [f for f in frames if isinstance(f, HeadersFrame)]
        assert [f.stream_id for f in headers] == [1, 3]

        decoded = Decoder().decode(bytes(headers[0].data))
        methods = [value for name, value in decoded if name == ":method"]
        assert methods == ["POST", "GET"]

    def test_split_data_frames(self, parts):
        """The boundary-split variant uses two DATA frames on stream 1."""
        payload = next(
            p for p in generate_h2(parts) if p.description == "Request split across DATA frame boundary"
        )
        frames = _split_frames(payload.frames)
        data_frames = [f for f in frames if f.type == 0x0]

        assert len(data_frames) == 2
        assert "END_STREAM" not in data_frames[0].flags
        assert "END_STREAM" in data_frames[1].flags

    def test_custom_headers_in_both_forms(self, decorated_parts):
        """Caller headers and cookies appear in the downgraded request."""
        payload = generate_h2(decorated_parts)[0]

        assert b"X-Test: 1\r\n" in payload.raw
        assert b"Cookie: session=abc; theme=dark\r\n" in payload.raw


class TestCatalog:
    """Tests for catalog dispatch."""

    def test_every_check_registered(self):
        """All check types have a generator."""
        assert set(CATALOG) == set(CHECK_ORDER)

    @pytest.mark.parametrize("check_type", CHECK_ORDER)
    def test_deterministic(self, decorated_parts, check_type):
        """Identical inputs give identical payloads."""
        assert generate(check_type, decorated_parts) == generate(check_type, decorated_parts)

    @pytest.mark.parametrize("check_type", CHECK_ORDER)
    def test_method_respected(self, check_type):
        """The configured method starts every request line."""
        parts = RequestParts(path="/", host="example.com", method="PUT")

        for payload in generate(check_type, parts):
            assert payload.raw.startswith(b"PUT / HTTP/1.1\r\n")

    def test_unknown_check(self, parts):
        """Dispatch on something that is not a CheckType fails cleanly."""
        with pytest.raises(PayloadGenerationError):
            generate("CL.CL", parts)

    def test_variant_counts(self, parts):
        """Counts match generated lists."""
        counts = variant_counts(parts)

        assert counts[CheckType.CL_TE] == len(TE_OBFUSCATIONS)
        assert counts[CheckType.TE_TE] == len(TE_TE_PAIRS)
