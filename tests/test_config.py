"""Tests for configuration, targets and shared helpers."""

import asyncio

import pytest

from desync_scanner.core.config import DetectionConfig, NetworkConfig, PayloadConfig, ScanConfig
from desync_scanner.core.models import CheckType, Target
from desync_scanner.utils.helpers import (
    gather_with_concurrency,
    normalize_target_url,
    parse_header_arg,
    printable,
    sanitize_hostname,
)


class TestScanConfig:
    """Tests for ScanConfig.validate."""

    def test_defaults_valid(self):
        """The default configuration has no errors."""
        assert ScanConfig().validate() == []

    @pytest.mark.parametrize("config,fragment", [
        (ScanConfig(enabled_checks=[]), "check"),
        (ScanConfig(detection=DetectionConfig(timing_multiplier=1.0)), "timing_multiplier"),
        (ScanConfig(detection=DetectionConfig(min_delay_ms=0)), "min_delay_ms"),
        (ScanConfig(network=NetworkConfig(deadline=0)), "deadline"),
        (ScanConfig(network=NetworkConfig(connect_timeout=-1)), "connect_timeout"),
        (ScanConfig(concurrency=0), "concurrency"),
        (ScanConfig(payload=PayloadConfig(method="PO ST")), "method"),
    ])
    def test_invalid(self, config, fragment):
        errors = config.validate()

        assert len(errors) == 1
        assert fragment in errors[0]


class TestTarget:
    """Tests for Target construction."""

    def test_from_url_defaults(self):
        target = Target.from_url("https://target.com")

        assert target.port == 443
        assert target.path == "/"
        assert target.use_tls
        assert target.host_header == "target.com"
        assert target.url == "https://target.com/"

    def test_query_kept(self):
        target = Target.from_url("http://target.com:8080/a/b?x=1&y=2")

        assert target.path == "/a/b?x=1&y=2"
        assert target.host_header == "target.com:8080"
        assert target.url == "http://target.com:8080/a/b?x=1&y=2"

    def test_vhost_overrides_host_header(self):
        """The connection still goes to the URL host."""
        target = Target.from_url("https://10.0.0.5:8443/", vhost="internal.test")

        assert target.host == "10.0.0.5"
        assert target.host_header == "internal.test:8443"

    def test_ipv6_literal_bracketed(self):
        """IPv6 hosts keep their brackets in Host and URL."""
        target = Target.from_url("http://[::1]:8080/x")

        assert target.host == "::1"
        assert target.host_header == "[::1]:8080"
        assert target.url == "http://[::1]:8080/x"
        assert Target.from_url("https://[2001:db8::5]/").host_header == "[2001:db8::5]"

    def test_vhost_with_port_not_bracketed(self):
        target = Target(host="10.0.0.5", port=80, vhost="internal.test:8080")

        assert target.host_header == "internal.test:8080"

    @pytest.mark.parametrize("url", ["ftp://target.com/", "https:///nohost", "target.com"])
    def test_bad_url(self, url):
        with pytest.raises(ValueError):
            Target.from_url(url)

    def test_line_break_rejected(self):
        with pytest.raises(ValueError):
            Target(host="target.com", port=80, vhost="evil\r\nX: 1")

    @pytest.mark.parametrize("port", [0, 65536])
    def test_bad_port(self, port):
        with pytest.raises(ValueError):
            Target(host="target.com", port=port)


class TestCheckType:
    """Tests for check tag parsing."""

    @pytest.mark.parametrize("tag,expected", [
        ("CL.TE", CheckType.CL_TE),
        ("cl-te", CheckType.CL_TE),
        ("te_cl", CheckType.TE_CL),
        (" Te.Te ", CheckType.TE_TE),
        ("h2c", CheckType.H2C),
        ("H2", CheckType.H2),
    ])
    def test_from_tag(self, tag, expected):
        assert CheckType.from_tag(tag) == expected

    def test_unknown_tag(self):
        with pytest.raises(ValueError):
            CheckType.from_tag("cl-cl")

    def test_rule_id(self):
        assert CheckType.TE_CL.rule_id == "te-cl"
        assert CheckType.H2C.rule_id == "h2c"


class TestHelpers:
    """Tests for helper utilities."""

    def test_normalize_target_url(self):
        assert normalize_target_url("target.com/x") == "https://target.com/x"
        assert normalize_target_url(" http://target.com ") == "http://target.com"

    def test_sanitize_hostname(self):
        assert sanitize_hostname("target.com:8443") == "target_com_8443"

    def test_parse_header_arg(self):
        assert parse_header_arg("X-Api-Key:  abc ") == "X-Api-Key: abc"

    @pytest.mark.parametrize("value", ["no-colon", ": novalue", "X: a\r\nY: b", "X-Name: €"])
    def test_parse_header_arg_invalid(self, value):
        with pytest.raises(ValueError):
            parse_header_arg(value)

    def test_printable(self):
        """Control bytes are shown as hex escapes."""
        assert printable(b"\x0bTransfer-Encoding:\tchunked") == "\\x0bTransfer-Encoding:\\x09chunked"

    @pytest.mark.asyncio
    async def test_gather_keeps_input_order(self):
        """Later inputs that finish first stay in their slot."""
        async def job(value, delay):
            await asyncio.sleep(delay)
            return value

        results = await gather_with_concurrency(
            2,
            [lambda: job("slow", 0.05), lambda: job("fast", 0.0)],
        )

        assert results == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_gather_limit(self):
        """No more than ``limit`` coroutines run at once."""
        running = []
        peak = []

        async def job():
            running.append(1)
            peak.append(len(running))
            await asyncio.sleep(0.01)
            running.pop()

        await gather_with_concurrency(2, [job for _ in range(6)])

        assert max(peak) == 2
