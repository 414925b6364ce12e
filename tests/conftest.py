"""Pytest configuration and fixtures for desync-scanner tests."""

import asyncio
from typing import Callable, Iterable, List, Optional, Tuple

import pytest

from desync_scanner.core.config import DetectionConfig, NetworkConfig, ScanConfig
from desync_scanner.core.models import (
    CandidatePayload,
    CheckType,
    ProbeOutcome,
    Target,
    TimingSample,
)
from desync_scanner.payloads.generator import RequestParts


def make_sample(
    elapsed_ms: float,
    outcome: ProbeOutcome = ProbeOutcome.COMPLETED,
    status: int = 200,
) -> TimingSample:
    """Build a TimingSample with a well-formed head for completed outcomes."""
    head = b""
    if outcome == ProbeOutcome.COMPLETED:
        head = f"HTTP/1.1 {status} OK\r\nContent-Length: 0\r\n\r\n".encode("ascii")
    error = "refused" if outcome == ProbeOutcome.CONNECT_ERROR else None
    return TimingSample(elapsed_ms / 1000.0, outcome, head, error)


class ScriptedTransport:
    """Returns pre-recorded samples in order instead of touching the network.

    Once the script runs out every probe gets ``default``.
    """

    def __init__(
        self,
        samples: Iterable[TimingSample] = (),
        default: Optional[TimingSample] = None,
        delay: float = 0.0,
    ):
        self.samples = list(samples)
        self.default = default or make_sample(100)
        self.delay = delay
        self.sent: List[Tuple[Target, bytes]] = []

    async def probe(self, target: Target, data: bytes, deadline: Optional[float] = None) -> TimingSample:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append((target, data))
        if self.samples:
            return self.samples.pop(0)
        return self.default


@pytest.fixture
def target() -> Target:
    """Create a sample HTTPS target."""
    return Target.from_url("https://target.com/api/test")


@pytest.fixture
def parts() -> RequestParts:
    """Request parts with no custom headers or cookies."""
    return RequestParts(path="/", host="example.com", method="POST")


@pytest.fixture
def decorated_parts() -> RequestParts:
    """Request parts carrying a custom header and two cookies."""
    return RequestParts(
        path="/login?next=/",
        host="example.com",
        method="POST",
        headers=("X-Test: 1",),
        cookies=("session=abc", "theme=dark"),
    )


@pytest.fixture
def detection_config() -> DetectionConfig:
    """Thresholds with a 5 second floor."""
    return DetectionConfig(timing_multiplier=3.0, min_delay_ms=5000.0)


@pytest.fixture
def network_config() -> NetworkConfig:
    """Create network configuration for testing."""
    return NetworkConfig(connect_timeout=2.0, deadline=0.5)


@pytest.fixture
def scan_config(detection_config: DetectionConfig) -> ScanConfig:
    """Quiet scan configuration for testing."""
    return ScanConfig(detection=detection_config, quiet=True)


@pytest.fixture
def sample() -> Callable[..., TimingSample]:
    return make_sample


@pytest.fixture
def transport_factory() -> Callable[..., ScriptedTransport]:
    return ScriptedTransport


@pytest.fixture
def payload_factory() -> Callable[[int], List[CandidatePayload]]:
    """Build N dummy CL.TE payloads."""
    def build(count: int, check_type: CheckType = CheckType.CL_TE) -> List[CandidatePayload]:
        return [
            CandidatePayload(
                check_type=check_type,
                index=i,
                description=f"variant {i}",
                raw=f"POST / HTTP/1.1\r\nX-Variant: {i}\r\n\r\n".encode("ascii"),
            )
            for i in range(count)
        ]
    return build
