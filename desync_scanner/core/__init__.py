"""Core modules for desync-scanner."""

from .config import (
    DetectionConfig,
    ExportConfig,
    NetworkConfig,
    OutputFormat,
    PayloadConfig,
    ReportConfig,
    ScanConfig,
)
from .models import (
    CHECK_ORDER,
    CandidatePayload,
    CheckResult,
    CheckType,
    ProbeOutcome,
    ScanResult,
    Target,
    TimingSample,
    Verdict,
)
from .exceptions import (
    ConfigurationError,
    ConnectError,
    ConnectTimeoutError,
    ConnectionRefusedByPeer,
    DesyncError,
    DetectionStateError,
    DNSResolutionError,
    ExportError,
    PayloadGenerationError,
    ProtocolParseError,
    TLSHandshakeError,
)

__all__ = [
    # Config
    "DetectionConfig",
    "ExportConfig",
    "NetworkConfig",
    "OutputFormat",
    "PayloadConfig",
    "ReportConfig",
    "ScanConfig",
    # Models
    "CHECK_ORDER",
    "CandidatePayload",
    "CheckResult",
    "CheckType",
    "ProbeOutcome",
    "ScanResult",
    "Target",
    "TimingSample",
    "Verdict",
    # Exceptions
    "ConfigurationError",
    "ConnectError",
    "ConnectTimeoutError",
    "ConnectionRefusedByPeer",
    "DesyncError",
    "DetectionStateError",
    "DNSResolutionError",
    "ExportError",
    "PayloadGenerationError",
    "ProtocolParseError",
    "TLSHandshakeError",
]
