"""Configuration classes for desync-scanner."""

from dataclasses import dataclass, field
from typing import Optional, List, FrozenSet
from enum import Enum

from .models import CheckType, CHECK_ORDER


class OutputFormat(Enum):
    """Output format for scan results."""

    JSON = "json"
    TEXT = "text"
    SARIF = "sarif"


@dataclass
class NetworkConfig:
    """Network-level configuration."""

    # Connection setup limit
    connect_timeout: float = 10.0

    # Per-probe read deadline; reaching it is the timeout signal
    deadline: float = 10.0

    # Scanners usually face self-signed or mismatched certificates
    verify_tls: bool = False

    # Socket settings
    read_chunk_size: int = 4096
    max_head_size: int = 64 * 1024


@dataclass(frozen=True)
class DetectionConfig:
    """Thresholds for the timing verdict rule.

    Passed by value into every detector call.
    """

    timing_multiplier: float = 3.0
    min_delay_ms: float = 1000.0

    # Status codes counted as a stalled back end (e.g. 408, 504); empty disables
    timeout_status_codes: FrozenSet[int] = frozenset()


@dataclass
class PayloadConfig:
    """Configuration for payload generation."""

    method: str = "POST"


@dataclass
class ExportConfig:
    """Where vulnerable payloads are written. None disables export."""

    directory: Optional[str] = None


@dataclass
class ReportConfig:
    """Configuration for reporting."""

    format: OutputFormat = OutputFormat.JSON

    # None = stdout
    output_file: Optional[str] = None

    include_payloads: bool = True


@dataclass
class ScanConfig:
    """Main configuration for the scanner."""

    enabled_checks: List[CheckType] = field(default_factory=lambda: list(CHECK_ORDER))

    # Stop a target after the first vulnerable check
    exit_first: bool = False

    # Keep evaluating variants after the first positive
    exhaustive: bool = False

    # Parallel target scans
    concurrency: int = 4

    # Sub-configurations
    network: NetworkConfig = field(default_factory=NetworkConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    payload: PayloadConfig = field(default_factory=PayloadConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    # Verbosity
    verbose: bool = False
    quiet: bool = False

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.enabled_checks:
            errors.append("At least one check must be enabled")

        if self.detection.timing_multiplier <= 1:
            errors.append("timing_multiplier must be greater than 1")

        if self.detection.min_delay_ms <= 0:
            errors.append("min_delay_ms must be positive")

        if self.network.deadline <= 0:
            errors.append("deadline must be positive")

        if self.network.connect_timeout <= 0:
            errors.append("connect_timeout must be positive")

        if self.concurrency < 1:
            errors.append("concurrency must be at least 1")

        method = self.payload.method
        if not method or any(ch.isspace() for ch in method):
            errors.append("method must be a single non-empty token")

        return errors
