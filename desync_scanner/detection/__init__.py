"""Detection modules for desync-scanner."""

from .timing import (
    CheckSession,
    Decision,
    DetectionState,
    TimingDetector,
    apply_verdict_rule,
)

__all__ = [
    "CheckSession",
    "Decision",
    "DetectionState",
    "TimingDetector",
    "apply_verdict_rule",
]
