"""desync-scanner: HTTP request smuggling detection through timing.

Sends byte-exact, deliberately ambiguous requests (CL.TE, TE.CL, TE.TE, h2c
upgrade and HTTP/2 translation variants) and flags targets whose front-end
and back-end servers disagree about request boundaries, as seen in the
response timing.
"""

__version__ = "1.0.0"
__author__ = "Security Research Team"

from desync_scanner.core.config import ScanConfig
from desync_scanner.core.engine import ScanOrchestrator, run_scan
from desync_scanner.core.models import CheckType, ScanResult, Target

__all__ = [
    "__version__",
    "ScanConfig",
    "ScanOrchestrator",
    "run_scan",
    "CheckType",
    "ScanResult",
    "Target",
]
