"""Export and reporting modules for desync-scanner."""

from .export import PayloadExporter, build_export_stem
from .reporter import Reporter, generate_report

__all__ = [
    "PayloadExporter",
    "build_export_stem",
    "Reporter",
    "generate_report",
]
