"""Payload generation modules for desync-scanner."""

from .generator import (
    RequestParts,
    GeneratorFn,
    build_request_line,
    build_prefix,
    build_baseline_request,
    format_custom_headers,
    format_cookies,
    number_variants,
)
from .obfuscation import (
    TE_OBFUSCATIONS,
    TE_TE_PAIRS,
    TEObfuscation,
    ObfuscationCategory,
    get_te_mutations,
    get_te_mutations_by_category,
    get_categories_summary,
)
from .catalog import CATALOG, generate, variant_counts

__all__ = [
    # Generator
    "RequestParts",
    "GeneratorFn",
    "build_request_line",
    "build_prefix",
    "build_baseline_request",
    "format_custom_headers",
    "format_cookies",
    "number_variants",
    # Obfuscation
    "TE_OBFUSCATIONS",
    "TE_TE_PAIRS",
    "TEObfuscation",
    "ObfuscationCategory",
    "get_te_mutations",
    "get_te_mutations_by_category",
    "get_categories_summary",
    # Catalog
    "CATALOG",
    "generate",
    "variant_counts",
]
