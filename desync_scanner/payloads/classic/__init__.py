"""Classic HTTP/1.1 smuggling payload generators."""

from .cl_te import generate_cl_te
from .te_cl import generate_te_cl
from .te_te import generate_te_te

__all__ = [
    "generate_cl_te",
    "generate_te_cl",
    "generate_te_te",
]
