"""HTTP/2 smuggling payload generators."""

from .h2c import generate_h2c
from .h2 import generate_h2

__all__ = [
    "generate_h2c",
    "generate_h2",
]
