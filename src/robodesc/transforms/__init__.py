"""
JAX-based rotation utilities used by the format decoders.

This module provides:
- SO(3) rotations (so3 module)
- tuple-level frame conversions between format conventions (frames module)
"""

from . import so3
from . import frames

__all__ = [
    "so3",
    "frames",
]
