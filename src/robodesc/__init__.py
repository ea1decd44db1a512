"""
robodesc: robot-description interchange for a robot design workstation.

This library reads URDF, MJCF and ASCII USD robot descriptions into one
immutable kinematic model and writes that model back out as URDF or MJCF.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io

__version__ = "0.1.0"
__all__ = ["transforms", "core", "io"]
