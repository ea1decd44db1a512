"""Core robot model data structures for robodesc.

This module provides the canonical, immutable kinematic tree that every
format decoder produces and every encoder consumes.
"""

from .robot_model import (
    Dynamics,
    Geometry,
    GeometryType,
    Hardware,
    Inertial,
    Joint,
    JointType,
    Limits,
    Link,
    Origin,
    Robot,
)
from .topology import (
    RobotStructureWarning,
    breadth_first,
    find_field_problems,
    find_inconsistencies,
    infer_root,
)

__all__ = [
    "Dynamics",
    "Geometry",
    "GeometryType",
    "Hardware",
    "Inertial",
    "Joint",
    "JointType",
    "Limits",
    "Link",
    "Origin",
    "Robot",
    "RobotStructureWarning",
    "breadth_first",
    "find_field_problems",
    "find_inconsistencies",
    "infer_root",
]
