"""Canonical robot model shared by every decoder and encoder.

This module defines the kinematic-tree data structure all formats converge on.
Every record is an immutable flax PyTree: edits are made by whole-object
replacement (``.replace(...)``), never in place.
"""

import enum
from typing import Dict, Optional, Tuple

from flax import struct

Vec3 = Tuple[float, float, float]
Inertia = Tuple[float, float, float, float, float, float]

DEFAULT_VISUAL_COLOR = "#3b82f6"
DEFAULT_COLLISION_COLOR = "#ef4444"
DEFAULT_AXIS: Vec3 = (0.0, 0.0, 1.0)
ZERO_VEC3: Vec3 = (0.0, 0.0, 0.0)
UNIT_SCALE: Vec3 = (1.0, 1.0, 1.0)


class GeometryType(str, enum.Enum):
    """Closed set of shapes a link can carry."""
    NONE = "none"
    BOX = "box"
    CYLINDER = "cylinder"
    SPHERE = "sphere"
    MESH = "mesh"


class JointType(str, enum.Enum):
    """Closed set of joint kinematics."""
    FIXED = "fixed"
    REVOLUTE = "revolute"
    CONTINUOUS = "continuous"
    PRISMATIC = "prismatic"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["JointType"]:
        """Look up a joint type by its lowercase name, ``None`` if unknown."""
        if not name:
            return None
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None


@struct.dataclass
class Origin:
    """Translation plus roll-pitch-yaw (radians) in the parent frame."""
    xyz: Vec3 = ZERO_VEC3
    rpy: Vec3 = ZERO_VEC3


@struct.dataclass
class Geometry:
    """Tagged geometry descriptor.

    ``dimensions`` is read according to ``type``: box = full extents,
    cylinder = (radius, length, 0), sphere = (radius, 0, 0), mesh = per-axis
    scale. ``NONE`` means the link has no shape in this slot.
    """
    type: GeometryType = struct.field(pytree_node=False, default=GeometryType.NONE)
    dimensions: Vec3 = ZERO_VEC3
    origin: Origin = struct.field(default_factory=Origin)
    color: str = struct.field(pytree_node=False, default=DEFAULT_VISUAL_COLOR)
    mesh_path: str = struct.field(pytree_node=False, default="")

    @property
    def scale(self) -> Vec3:
        return self.dimensions if self.type is GeometryType.MESH else UNIT_SCALE

    @property
    def is_none(self) -> bool:
        return self.type is GeometryType.NONE


@struct.dataclass
class Inertial:
    """Mass properties. ``inertia`` is (ixx, ixy, ixz, iyy, iyz, izz)."""
    mass: float = 0.0
    inertia: Inertia = (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
    origin: Optional[Origin] = None


@struct.dataclass
class Link:
    """A rigid body node of the kinematic tree."""
    id: str = struct.field(pytree_node=False)
    name: str = struct.field(pytree_node=False)
    visual: Geometry = struct.field(default_factory=Geometry)
    collision: Geometry = struct.field(
        default_factory=lambda: Geometry(color=DEFAULT_COLLISION_COLOR))
    inertial: Inertial = struct.field(default_factory=Inertial)
    visible: bool = struct.field(pytree_node=False, default=True)


@struct.dataclass
class Limits:
    lower: float = -1.57
    upper: float = 1.57
    effort: float = 100.0
    velocity: float = 10.0


@struct.dataclass
class Dynamics:
    damping: float = 0.0
    friction: float = 0.0


@struct.dataclass
class Hardware:
    """Motor binding, only written by the extended URDF export."""
    motor_type: str = struct.field(pytree_node=False, default="None")
    motor_id: str = struct.field(pytree_node=False, default="")
    motor_direction: int = struct.field(pytree_node=False, default=1)
    armature: float = 0.0


@struct.dataclass
class Joint:
    """A directed parent -> child edge with its motion type and transform.

    Attributes:
        origin: Child frame relative to the parent link frame.
        axis: Motion axis exactly as authored (not normalized).
        limit: Required for every type, ignored by fixed/continuous joints.
    """
    id: str = struct.field(pytree_node=False)
    name: str = struct.field(pytree_node=False)
    type: JointType = struct.field(pytree_node=False)
    parent_link_id: str = struct.field(pytree_node=False)
    child_link_id: str = struct.field(pytree_node=False)
    origin: Origin = struct.field(default_factory=Origin)
    axis: Vec3 = DEFAULT_AXIS
    limit: Limits = struct.field(default_factory=Limits)
    dynamics: Dynamics = struct.field(default_factory=Dynamics)
    hardware: Hardware = struct.field(default_factory=Hardware)


@struct.dataclass
class Robot:
    """Immutable kinematic tree.

    Attributes:
        name: Robot/model name.
        links: Link id -> Link, in declaration order.
        joints: Joint id -> Joint, in declaration order.
        root_link_id: The unique link that is never a joint child.
    """
    name: str = struct.field(pytree_node=False)
    links: Dict[str, Link] = struct.field(default_factory=dict)
    joints: Dict[str, Joint] = struct.field(default_factory=dict)
    root_link_id: str = struct.field(pytree_node=False, default="")

    def replace_link(self, link: Link) -> "Robot":
        """Return a copy with ``link`` stored under its id."""
        links = dict(self.links)
        links[link.id] = link
        return self.replace(links=links)

    def replace_joint(self, joint: Joint) -> "Robot":
        """Return a copy with ``joint`` stored under its id."""
        joints = dict(self.joints)
        joints[joint.id] = joint
        return self.replace(joints=joints)

    def parent_joint(self, link_id: str) -> Optional[Joint]:
        """The first joint whose child is ``link_id``; ``None`` for the root."""
        for joint in self.joints.values():
            if joint.child_link_id == link_id:
                return joint
        return None

    def child_joints(self, link_id: str) -> Tuple[Joint, ...]:
        return tuple(j for j in self.joints.values() if j.parent_link_id == link_id)


def placeholder_visual() -> Geometry:
    """Default shape used when a format names a body but gives it no geometry."""
    return Geometry(type=GeometryType.CYLINDER, dimensions=(0.05, 0.5, 0.0))


def placeholder_link(link_id: str = "base_link") -> Link:
    return Link(id=link_id, name=link_id, visual=placeholder_visual())
