"""MJCF parser for loading MuJoCo models into the canonical model.

The ``<worldbody>`` body tree is walked recursively. Each body becomes one
link, and the body's pose plus its first joint definition become the
synthetic joint to its parent body. The translation is deliberately lossy:

* only the first ``<geom>`` of a body is kept (as the visual, mirrored as the
  collision unless the geom is visual-only); further geoms are dropped;
* only the first ``<joint>``/``<freejoint>`` of a body is kept;
* ``ball`` and ``free`` joints become ``continuous`` (no 6-DOF joint exists in
  the canonical model);
* ``capsule`` becomes ``cylinder``, ``plane`` becomes ``box`` and
  ``ellipsoid`` becomes ``sphere``;
* ``<default>`` classes, ``<include>`` and geoms directly under
  ``<worldbody>`` are not interpreted.
"""

import logging
import math
import posixpath
import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np
from lxml import etree

from robodesc.config import DEFAULT_CONFIG, ParserConfig
from robodesc.core.robot_model import (
    DEFAULT_AXIS,
    DEFAULT_COLLISION_COLOR,
    DEFAULT_VISUAL_COLOR,
    UNIT_SCALE,
    ZERO_VEC3,
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
    Vec3,
    placeholder_link,
    placeholder_visual,
)
from robodesc.core.topology import RobotStructureWarning, report_inconsistencies
from robodesc.io.values import parse_float, parse_floats, parse_scale, parse_vector, rgba_to_hex
from robodesc.io.xml_utils import find_element, parse_document
from robodesc.transforms.frames import (
    axis_angle_to_rpy,
    degrees_to_radians,
    quaternion_to_rpy,
    rotate_diagonal_inertia,
    z_alignment_rpy,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "mjcf_robot"

_JOINT_TYPES = {
    "hinge": JointType.REVOLUTE,
    "slide": JointType.PRISMATIC,
    "ball": JointType.CONTINUOUS,
    "free": JointType.CONTINUOUS,
}

_GEOM_TYPES = {
    "box": GeometryType.BOX,
    "sphere": GeometryType.SPHERE,
    "cylinder": GeometryType.CYLINDER,
    "capsule": GeometryType.CYLINDER,
    "ellipsoid": GeometryType.SPHERE,
    "mesh": GeometryType.MESH,
    "plane": GeometryType.BOX,
}

_JOINT_TAGS = ("joint", "freejoint")


@dataclass(frozen=True)
class _Document:
    """Document-wide settings read before the body walk."""
    angle_in_degrees: bool
    meshes: Dict[str, Tuple[str, Vec3]]
    materials: Dict[str, str]
    config: ParserConfig


@dataclass
class _Accumulator:
    """Links and joints collected during one body-tree walk."""
    links: Dict[str, Link] = field(default_factory=dict)
    joints: Dict[str, Joint] = field(default_factory=dict)
    dropped_subtrees: int = 0

    def link_id(self, name: Optional[str]) -> str:
        return _unique(name, self.links, "body")

    def joint_id(self, name: Optional[str]) -> str:
        return _unique(name, self.joints, "joint")


def _unique(name: Optional[str], taken, prefix: str) -> str:
    if name and name not in taken:
        return name
    base = name or prefix
    n = 0
    while f"{base}_{n}" in taken:
        n += 1
    if name:
        logger.warning("Duplicate %s name '%s'; renamed to '%s_%d'", prefix, name, base, n)
    return f"{base}_{n}"


def decode_mjcf(text, config: ParserConfig = DEFAULT_CONFIG) -> Optional[Robot]:
    """Decode MuJoCo XML text into a Robot.

    Args:
        text: MJCF document as ``str`` or ``bytes``.
        config: Decoder options; ``max_depth`` caps body nesting.

    Returns:
        The decoded Robot, or ``None`` when ``<mujoco>`` or ``<worldbody>``
        is missing.
    """
    mujoco_el = find_element(parse_document(text), "mujoco")
    if mujoco_el is None:
        logger.error("Invalid MJCF: no <mujoco> element found")
        return None

    worldbody_el = mujoco_el.find("worldbody")
    if worldbody_el is None:
        logger.error("Invalid MJCF: no <worldbody> element found")
        return None

    doc = _read_document(mujoco_el, config)
    acc = _Accumulator()

    root_link_id = ""
    for body_el in worldbody_el.findall("body"):
        parent_id = root_link_id or None
        link_id = _walk_body(body_el, parent_id, 1, acc, doc)
        if not root_link_id:
            root_link_id = link_id

    if not root_link_id:
        logger.info("MJCF has no bodies; creating placeholder base_link")
        root_link_id = "base_link"
        acc.links[root_link_id] = placeholder_link(root_link_id)

    if acc.dropped_subtrees:
        warnings.warn(
            f"MJCF body nesting exceeds max_depth={config.max_depth}; "
            f"dropped {acc.dropped_subtrees} subtree(s)",
            RobotStructureWarning, stacklevel=2)

    robot = Robot(name=mujoco_el.get("model") or DEFAULT_MODEL_NAME, links=acc.links,
                  joints=acc.joints, root_link_id=root_link_id)
    report_inconsistencies(robot, "mjcf")

    logger.debug("Parsed MJCF '%s': %d links, %d joints",
                 robot.name, len(robot.links), len(robot.joints))
    return robot


def _read_document(mujoco_el: etree._Element, config: ParserConfig) -> _Document:
    compiler_el = mujoco_el.find("compiler")
    angle = compiler_el.get("angle", "radian") if compiler_el is not None else "radian"
    meshdir = compiler_el.get("meshdir", "") if compiler_el is not None else ""

    meshes = {}
    materials = {}
    for asset_el in mujoco_el.findall("asset"):
        for mesh_el in asset_el.findall("mesh"):
            file = mesh_el.get("file")
            if not file:
                continue
            name = mesh_el.get("name") or posixpath.splitext(posixpath.basename(file))[0]
            if meshdir and not file.startswith("/") and ":" not in file:
                file = posixpath.join(meshdir, file)
            meshes[name] = (file, parse_scale(mesh_el.get("scale")))

        for material_el in asset_el.findall("material"):
            color = rgba_to_hex(parse_floats(material_el.get("rgba")))
            if material_el.get("name") and color:
                materials[material_el.get("name")] = color

    return _Document(angle_in_degrees=angle.strip().lower() == "degree",
                     meshes=meshes, materials=materials, config=config)


# Orientation strategies, tried in order; each returns rpy or None.

def _euler_orientation(el: etree._Element, doc: _Document) -> Optional[Vec3]:
    if el.get("euler") is None:
        return None
    euler = parse_vector(el.get("euler"))
    return degrees_to_radians(euler) if doc.angle_in_degrees else euler


def _quat_orientation(el: etree._Element, doc: _Document) -> Optional[Vec3]:
    values = parse_floats(el.get("quat"))
    if len(values) < 4:
        return None
    return quaternion_to_rpy(values[:4])


def _axisangle_orientation(el: etree._Element, doc: _Document) -> Optional[Vec3]:
    values = parse_floats(el.get("axisangle"))
    if len(values) < 4:
        return None
    angle = math.radians(values[3]) if doc.angle_in_degrees else values[3]
    return axis_angle_to_rpy(values[:3], angle)


_ORIENTATION_STRATEGIES: Sequence[Callable[[etree._Element, _Document], Optional[Vec3]]] = (
    _euler_orientation,
    _quat_orientation,
    _axisangle_orientation,
)


def _orientation(el: etree._Element, doc: _Document) -> Vec3:
    for strategy in _ORIENTATION_STRATEGIES:
        rpy = strategy(el, doc)
        if rpy is not None:
            return rpy
    return ZERO_VEC3


def _size(values: Sequence[float], index: int, default: float = 0.1) -> float:
    # missing and zero components both fall back to the default
    return (values[index] if len(values) > index else 0.0) or default


def _parse_geom(geom_el: etree._Element, doc: _Document) -> Geometry:
    mesh_name = geom_el.get("mesh")
    mj_type = (geom_el.get("type") or ("mesh" if mesh_name else "sphere")).strip().lower()
    size = parse_floats(geom_el.get("size"))
    fromto = parse_floats(geom_el.get("fromto"))
    origin = Origin(xyz=parse_vector(geom_el.get("pos")), rpy=_orientation(geom_el, doc))
    mesh_path = ""

    if mesh_name:
        geom_type = GeometryType.MESH
        mesh_path, dimensions = doc.meshes.get(mesh_name, (mesh_name, UNIT_SCALE))
    else:
        geom_type = _GEOM_TYPES.get(mj_type, GeometryType.BOX)
        if mj_type in ("sphere", "ellipsoid"):
            dimensions = (_size(size, 0), 0.0, 0.0)
        elif mj_type in ("cylinder", "capsule"):
            if len(fromto) >= 6:
                start, end = np.asarray(fromto[:3]), np.asarray(fromto[3:6])
                length = float(np.linalg.norm(end - start))
                dimensions = (_size(size, 0), length, 0.0)
                origin = Origin(xyz=tuple(float(v) for v in (start + end) / 2),
                                rpy=z_alignment_rpy(end - start))
            else:
                dimensions = (_size(size, 0), _size(size, 1) * 2, 0.0)
        else:
            # box-style half extents, also used for planes and unknown types;
            # missing axes repeat the first one
            if size:
                size = size[:3] + [size[0]] * (3 - len(size[:3]))
            dimensions = (_size(size, 0) * 2, _size(size, 1) * 2, _size(size, 2) * 2)

    color = rgba_to_hex(parse_floats(geom_el.get("rgba")))
    if color is None:
        color = doc.materials.get(geom_el.get("material") or "", DEFAULT_VISUAL_COLOR)

    return Geometry(type=geom_type, dimensions=dimensions, origin=origin, color=color,
                    mesh_path=mesh_path)


def _is_visual_only(geom_el: etree._Element) -> bool:
    return (parse_float(geom_el.get("contype"), 1.0) == 0
            and parse_float(geom_el.get("conaffinity"), 1.0) == 0)


def _parse_inertial(body_el: etree._Element) -> Inertial:
    inertial_el = body_el.find("inertial")
    if inertial_el is None:
        return Inertial()

    full = parse_floats(inertial_el.get("fullinertia"))
    if len(full) >= 6:
        ixx, iyy, izz, ixy, ixz, iyz = full[:6]
        inertia = (ixx, ixy, ixz, iyy, iyz, izz)
    elif inertial_el.get("diaginertia") is not None:
        quat = parse_floats(inertial_el.get("quat"))
        inertia = rotate_diagonal_inertia(parse_vector(inertial_el.get("diaginertia")),
                                          quat[:4] if len(quat) >= 4 else None)
    else:
        inertia = Inertial().inertia

    return Inertial(mass=parse_float(inertial_el.get("mass"), 0.0), inertia=inertia,
                    origin=Origin(xyz=parse_vector(inertial_el.get("pos"))))


def _parse_axis(text: Optional[str]) -> Vec3:
    if text is None:
        return DEFAULT_AXIS
    values = parse_floats(text)
    return (values[0] if len(values) > 0 else 0.0,
            values[1] if len(values) > 1 else 0.0,
            values[2] if len(values) > 2 else 1.0)


def _make_joint(joint_el: Optional[etree._Element], body_el: etree._Element, joint_id: str,
                parent_id: str, child_id: str, doc: _Document) -> Joint:
    origin = Origin(xyz=parse_vector(body_el.get("pos")), rpy=_orientation(body_el, doc))
    if joint_el is None:
        return Joint(id=joint_id, name=joint_id, type=JointType.FIXED,
                     parent_link_id=parent_id, child_link_id=child_id, origin=origin)

    if joint_el.tag == "freejoint":
        mj_type = "free"
    else:
        mj_type = (joint_el.get("type") or "hinge").strip().lower()
    if mj_type not in _JOINT_TYPES:
        logger.info("Joint '%s' has unsupported type '%s'; using revolute", joint_id, mj_type)

    limit = Limits()
    if joint_el.get("range") is not None:
        values = parse_floats(joint_el.get("range"))
        lower = values[0] if len(values) > 0 else -math.pi
        upper = values[1] if len(values) > 1 else math.pi
        if doc.angle_in_degrees and mj_type in ("hinge", "ball"):
            lower, upper = math.radians(lower), math.radians(upper)
        limit = Limits(lower=lower, upper=upper, effort=100.0, velocity=1.0)

    return Joint(
        id=joint_id,
        name=joint_id,
        type=_JOINT_TYPES.get(mj_type, JointType.REVOLUTE),
        parent_link_id=parent_id,
        child_link_id=child_id,
        origin=origin,
        axis=_parse_axis(joint_el.get("axis")),
        limit=limit,
        dynamics=Dynamics(damping=parse_float(joint_el.get("damping"), 0.0),
                          friction=parse_float(joint_el.get("frictionloss"), 0.0)),
        hardware=Hardware(armature=parse_float(joint_el.get("armature"), 0.0)),
    )


def _walk_body(body_el: etree._Element, parent_id: Optional[str], depth: int,
               acc: _Accumulator, doc: _Document) -> str:
    """Add ``body_el`` (and, depth permitting, its subtree) to ``acc``; return its link id."""
    link_id = acc.link_id(body_el.get("name"))

    geoms = body_el.findall("geom")
    if geoms:
        visual = _parse_geom(geoms[0], doc)
        if _is_visual_only(geoms[0]):
            collision = Geometry(color=DEFAULT_COLLISION_COLOR)
        else:
            collision = visual.replace(color=DEFAULT_COLLISION_COLOR)
        if len(geoms) > 1:
            logger.debug("Body '%s': keeping first of %d geoms", link_id, len(geoms))
    else:
        visual = placeholder_visual()
        collision = Geometry(color=DEFAULT_COLLISION_COLOR)

    acc.links[link_id] = Link(id=link_id, name=body_el.get("name") or link_id, visual=visual,
                              collision=collision, inertial=_parse_inertial(body_el))

    if parent_id is not None:
        joint_els = [child for child in body_el if child.tag in _JOINT_TAGS]
        if len(joint_els) > 1:
            logger.debug("Body '%s': keeping first of %d joints", link_id, len(joint_els))
        joint_el = joint_els[0] if joint_els else None
        joint_id = acc.joint_id(joint_el.get("name") if joint_el is not None else None)
        acc.joints[joint_id] = _make_joint(joint_el, body_el, joint_id, parent_id, link_id, doc)

    children = body_el.findall("body")
    if children and depth >= doc.config.max_depth:
        logger.warning("Body '%s' at depth %d: dropping %d child bodies",
                       link_id, depth, len(children))
        acc.dropped_subtrees += len(children)
        return link_id

    for child_el in children:
        _walk_body(child_el, link_id, depth + 1, acc, doc)
    return link_id
