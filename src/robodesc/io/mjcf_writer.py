"""MJCF writer for exporting the canonical model to MuJoCo.

The export is lossy: geometry sizes are converted to MuJoCo half-extents,
continuous joints become unlimited hinges and hardware bindings other than
armature are not represented. Decoding the output again is not guaranteed to
reproduce the input model.
"""

import logging
import posixpath
from typing import Dict, List, Optional, Set

from lxml import etree

from robodesc.config import DEFAULT_CONFIG, ParserConfig
from robodesc.core.robot_model import Geometry, GeometryType, Joint, JointType, Link, Robot
from robodesc.core.topology import report_inconsistencies
from robodesc.io.values import format_number, format_vector, hex_to_rgba
from robodesc.io.xml_utils import to_string

logger = logging.getLogger(__name__)

_MJCF_JOINT_TYPES = {
    JointType.REVOLUTE: "hinge",
    JointType.CONTINUOUS: "hinge",
    JointType.PRISMATIC: "slide",
}

COLLISION_RGBA = (1.0, 0.0, 0.0, 0.5)
SERVO_GAIN = 50.0


def encode_mjcf(robot: Robot, config: ParserConfig = DEFAULT_CONFIG) -> str:
    """Serialize a Robot as MuJoCo XML.

    The body tree is written depth first from ``robot.root_link_id``; links
    not reachable from the root are skipped with a warning.
    """
    report_inconsistencies(robot, "mjcf export")

    mujoco_el = etree.Element("mujoco", model=robot.name)
    etree.SubElement(mujoco_el, "compiler", angle="radian")

    mesh_names = _write_assets(mujoco_el, robot)

    worldbody_el = etree.SubElement(mujoco_el, "worldbody")
    etree.SubElement(worldbody_el, "light", pos="0 0 10", dir="0 0 -1", diffuse="1 1 1")

    written_joints: List[Joint] = []
    visited: Set[str] = set()
    if robot.root_link_id in robot.links:
        _write_body(worldbody_el, robot, robot.root_link_id, None, 1, mesh_names,
                    written_joints, visited, config)

    skipped = [link_id for link_id in robot.links if link_id not in visited]
    if skipped:
        logger.warning("MJCF export of '%s' skips links not under the root: %s",
                       robot.name, skipped)

    actuator_el = etree.SubElement(mujoco_el, "actuator")
    for joint in written_joints:
        etree.SubElement(actuator_el, "position", name=f"{joint.name}_servo",
                         joint=joint.name, kp=format_number(SERVO_GAIN))

    return to_string(mujoco_el)


def _write_assets(mujoco_el: etree._Element, robot: Robot) -> Dict[str, str]:
    """Declare one mesh asset per distinct path; return path -> asset name."""
    mesh_names: Dict[str, str] = {}
    scales = {}
    for link in robot.links.values():
        for geometry in (link.visual, link.collision):
            if geometry.type is GeometryType.MESH and geometry.mesh_path:
                path = geometry.mesh_path
                if path in mesh_names:
                    continue
                stem = posixpath.splitext(posixpath.basename(path))[0] or "mesh"
                name = stem
                n = 0
                while name in mesh_names.values():
                    n += 1
                    name = f"{stem}_{n}"
                mesh_names[path] = name
                scales[path] = geometry.scale

    asset_el = etree.SubElement(mujoco_el, "asset")
    for path, name in mesh_names.items():
        etree.SubElement(asset_el, "mesh", name=name, file=path, scale=format_vector(scales[path]))
    return mesh_names


def _geom_attributes(geometry: Geometry, mesh_names: Dict[str, str]) -> Optional[Dict[str, str]]:
    dims = geometry.dimensions
    if geometry.type is GeometryType.BOX:
        return {"type": "box", "size": format_vector(d / 2 for d in dims)}
    if geometry.type is GeometryType.CYLINDER:
        return {"type": "cylinder", "size": format_vector((dims[0], dims[1] / 2))}
    if geometry.type is GeometryType.SPHERE:
        return {"type": "sphere", "size": format_number(dims[0])}
    if geometry.type is GeometryType.MESH and geometry.mesh_path in mesh_names:
        return {"type": "mesh", "mesh": mesh_names[geometry.mesh_path]}
    return None


def _write_geom(body_el: etree._Element, geometry: Geometry, name: str, rgba,
                mesh_names: Dict[str, str], visual: bool) -> None:
    attributes = _geom_attributes(geometry, mesh_names)
    if attributes is None:
        return

    geom_el = etree.SubElement(body_el, "geom", name=name)
    for key, value in attributes.items():
        geom_el.set(key, value)
    geom_el.set("pos", format_vector(geometry.origin.xyz))
    geom_el.set("euler", format_vector(geometry.origin.rpy))
    geom_el.set("rgba", format_vector(rgba))
    if visual:
        geom_el.set("group", "1")
        geom_el.set("contype", "0")
        geom_el.set("conaffinity", "0")
    else:
        geom_el.set("group", "0")


def _write_joint(body_el: etree._Element, joint: Joint) -> None:
    joint_el = etree.SubElement(body_el, "joint", name=joint.name,
                                type=_MJCF_JOINT_TYPES[joint.type],
                                axis=format_vector(joint.axis))
    if joint.type is not JointType.CONTINUOUS:
        joint_el.set("range", format_vector((joint.limit.lower, joint.limit.upper)))
    joint_el.set("damping", format_number(joint.dynamics.damping))
    joint_el.set("frictionloss", format_number(joint.dynamics.friction))
    if joint.hardware.armature:
        joint_el.set("armature", format_number(joint.hardware.armature))


def _write_inertial(body_el: etree._Element, link: Link) -> None:
    inertial = link.inertial
    ixx, _, _, iyy, _, izz = inertial.inertia
    pos = inertial.origin.xyz if inertial.origin is not None else (0.0, 0.0, 0.0)
    # off-diagonal terms are dropped
    etree.SubElement(body_el, "inertial", pos=format_vector(pos),
                     mass=format_number(inertial.mass),
                     diaginertia=format_vector((ixx, iyy, izz)))


def _write_body(parent_el: etree._Element, robot: Robot, link_id: str,
                parent_joint: Optional[Joint], depth: int, mesh_names: Dict[str, str],
                written_joints: List[Joint], visited: Set[str], config: ParserConfig) -> None:
    visited.add(link_id)
    link = robot.links[link_id]

    body_el = etree.SubElement(parent_el, "body", name=link.name)
    if parent_joint is not None:
        body_el.set("pos", format_vector(parent_joint.origin.xyz))
        body_el.set("euler", format_vector(parent_joint.origin.rpy))
        if parent_joint.type is not JointType.FIXED:
            _write_joint(body_el, parent_joint)
            written_joints.append(parent_joint)

    if link.inertial.mass > 0:
        _write_inertial(body_el, link)

    _write_geom(body_el, link.visual, f"{link.name}_visual", hex_to_rgba(link.visual.color),
                mesh_names, visual=True)
    _write_geom(body_el, link.collision, f"{link.name}_collision", COLLISION_RGBA,
                mesh_names, visual=False)

    child_joints = [j for j in robot.child_joints(link_id)
                    if j.child_link_id in robot.links and j.child_link_id not in visited]
    if child_joints and depth >= config.max_depth:
        logger.warning("MJCF export: body '%s' at depth %d, dropping %d children",
                       link.name, depth, len(child_joints))
        return

    for joint in child_joints:
        if joint.child_link_id in visited:
            continue
        _write_body(body_el, robot, joint.child_link_id, joint, depth + 1, mesh_names,
                    written_joints, visited, config)
