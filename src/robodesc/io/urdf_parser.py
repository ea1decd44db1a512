"""URDF parser for loading robot descriptions into the canonical model.

This module maps the rigid-body XML dialect (``<robot>``, ``<link>``,
``<joint>``, ``<material>``, ``<gazebo>``) onto :class:`Robot`. Decoding is
lenient: a missing attribute takes its documented default and only a missing
``<robot>`` element makes the whole decode return ``None``.
"""

import logging
import re
from typing import Dict, Optional

from lxml import etree

from robodesc.config import DEFAULT_CONFIG, ParserConfig
from robodesc.core.robot_model import (
    DEFAULT_AXIS,
    DEFAULT_COLLISION_COLOR,
    DEFAULT_VISUAL_COLOR,
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
    placeholder_visual,
)
from robodesc.core.topology import infer_root, report_inconsistencies
from robodesc.io.values import (
    GAZEBO_COLORS,
    parse_float,
    parse_floats,
    parse_scale,
    parse_vector,
    rgba_to_hex,
)
from robodesc.io.xml_utils import child_text, find_element, parse_document

logger = logging.getLogger(__name__)

DEFAULT_ROBOT_NAME = "imported_robot"
_PATH_SEPARATORS = re.compile(r"[/\\]")
_INERTIA_KEYS = ("ixx", "ixy", "ixz", "iyy", "iyz", "izz")


def decode_urdf(text, config: ParserConfig = DEFAULT_CONFIG) -> Optional[Robot]:
    """Decode URDF text into a Robot.

    Args:
        text: URDF document as ``str`` or ``bytes``.
        config: Decoder options (unused by this flat format, accepted for a
            uniform decoder signature).

    Returns:
        The decoded Robot, or ``None`` when no ``<robot>`` element exists.
    """
    robot_el = find_element(parse_document(text), "robot")
    if robot_el is None:
        logger.error("Invalid URDF: no <robot> element found")
        return None

    name = robot_el.get("name") or DEFAULT_ROBOT_NAME
    global_materials = _parse_global_materials(robot_el)
    gazebo_colors = _parse_gazebo_colors(robot_el)

    links: Dict[str, Link] = {}
    for link_el in robot_el.findall("link"):
        link = _parse_link(link_el, global_materials, gazebo_colors)
        if link is None:
            continue
        if link.id in links:
            logger.warning("Duplicate link '%s'; keeping the last definition", link.id)
        links[link.id] = link

    joints: Dict[str, Joint] = {}
    for joint_el in robot_el.findall("joint"):
        joint = _parse_joint(joint_el)
        if joint is None:
            continue
        missing = [l for l in (joint.parent_link_id, joint.child_link_id) if l not in links]
        if missing:
            logger.warning("Dropping joint '%s': unknown link(s) %s", joint.id, missing)
            continue
        if joint.id in joints:
            logger.warning("Duplicate joint '%s'; keeping the last definition", joint.id)
        joints[joint.id] = joint

    root_link_id, _ = infer_root(links, joints)
    robot = Robot(name=name, links=links, joints=joints, root_link_id=root_link_id)
    report_inconsistencies(robot, "urdf")

    logger.debug("Parsed URDF '%s': %d links, %d joints", name, len(links), len(joints))
    return robot


def _parse_origin(origin_el: Optional[etree._Element]) -> Origin:
    if origin_el is None:
        return Origin()
    return Origin(xyz=parse_vector(origin_el.get("xyz")),
                  rpy=parse_vector(origin_el.get("rpy")))


def _parse_color(material_el: Optional[etree._Element]) -> Optional[str]:
    """Inline ``<color rgba>`` of a material, None when absent or too short."""
    if material_el is None:
        return None
    color_el = material_el.find("color")
    if color_el is None:
        return None
    return rgba_to_hex(parse_floats(color_el.get("rgba")))


def _parse_global_materials(robot_el: etree._Element) -> Dict[str, str]:
    materials = {}
    for material_el in robot_el.findall("material"):
        name = material_el.get("name")
        color = _parse_color(material_el)
        if name and color:
            materials[name] = color
    return materials


def _parse_gazebo_colors(robot_el: etree._Element) -> Dict[str, str]:
    """Map link name -> color from ``<gazebo reference=...><material>`` blocks."""
    colors = {}
    for gazebo_el in robot_el.findall("gazebo"):
        reference = gazebo_el.get("reference")
        material_name = child_text(gazebo_el, "material")
        if reference and material_name in GAZEBO_COLORS:
            colors[reference] = GAZEBO_COLORS[material_name]
    return colors


def _parse_geometry(geometry_el: Optional[etree._Element]) -> Geometry:
    """Shape of a visual/collision block; unknown or missing shapes get the placeholder."""
    if geometry_el is None:
        return placeholder_visual()

    box = geometry_el.find("box")
    if box is not None:
        return Geometry(type=GeometryType.BOX, dimensions=parse_vector(box.get("size")))

    cylinder = geometry_el.find("cylinder")
    if cylinder is not None:
        return Geometry(type=GeometryType.CYLINDER, dimensions=(
            parse_float(cylinder.get("radius"), 0.1),
            parse_float(cylinder.get("length"), 0.5),
            0.0,
        ))

    sphere = geometry_el.find("sphere")
    if sphere is not None:
        return Geometry(type=GeometryType.SPHERE,
                        dimensions=(parse_float(sphere.get("radius"), 0.1), 0.0, 0.0))

    mesh = geometry_el.find("mesh")
    if mesh is not None:
        # package://robot/meshes/part.stl -> part.stl; assets are looked up by file name
        filename = _PATH_SEPARATORS.split(mesh.get("filename") or "")[-1]
        return Geometry(type=GeometryType.MESH, dimensions=parse_scale(mesh.get("scale")),
                        mesh_path=filename)

    return placeholder_visual()


def _parse_visual(link_el: etree._Element, link_name: str,
                  global_materials: Dict[str, str],
                  gazebo_colors: Dict[str, str]) -> Geometry:
    visual_el = link_el.find("visual")
    if visual_el is None:
        return Geometry()

    geometry = _parse_geometry(visual_el.find("geometry"))

    # inline color -> named global material -> gazebo material -> default
    material_el = visual_el.find("material")
    color = _parse_color(material_el)
    if color is None and material_el is not None:
        color = global_materials.get(material_el.get("name") or "")
    if color is None:
        color = gazebo_colors.get(link_name, DEFAULT_VISUAL_COLOR)

    return geometry.replace(origin=_parse_origin(visual_el.find("origin")), color=color)


def _parse_collision(link_el: etree._Element) -> Geometry:
    collision_el = link_el.find("collision")
    if collision_el is None:
        return Geometry(color=DEFAULT_COLLISION_COLOR)
    geometry = _parse_geometry(collision_el.find("geometry"))
    return geometry.replace(origin=_parse_origin(collision_el.find("origin")),
                            color=DEFAULT_COLLISION_COLOR)


def _parse_inertial(link_el: etree._Element) -> Inertial:
    inertial_el = link_el.find("inertial")
    if inertial_el is None:
        return Inertial()

    mass_el = inertial_el.find("mass")
    inertia_el = inertial_el.find("inertia")
    origin_el = inertial_el.find("origin")

    mass = parse_float(mass_el.get("value") if mass_el is not None else None, 0.0)
    inertia = tuple(
        parse_float(inertia_el.get(key) if inertia_el is not None else None, 0.0)
        for key in _INERTIA_KEYS
    )
    origin = _parse_origin(origin_el) if origin_el is not None else None
    return Inertial(mass=mass, inertia=inertia, origin=origin)


def _parse_link(link_el: etree._Element, global_materials: Dict[str, str],
                gazebo_colors: Dict[str, str]) -> Optional[Link]:
    link_name = link_el.get("name")
    if not link_name:
        logger.warning("Skipping <link> without a name")
        return None

    return Link(
        id=link_name,
        name=link_name,
        visual=_parse_visual(link_el, link_name, global_materials, gazebo_colors),
        collision=_parse_collision(link_el),
        inertial=_parse_inertial(link_el),
    )


def _parse_hardware(hardware_el: Optional[etree._Element]) -> Hardware:
    if hardware_el is None:
        return Hardware()
    direction = parse_float(child_text(hardware_el, "motorDirection"), 1.0)
    return Hardware(
        motor_type=child_text(hardware_el, "motorType") or "None",
        motor_id=child_text(hardware_el, "motorId") or "",
        motor_direction=-1 if direction < 0 else 1,
        armature=parse_float(child_text(hardware_el, "armature"), 0.0),
    )


def _parse_joint(joint_el: etree._Element) -> Optional[Joint]:
    joint_name = joint_el.get("name")
    if not joint_name:
        logger.warning("Skipping <joint> without a name")
        return None

    type_attr = joint_el.get("type")
    joint_type = JointType.from_name(type_attr)
    if joint_type is None:
        if type_attr:
            logger.info("Joint '%s' has unsupported type '%s'; using revolute",
                        joint_name, type_attr)
        joint_type = JointType.REVOLUTE

    parent_el = joint_el.find("parent")
    child_el = joint_el.find("child")
    axis_el = joint_el.find("axis")
    limit_el = joint_el.find("limit")
    dynamics_el = joint_el.find("dynamics")

    limit = Limits()
    if limit_el is not None:
        limit = Limits(
            lower=parse_float(limit_el.get("lower"), limit.lower),
            upper=parse_float(limit_el.get("upper"), limit.upper),
            effort=parse_float(limit_el.get("effort"), limit.effort),
            velocity=parse_float(limit_el.get("velocity"), limit.velocity),
        )

    dynamics = Dynamics()
    if dynamics_el is not None:
        dynamics = Dynamics(damping=parse_float(dynamics_el.get("damping"), 0.0),
                            friction=parse_float(dynamics_el.get("friction"), 0.0))

    return Joint(
        id=joint_name,
        name=joint_name,
        type=joint_type,
        parent_link_id=(parent_el.get("link") if parent_el is not None else None) or "",
        child_link_id=(child_el.get("link") if child_el is not None else None) or "",
        origin=_parse_origin(joint_el.find("origin")),
        axis=parse_vector(axis_el.get("xyz") if axis_el is not None else None,
                          default=DEFAULT_AXIS),
        limit=limit,
        dynamics=dynamics,
        hardware=_parse_hardware(joint_el.find("hardware")),
    )
