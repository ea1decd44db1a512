"""URDF writer: the inverse of :mod:`robodesc.io.urdf_parser`."""

import logging

from lxml import etree

from robodesc.core.robot_model import Geometry, GeometryType, Joint, Link, Origin, Robot
from robodesc.core.topology import report_inconsistencies
from robodesc.io.values import format_number, format_vector, hex_to_rgba
from robodesc.io.xml_utils import to_string

logger = logging.getLogger(__name__)


def encode_urdf(robot: Robot, extended: bool = False) -> str:
    """Serialize a Robot as URDF.

    Args:
        robot: Model to write.
        extended: Also write a ``<hardware>`` block (motor type, id,
            direction, armature) for every joint.

    Returns:
        Pretty-printed URDF text with an XML declaration.
    """
    report_inconsistencies(robot, "urdf export")

    robot_el = etree.Element("robot", name=robot.name)

    for link in robot.links.values():
        _write_link(robot_el, link, robot.name)

    for joint in robot.joints.values():
        parent = robot.links.get(joint.parent_link_id)
        child = robot.links.get(joint.child_link_id)
        if parent is None or child is None:
            logger.warning("Skipping joint '%s' with a missing link", joint.id)
            continue
        _write_joint(robot_el, joint, parent.name, child.name, extended)

    return to_string(robot_el)


def _write_origin(parent_el: etree._Element, origin: Origin) -> None:
    etree.SubElement(parent_el, "origin", xyz=format_vector(origin.xyz),
                     rpy=format_vector(origin.rpy))


def _write_geometry(parent_el: etree._Element, geometry: Geometry, robot_name: str) -> None:
    geometry_el = etree.SubElement(parent_el, "geometry")
    dims = geometry.dimensions
    if geometry.type is GeometryType.BOX:
        etree.SubElement(geometry_el, "box", size=format_vector(dims))
    elif geometry.type is GeometryType.CYLINDER:
        etree.SubElement(geometry_el, "cylinder", radius=format_number(dims[0]),
                         length=format_number(dims[1]))
    elif geometry.type is GeometryType.SPHERE:
        etree.SubElement(geometry_el, "sphere", radius=format_number(dims[0]))
    elif geometry.type is GeometryType.MESH:
        filename = f"package://{robot_name}/meshes/{geometry.mesh_path}"
        etree.SubElement(geometry_el, "mesh", filename=filename,
                         scale=format_vector(geometry.scale))
    else:
        raise ValueError(f"Cannot write geometry of type {geometry.type}")


def _write_link(robot_el: etree._Element, link: Link, robot_name: str) -> None:
    link_el = etree.SubElement(robot_el, "link", name=link.name)

    # NONE geometry means "no element", not an empty one
    if not link.visual.is_none:
        visual_el = etree.SubElement(link_el, "visual")
        _write_origin(visual_el, link.visual.origin)
        _write_geometry(visual_el, link.visual, robot_name)
        material_el = etree.SubElement(visual_el, "material", name=f"{link.id}_mat")
        etree.SubElement(material_el, "color", rgba=format_vector(hex_to_rgba(link.visual.color)))

    if not link.collision.is_none:
        collision_el = etree.SubElement(link_el, "collision")
        _write_origin(collision_el, link.collision.origin)
        _write_geometry(collision_el, link.collision, robot_name)

    inertial = link.inertial
    inertial_el = etree.SubElement(link_el, "inertial")
    if inertial.origin is not None:
        _write_origin(inertial_el, inertial.origin)
    etree.SubElement(inertial_el, "mass", value=format_number(inertial.mass))
    ixx, ixy, ixz, iyy, iyz, izz = inertial.inertia
    etree.SubElement(inertial_el, "inertia",
                     ixx=format_number(ixx), ixy=format_number(ixy), ixz=format_number(ixz),
                     iyy=format_number(iyy), iyz=format_number(iyz), izz=format_number(izz))


def _write_joint(robot_el: etree._Element, joint: Joint, parent_name: str,
                 child_name: str, extended: bool) -> None:
    joint_el = etree.SubElement(robot_el, "joint", name=joint.name, type=joint.type.value)
    etree.SubElement(joint_el, "parent", link=parent_name)
    etree.SubElement(joint_el, "child", link=child_name)
    _write_origin(joint_el, joint.origin)

    # axis and limit are written for every type so fixed joints round-trip too
    etree.SubElement(joint_el, "axis", xyz=format_vector(joint.axis))
    limit = joint.limit
    etree.SubElement(joint_el, "limit", lower=format_number(limit.lower),
                     upper=format_number(limit.upper), effort=format_number(limit.effort),
                     velocity=format_number(limit.velocity))

    dynamics = joint.dynamics
    if dynamics.damping != 0 or dynamics.friction != 0:
        etree.SubElement(joint_el, "dynamics", damping=format_number(dynamics.damping),
                         friction=format_number(dynamics.friction))

    if extended:
        hardware = joint.hardware
        hardware_el = etree.SubElement(joint_el, "hardware")
        etree.SubElement(hardware_el, "motorType").text = hardware.motor_type
        etree.SubElement(hardware_el, "motorId").text = hardware.motor_id
        etree.SubElement(hardware_el, "motorDirection").text = str(hardware.motor_direction)
        etree.SubElement(hardware_el, "armature").text = format_number(hardware.armature)
