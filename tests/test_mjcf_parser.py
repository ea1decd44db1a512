"""Tests for MJCF decoding."""

import math
from pathlib import Path

import numpy as np
import pytest

from robodesc.config import ParserConfig
from robodesc.core import GeometryType, JointType, RobotStructureWarning
from robodesc.core.robot_model import DEFAULT_COLLISION_COLOR, DEFAULT_VISUAL_COLOR
from robodesc.core.topology import find_inconsistencies
from robodesc.io import decode_mjcf

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def pendulum():
    return decode_mjcf((FIXTURES / "pendulum.xml").read_text())


def _mjcf(body_xml, extra=""):
    return f"<mujoco model='m'>{extra}<worldbody>{body_xml}</worldbody></mujoco>"


def test_load_pendulum(pendulum):
    assert pendulum.name == "double_pendulum"
    assert list(pendulum.links) == ["mount", "arm", "body_0", "marker"]
    assert pendulum.root_link_id == "mount"
    assert find_inconsistencies(pendulum) == []


def test_material_and_box_halves(pendulum):
    mount = pendulum.links["mount"]
    assert mount.visual.type is GeometryType.BOX
    np.testing.assert_allclose(mount.visual.dimensions, (0.2, 0.2, 0.1))
    assert mount.visual.color == "#999999"
    assert mount.collision.type is GeometryType.BOX
    assert mount.collision.color == DEFAULT_COLLISION_COLOR
    assert mount.inertial.mass == 5.0
    np.testing.assert_allclose(mount.inertial.inertia, (0.1, 0.0, 0.0, 0.1, 0.0, 0.1))


def test_degree_angles_and_first_joint_only(pendulum):
    joint = pendulum.parent_joint("arm")
    assert joint.id == "hinge_1"
    assert joint.type is JointType.REVOLUTE
    assert joint.parent_link_id == "mount"
    assert joint.axis == (0.0, 1.0, 0.0)
    np.testing.assert_allclose(joint.origin.xyz, (0.0, 0.0, -0.05))
    np.testing.assert_allclose(joint.origin.rpy, (0.0, 0.0, math.pi / 2), atol=1e-12)
    np.testing.assert_allclose((joint.limit.lower, joint.limit.upper), (-math.pi / 2, math.pi / 2))
    assert (joint.limit.effort, joint.limit.velocity) == (100.0, 1.0)
    assert joint.dynamics.damping == 0.2
    assert "ignored_hinge" not in pendulum.joints


def test_capsule_fromto(pendulum):
    visual = pendulum.links["arm"].visual
    assert visual.type is GeometryType.CYLINDER
    np.testing.assert_allclose(visual.dimensions, (0.02, 1.0, 0.0))
    np.testing.assert_allclose(visual.origin.xyz, (0.0, 0.0, -0.5))
    assert abs(abs(visual.origin.rpy[0]) - math.pi) < 1e-9
    assert visual.color == "#ff0000"


def test_nameless_body_mesh_and_slide(pendulum):
    bob = pendulum.links["body_0"]
    assert bob.visual.type is GeometryType.MESH
    assert bob.visual.mesh_path == "assets/bob.stl"
    assert bob.visual.scale == (0.01, 0.01, 0.01)
    assert bob.visual.color == DEFAULT_VISUAL_COLOR
    # contype=0 conaffinity=0 marks a visual-only geom
    assert bob.collision.is_none

    joint = pendulum.parent_joint("body_0")
    assert joint.id == "joint_0"
    assert joint.type is JointType.PRISMATIC
    assert joint.axis == (0.0, 0.0, 1.0)
    assert joint.limit.lower == -1.57


def test_second_top_level_body_attaches_to_root(pendulum):
    joint = pendulum.parent_joint("marker")
    assert joint.type is JointType.FIXED
    assert joint.parent_link_id == "mount"
    np.testing.assert_allclose(joint.origin.xyz, (1.0, 0.0, 0.0))
    np.testing.assert_allclose(joint.origin.rpy, (0.0, 0.0, math.pi / 2), atol=1e-9)


@pytest.mark.parametrize("geom, expected_type, expected_dims", [
    ("<geom type='box' size='0.1 0.2 0.3'/>", GeometryType.BOX, (0.2, 0.4, 0.6)),
    ("<geom type='box' size='0.5 0.5 0.5'/>", GeometryType.BOX, (1.0, 1.0, 1.0)),
    ("<geom type='box' size='0.3'/>", GeometryType.BOX, (0.6, 0.6, 0.6)),
    ("<geom type='box' size='0.1 0.2'/>", GeometryType.BOX, (0.2, 0.4, 0.2)),
    ("<geom type='sphere' size='0.25'/>", GeometryType.SPHERE, (0.25, 0.0, 0.0)),
    ("<geom size='0.25'/>", GeometryType.SPHERE, (0.25, 0.0, 0.0)),
    ("<geom type='cylinder' size='0.1 0.3'/>", GeometryType.CYLINDER, (0.1, 0.6, 0.0)),
    ("<geom type='capsule' size='0.1 0.3'/>", GeometryType.CYLINDER, (0.1, 0.6, 0.0)),
    ("<geom type='plane' size='2 3 0.1'/>", GeometryType.BOX, (4.0, 6.0, 0.2)),
    ("<geom type='ellipsoid' size='0.3 0.2 0.1'/>", GeometryType.SPHERE, (0.3, 0.0, 0.0)),
    ("<geom type='box'/>", GeometryType.BOX, (0.2, 0.2, 0.2)),
    ("<geom type='hfield' size='1 1 1'/>", GeometryType.BOX, (2.0, 2.0, 2.0)),
])
def test_geom_mapping(geom, expected_type, expected_dims):
    robot = decode_mjcf(_mjcf(f"<body name='b'>{geom}</body>"))
    visual = robot.links["b"].visual
    assert visual.type is expected_type
    np.testing.assert_allclose(visual.dimensions, expected_dims)


def test_euler_wins_over_quat():
    robot = decode_mjcf(_mjcf(
        "<body name='a'><body name='b' euler='0.1 0 0' quat='0 0 0 1'/></body>"))
    np.testing.assert_allclose(robot.parent_joint("b").origin.rpy, (0.1, 0.0, 0.0))


def test_axisangle_orientation():
    robot = decode_mjcf(_mjcf(
        "<body name='a'><body name='b' axisangle='0 0 1 0.5'/></body>"))
    np.testing.assert_allclose(robot.parent_joint("b").origin.rpy, (0.0, 0.0, 0.5), atol=1e-9)


def test_geom_without_size_or_orientation_defaults():
    robot = decode_mjcf(_mjcf("<body name='a'><body name='b'/></body>"))
    b = robot.links["b"]
    assert b.visual.type is GeometryType.CYLINDER
    assert b.visual.dimensions == (0.05, 0.5, 0.0)
    assert robot.parent_joint("b").type is JointType.FIXED
    assert robot.parent_joint("b").origin.rpy == (0.0, 0.0, 0.0)


def test_joint_attributes():
    robot = decode_mjcf(_mjcf(
        "<body name='a'><body name='b'>"
        "<joint name='j' type='ball' axis='1 0' range='-0.5 0.5' frictionloss='0.3'"
        " armature='0.02'/></body></body>"))
    joint = robot.joints["j"]
    assert joint.type is JointType.CONTINUOUS
    assert joint.axis == (1.0, 0.0, 1.0)
    assert (joint.limit.lower, joint.limit.upper) == (-0.5, 0.5)
    assert joint.dynamics.friction == 0.3
    assert joint.hardware.armature == 0.02


def test_freejoint_is_continuous():
    robot = decode_mjcf(_mjcf("<body name='a'><body name='b'><freejoint/></body></body>"))
    assert robot.parent_joint("b").type is JointType.CONTINUOUS


def test_fullinertia_and_rotated_diaginertia():
    robot = decode_mjcf(_mjcf(
        "<body name='a'><inertial pos='0 0 1' mass='2' fullinertia='1 2 3 0.1 0.2 0.3'/>"
        "<body name='b'><inertial mass='1' diaginertia='1 2 3' quat='0.7071067811865476 0 0"
        " 0.7071067811865476'/></body></body>"))
    a = robot.links["a"].inertial
    assert a.mass == 2.0
    assert a.origin.xyz == (0.0, 0.0, 1.0)
    assert a.inertia == (1.0, 0.1, 0.2, 2.0, 0.3, 3.0)
    np.testing.assert_allclose(robot.links["b"].inertial.inertia,
                               (2.0, 0.0, 0.0, 1.0, 0.0, 3.0), atol=1e-9)


def test_duplicate_names_made_unique():
    robot = decode_mjcf(_mjcf("<body name='a'><body name='a'/><body/><body/></body>"))
    assert list(robot.links) == ["a", "a_0", "body_0", "body_1"]
    assert len(robot.joints) == 3
    assert find_inconsistencies(robot) == []


def test_no_bodies_gives_placeholder():
    robot = decode_mjcf(_mjcf("<geom type='plane' size='1 1 1'/>"))
    assert list(robot.links) == ["base_link"]
    assert robot.root_link_id == "base_link"
    assert robot.joints == {}


def test_structural_failures():
    assert decode_mjcf("<robot name='r'/>") is None
    assert decode_mjcf("<mujoco model='m'/>") is None
    assert decode_mjcf("{not xml}") is None


def test_depth_cap_drops_subtrees():
    nested = "<body name='b0'><body name='b1'><body name='b2'><body name='b3'/>" \
             "</body></body></body>"
    with pytest.warns(RobotStructureWarning, match="max_depth=2"):
        robot = decode_mjcf(_mjcf(nested), ParserConfig(max_depth=2))
    assert list(robot.links) == ["b0", "b1"]
    assert find_inconsistencies(robot) == []


def test_deep_nesting_within_default_cap():
    depth = 100
    nested = "".join(f"<body name='b{i}'>" for i in range(depth)) + "</body>" * depth
    robot = decode_mjcf(_mjcf(nested))
    assert len(robot.links) == depth
    assert robot.root_link_id == "b0"
