"""Tests for xacro expansion."""

from pathlib import Path

import numpy as np
import pytest

from robodesc.config import ParserConfig
from robodesc.core import GeometryType, JointType, RobotStructureWarning
from robodesc.io import decode_urdf, decode_xacro, expand_xacro, looks_like_xacro
from robodesc.io.xacro import evaluate, is_truthy

FIXTURES = Path(__file__).parent / "fixtures"
XACRO_NS = 'xmlns:xacro="http://www.ros.org/wiki/xacro"'


@pytest.fixture
def gripper_text():
    return (FIXTURES / "gripper.urdf.xacro").read_text()


def test_decode_gripper(gripper_text):
    gripper = decode_xacro(gripper_text)
    assert gripper.name == "gripper"
    assert list(gripper.links) == ["palm", "left_finger", "right_finger", "camera_mount"]
    assert gripper.root_link_id == "palm"

    palm = gripper.links["palm"]
    assert palm.visual.type is GeometryType.CYLINDER
    np.testing.assert_allclose(palm.visual.dimensions[:2], (0.04, 0.16))

    finger = gripper.links["left_finger"]
    assert finger.visual.type is GeometryType.BOX
    np.testing.assert_allclose(finger.visual.dimensions, (0.02, 0.02, 0.08))


def test_macro_parameters_and_blocks(gripper_text):
    gripper = decode_xacro(gripper_text)

    left = gripper.joints["left_finger_joint"]
    assert left.type is JointType.PRISMATIC
    assert (left.parent_link_id, left.child_link_id) == ("palm", "left_finger")
    assert left.axis == (0.0, 1.0, 0.0)
    np.testing.assert_allclose(left.origin.xyz, (0.0, 0.02, 0.08))
    np.testing.assert_allclose(left.limit.upper, 0.04)

    right = gripper.joints["right_finger_joint"]
    assert right.axis == (0.0, -1.0, 0.0)
    np.testing.assert_allclose(right.origin.rpy, (0.0, 0.0, np.pi))


def test_args_override_defaults(gripper_text):
    gripper = decode_xacro(gripper_text, args={"with_camera": "true", "robot_name": "g2"})
    assert gripper.name == "g2"
    assert "camera" in gripper.links
    assert "camera_mount" not in gripper.links
    assert gripper.joints["camera_joint"].type is JointType.FIXED


def test_expanded_text_is_plain_urdf(gripper_text):
    urdf = expand_xacro(gripper_text)
    assert "xacro" not in urdf
    assert "${" not in urdf
    assert decode_urdf(urdf) == decode_xacro(gripper_text)


@pytest.mark.parametrize("expression, scope, expected", [
    ("1 + 2", {}, "3"),
    ("finger / 4", {"finger": "0.08"}, "0.02"),
    ("-x", {"x": "1.5"}, "-1.5"),
    ("a > 1 and b", {"a": "2", "b": "true"}, "true"),
    ("1 if flag else 2", {"flag": "false"}, "2"),
    ("'left' + '_arm'", {}, "left_arm"),
    ("max(1, 3)", {}, "3"),
    ("name", {"name": "base"}, "base"),
])
def test_evaluate(expression, scope, expected):
    assert evaluate(expression, scope) == expected


@pytest.mark.parametrize("expression", [
    "__import__('os')",
    "undefined + 1",
    "1 / 0",
    "'a' * 3",
    "(-1) ** 0.5",
    "2 **",
    "x.real",
])
def test_evaluate_unresolved(expression):
    assert evaluate(expression, {"x": "1"}) is None


def test_evaluate_deep_expression():
    expression = "(" * 50 + "1" + ")" * 50 + " + 1" * 50
    assert evaluate(expression, {}, ParserConfig(max_depth=8)) is None


@pytest.mark.parametrize("value, expected", [
    ("", False),
    ("false", False),
    ("False", False),
    ("none", False),
    ("0", False),
    ("0.0", False),
    ("true", True),
    ("1", True),
    ("yes", True),
])
def test_is_truthy(value, expected):
    assert is_truthy(value) is expected


def test_unresolved_expression_kept():
    urdf = expand_xacro(f'<robot name="r" {XACRO_NS}><link name="${{missing}}"/></robot>')
    assert '<link name="${missing}"/>' in urdf


WHEEL = f"""<robot {XACRO_NS}>
  <xacro:macro name="wheel" params="side">
    <link name="${{side}}_wheel"/>
    <joint name="${{side}}_wheel_joint" type="continuous">
      <parent link="chassis"/>
      <child link="${{side}}_wheel"/>
    </joint>
  </xacro:macro>
</robot>"""

ROVER = f"""<robot name="rover" {XACRO_NS}>
  <xacro:include filename="$(find rover_description)/parts/wheel.xacro"/>
  <link name="chassis"/>
  <xacro:wheel side="left"/>
  <xacro:call macro="wheel" side="right"/>
</robot>"""


def test_include_from_mapping():
    rover = decode_xacro(ROVER, includes={"parts/wheel.xacro": WHEEL})
    assert list(rover.links) == ["chassis", "left_wheel", "right_wheel"]
    assert rover.joints["right_wheel_joint"].type is JointType.CONTINUOUS


def test_missing_include_skipped():
    rover = decode_xacro(ROVER)
    assert list(rover.links) == ["chassis"]


def test_recursive_macro_stops_at_max_depth():
    text = f"""<robot name="r" {XACRO_NS}>
      <xacro:macro name="nest"><link name="x"/><xacro:nest/></xacro:macro>
      <xacro:nest/>
    </robot>"""
    with pytest.warns(RobotStructureWarning, match="max_depth=8"):
        urdf = expand_xacro(text, config=ParserConfig(max_depth=8))
    assert 0 < urdf.count("<link") <= 8


def test_macro_calls_capped():
    calls = "".join(f'<xacro:leaf n="{name}"/>' for name in "abcde")
    text = (f'<robot name="r" {XACRO_NS}><xacro:macro name="leaf" params="n">'
            f'<link name="${{n}}"/></xacro:macro>{calls}</robot>')
    with pytest.warns(RobotStructureWarning, match="dropped 2 element"):
        urdf = expand_xacro(text, config=ParserConfig(max_expansions=3))
    assert urdf.count("<link") == 3


def test_not_xml():
    assert expand_xacro("plain text") is None
    assert decode_xacro("plain text") is None


@pytest.mark.parametrize("text, expected", [
    (f"<robot {XACRO_NS}/>", True),
    ("<robot><xacro:property name='a' value='1'/></robot>", True),
    (b"<robot xmlns:xacro='x'/>", True),
    ("<robot name='r'/>", False),
])
def test_looks_like_xacro(text, expected):
    assert looks_like_xacro(text) is expected
