"""Tests for format detection and dispatch."""

from pathlib import Path

import pytest

from robodesc.io import (
    RobotFormat,
    decode_mjcf,
    decode_robot,
    decode_urdf,
    decode_usda,
    load_robot,
    sniff_format,
)

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.mark.parametrize("filename, expected", [
    ("arm.urdf", RobotFormat.URDF),
    ("ARM.URDF", RobotFormat.URDF),
    ("scene.mjcf", RobotFormat.MJCF),
    ("stage.usda", RobotFormat.USD),
    ("stage.usd", RobotFormat.USD),
    ("arm.urdf.xacro", RobotFormat.XACRO),
])
def test_extension_wins_over_content(filename, expected):
    assert sniff_format("<mujoco/>", filename) is expected


@pytest.mark.parametrize("content, expected", [
    ("<mujoco model='m'></mujoco>", RobotFormat.MJCF),
    ("<robot name='r'></robot>", RobotFormat.URDF),
    ("<robot/>", RobotFormat.URDF),
    ("<robot name='r' xmlns:xacro='http://www.ros.org/wiki/xacro'/>", RobotFormat.XACRO),
    ("<robot><xacro:macro name='m'/></robot>", RobotFormat.XACRO),
    ("#usda 1.0\n", RobotFormat.USD),
    ('def Xform "a" {}', RobotFormat.USD),
    ("<robotics/>", None),
    ("plain text", None),
])
def test_content_probes(content, expected):
    assert sniff_format(content) is expected
    assert sniff_format(content, "model.xml") is expected


def test_mujoco_root_wins_over_robot_root():
    content = "<mujoco model='m'><!-- converted from <robot name='r'> --></mujoco>"
    assert sniff_format(content, "model.xml") is RobotFormat.MJCF


def test_binary_usd_not_supported():
    assert sniff_format("PXR-USDC", "stage.usdc") is None


def test_bytes_content():
    assert sniff_format(b"<robot name='r'/>") is RobotFormat.URDF


@pytest.mark.parametrize("fixture, name", [
    ("two_link_arm.urdf", "two_link_arm"),
    ("pendulum.xml", "double_pendulum"),
    ("rover.usda", "Rover"),
    ("gripper.urdf.xacro", "gripper"),
])
def test_decode_robot_dispatches(fixture, name):
    path = FIXTURES / fixture
    robot = decode_robot(path.read_text(), fixture)
    assert robot.name == name
    assert load_robot(path) == robot
    assert load_robot(str(path)) == robot


def test_decode_robot_unrecognized():
    assert decode_robot("hello", "notes.txt") is None


def test_extension_hint_with_wrong_content():
    assert decode_robot("<mujoco/>", "arm.urdf") is None


@pytest.mark.parametrize("decoder", [decode_urdf, decode_mjcf, decode_usda])
def test_foreign_xml_decodes_to_none(decoder):
    assert decoder("<scene><item name='x'/></scene>") is None


def test_xacro_markers_win_over_robot_root():
    content = (FIXTURES / "gripper.urdf.xacro").read_text()
    assert sniff_format(content, "gripper.xml") is RobotFormat.XACRO
