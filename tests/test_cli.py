"""Tests for the robodesc command line."""

from pathlib import Path

import pytest

from robodesc.cli import main
from robodesc.io import decode_mjcf, decode_urdf

FIXTURES = Path(__file__).parent / "fixtures"


def test_inspect_prints_tree(capsys):
    assert main(["inspect", str(FIXTURES / "two_link_arm.urdf")]) == 0
    out = capsys.readouterr().out
    assert "name: two_link_arm" in out
    assert "format: urdf" in out
    assert "root: base_link" in out
    assert "  (revolute) shoulder" in out
    assert "    upper_arm [cylinder]" in out


@pytest.mark.parametrize("fixture", ["two_link_arm.urdf", "pendulum.xml", "rover.usda",
                                     "gripper.urdf.xacro"])
def test_convert_fixture_to_urdf(fixture, tmp_path):
    out_path = tmp_path / "out.urdf"
    assert main(["convert", str(FIXTURES / fixture), "-o", str(out_path)]) == 0

    robot = decode_urdf(out_path.read_text())
    assert robot is not None
    assert len(robot.links) > 0


def test_convert_to_mjcf_stdout(capsys):
    assert main(["convert", str(FIXTURES / "two_link_arm.urdf"), "--to", "mjcf"]) == 0
    robot = decode_mjcf(capsys.readouterr().out)
    assert robot.name == "two_link_arm"


def test_convert_extended(capsys):
    assert main(["convert", str(FIXTURES / "two_link_arm.urdf"), "--extended"]) == 0
    assert "<motorType>servo</motorType>" in capsys.readouterr().out


def test_unrecognized_input_exits_1(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("nothing to see")
    assert main(["inspect", str(path)]) == 1
    assert main(["convert", str(path)]) == 1


def test_missing_file_exits_1(tmp_path):
    assert main(["inspect", str(tmp_path / "missing.urdf")]) == 1


def test_bad_target_rejected_by_argparse():
    with pytest.raises(SystemExit):
        main(["convert", "x.urdf", "--to", "sdf"])
