"""``robodesc`` command line: inspect and convert robot descriptions."""

import argparse
import logging
import sys
from typing import List, Optional

from robodesc.core.robot_model import Robot
from robodesc.io import encode_mjcf, encode_urdf, sniff_format
from robodesc.io.sniffer import decode_robot

logger = logging.getLogger(__name__)


def _tree_lines(robot: Robot, link_id: str, indent: int, seen: set) -> List[str]:
    seen.add(link_id)
    link = robot.links[link_id]
    lines = [f"{'  ' * indent}{link.name} [{link.visual.type.value}]"]
    for joint in robot.child_joints(link_id):
        child = joint.child_link_id
        if child in robot.links and child not in seen:
            lines.append(f"{'  ' * (indent + 1)}({joint.type.value}) {joint.name}")
            lines.extend(_tree_lines(robot, child, indent + 2, seen))
    return lines


def describe(robot: Robot, robot_format) -> str:
    lines = [
        f"name: {robot.name}",
        f"format: {robot_format.value if robot_format else 'unknown'}",
        f"root: {robot.root_link_id}",
        f"links: {len(robot.links)}  joints: {len(robot.joints)}",
    ]
    if robot.root_link_id in robot.links:
        lines.extend(_tree_lines(robot, robot.root_link_id, 0, set()))
    return "\n".join(lines)


def _read(path: str) -> Optional[str]:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        logger.error("Cannot read %s: %s", path, e)
        return None


def _inspect(args) -> int:
    content = _read(args.file)
    if content is None:
        return 1
    robot = decode_robot(content, args.file)
    if robot is None:
        return 1
    print(describe(robot, sniff_format(content, args.file)))
    return 0


def _convert(args) -> int:
    content = _read(args.file)
    if content is None:
        return 1
    robot = decode_robot(content, args.file)
    if robot is None:
        return 1

    if args.to == "urdf":
        output = encode_urdf(robot, extended=args.extended)
    elif args.to == "mjcf":
        output = encode_mjcf(robot)
    else:
        raise ValueError(f"Unknown target format: {args.to}")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.write(output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="robodesc",
                                     description="Inspect and convert robot descriptions.")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect", help="print the link tree of a file")
    inspect_parser.add_argument("file")
    inspect_parser.set_defaults(handler=_inspect)

    convert_parser = subparsers.add_parser("convert", help="convert a file to URDF or MJCF")
    convert_parser.add_argument("file")
    convert_parser.add_argument("-o", "--output", help="output path (default: stdout)")
    convert_parser.add_argument("--to", choices=("urdf", "mjcf"), default="urdf")
    convert_parser.add_argument("--extended", action="store_true",
                                help="write <hardware> blocks into URDF output")
    convert_parser.set_defaults(handler=_convert)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
