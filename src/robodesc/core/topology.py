"""Tree-structure queries and invariant checks on the canonical model."""

import logging
import warnings
from collections import deque
from typing import Iterable, List, Mapping, Optional, Tuple

from robodesc.core.robot_model import GeometryType, Joint, JointType, Link, Robot

logger = logging.getLogger(__name__)


class RobotStructureWarning(UserWarning):
    """A decoded or edited robot breaks a tree invariant but is still usable."""


def root_candidates(link_ids: Iterable[str], joints: Mapping[str, Joint]) -> List[str]:
    """Links (in declaration order) that are never a joint child."""
    child_links = {joint.child_link_id for joint in joints.values()}
    return [link_id for link_id in link_ids if link_id not in child_links]


def infer_root(link_ids: Iterable[str], joints: Mapping[str, Joint]) -> Tuple[str, bool]:
    """Pick the root link.

    Returns:
        ``(root_id, unique)``. When there is not exactly one candidate the
        first declared link is used and ``unique`` is False.
    """
    link_ids = list(link_ids)
    candidates = root_candidates(link_ids, joints)
    if len(candidates) == 1:
        return candidates[0], True
    if candidates:
        return candidates[0], False
    return (link_ids[0] if link_ids else ""), False


def breadth_first(robot: Robot) -> List[str]:
    """Link ids in breadth-first order from the root, each visited once."""
    children = {}
    for joint in robot.joints.values():
        children.setdefault(joint.parent_link_id, []).append(joint.child_link_id)

    ordered_links = []
    queue = deque([robot.root_link_id] if robot.root_link_id in robot.links else [])
    visited = set()

    while queue:
        current_link = queue.popleft()
        if current_link in visited:
            continue

        visited.add(current_link)
        ordered_links.append(current_link)

        for child in children.get(current_link, ()):
            if child not in visited and child in robot.links:
                queue.append(child)

    return ordered_links


def find_inconsistencies(robot: Robot) -> List[str]:
    """Describe every violated tree invariant; an empty list means a valid tree."""
    problems = []

    if not robot.links:
        problems.append("robot has no links")
        return problems

    for joint in robot.joints.values():
        for role, link_id in (("parent", joint.parent_link_id), ("child", joint.child_link_id)):
            if link_id not in robot.links:
                problems.append(f"joint '{joint.id}' references missing {role} link '{link_id}'")

    candidates = root_candidates(robot.links, robot.joints)
    if len(candidates) != 1:
        problems.append(f"expected exactly one root link, found {candidates}")
    elif candidates[0] != robot.root_link_id:
        problems.append(
            f"root link is '{robot.root_link_id}' but '{candidates[0]}' has no parent")

    parent_count = {}
    for joint in robot.joints.values():
        parent_count[joint.child_link_id] = parent_count.get(joint.child_link_id, 0) + 1
    for link_id, count in parent_count.items():
        if count > 1:
            problems.append(f"link '{link_id}' is the child of {count} joints")

    reached = set(breadth_first(robot))
    unreachable = [link_id for link_id in robot.links if link_id not in reached]
    if unreachable:
        problems.append(f"links not reachable from root: {unreachable}")

    return problems


def _visual_problem(link: Link) -> Optional[str]:
    visual = link.visual
    x, y, z = visual.dimensions
    if visual.type is GeometryType.BOX and min(x, y, z) <= 0:
        return f"link '{link.id}' has non-positive box size {visual.dimensions}"
    if visual.type is GeometryType.CYLINDER and min(x, y) <= 0:
        return f"link '{link.id}' has non-positive cylinder radius or length {(x, y)}"
    if visual.type is GeometryType.SPHERE and x <= 0:
        return f"link '{link.id}' has non-positive sphere radius {x}"
    return None


def _link_problems(link: Link) -> List[str]:
    problems = []
    if not link.id:
        problems.append("a link has an empty id")
    if not link.name:
        problems.append(f"link '{link.id}' has an empty name")
    if link.inertial.mass < 0:
        problems.append(f"link '{link.id}' has negative mass {link.inertial.mass}")
    visual = _visual_problem(link)
    if visual:
        problems.append(visual)
    # zero mass is reported only alongside another problem
    if problems and link.inertial.mass == 0:
        problems.append(f"link '{link.id}' has zero mass")
    return problems


def _joint_problems(joint: Joint) -> List[str]:
    problems = []
    if not joint.id:
        problems.append("a joint has an empty id")
    if not joint.name:
        problems.append(f"joint '{joint.id}' has an empty name")
    if joint.parent_link_id and joint.parent_link_id == joint.child_link_id:
        problems.append(f"joint '{joint.id}' connects link '{joint.child_link_id}' to itself")
    if joint.type is not JointType.FIXED and not any(joint.axis):
        problems.append(f"joint '{joint.id}' has a zero axis")
    if joint.type in (JointType.REVOLUTE, JointType.PRISMATIC):
        limit = joint.limit
        if limit.lower > limit.upper:
            problems.append(
                f"joint '{joint.id}' has lower limit {limit.lower} above upper {limit.upper}")
        if limit.effort < 0:
            problems.append(f"joint '{joint.id}' has negative effort limit {limit.effort}")
        if limit.velocity < 0:
            problems.append(f"joint '{joint.id}' has negative velocity limit {limit.velocity}")
    return problems


def find_field_problems(robot: Robot) -> List[str]:
    """Describe invalid field values: empty ids and names, negative mass,
    non-positive primitive sizes, zero axes and inverted or negative limits."""
    problems = [] if robot.name else ["robot has an empty name"]
    for link in robot.links.values():
        problems.extend(_link_problems(link))
    for joint in robot.joints.values():
        problems.extend(_joint_problems(joint))
    return problems


def report_inconsistencies(robot: Robot, source: str) -> List[str]:
    """Log and warn about invariant violations and invalid fields without failing.

    Args:
        robot: The model to check.
        source: Short label for the producer (e.g. ``"urdf"``) used in messages.

    Returns:
        The list of problems found, tree problems first.
    """
    problems = find_inconsistencies(robot) + find_field_problems(robot)
    for problem in problems:
        logger.warning("%s robot '%s': %s", source, robot.name, problem)
        warnings.warn(f"{source} robot '{robot.name}': {problem}", RobotStructureWarning,
                      stacklevel=3)
    return problems
