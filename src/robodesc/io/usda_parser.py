"""USDA parser: prim-tree builder and structural mapping to the canonical model.

Only the prim hierarchy is translated. Every geometric or transform prim
becomes a link connected to its parent prim's link by a ``fixed`` joint;
physics joint prims (``PhysicsRevoluteJoint`` and friends) are recognized but
not translated, and nothing below them is visited. Composition arcs
(references, payloads, variants) are not resolved: a referenced asset path is
only recorded as the mesh path of a ``Mesh`` prim.
"""

import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from robodesc.config import DEFAULT_CONFIG, ParserConfig
from robodesc.core.robot_model import (
    DEFAULT_COLLISION_COLOR,
    DEFAULT_VISUAL_COLOR,
    ZERO_VEC3,
    Geometry,
    GeometryType,
    Inertial,
    Joint,
    JointType,
    Link,
    Origin,
    Robot,
    Vec3,
    placeholder_link,
)
from robodesc.core.topology import RobotStructureWarning, report_inconsistencies
from robodesc.io.usda_lexer import parse_value, tokenize
from robodesc.io.values import rgba_to_hex
from robodesc.transforms.frames import degrees_to_radians, quaternion_to_rpy

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "usd_model"

_SPECIFIERS = ("def", "over", "class")
_PUNCTUATION_TOKENS = ("{", "}", "=")
_DEFAULT_PRIM = re.compile(r"defaultPrim\s*=\s*[\"']([^\"']*)[\"']")
_USDA_PROBE = re.compile(r"^def\s+\w+")

# Checked in order, by substring of the prim type name.
_PRIM_FAMILIES = ("Joint", "Xform", "Scope", "Mesh", "Cube", "Sphere", "Cylinder", "Capsule")


@dataclass
class Prim:
    """One ``def``/``over``/``class`` block of a USDA layer."""
    name: str
    type_name: str
    path: str
    specifier: str = "def"
    has_body: bool = False
    properties: Dict[str, Any] = field(default_factory=dict)
    children: List["Prim"] = field(default_factory=list)


def _is_quoted(token: str) -> bool:
    return len(token) >= 2 and token[0] in "\"'" and token[-1] == token[0]


class _PrimTreeBuilder:
    """Recursive descent over a token list."""

    def __init__(self, tokens: Sequence[str], config: ParserConfig):
        self.tokens = tokens
        self.pos = 0
        self.config = config
        self.dropped = 0

    def _peek(self, offset: int = 0) -> Optional[str]:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def _skip_block(self) -> None:
        """Consume up to and including the ``}`` closing an already opened block."""
        depth = 1
        while self.pos < len(self.tokens) and depth:
            token = self.tokens[self.pos]
            if token == "{":
                depth += 1
            elif token == "}":
                depth -= 1
            self.pos += 1

    def parse_items(self, parent_path: str, depth: int,
                    properties: Optional[Dict[str, Any]]) -> List[Prim]:
        """Parse prims and properties until the enclosing ``}`` or end of input."""
        prims = []
        while self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            if token == "}":
                self.pos += 1
                break
            if token in _SPECIFIERS:
                prim = self._parse_prim(parent_path, depth)
                if prim is not None:
                    prims.append(prim)
            elif token == "{":
                self.pos += 1
                self._skip_block()
            elif self._peek(1) == "=" and token not in _PUNCTUATION_TOKENS:
                self.pos += 2
                value = self._peek()
                if value == "{":
                    # dictionary-valued metadata such as customData
                    self.pos += 1
                    self._skip_block()
                elif value is not None and value != "}":
                    if properties is not None:
                        properties[token] = parse_value(value, self.config.max_depth)
                    self.pos += 1
            else:
                self.pos += 1
        return prims

    def _parse_prim(self, parent_path: str, depth: int) -> Optional[Prim]:
        specifier = self.tokens[self.pos]
        self.pos += 1

        type_name = ""
        token = self._peek()
        if token is not None and not _is_quoted(token) and token not in _PUNCTUATION_TOKENS:
            type_name = token
            self.pos += 1

        name = "prim"
        token = self._peek()
        if token is not None and _is_quoted(token):
            name = token[1:-1]
            self.pos += 1

        # prim metadata ( ... ) sits between the name and the body
        while self._peek() is not None and self._peek() != "{":
            if self._peek() in _SPECIFIERS or self._peek() == "}":
                break
            self.pos += 1

        path = f"{parent_path}/{name}"
        prim = Prim(name=name, type_name=type_name, path=path, specifier=specifier)

        if self._peek() == "{":
            self.pos += 1
            prim.has_body = True
            if depth > self.config.max_depth:
                logger.warning("Prim %s nests deeper than max_depth=%d; dropped",
                               path, self.config.max_depth)
                self.dropped += 1
                self._skip_block()
                return None
            prim.children = self.parse_items(path, depth + 1, prim.properties)

        if specifier == "class":
            logger.debug("Discarding class prim %s", path)
            return None
        return prim


def build_prim_tree(tokens: Sequence[str], config: ParserConfig = DEFAULT_CONFIG) -> List[Prim]:
    """Build the top-level prims (with their subtrees) from a token list.

    ``class`` blocks are consumed and discarded wherever they appear.
    Prims nested deeper than ``config.max_depth`` are dropped together with
    their subtree and reported as a :class:`RobotStructureWarning`.
    """
    builder = _PrimTreeBuilder(tokens, config)
    prims = []
    while builder.pos < len(tokens):
        # stray closing braces at the top level are skipped
        prims.extend(builder.parse_items("", 1, None))

    if builder.dropped:
        warnings.warn(f"USDA prim nesting exceeds max_depth={config.max_depth}; "
                      f"dropped {builder.dropped} prim(s)", RobotStructureWarning, stacklevel=2)
    return prims


def read_default_prim(tokens: Sequence[str]) -> Optional[str]:
    """``defaultPrim`` from the layer metadata block that opens the file."""
    if not tokens or not tokens[0].startswith("("):
        return None
    match = _DEFAULT_PRIM.search(tokens[0])
    return match.group(1) if match and match.group(1) else None


def looks_like_usda(text) -> bool:
    """Cheap content probe: ``#usda`` header, a leading ``def``, or a ``defaultPrim``."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    stripped = text.strip()
    return (stripped.startswith("#usda") or _USDA_PROBE.match(stripped) is not None
            or "defaultPrim" in text)


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _numbers(value: Any, size: int) -> Optional[List[float]]:
    """First ``size`` entries of a numeric list, None when not available."""
    if not isinstance(value, list) or len(value) < size:
        return None
    numbers = [v for v in value[:size] if isinstance(v, float)]
    return numbers if len(numbers) == size else None


def _family(type_name: str) -> Optional[str]:
    for family in _PRIM_FAMILIES:
        if family in type_name:
            return family
    return None


def _mesh_path(properties: Dict[str, Any]) -> str:
    reference = properties.get("references", properties.get("payload"))
    while isinstance(reference, list) and reference:
        reference = reference[0]
    return reference if isinstance(reference, str) else ""


def _geometry(prim: Prim, family: str) -> Geometry:
    props = prim.properties
    if family == "Cube":
        size = _number(props.get("size"), 1.0)
        geometry = Geometry(type=GeometryType.BOX, dimensions=(size, size, size))
    elif family == "Sphere":
        geometry = Geometry(type=GeometryType.SPHERE,
                            dimensions=(_number(props.get("radius"), 0.5), 0.0, 0.0))
    elif family in ("Cylinder", "Capsule"):
        geometry = Geometry(type=GeometryType.CYLINDER,
                            dimensions=(_number(props.get("radius"), 0.5),
                                        _number(props.get("height"), 1.0), 0.0))
    elif family == "Mesh":
        geometry = Geometry(type=GeometryType.MESH, dimensions=(1.0, 1.0, 1.0),
                            mesh_path=_mesh_path(props))
    else:
        geometry = Geometry()

    color = props.get("primvars:displayColor")
    if isinstance(color, list) and color and isinstance(color[0], list):
        color = color[0]
    rgb = _numbers(color, 3)
    return geometry.replace(color=rgba_to_hex(rgb) if rgb else DEFAULT_VISUAL_COLOR)


# Rotation strategies, tried in order; each returns rpy or None.

def _rotate_xyz(properties: Dict[str, Any]) -> Optional[Vec3]:
    degrees = _numbers(properties.get("xformOp:rotateXYZ"), 3)
    return degrees_to_radians(degrees) if degrees else None


def _orient(properties: Dict[str, Any]) -> Optional[Vec3]:
    quat = _numbers(properties.get("xformOp:orient"), 4)
    return quaternion_to_rpy(quat) if quat else None


_ROTATION_STRATEGIES: Sequence[Callable[[Dict[str, Any]], Optional[Vec3]]] = (
    _rotate_xyz,
    _orient,
)


def _transform(properties: Dict[str, Any]) -> Origin:
    translate = _numbers(properties.get("xformOp:translate"), 3)
    rpy = ZERO_VEC3
    for strategy in _ROTATION_STRATEGIES:
        found = strategy(properties)
        if found is not None:
            rpy = found
            break
    return Origin(xyz=tuple(translate) if translate else ZERO_VEC3, rpy=rpy)


@dataclass
class _Mapping:
    """Links and joints produced while walking the prim tree."""
    links: Dict[str, Link] = field(default_factory=dict)
    joints: Dict[str, Joint] = field(default_factory=dict)
    root_link_id: str = ""

    def link_id(self, name: str) -> str:
        base = name or "link"
        link_id = base
        n = 0
        while link_id in self.links:
            n += 1
            link_id = f"{base}_{n}"
        return link_id

    def joint_id(self) -> str:
        n = len(self.joints)
        while f"joint_{n}" in self.joints:
            n += 1
        return f"joint_{n}"


def _map_prim(prim: Prim, parent_link_id: Optional[str], mapping: _Mapping) -> None:
    family = _family(prim.type_name)
    if family is None:
        for child in prim.children:
            _map_prim(child, parent_link_id, mapping)
        return
    if family == "Joint":
        logger.debug("Skipping physics joint prim %s (%s)", prim.path, prim.type_name)
        return

    link_id = mapping.link_id(prim.name)
    props = prim.properties
    mass = _number(props.get("physics:mass"), 0.0)
    mapping.links[link_id] = Link(
        id=link_id,
        name=prim.name,
        visual=_geometry(prim, family),
        collision=Geometry(color=DEFAULT_COLLISION_COLOR),
        inertial=Inertial(mass=mass),
    )

    # later top-level prims hang off the first link
    parent = parent_link_id or mapping.root_link_id or None
    if parent is None:
        mapping.root_link_id = link_id
    else:
        joint_id = mapping.joint_id()
        mapping.joints[joint_id] = Joint(id=joint_id, name=joint_id, type=JointType.FIXED,
                                         parent_link_id=parent, child_link_id=link_id,
                                         origin=_transform(props))

    for child in prim.children:
        _map_prim(child, link_id, mapping)


def _has_typed_block(prims: Sequence[Prim]) -> bool:
    stack = list(prims)
    while stack:
        prim = stack.pop()
        if prim.type_name and prim.has_body:
            return True
        stack.extend(prim.children)
    return False


def decode_usda(text, config: ParserConfig = DEFAULT_CONFIG) -> Optional[Robot]:
    """Decode an ASCII USD layer into a Robot.

    Returns:
        The decoded Robot, or ``None`` when the layer holds no typed prim
        with a ``{ }`` body.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    tokens = tokenize(text)
    prims = build_prim_tree(tokens, config)
    if not _has_typed_block(prims):
        logger.warning("No typed prim blocks found in USDA input")
        return None

    mapping = _Mapping()
    for prim in prims:
        _map_prim(prim, None, mapping)

    if not mapping.root_link_id:
        logger.info("USDA has no geometric prims; creating placeholder base_link")
        mapping.root_link_id = "base_link"
        mapping.links["base_link"] = placeholder_link()

    robot = Robot(name=read_default_prim(tokens) or DEFAULT_MODEL_NAME, links=mapping.links,
                  joints=mapping.joints, root_link_id=mapping.root_link_id)
    report_inconsistencies(robot, "usda")

    logger.debug("Parsed USDA '%s': %d links, %d joints",
                 robot.name, len(robot.links), len(robot.joints))
    return robot
