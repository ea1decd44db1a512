"""Format detection and decoder dispatch."""

import enum
import logging
import os
import re
from typing import Optional, Union

from robodesc.config import DEFAULT_CONFIG, ParserConfig
from robodesc.core.robot_model import Robot
from robodesc.io.mjcf_parser import decode_mjcf
from robodesc.io.urdf_parser import decode_urdf
from robodesc.io.usda_parser import decode_usda, looks_like_usda
from robodesc.io.xacro import decode_xacro, looks_like_xacro

logger = logging.getLogger(__name__)

_MJCF_PROBE = re.compile(r"<mujoco[\s>/]")
_URDF_PROBE = re.compile(r"<robot[\s>/]")


class RobotFormat(str, enum.Enum):
    URDF = "urdf"
    MJCF = "mjcf"
    USD = "usd"
    XACRO = "xacro"


_EXTENSIONS = {
    ".urdf": RobotFormat.URDF,
    ".mjcf": RobotFormat.MJCF,
    ".usda": RobotFormat.USD,
    ".usd": RobotFormat.USD,
    ".xacro": RobotFormat.XACRO,
}

_DECODERS = {
    RobotFormat.URDF: decode_urdf,
    RobotFormat.MJCF: decode_mjcf,
    RobotFormat.USD: decode_usda,
    RobotFormat.XACRO: decode_xacro,
}


def _as_text(content: Union[str, bytes]) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return content


def sniff_format(content: Union[str, bytes], filename: Optional[str] = None) -> Optional[RobotFormat]:
    """Guess the description format of ``content``.

    The file extension decides when it is unambiguous. Otherwise (``.xml``,
    unknown or no name) the content is probed for ``<mujoco``, then xacro
    markers, then ``<robot``, then USDA markers; MJCF wins when both XML
    roots appear.

    Returns:
        The detected format, or ``None`` when nothing matches.
    """
    if filename:
        extension = os.path.splitext(filename)[1].lower()
        if extension == ".usdc":
            logger.warning("Binary USD is not supported: %s", filename)
            return None
        if extension in _EXTENSIONS:
            return _EXTENSIONS[extension]

    text = _as_text(content)
    if _MJCF_PROBE.search(text):
        return RobotFormat.MJCF
    if looks_like_xacro(text):
        return RobotFormat.XACRO
    if _URDF_PROBE.search(text):
        return RobotFormat.URDF
    if looks_like_usda(text):
        return RobotFormat.USD
    return None


def decode_robot(content: Union[str, bytes], filename: Optional[str] = None,
                 config: ParserConfig = DEFAULT_CONFIG) -> Optional[Robot]:
    """Detect the format of ``content`` and decode it; ``None`` when unrecognized."""
    robot_format = sniff_format(content, filename)
    if robot_format is None:
        logger.error("Unrecognized robot description%s", f" '{filename}'" if filename else "")
        return None
    logger.debug("Decoding %s as %s", filename or "<input>", robot_format.value)
    return _DECODERS[robot_format](content, config)


def load_robot(path: Union[str, os.PathLike],
               config: ParserConfig = DEFAULT_CONFIG) -> Optional[Robot]:
    """Read a UTF-8 robot description from disk and decode it.

    Raises:
        OSError: When the file cannot be read.
    """
    with open(path, encoding="utf-8") as f:
        content = f.read()
    return decode_robot(content, os.fspath(path), config)
