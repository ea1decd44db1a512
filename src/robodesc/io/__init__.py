"""Decoders and encoders for robot description formats.

URDF and MJCF are read and written; ASCII USD and xacro are read only.
Every decoder is a pure function of its input text returning a Robot, or
``None`` when the text does not contain the format's required root
structure.
"""

from .mjcf_parser import decode_mjcf
from .mjcf_writer import encode_mjcf
from .sniffer import RobotFormat, decode_robot, load_robot, sniff_format
from .urdf_parser import decode_urdf
from .urdf_writer import encode_urdf
from .usda_parser import decode_usda, looks_like_usda
from .xacro import decode_xacro, expand_xacro, looks_like_xacro

__all__ = [
    "RobotFormat",
    "decode_mjcf",
    "decode_robot",
    "decode_urdf",
    "decode_usda",
    "decode_xacro",
    "encode_mjcf",
    "encode_urdf",
    "expand_xacro",
    "load_robot",
    "looks_like_usda",
    "looks_like_xacro",
    "sniff_format",
]
