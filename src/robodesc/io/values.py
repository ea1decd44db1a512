"""Primitive value parsers shared by the format decoders and encoders.

Every parser here is total: missing or unparsable input resolves to a
documented default and never aborts the surrounding decode.
"""

import math
import re
from typing import List, Optional, Sequence, Tuple

from robodesc.core.robot_model import UNIT_SCALE, Vec3

GAZEBO_COLORS = {
    "Gazebo/Black": "#000000",
    "Gazebo/Blue": "#0000ff",
    "Gazebo/Green": "#00ff00",
    "Gazebo/Red": "#ff0000",
    "Gazebo/White": "#ffffff",
    "Gazebo/Yellow": "#ffff00",
    "Gazebo/Grey": "#808080",
    "Gazebo/DarkGrey": "#333333",
    "Gazebo/LightGrey": "#cccccc",
    "Gazebo/Orange": "#ffa500",
    "Gazebo/Purple": "#800080",
    "Gazebo/Turquoise": "#40e0d0",
    "Gazebo/Gold": "#ffd700",
    "Gazebo/Indigo": "#4b0082",
    "Gazebo/SkyBlue": "#87ceeb",
    "Gazebo/Wood": "#8b4513",
    "Gazebo/FlatBlack": "#000000",
}

FALLBACK_RGBA = (0.5, 0.5, 0.5, 1.0)

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")


def _to_float(token: str) -> Optional[float]:
    try:
        value = float(token)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def parse_float(text: Optional[str], default: float = 0.0) -> float:
    """Parse a single number, returning ``default`` when absent or invalid."""
    if text is None:
        return default
    value = _to_float(text.strip())
    return default if value is None else value


def parse_floats(text: Optional[str]) -> List[float]:
    """Parse every whitespace-separated token; invalid tokens become 0."""
    if not text:
        return []
    values = []
    for token in text.split():
        value = _to_float(token)
        values.append(0.0 if value is None else value)
    return values


def parse_vector(text: Optional[str], size: int = 3,
                 default: Optional[Sequence[float]] = None) -> Tuple[float, ...]:
    """Parse a fixed-arity vector.

    Args:
        text: Whitespace-delimited numbers, possibly None.
        size: Number of components to return.
        default: Returned when ``text`` is absent or blank; zeros otherwise.

    Returns:
        Exactly ``size`` floats. Missing or unparsable components are 0.
    """
    if text is None or not text.strip():
        return tuple(float(v) for v in default) if default is not None else (0.0,) * size
    values = parse_floats(text)[:size]
    return tuple(values) + (0.0,) * (size - len(values))


def parse_scale(text: Optional[str]) -> Vec3:
    """Decode a 1-, 3- or 4-component scale; one component scales uniformly."""
    if not text:
        return UNIT_SCALE
    values = [_to_float(token) for token in text.split()]
    if any(v is None for v in values):
        return UNIT_SCALE
    if len(values) == 1:
        return (values[0], values[0], values[0])
    if len(values) in (3, 4):
        return (values[0], values[1], values[2])
    return UNIT_SCALE


def _channel_to_byte(value: float) -> int:
    # tolerance keeps n/255 -> n exact through float noise
    return min(255, max(0, int(math.floor(value * 255 + 1e-6))))


def rgba_to_hex(values: Sequence[float]) -> Optional[str]:
    """Convert a [0, 1] RGB(A) tuple to ``#rrggbb`` by truncation; alpha is dropped."""
    if values is None or len(values) < 3:
        return None
    r, g, b = (_channel_to_byte(v) for v in values[:3])
    return f"#{r:02x}{g:02x}{b:02x}"


def hex_to_rgba(color: Optional[str]) -> Tuple[float, float, float, float]:
    """Inverse of :func:`rgba_to_hex` with alpha 1; malformed colors become grey."""
    match = _HEX_COLOR.match(color.strip()) if color else None
    if match is None:
        return FALLBACK_RGBA
    r, g, b = (int(group, 16) / 255 for group in match.groups())
    return (r, g, b, 1.0)


def format_number(value: float) -> str:
    """Shortest text that parses back to exactly ``value``."""
    value = float(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value)) if value != 0 else "0"
    return repr(value)


def format_vector(values: Sequence[float]) -> str:
    return " ".join(format_number(v) for v in values)
