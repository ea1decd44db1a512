"""Frame conversions between format conventions and the canonical model.

These wrap :mod:`robodesc.transforms.so3` for decoders that work with plain
tuples: every function takes sequences of floats and returns Python floats.
Degenerate input (zero quaternion, zero axis) yields the identity rotation.
"""

import math
from typing import Optional, Sequence

import jax.numpy as jnp
import numpy as np

from robodesc.core.robot_model import Inertia, Vec3, ZERO_VEC3
from robodesc.transforms import so3

_EPS = 1e-12


def _to_vec3(array) -> Vec3:
    values = np.asarray(array, dtype=np.float64).reshape(-1)
    return (float(values[0]), float(values[1]), float(values[2]))


def _unit(values: Sequence[float], size: int) -> Optional[np.ndarray]:
    vector = np.asarray(values, dtype=np.float64).reshape(-1)
    if vector.shape != (size,) or not np.all(np.isfinite(vector)):
        return None
    norm = np.linalg.norm(vector)
    if norm < _EPS:
        return None
    return vector / norm


def degrees_to_radians(values: Sequence[float]) -> Vec3:
    return tuple(math.radians(v) for v in values)


def quaternion_to_rpy(quat: Sequence[float]) -> Vec3:
    """(w, x, y, z) quaternion -> roll, pitch, yaw."""
    q = _unit(quat, 4)
    if q is None:
        return ZERO_VEC3
    return _to_vec3(so3.to_rpy(so3.from_quaternion(jnp.asarray(q))))


def axis_angle_to_rpy(axis: Sequence[float], angle: float) -> Vec3:
    """Rotation of ``angle`` radians about ``axis`` -> roll, pitch, yaw."""
    unit_axis = _unit(axis, 3)
    if unit_axis is None:
        return ZERO_VEC3
    return _to_vec3(so3.to_rpy(so3.exp(jnp.asarray(unit_axis * angle))))


def z_alignment_rpy(direction: Sequence[float]) -> Vec3:
    """Roll, pitch, yaw of the shortest rotation taking +z onto ``direction``."""
    d = _unit(direction, 3)
    if d is None:
        return ZERO_VEC3

    z_axis = np.array([0.0, 0.0, 1.0])
    cross = np.cross(z_axis, d)
    sin_angle = np.linalg.norm(cross)
    cos_angle = float(np.dot(z_axis, d))
    if sin_angle < _EPS:
        return ZERO_VEC3 if cos_angle > 0 else (math.pi, 0.0, 0.0)

    log_r = cross / sin_angle * math.atan2(sin_angle, cos_angle)
    return _to_vec3(so3.to_rpy(so3.exp(jnp.asarray(log_r))))


def rotate_diagonal_inertia(diagonal: Sequence[float],
                            quat: Optional[Sequence[float]] = None) -> Inertia:
    """Express a principal-axes inertia in the body frame.

    Args:
        diagonal: Principal moments (I1, I2, I3).
        quat: Orientation of the principal axes as (w, x, y, z), or None for
            axes aligned with the body frame.

    Returns:
        (ixx, ixy, ixz, iyy, iyz, izz) of R @ diag(I) @ R^T.
    """
    d = jnp.diag(jnp.asarray(np.asarray(diagonal, dtype=np.float64)[:3]))
    q = _unit(quat, 4) if quat is not None else None
    R = so3.from_quaternion(jnp.asarray(q)) if q is not None else jnp.eye(3)

    tensor = np.asarray(so3.multiply(so3.multiply(R, d), R.T))
    return (float(tensor[0, 0]), float(tensor[0, 1]), float(tensor[0, 2]),
            float(tensor[1, 1]), float(tensor[1, 2]), float(tensor[2, 2]))
