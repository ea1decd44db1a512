"""SO(3) rotation operations in JAX.

Rotation matrices, axis-angle vectors, unit quaternions and the URDF
roll-pitch-yaw convention. All functions are pure and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to rotation matrix.

    Implements Rodrigues' formula. Used for MJCF ``axisangle`` orientations
    and for aligning cylinder axes with ``fromto`` segments.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)

    # Handle near-zero angles for numerical stability
    small_angle = angle < 1e-8

    cos_angle = jnp.where(small_angle, 1.0 - 0.5 * angle**2, jnp.cos(angle))
    sin_angle = jnp.where(small_angle, angle - angle**3 / 6.0, jnp.sin(angle))

    axis = jnp.where(angle > 1e-8, log_r / angle, log_r)
    K = skew_symmetric(axis)

    # Rodrigues formula: R = I + sin(θ) * K + (1 - cos(θ)) * K²
    I = jnp.eye(3, dtype=log_r.dtype)
    I = jnp.broadcast_to(I, log_r.shape[:-1] + (3, 3))

    R = (I +
         sin_angle[..., None] * K +
         (1.0 - cos_angle)[..., None] * jnp.matmul(K, K))

    return R


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def from_quaternion(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) array of quaternions in (w, x, y, z) format,
            the order used by both MJCF ``quat`` and USD ``xformOp:orient``

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    # Normalize quaternions for numerical stability
    quaternions = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)

    w, x, y, z = jnp.moveaxis(quaternions, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    matrix = jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)

    return matrix


def from_rpy(rpy: Array) -> Array:
    """
    Convert roll-pitch-yaw angles to rotation matrices.

    Args:
        rpy: (..., 3) array of [roll, pitch, yaw] angles in radians

    Returns:
        (..., 3, 3) rotation matrices, R = R_z(yaw) @ R_y(pitch) @ R_x(roll)
    """
    roll, pitch, yaw = jnp.moveaxis(rpy, -1, 0)
    cr, sr = jnp.cos(roll), jnp.sin(roll)
    cp, sp = jnp.cos(pitch), jnp.sin(pitch)
    cy, sy = jnp.cos(yaw), jnp.sin(yaw)

    return jnp.stack([
        jnp.stack([cy*cp, cy*sp*sr - sy*cr, cy*sp*cr + sy*sr], axis=-1),
        jnp.stack([sy*cp, sy*sp*sr + cy*cr, sy*sp*cr - cy*sr], axis=-1),
        jnp.stack([-sp, cp*sr, cp*cr], axis=-1)
    ], axis=-2)


def to_rpy(R: Array) -> Array:
    """
    Convert rotation matrices to roll-pitch-yaw angles.

    Inverse of :func:`from_rpy`. At gimbal lock (pitch = ±π/2) roll is set
    to zero and the whole rotation about z is reported as yaw.

    Args:
        R: (..., 3, 3) rotation matrices

    Returns:
        (..., 3) array of [roll, pitch, yaw]
    """
    pitch = jnp.arcsin(jnp.clip(-R[..., 2, 0], -1.0, 1.0))
    gimbal = jnp.abs(jnp.cos(pitch)) < 1e-9

    roll = jnp.where(gimbal, 0.0, jnp.arctan2(R[..., 2, 1], R[..., 2, 2]))
    yaw = jnp.where(
        gimbal,
        jnp.arctan2(-R[..., 0, 1], R[..., 1, 1]),
        jnp.arctan2(R[..., 1, 0], R[..., 0, 0]),
    )
    return jnp.stack([roll, pitch, yaw], axis=-1)


def multiply(R1: Array, R2: Array) -> Array:
    """
    Multiply two rotation matrices.

    Args:
        R1: (..., 3, 3) first rotation matrix
        R2: (..., 3, 3) second rotation matrix

    Returns:
        (..., 3, 3) result of R1 @ R2
    """
    return jnp.matmul(R1, R2)
