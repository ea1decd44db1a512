"""Tests for the transforms module."""

import math

import hypothesis
import jax
import jax.numpy as jnp
import numpy as np
from hypothesis import given, settings
from hypothesis import strategies as st

from robodesc.transforms import frames, so3

# Use hypothesis profile for CI
hypothesis.settings.register_profile("ci", max_examples=10, deadline=None)


# Basic tests
def test_quaternion_to_matrix_identity():
    """Test from_quaternion with identity quaternion."""
    identity_quat = jnp.array([1.0, 0.0, 0.0, 0.0])
    matrix = so3.from_quaternion(identity_quat)
    np.testing.assert_allclose(matrix, jnp.eye(3), rtol=1e-6, atol=1e-6)


def test_quaternion_to_matrix_jit():
    """Test from_quaternion with JIT."""
    jitted_func = jax.jit(so3.from_quaternion)
    quat = jnp.array([0.7071068, 0.0, 0.7071068, 0.0])  # 90° around Y
    matrix = jitted_func(quat)
    expected = jnp.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])
    np.testing.assert_allclose(matrix, expected, rtol=1e-6, atol=1e-6)


def test_so3_exp_identity():
    """Test SO(3) exp with zero vector gives identity."""
    R = so3.exp(jnp.zeros(3))
    np.testing.assert_allclose(R, jnp.eye(3), rtol=1e-6, atol=1e-6)


def test_so3_multiply():
    """Two 90° rotations about z compose to 180°."""
    R1 = so3.exp(jnp.array([0.0, 0.0, jnp.pi / 2]))
    R2 = so3.exp(jnp.array([0.0, 0.0, jnp.pi / 2]))

    R_combined = so3.multiply(R1, R2)
    expected = so3.exp(jnp.array([0.0, 0.0, jnp.pi]))

    np.testing.assert_allclose(R_combined, expected, rtol=1e-6, atol=1e-6)


def test_so3_skew_symmetric():
    """Test skew-symmetric matrix function."""
    v = jnp.array([1.0, 2.0, 3.0])
    K = so3.skew_symmetric(v)

    expected = jnp.array([[0.0, -3.0, 2.0], [3.0, 0.0, -1.0], [-2.0, 1.0, 0.0]])
    np.testing.assert_allclose(K, expected, rtol=1e-6, atol=1e-6)
    np.testing.assert_allclose(K, -K.T, rtol=1e-6, atol=1e-6)


def test_from_rpy_matches_exp_for_single_axes():
    for axis in range(3):
        rpy = jnp.zeros(3).at[axis].set(0.3)
        np.testing.assert_allclose(so3.from_rpy(rpy), so3.exp(rpy), rtol=1e-6, atol=1e-6)


def test_to_rpy_gimbal_lock():
    R = so3.from_rpy(jnp.array([0.0, jnp.pi / 2, 0.4]))
    rpy = so3.to_rpy(R)
    np.testing.assert_allclose(so3.from_rpy(rpy), R, rtol=1e-6, atol=1e-6)
    assert abs(float(rpy[0])) < 1e-9


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_rpy_roundtrip(seed):
    """Test rpy -> matrix -> rpy roundtrip away from gimbal lock."""
    key = jax.random.PRNGKey(seed)
    rpy = jax.random.uniform(key, (3,), minval=-1.4, maxval=1.4)

    rpy2 = so3.to_rpy(so3.from_rpy(rpy))

    np.testing.assert_allclose(rpy2, rpy, rtol=1e-6, atol=1e-6)


def test_so3_batch_operations():
    """Rotation helpers accept batched inputs."""
    batch_size = 5
    rpys = jax.random.uniform(jax.random.PRNGKey(42), (batch_size, 3), minval=-1.0, maxval=1.0)

    R_batch = so3.from_rpy(rpys)
    assert R_batch.shape == (batch_size, 3, 3)
    np.testing.assert_allclose(so3.to_rpy(R_batch), rpys, rtol=1e-5, atol=1e-5)


# Frame conversions
def test_quaternion_to_rpy_yaw():
    rpy = frames.quaternion_to_rpy([math.cos(math.pi / 4), 0.0, 0.0, math.sin(math.pi / 4)])
    np.testing.assert_allclose(rpy, (0.0, 0.0, math.pi / 2), atol=1e-9)
    assert all(isinstance(v, float) for v in rpy)


def test_quaternion_to_rpy_degenerate():
    assert frames.quaternion_to_rpy([0.0, 0.0, 0.0, 0.0]) == (0.0, 0.0, 0.0)


def test_axis_angle_to_rpy():
    rpy = frames.axis_angle_to_rpy([1.0, 0.0, 0.0], 0.5)
    np.testing.assert_allclose(rpy, (0.5, 0.0, 0.0), atol=1e-9)
    # axis need not be unit length
    rpy = frames.axis_angle_to_rpy([0.0, 0.0, 2.0], -0.25)
    np.testing.assert_allclose(rpy, (0.0, 0.0, -0.25), atol=1e-9)
    assert frames.axis_angle_to_rpy([0.0, 0.0, 0.0], 1.0) == (0.0, 0.0, 0.0)


def test_degrees_to_radians():
    np.testing.assert_allclose(frames.degrees_to_radians((90.0, 0.0, -180.0)),
                               (math.pi / 2, 0.0, -math.pi))


@given(st.tuples(*[st.floats(min_value=-1.0, max_value=1.0)] * 3))
@settings(deadline=None)
def test_z_alignment_rpy(direction):
    """The aligned frame's z axis points along the requested direction."""
    norm = math.sqrt(sum(v * v for v in direction))
    hypothesis.assume(norm > 1e-3)
    rpy = frames.z_alignment_rpy(direction)
    R = np.asarray(so3.from_rpy(jnp.asarray(rpy)))
    np.testing.assert_allclose(R[:, 2], np.asarray(direction) / norm, atol=1e-6)


def test_z_alignment_rpy_degenerate():
    assert frames.z_alignment_rpy([0.0, 0.0, 0.0]) == (0.0, 0.0, 0.0)


def test_z_alignment_rpy_opposite():
    rpy = frames.z_alignment_rpy([0.0, 0.0, -3.0])
    R = np.asarray(so3.from_rpy(jnp.asarray(rpy)))
    np.testing.assert_allclose(R[:, 2], [0.0, 0.0, -1.0], atol=1e-9)


def test_rotate_diagonal_inertia_identity():
    inertia = frames.rotate_diagonal_inertia([1.0, 2.0, 3.0])
    np.testing.assert_allclose(inertia, (1.0, 0.0, 0.0, 2.0, 0.0, 3.0), atol=1e-12)


def test_rotate_diagonal_inertia_quarter_turn():
    """A 90° turn about z swaps the x and y moments."""
    quat = [math.cos(math.pi / 4), 0.0, 0.0, math.sin(math.pi / 4)]
    inertia = frames.rotate_diagonal_inertia([1.0, 2.0, 3.0], quat)
    np.testing.assert_allclose(inertia, (2.0, 0.0, 0.0, 1.0, 0.0, 3.0), atol=1e-9)
