"""Quaternion helpers.

Quaternions are numpy arrays in (x, y, z, w) order, the same layout the
wire protocol uses.
"""

import math

import numpy as np

UP = np.array([0.0, 1.0, 0.0])


def identity_quaternion() -> np.ndarray:
    return np.array([0.0, 0.0, 0.0, 1.0])


def normalize(q: np.ndarray) -> np.ndarray:
    """Return ``q`` scaled to unit length.

    Raises:
        ValueError: If ``q`` has zero length
    """
    norm = float(np.linalg.norm(q))
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero-length quaternion")
    return q / norm


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product ``a * b``."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        ax * bw + aw * bx + ay * bz - az * by,
        ay * bw + aw * by + az * bx - ax * bz,
        az * bw + aw * bz + ax * by - ay * bx,
        aw * bw - ax * bx - ay * by - az * bz,
    ])


def rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vector ``v`` by unit quaternion ``q``."""
    u = q[:3]
    w = q[3]
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def rotation_matrix(q: np.ndarray) -> np.ndarray:
    """3x3 rotation matrix of unit quaternion ``q``."""
    x, y, z, w = q
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ])


def from_euler(x: float, y: float, z: float) -> np.ndarray:
    """Quaternion from intrinsic XYZ Euler angles in radians."""
    c1, c2, c3 = math.cos(x / 2), math.cos(y / 2), math.cos(z / 2)
    s1, s2, s3 = math.sin(x / 2), math.sin(y / 2), math.sin(z / 2)
    return np.array([
        s1 * c2 * c3 + c1 * s2 * s3,
        c1 * s2 * c3 - s1 * c2 * s3,
        c1 * c2 * s3 + s1 * s2 * c3,
        c1 * c2 * c3 - s1 * s2 * s3,
    ])


def integrate(q: np.ndarray, angular_velocity: np.ndarray, dt: float) -> np.ndarray:
    """Advance orientation ``q`` by world-frame ``angular_velocity`` over ``dt``."""
    spin = np.array([angular_velocity[0], angular_velocity[1], angular_velocity[2], 0.0])
    return normalize(q + 0.5 * dt * quat_multiply(spin, q))


def tangent_basis(n: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Two unit vectors orthogonal to ``n`` and to each other."""
    if abs(n[0]) > 0.57735:
        t1 = np.array([n[1], -n[0], 0.0])
    else:
        t1 = np.array([0.0, n[2], -n[1]])
    t1 = t1 / np.linalg.norm(t1)
    t2 = np.cross(n, t1)
    return t1, t2
