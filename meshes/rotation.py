"""
Quaternion helpers.

Quaternions are plain ``(x, y, z, w)`` tuples. trimesh stores them as
``(w, x, y, z)``, so conversions happen at the boundary of each helper.
"""

import math
import random
from typing import Callable, Iterable, Tuple

import numpy as np
import trimesh

Quaternion = Tuple[float, float, float, float]

IDENTITY: Quaternion = (0.0, 0.0, 0.0, 1.0)


def _to_wxyz(q: Iterable[float]) -> np.ndarray:
    x, y, z, w = [float(c) for c in q]
    return np.array([w, x, y, z], dtype=float)


def _from_wxyz(q: np.ndarray) -> Quaternion:
    w, x, y, z = [float(c) for c in q]
    return (x, y, z, w)


def quaternion_multiply(a: Iterable[float], b: Iterable[float]) -> Quaternion:
    """Hamilton product ``a * b`` (apply ``b`` first, then ``a``)."""
    return _from_wxyz(trimesh.transformations.quaternion_multiply(_to_wxyz(a), _to_wxyz(b)))


def quaternion_matrix(q: Iterable[float]) -> np.ndarray:
    """4x4 homogeneous rotation matrix for quaternion ``q``."""
    return trimesh.transformations.quaternion_matrix(_to_wxyz(q))


def euler(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Quaternion:
    """Quaternion ``qx * qy * qz`` for rotations (radians) about each axis."""
    qx = (math.sin(x * 0.5), 0.0, 0.0, math.cos(x * 0.5))
    qy = (0.0, math.sin(y * 0.5), 0.0, math.cos(y * 0.5))
    qz = (0.0, 0.0, math.sin(z * 0.5), math.cos(z * 0.5))
    return quaternion_multiply(qx, quaternion_multiply(qy, qz))


def random_rotation(uniform: Callable[[], float] = random.random) -> Quaternion:
    """
    Uniformly distributed unit quaternion (Shoemake's subgroup algorithm).

    `uniform` must return floats in [0, 1); pass ``random.Random(seed).random``
    for reproducible draws.
    """
    u1, u2, u3 = float(uniform()), float(uniform()), float(uniform())
    a = math.sqrt(1.0 - u1)
    b = math.sqrt(u1)
    return (
        a * math.sin(2.0 * math.pi * u2),
        a * math.cos(2.0 * math.pi * u2),
        b * math.sin(2.0 * math.pi * u3),
        b * math.cos(2.0 * math.pi * u3),
    )


def random_axis(uniform: Callable[[], float] = random.random) -> Tuple[float, float, float]:
    """Uniformly distributed unit vector: the +z axis under a random rotation."""
    x, y, z, w = random_rotation(uniform)
    return (
        (x * z + y * w) * 2.0,
        (y * z - x * w) * 2.0,
        1.0 - (x * x + y * y) * 2.0,
    )
