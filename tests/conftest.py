"""
Shared fixtures: small hand-built meshes with known connectivity.
"""

import os
import sys

# Ensure local package import (when running tests from repo)
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import numpy as np
import pytest

from meshes import GeometryStore, build

# Octahedron: 0:+x 1:-x 2:+y 3:-y 4:+z 5:-z, outward winding
OCTAHEDRON_POSITIONS = [
    (1.0, 0.0, 0.0),
    (-1.0, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (0.0, -1.0, 0.0),
    (0.0, 0.0, 1.0),
    (0.0, 0.0, -1.0),
]
OCTAHEDRON_FACES = [
    [4, 0, 2],
    [4, 2, 1],
    [4, 1, 3],
    [4, 3, 0],
    [5, 2, 0],
    [5, 1, 2],
    [5, 3, 1],
    [5, 0, 3],
]

TETRAHEDRON_FACES = [[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]]

# Six triangles around vertex 0, ring 1..6
HEXAGON_FAN_FACES = [[0, i, i % 6 + 1] for i in range(1, 7)]


def hexagon_positions():
    ring = [
        (np.cos(k * np.pi / 3.0), np.sin(k * np.pi / 3.0), 0.0) for k in range(6)
    ]
    return [(0.0, 0.0, 0.0)] + ring


def face_sets(mesh):
    """Live faces as a sorted list of sorted vertex tuples."""
    return sorted(tuple(sorted(mesh.face_vertices(f))) for f in mesh.faces())


def snapshot(mesh):
    """Every query answer that a failed mutation must leave untouched."""
    arrays = {k: v.copy() for k, v in mesh.to_arrays().items()}
    rings = {v: mesh.outgoing_half_edges(v) for v in mesh.vertices()}
    loops = {f: mesh.boundary_of(f) for f in mesh.faces()}
    return arrays, rings, loops, dict(mesh.non_manifold_edges), mesh.is_manifold()


def assert_same_snapshot(a, b):
    arrays_a, rings_a, loops_a, nm_a, man_a = a
    arrays_b, rings_b, loops_b, nm_b, man_b = b
    assert arrays_a.keys() == arrays_b.keys()
    for key in arrays_a:
        np.testing.assert_array_equal(arrays_a[key], arrays_b[key])
    assert rings_a == rings_b
    assert loops_a == loops_b
    assert nm_a == nm_b
    assert man_a == man_b


@pytest.fixture
def triangle():
    store = GeometryStore.from_array([(0, 0, 0), (1, 0, 0), (0, 1, 0)])
    return build(3, [[0, 1, 2]], geometry=store).mesh


@pytest.fixture
def two_triangles():
    store = GeometryStore.from_array([(0, 0, 0), (1, 0, 0), (0, 1, 0), (1, -1, 0)])
    return build(4, [[0, 1, 2], [1, 0, 3]], geometry=store).mesh


@pytest.fixture
def octahedron():
    store = GeometryStore.from_array(OCTAHEDRON_POSITIONS)
    return build(6, OCTAHEDRON_FACES, geometry=store).mesh


@pytest.fixture
def tetrahedron():
    return build(4, TETRAHEDRON_FACES).mesh


@pytest.fixture
def hexagon_fan():
    store = GeometryStore.from_array(hexagon_positions())
    return build(7, HEXAGON_FAN_FACES, geometry=store).mesh


@pytest.fixture
def book():
    """Three triangles hinged on edge 0-1."""
    return build(5, [[0, 1, 2], [1, 0, 3], [0, 1, 4]])
