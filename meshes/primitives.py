"""
Primitive mesh generators.

Each generator returns a `BuildResult` over welded (indexed) geometry with
``"normal"`` and ``"color"`` vertex attributes, so the shapes come out with
full connectivity: closed primitives are manifold with every edge twinned.
"""

from typing import Tuple

import numpy as np
import trimesh

from .builder import BuildResult
from .convert import from_arrays, from_trimesh

Color = Tuple[float, float, float]
WHITE: Color = (1.0, 1.0, 1.0)


def _finish(result: BuildResult, color: Color) -> BuildResult:
    result.mesh.geometry.paint(color)
    return result


def plane(
    width: float,
    length: float,
    color: Color = WHITE,
    quad: bool = False,
) -> BuildResult:
    """
    Rectangle in the xy-plane centered at the origin, facing +z.

    Args:
        width: Extent along x.
        length: Extent along y.
        color: RGB color painted on every vertex.
        quad: Emit one quad face instead of two triangles.
    """
    sx = float(width) * 0.5
    sy = float(length) * 0.5
    positions = np.array(
        [[-sx, -sy, 0.0], [sx, -sy, 0.0], [sx, sy, 0.0], [-sx, sy, 0.0]],
        dtype=float,
    )
    faces = [[0, 1, 2, 3]] if quad else [[0, 1, 2], [2, 3, 0]]
    normals = np.tile([0.0, 0.0, 1.0], (4, 1))
    return _finish(from_arrays(positions, faces, normals=normals), color)


def box(width: float, length: float, height: float, color: Color = WHITE) -> BuildResult:
    """Axis-aligned box centered at the origin."""
    mesh = trimesh.creation.box(extents=(float(width), float(length), float(height)))
    return _finish(from_trimesh(mesh), color)


def cylinder(
    radius: float,
    height: float,
    resolution: int = 16,
    color: Color = WHITE,
) -> BuildResult:
    """Capped cylinder along z, centered at the origin."""
    mesh = trimesh.creation.cylinder(
        radius=float(radius), height=float(height), sections=max(int(resolution), 3)
    )
    return _finish(from_trimesh(mesh), color)


def uvsphere(radius: float, resolution: int = 16, color: Color = WHITE) -> BuildResult:
    """Latitude/longitude sphere; `resolution` is clamped to [8, 128]."""
    resolution = min(max(int(resolution), 8), 128)
    mesh = trimesh.creation.uv_sphere(
        radius=float(radius), count=[resolution // 2, resolution]
    )
    return _finish(from_trimesh(mesh), color)


def icosphere(radius: float, resolution: int = 1, color: Color = WHITE) -> BuildResult:
    """
    Subdivided icosahedron. `resolution` is clamped to [1, 8]; resolution 1 is
    the plain icosahedron (20 faces) and each step quadruples the face count.
    """
    resolution = min(max(int(resolution), 1), 8)
    mesh = trimesh.creation.icosphere(subdivisions=resolution - 1, radius=float(radius))
    return _finish(from_trimesh(mesh), color)
