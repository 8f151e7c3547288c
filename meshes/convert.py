"""
Conversion between `ConnectivityStructure` and in-memory arrays / trimesh objects.

These helpers produce the ``(vertex_count, faces, positions)`` triple the
builder consumes; reading and writing mesh files stays with trimesh.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np
import trimesh

from .builder import BuildResult, build
from .connectivity import ConnectivityStructure
from .geometry import GeometryStore

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def from_arrays(
    positions: np.ndarray,
    faces: Sequence[Sequence[int]],
    *,
    normals: Optional[np.ndarray] = None,
    colors: Optional[np.ndarray] = None,
    **build_kwargs: Any,
) -> BuildResult:
    """
    Build from an ``(N,3)`` position array and a face list.

    `faces` may be an ``(M,k)`` integer array or a ragged list of polygons.
    Optional ``(N,3)`` `normals` / `colors` become vertex attributes.
    """
    store = GeometryStore.from_array(positions)
    if normals is not None:
        store.add_attribute("normal", 3)
        store.set_attribute_array("normal", normals)
    if colors is not None:
        store.add_attribute("color", 3, fill=(1.0, 1.0, 1.0))
        store.set_attribute_array("color", colors)
    if isinstance(faces, np.ndarray):
        faces = faces.tolist()
    return build(len(store), faces, geometry=store, **build_kwargs)


def from_trimesh(mesh: trimesh.Trimesh, **build_kwargs: Any) -> BuildResult:
    """Build from a trimesh object; vertex normals are kept as the ``"normal"`` attribute."""
    if mesh is None or len(getattr(mesh, "vertices", [])) == 0:
        raise ValueError("Mesh is empty or not provided")
    normals = np.asarray(mesh.vertex_normals, dtype=float)
    return from_arrays(
        np.asarray(mesh.vertices, dtype=float),
        np.asarray(mesh.faces, dtype=np.int64),
        normals=normals,
        **build_kwargs,
    )


def to_trimesh(structure: ConnectivityStructure) -> trimesh.Trimesh:
    """
    Export live faces as a triangle mesh.

    Polygons are fan-triangulated from their representative vertex and deleted
    vertices are dropped; topology is exported exactly as stored, without
    trimesh's merge/cleanup processing.
    """
    live = list(structure.vertices())
    vmap = np.full(len(structure._vertex_alive), -1, dtype=np.int64)
    vmap[live] = np.arange(len(live))

    tris = []
    for f in structure.faces():
        loop = [int(vmap[v]) for v in structure.face_vertices(f)]
        for i in range(1, len(loop) - 1):
            tris.append((loop[0], loop[i], loop[i + 1]))

    store = structure.geometry
    vertices = np.asarray(store.positions)[live]
    kwargs = {}
    if store.has_attribute("color"):
        rgb = np.clip(store.attribute_array("color")[live], 0.0, 1.0)
        kwargs["vertex_colors"] = (rgb * 255.0).round().astype(np.uint8)
    out = trimesh.Trimesh(
        vertices=vertices,
        faces=np.asarray(tris, dtype=np.int64).reshape(-1, 3),
        process=False,
        **kwargs,
    )
    logger.debug("Exported %d faces as %d triangles", structure.n_faces, len(tris))
    return out
