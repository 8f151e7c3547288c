"""
Traversal over a `ConnectivityStructure`.

Walks are generators: each element is computed on demand, a fresh call starts
again from the same place, and every walk is bounded by the number of records
in the mesh.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Iterator, List, Optional

import networkx as nx
import numpy as np

from .connectivity import NONE, ConnectivityStructure
from .errors import Cancelled, NotABoundaryEdge

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# ============================================================================
# Vertex neighbourhoods
# ============================================================================


def one_ring(mesh: ConnectivityStructure, v: int) -> Iterator[int]:
    """
    Outgoing half-edges of `v` in rotation order, starting at its
    representative. Further fans of a non-manifold vertex follow.
    """
    v = mesh._check_vertex(v)
    for start in mesh._fan_starts(v):
        yield from mesh._rotate(start)


def vertex_neighbors(mesh: ConnectivityStructure, v: int) -> Iterator[int]:
    """Adjacent vertices, each once, in one-ring order."""
    seen = set()
    for h in one_ring(mesh, v):
        for u in (mesh._origin[mesh._next[h]], mesh._origin[mesh._prev[h]]):
            if u not in seen:
                seen.add(u)
                yield u


def vertex_faces(mesh: ConnectivityStructure, v: int) -> Iterator[int]:
    """Faces incident to `v`, in one-ring order."""
    for h in one_ring(mesh, v):
        yield mesh._face[h]


# ============================================================================
# Boundaries
# ============================================================================


def _next_boundary(mesh: ConnectivityStructure, h: int) -> int:
    # Rotate around the destination of h until the next twinless half-edge.
    tw, nxt = mesh._twin, mesh._next
    x = nxt[h]
    limit = len(nxt)
    steps = 0
    while tw[x] != NONE:
        x = nxt[tw[x]]
        steps += 1
        if steps > limit:
            break
    return x


def boundary_loop(mesh: ConnectivityStructure, h: int) -> Iterator[int]:
    """
    Twinless half-edges of the boundary loop through `h`, starting with `h`.

    Raises:
        NotABoundaryEdge: `h` has a twin.
    """
    h = mesh._check_half_edge(h)
    if mesh._twin[h] != NONE:
        raise NotABoundaryEdge(f"half-edge {h} has twin {mesh._twin[h]}")
    return _walk_boundary(mesh, h)


def _walk_boundary(mesh: ConnectivityStructure, start: int) -> Iterator[int]:
    seen = {start}
    yield start
    x = _next_boundary(mesh, start)
    while x != start:
        if x in seen or mesh._twin[x] != NONE:
            # only reachable around non-manifold vertices
            logger.debug("Boundary walk from %d re-entered at %d; stopping", start, x)
            return
        seen.add(x)
        yield x
        x = _next_boundary(mesh, x)


def boundary_loops(mesh: ConnectivityStructure) -> List[List[int]]:
    """All boundary loops, each starting at its lowest half-edge index."""
    loops: List[List[int]] = []
    visited = set()
    for h in mesh.half_edges():
        if mesh._twin[h] != NONE or h in visited:
            continue
        loop = list(_walk_boundary(mesh, h))
        visited.update(loop)
        loops.append(loop)
    return loops


# ============================================================================
# Components and flood fill
# ============================================================================


def _face_neighbors(mesh: ConnectivityStructure, f: int) -> Iterator[int]:
    for h in mesh._face_loop(f):
        t = mesh._twin[h]
        if t != NONE:
            yield mesh._face[t]


def connected_components(
    mesh: ConnectivityStructure,
    cancel: Optional[Callable[[], bool]] = None,
) -> np.ndarray:
    """
    Label each face with a component id by breadth-first expansion across
    twin-linked faces.

    Components are numbered in order of their lowest face index. Deleted faces
    get ``-1``. `cancel` is polled once per face; if it returns True the pass
    stops with `Cancelled` (the mesh itself is never modified).
    """
    n = len(mesh._face_alive)
    labels = np.full(n, NONE, dtype=np.int64)
    next_id = 0
    for seed in mesh.faces():
        if labels[seed] != NONE:
            continue
        labels[seed] = next_id
        queue = deque([seed])
        while queue:
            if cancel is not None and cancel():
                raise Cancelled("component labeling cancelled")
            f = queue.popleft()
            for g in _face_neighbors(mesh, f):
                if labels[g] == NONE:
                    labels[g] = next_id
                    queue.append(g)
        next_id += 1
    logger.debug("Labeled %d faces into %d components", mesh.n_faces, next_id)
    return labels


def flood_fill(
    mesh: ConnectivityStructure,
    seed_face: int,
    predicate: Callable[[int], bool],
) -> Iterator[int]:
    """
    Faces reachable from `seed_face` across twin links whose `predicate`
    holds, in breadth-first order. Nothing is yielded if the seed fails the
    predicate.
    """
    seed_face = mesh._check_face(seed_face)
    if not predicate(seed_face):
        return
    seen = {seed_face}
    queue = deque([seed_face])
    while queue:
        f = queue.popleft()
        yield f
        for g in _face_neighbors(mesh, f):
            if g not in seen:
                seen.add(g)
                if predicate(g):
                    queue.append(g)


def face_adjacency_graph(mesh: ConnectivityStructure) -> nx.Graph:
    """
    Face adjacency as a networkx graph.

    One node per live face. Twin-linked faces are joined with
    ``kind="manifold"``; faces that share a non-manifold edge without being
    twins are joined with ``kind="non_manifold"``.
    """
    G = nx.Graph()
    for f in mesh.faces():
        G.add_node(f, degree=len(mesh._face_loop(f)))
    for h in mesh.half_edges():
        t = mesh._twin[h]
        if t != NONE and h < t:
            G.add_edge(mesh._face[h], mesh._face[t], kind="manifold", half_edges=(h, t))
    for key, hs in mesh._nm_edges.items():
        faces = sorted({mesh._face[h] for h in hs})
        for i, f in enumerate(faces):
            for g in faces[i + 1:]:
                if not G.has_edge(f, g):
                    G.add_edge(f, g, kind="non_manifold", edge=key)
    return G
