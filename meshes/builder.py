"""
Topology Builder: polygon soup -> `ConnectivityStructure`.

Build policy:

- A vertex index outside ``[0, vertex_count)`` is the only fatal input error
  (`InvalidIndex`); it signals corrupted caller data.
- Degenerate faces (fewer than 3 vertices, or a repeated vertex) are skipped
  with a `DegenerateFace` diagnostic. If nothing survives, `EmptyMesh`.
- Faces repeating an earlier face's vertex cycle get a `DuplicateFace`
  diagnostic and are kept unless ``BuildOptions.drop_duplicate_faces``.
- Half-edges are paired per unordered vertex pair:
    * one half-edge: boundary;
    * two opposite half-edges: twins;
    * two half-edges in the same direction: `WindingConflict`, both stay
      unpaired (read as boundary) and the build continues;
    * more than two: a non-manifold side-table entry (directed count: every
      half-edge is listed), paired greedily with the earliest unpaired
      opposite half-edge. Half-edges repeating a direction within the group
      are also reported as a `WindingConflict`.
- A vertex whose faces form several fans gets a `NonManifoldVertex` entry.

Diagnostics never fail the build; they come back in `BuildResult`.
"""

from __future__ import annotations

import logging
import warnings
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .connectivity import NONE, ConnectivityStructure, EdgeKey, MeshState, edge_key
from .errors import (
    Cancelled,
    DegenerateFace,
    Diagnostic,
    DuplicateFace,
    EmptyMesh,
    InvalidIndex,
    NonManifoldEdge,
    NonManifoldVertex,
    WindingConflict,
    describe,
)
from .geometry import GeometryStore

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
@dataclass
class BuildOptions:
    drop_duplicate_faces: bool = False
    # Surface diagnostics through warnings.warn + logger.warning
    warn: bool = False
    # Run ConnectivityStructure.validate() before returning
    validate: bool = True


@dataclass
class BuildResult:
    mesh: ConnectivityStructure
    diagnostics: List[Diagnostic] = field(default_factory=list)
    # structure face index -> input face index
    face_map: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    def _of(self, cls) -> list:
        return [d for d in self.diagnostics if isinstance(d, cls)]

    @property
    def degenerate_faces(self) -> List[DegenerateFace]:
        return self._of(DegenerateFace)

    @property
    def duplicate_faces(self) -> List[DuplicateFace]:
        return self._of(DuplicateFace)

    @property
    def winding_conflicts(self) -> List[WindingConflict]:
        return self._of(WindingConflict)

    @property
    def non_manifold_edges(self) -> List[NonManifoldEdge]:
        return self._of(NonManifoldEdge)

    @property
    def non_manifold_vertices(self) -> List[NonManifoldVertex]:
        return self._of(NonManifoldVertex)

    @property
    def ok(self) -> bool:
        """True when the input needed no repairs or exclusions."""
        return not self.diagnostics


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _check_cancel(cancel: Optional[Callable[[], bool]], where: str) -> None:
    if cancel is not None and cancel():
        raise Cancelled(f"build cancelled during {where}")


def _read_face(face_index: int, face: object, vertex_count: int) -> Tuple[int, ...]:
    try:
        items = list(face)  # type: ignore[arg-type]
    except TypeError:
        raise InvalidIndex(face_index, face, vertex_count) from None
    loop = []
    for v in items:
        if isinstance(v, (bool, np.bool_)) or not isinstance(v, (int, np.integer)):
            raise InvalidIndex(face_index, v, vertex_count)
        vi = int(v)
        if vi < 0 or vi >= vertex_count:
            raise InvalidIndex(face_index, vi, vertex_count)
        loop.append(vi)
    return tuple(loop)


def _degenerate_reason(loop: Tuple[int, ...]) -> Optional[str]:
    distinct = len(set(loop))
    if distinct < 3:
        return f"only {distinct} distinct vertices"
    if distinct != len(loop):
        repeated = sorted(v for v, c in Counter(loop).items() if c > 1)
        return f"repeated vertices {repeated}"
    return None


def _canonical_cycle(loop: Tuple[int, ...]) -> Tuple[int, ...]:
    i = loop.index(min(loop))
    return loop[i:] + loop[:i]


def _pair_edge(
    mesh: ConnectivityStructure,
    key: EdgeKey,
    hs: List[int],
    diagnostics: List[Diagnostic],
) -> None:
    """Pair the half-edges of one unordered vertex pair (face order)."""
    origin = mesh._origin
    if len(hs) == 1:
        return
    if len(hs) == 2:
        a, b = hs
        if origin[a] != origin[b]:
            mesh._link_twins(a, b)
        else:
            conflict = (origin[a], mesh._origin[mesh._next[a]])
            mesh._winding_conflicts[key] = (a, b)
            diagnostics.append(WindingConflict(edge=conflict, half_edges=(a, b)))
        return

    # more than two faces on one edge
    unpaired: List[int] = []
    for h in hs:
        match = next((u for u in unpaired if origin[u] != origin[h]), NONE)
        if match == NONE:
            unpaired.append(h)
        else:
            unpaired.remove(match)
            mesh._link_twins(match, h)
    mesh._nm_edges[key] = list(hs)
    diagnostics.append(NonManifoldEdge(edge=key, half_edges=tuple(hs)))

    # same-direction repeats are winding conflicts as well
    by_direction: Dict[EdgeKey, List[int]] = defaultdict(list)
    for h in hs:
        by_direction[(origin[h], origin[mesh._next[h]])].append(h)
    conflicting: List[int] = []
    for direction, same in by_direction.items():
        if len(same) > 1:
            conflicting.extend(same)
            diagnostics.append(WindingConflict(edge=direction, half_edges=tuple(same)))
    if conflicting:
        mesh._winding_conflicts[key] = tuple(sorted(conflicting))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def build(
    vertex_count: int,
    faces: Iterable[Sequence[int]],
    *,
    geometry: Optional[GeometryStore] = None,
    options: Optional[BuildOptions] = None,
    cancel: Optional[Callable[[], bool]] = None,
) -> BuildResult:
    """
    Build a connectivity structure from a face list.

    Args:
        vertex_count: Number of vertices the faces may reference.
        faces: Sequence of vertex index sequences, one per polygon, in winding order.
        geometry: Store holding at least `vertex_count` positions. A zero-filled
            store is created when omitted.
        options: BuildOptions controlling duplicate handling, warnings and validation.
        cancel: Zero-argument callable polled between per-face steps; when it
            returns True the build stops with `Cancelled`.

    Returns:
        BuildResult with the structure, the diagnostics and the face map.

    Raises:
        InvalidIndex: a face references a vertex outside ``[0, vertex_count)``.
        EmptyMesh: every face was rejected.
    """
    if options is None:
        options = BuildOptions()

    vertex_count = int(vertex_count)
    if vertex_count < 0:
        raise ValueError("vertex_count must be >= 0")

    face_list = list(faces)
    loops = [_read_face(i, face, vertex_count) for i, face in enumerate(face_list)]

    mesh = ConnectivityStructure(vertex_count, geometry=geometry)
    mesh._state = MeshState.BUILDING
    diagnostics: List[Diagnostic] = []

    # ------------------------------ Faces ---------------------------------
    kept: List[int] = []
    seen_cycles: Dict[Tuple[int, ...], int] = {}
    for i, loop in enumerate(loops):
        _check_cancel(cancel, "face creation")
        reason = _degenerate_reason(loop)
        if reason is not None:
            diagnostics.append(DegenerateFace(face_index=i, vertices=loop, reason=reason))
            continue

        fwd = _canonical_cycle(loop)
        rev = _canonical_cycle(tuple(reversed(loop)))
        first = seen_cycles.get(fwd)
        same = first is not None
        if first is None:
            first = seen_cycles.get(rev)
        if first is not None:
            diagnostics.append(
                DuplicateFace(
                    face_index=i,
                    duplicate_of=first,
                    same_orientation=same,
                    dropped=options.drop_duplicate_faces,
                )
            )
            if options.drop_duplicate_faces:
                continue
        else:
            seen_cycles[fwd] = i

        mesh._new_face(loop)
        kept.append(i)

    if not kept:
        raise EmptyMesh(f"All {len(loops)} input faces were rejected")

    # ------------------------------ Twins ---------------------------------
    by_pair: Dict[EdgeKey, List[int]] = defaultdict(list)
    outgoing: Dict[int, List[int]] = defaultdict(list)
    for h in range(len(mesh._origin)):
        u = mesh._origin[h]
        v = mesh._origin[mesh._next[h]]
        by_pair[edge_key(u, v)].append(h)
        outgoing[u].append(h)

    for key, hs in by_pair.items():
        _pair_edge(mesh, key, hs, diagnostics)

    # ---------------------------- Vertices --------------------------------
    for v in sorted(outgoing):
        _check_cancel(cancel, "vertex linking")
        fans = mesh._assign_vertex(v, outgoing[v])
        if len(fans) > 1:
            diagnostics.append(
                NonManifoldVertex(vertex=v, fans=tuple(fan[0] for fan in fans))
            )

    if options.validate:
        mesh.validate()
    mesh._state = MeshState.CONSISTENT

    result = BuildResult(
        mesh=mesh,
        diagnostics=diagnostics,
        face_map=np.asarray(kept, dtype=np.int64),
    )
    _log_summary(result, len(loops), options)
    return result


def _log_summary(result: BuildResult, n_input: int, options: BuildOptions) -> None:
    mesh = result.mesh
    counts = Counter(d.kind for d in result.diagnostics)
    logger.debug(
        "Built mesh: %d input faces, %d kept, %d half-edges, %d vertices, diagnostics=%s",
        n_input,
        mesh.n_faces,
        mesh.n_half_edges,
        mesh.n_vertices,
        dict(counts) if counts else "none",
    )
    if options.warn and result.diagnostics:
        msg = "Mesh build produced %d diagnostics: %s" % (
            len(result.diagnostics),
            ", ".join(f"{k}={n}" for k, n in sorted(counts.items())),
        )
        warnings.warn(msg, RuntimeWarning)
        logger.warning(msg)
        for d in result.diagnostics:
            logger.debug(describe(d))
