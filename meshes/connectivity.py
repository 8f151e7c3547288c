"""
Half-edge connectivity structure.

All relations are integer indices into flat per-record lists (an arena): there
are no object references between half-edges, faces and vertices, so a
structure can be copied, compared or exported as plain arrays.

Half-edge fields: origin, twin (``-1`` = none), next, prev, face.
Face fields: one representative half-edge.
Vertex fields: one representative outgoing half-edge (``-1`` = isolated).

Records are deleted logically. An index is never reused within a session;
`ConnectivityStructure.compact` is the explicit step that renumbers.

Edges that more than two half-edges share, and vertices whose faces form more
than one fan, cannot be described by the twin/next fields alone. They are kept
in side tables (`non_manifold_edges`, `non_manifold_vertices`) that the
queries consult.

Read-only queries may run concurrently from several threads as long as no
mutation is in flight; mutations assume a single writer.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import OutOfRange, TopologyError
from .geometry import GeometryStore

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

NONE = -1

EdgeKey = Tuple[int, int]


def edge_key(u: int, v: int) -> EdgeKey:
    """Unordered vertex pair, smaller index first."""
    return (u, v) if u <= v else (v, u)


class MeshState(enum.Enum):
    CONSISTENT = "consistent"
    BUILDING = "building"


@dataclass(frozen=True)
class ManifoldEdge:
    """An edge with at most two sides: a half-edge and its twin (if any)."""

    half_edge: int
    twin: Optional[int]
    vertices: EdgeKey

    @property
    def is_boundary(self) -> bool:
        return self.twin is None


@dataclass(frozen=True)
class RadialEdge:
    """An edge shared by more than two half-edges; mirrors a side-table entry."""

    vertices: EdgeKey
    half_edges: Tuple[int, ...]

    @property
    def is_boundary(self) -> bool:
        return False


Edge = Union[ManifoldEdge, RadialEdge]


@dataclass
class CompactionMap:
    """Old index -> new index for each record kind; ``-1`` marks removed records."""

    vertex_map: np.ndarray
    half_edge_map: np.ndarray
    face_map: np.ndarray


class ConnectivityStructure:
    """
    Half-edge mesh over a (possibly shared) `GeometryStore`.

    Build instances with `meshes.build`; the constructor only creates an empty
    arena with `vertex_count` isolated vertices.
    """

    def __init__(self, vertex_count: int = 0, geometry: Optional[GeometryStore] = None):
        vertex_count = int(vertex_count)
        if vertex_count < 0:
            raise ValueError("vertex_count must be >= 0")
        if geometry is None:
            geometry = GeometryStore.from_array(np.zeros((vertex_count, 3), dtype=float))
        elif len(geometry) < vertex_count:
            raise ValueError(
                f"Geometry store holds {len(geometry)} vertices, need {vertex_count}"
            )
        self.geometry = geometry

        # half-edge arena
        self._origin: List[int] = []
        self._twin: List[int] = []
        self._next: List[int] = []
        self._prev: List[int] = []
        self._face: List[int] = []
        self._he_alive: List[bool] = []
        # face arena
        self._face_he: List[int] = []
        self._face_alive: List[bool] = []
        # vertex arena
        self._vertex_he: List[int] = [NONE] * vertex_count
        self._vertex_alive: List[bool] = [True] * vertex_count

        # side tables
        self._nm_edges: Dict[EdgeKey, List[int]] = {}
        self._nm_vertices: Dict[int, List[int]] = {}
        self._winding_conflicts: Dict[EdgeKey, Tuple[int, ...]] = {}

        self._n_live_he = 0
        self._n_live_faces = 0
        self._n_live_vertices = vertex_count
        self._state = MeshState.CONSISTENT

    # ------------------------------------------------------------------
    # Sizes and state
    # ------------------------------------------------------------------
    @property
    def state(self) -> MeshState:
        return self._state

    @property
    def n_vertices(self) -> int:
        return self._n_live_vertices

    @property
    def n_half_edges(self) -> int:
        return self._n_live_he

    @property
    def n_faces(self) -> int:
        return self._n_live_faces

    @property
    def n_edges(self) -> int:
        return sum(1 for _ in self.edges())

    def vertices(self) -> Iterator[int]:
        return (v for v, alive in enumerate(self._vertex_alive) if alive)

    def half_edges(self) -> Iterator[int]:
        return (h for h, alive in enumerate(self._he_alive) if alive)

    def faces(self) -> Iterator[int]:
        return (f for f, alive in enumerate(self._face_alive) if alive)

    # ------------------------------------------------------------------
    # Index checks
    # ------------------------------------------------------------------
    def _check_vertex(self, v: int) -> int:
        n = len(self._vertex_alive)
        if isinstance(v, (bool, np.bool_)) or not isinstance(v, (int, np.integer)):
            raise OutOfRange("vertex", v, n)
        v = int(v)
        if v < 0 or v >= n or not self._vertex_alive[v]:
            raise OutOfRange("vertex", v, n)
        return v

    def _check_half_edge(self, h: int) -> int:
        n = len(self._he_alive)
        if isinstance(h, (bool, np.bool_)) or not isinstance(h, (int, np.integer)):
            raise OutOfRange("half-edge", h, n)
        h = int(h)
        if h < 0 or h >= n or not self._he_alive[h]:
            raise OutOfRange("half-edge", h, n)
        return h

    def _check_face(self, f: int) -> int:
        n = len(self._face_alive)
        if isinstance(f, (bool, np.bool_)) or not isinstance(f, (int, np.integer)):
            raise OutOfRange("face", f, n)
        f = int(f)
        if f < 0 or f >= n or not self._face_alive[f]:
            raise OutOfRange("face", f, n)
        return f

    # ------------------------------------------------------------------
    # Half-edge queries
    # ------------------------------------------------------------------
    def origin(self, h: int) -> int:
        return self._origin[self._check_half_edge(h)]

    def destination(self, h: int) -> int:
        h = self._check_half_edge(h)
        return self._origin[self._next[h]]

    def twin(self, h: int) -> Optional[int]:
        """Opposite half-edge, or None for a one-sided (boundary or unpaired) edge."""
        t = self._twin[self._check_half_edge(h)]
        return None if t == NONE else t

    def next(self, h: int) -> int:
        return self._next[self._check_half_edge(h)]

    def prev(self, h: int) -> int:
        return self._prev[self._check_half_edge(h)]

    def face_of(self, h: int) -> int:
        return self._face[self._check_half_edge(h)]

    def is_boundary_half_edge(self, h: int) -> bool:
        return self._twin[self._check_half_edge(h)] == NONE

    def endpoints(self, h: int) -> EdgeKey:
        h = self._check_half_edge(h)
        return self._origin[h], self._origin[self._next[h]]

    # ------------------------------------------------------------------
    # Face queries
    # ------------------------------------------------------------------
    def face_half_edge(self, f: int) -> int:
        return self._face_he[self._check_face(f)]

    def _face_loop(self, f: int) -> List[int]:
        start = self._face_he[f]
        loop = [start]
        h = self._next[start]
        limit = len(self._next)
        while h != start:
            loop.append(h)
            if len(loop) > limit:
                raise TopologyError(f"next cycle of face {f} does not close")
            h = self._next[h]
        return loop

    def boundary_of(self, f: int) -> List[int]:
        """Half-edges of face `f` in winding order, starting at its representative."""
        return self._face_loop(self._check_face(f))

    def face_vertices(self, f: int) -> List[int]:
        return [self._origin[h] for h in self.boundary_of(f)]

    def face_degree(self, f: int) -> int:
        return len(self.boundary_of(f))

    # ------------------------------------------------------------------
    # Vertex queries
    # ------------------------------------------------------------------
    def vertex_half_edge(self, v: int) -> Optional[int]:
        """Representative outgoing half-edge, or None for an isolated vertex."""
        h = self._vertex_he[self._check_vertex(v)]
        return None if h == NONE else h

    def _rotate(self, start: int) -> Iterator[int]:
        # Outgoing half-edges of one fan; rotation is h -> twin(prev(h)).
        h = start
        steps = 0
        limit = len(self._next)
        while True:
            yield h
            steps += 1
            t = self._twin[self._prev[h]]
            if t == NONE or t == start:
                return
            if steps > limit:
                raise TopologyError(f"rotation from half-edge {start} does not terminate")
            h = t

    def _fan_starts(self, v: int) -> List[int]:
        starts = self._nm_vertices.get(v)
        if starts is not None:
            return list(starts)
        h = self._vertex_he[v]
        return [] if h == NONE else [h]

    def _outgoing(self, v: int) -> List[int]:
        out: List[int] = []
        for start in self._fan_starts(v):
            out.extend(self._rotate(start))
        return out

    def outgoing_half_edges(self, v: int) -> List[int]:
        """
        Outgoing half-edges of `v` in rotation order, starting at the
        representative. For a vertex with several fans, each further fan
        follows in side-table order.
        """
        return self._outgoing(self._check_vertex(v))

    def is_boundary_vertex(self, v: int) -> bool:
        return any(self._twin[h] == NONE for h in self.outgoing_half_edges(v))

    def is_isolated(self, v: int) -> bool:
        return self._vertex_he[self._check_vertex(v)] == NONE

    def find_half_edge(self, u: int, v: int) -> Optional[int]:
        """First half-edge running ``u -> v``, or None."""
        self._check_vertex(v)
        for h in self.outgoing_half_edges(u):
            if self._origin[self._next[h]] == v:
                return h
        return None

    # ------------------------------------------------------------------
    # Edges and side tables
    # ------------------------------------------------------------------
    def edge(self, h: int) -> Edge:
        h = self._check_half_edge(h)
        key = edge_key(self._origin[h], self._origin[self._next[h]])
        record = self._nm_edges.get(key)
        if record is not None:
            return RadialEdge(vertices=key, half_edges=tuple(record))
        t = self._twin[h]
        return ManifoldEdge(half_edge=h, twin=None if t == NONE else t, vertices=key)

    def edges(self) -> Iterator[Edge]:
        """Each undirected edge once, in half-edge index order."""
        seen = set()
        for h, alive in enumerate(self._he_alive):
            if not alive:
                continue
            key = edge_key(self._origin[h], self._origin[self._next[h]])
            if key in self._nm_edges:
                if key not in seen:
                    seen.add(key)
                    yield RadialEdge(vertices=key, half_edges=tuple(self._nm_edges[key]))
                continue
            if key in self._winding_conflicts:
                # both sides run the same way; report the pair once
                if key not in seen:
                    seen.add(key)
                    yield ManifoldEdge(half_edge=h, twin=None, vertices=key)
                continue
            t = self._twin[h]
            if t == NONE or h < t:
                yield ManifoldEdge(half_edge=h, twin=None if t == NONE else t, vertices=key)

    @property
    def non_manifold_edges(self) -> Mapping[EdgeKey, Tuple[int, ...]]:
        return MappingProxyType({k: tuple(v) for k, v in self._nm_edges.items()})

    @property
    def non_manifold_vertices(self) -> Mapping[int, Tuple[int, ...]]:
        return MappingProxyType({k: tuple(v) for k, v in self._nm_vertices.items()})

    @property
    def winding_conflicts(self) -> Mapping[EdgeKey, Tuple[int, ...]]:
        return MappingProxyType(dict(self._winding_conflicts))

    def is_manifold(self) -> bool:
        return not self._nm_edges and not self._nm_vertices and not self._winding_conflicts

    # ------------------------------------------------------------------
    # Arena primitives (used by the builder and the mutation layer)
    # ------------------------------------------------------------------
    def _new_half_edge(self, origin: int, face: int) -> int:
        h = len(self._origin)
        self._origin.append(origin)
        self._twin.append(NONE)
        self._next.append(NONE)
        self._prev.append(NONE)
        self._face.append(face)
        self._he_alive.append(True)
        self._n_live_he += 1
        return h

    def _new_face(self, loop: Sequence[int]) -> int:
        """Append a face over vertex cycle `loop` and return its index."""
        f = len(self._face_he)
        hs = [self._new_half_edge(v, f) for v in loop]
        n = len(hs)
        for i, h in enumerate(hs):
            self._next[h] = hs[(i + 1) % n]
            self._prev[h] = hs[i - 1]
        self._face_he.append(hs[0])
        self._face_alive.append(True)
        self._n_live_faces += 1
        return f

    def _ensure_vertex(self, v: int) -> None:
        """Make store index `v` a live isolated vertex of this structure."""
        # store rows appended by other snapshots stay dead here
        while len(self._vertex_he) <= v:
            self._vertex_he.append(NONE)
            self._vertex_alive.append(False)
        if not self._vertex_alive[v]:
            self._vertex_alive[v] = True
            self._vertex_he[v] = NONE
            self._n_live_vertices += 1

    def _kill_half_edge(self, h: int) -> None:
        self._he_alive[h] = False
        self._twin[h] = NONE
        self._n_live_he -= 1

    def _kill_face(self, f: int) -> None:
        self._face_alive[f] = False
        self._face_he[f] = NONE
        self._n_live_faces -= 1

    def _kill_vertex(self, v: int) -> None:
        self._vertex_alive[v] = False
        self._vertex_he[v] = NONE
        self._nm_vertices.pop(v, None)
        self._n_live_vertices -= 1

    def _link_twins(self, a: int, b: int) -> None:
        if a != NONE:
            self._twin[a] = b
        if b != NONE:
            self._twin[b] = a

    def _fans(self, outgoing: Sequence[int]) -> List[List[int]]:
        """Group one vertex's outgoing half-edges into fans, open fans first."""
        pending = set(outgoing)
        order = sorted(outgoing, key=lambda h: (self._twin[h] != NONE, h))
        fans: List[List[int]] = []
        for start in order:
            if start not in pending:
                continue
            fan = []
            for h in self._rotate(start):
                if h not in pending:
                    raise TopologyError(f"half-edge {h} reached twice around its origin")
                pending.discard(h)
                fan.append(h)
            fans.append(fan)
        return fans

    def _assign_vertex(self, v: int, outgoing: Sequence[int]) -> List[List[int]]:
        """Recompute the representative (and fan side-table entry) of `v`."""
        fans = self._fans(outgoing)
        self._nm_vertices.pop(v, None)
        if not fans:
            self._vertex_he[v] = NONE
        else:
            self._vertex_he[v] = fans[0][0]
            if len(fans) > 1:
                self._nm_vertices[v] = [fan[0] for fan in fans]
        return fans

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self) -> None:
        """Check every structural invariant; raise `TopologyError` on the first failure."""
        n_he = len(self._origin)
        for name, arr in (
            ("twin", self._twin),
            ("next", self._next),
            ("prev", self._prev),
            ("face", self._face),
            ("alive", self._he_alive),
        ):
            if len(arr) != n_he:
                raise TopologyError(f"half-edge field {name!r} has length {len(arr)}, expected {n_he}")

        live = 0
        for h in range(n_he):
            if not self._he_alive[h]:
                continue
            live += 1
            nx_, pv = self._next[h], self._prev[h]
            if not (0 <= nx_ < n_he and self._he_alive[nx_]):
                raise TopologyError(f"half-edge {h} has invalid next {nx_}")
            if not (0 <= pv < n_he and self._he_alive[pv]):
                raise TopologyError(f"half-edge {h} has invalid prev {pv}")
            if self._prev[nx_] != h:
                raise TopologyError(f"prev(next({h})) != {h}")
            if self._face[nx_] != self._face[h]:
                raise TopologyError(f"half-edge {h} and its next lie on different faces")
            f = self._face[h]
            if not (0 <= f < len(self._face_alive) and self._face_alive[f]):
                raise TopologyError(f"half-edge {h} references dead face {f}")
            v = self._origin[h]
            if not (0 <= v < len(self._vertex_alive) and self._vertex_alive[v]):
                raise TopologyError(f"half-edge {h} has dead origin {v}")
            if self._vertex_he[v] == NONE:
                raise TopologyError(f"vertex {v} has outgoing half-edge {h} but no representative")
            t = self._twin[h]
            if t != NONE:
                if not (0 <= t < n_he and self._he_alive[t]):
                    raise TopologyError(f"half-edge {h} has invalid twin {t}")
                if self._twin[t] != h:
                    raise TopologyError(f"twin(twin({h})) != {h}")
                if self._origin[t] != self._origin[nx_] or self._origin[self._next[t]] != v:
                    raise TopologyError(f"half-edge {h} and twin {t} do not run opposite")
        if live != self._n_live_he:
            raise TopologyError(f"live half-edge count {self._n_live_he} != {live}")

        walked = 0
        live_faces = 0
        for f, alive in enumerate(self._face_alive):
            if not alive:
                continue
            live_faces += 1
            rep = self._face_he[f]
            if not (0 <= rep < n_he and self._he_alive[rep]) or self._face[rep] != f:
                raise TopologyError(f"face {f} has invalid representative {rep}")
            loop = self._face_loop(f)
            if len(loop) < 3:
                raise TopologyError(f"face {f} has only {len(loop)} sides")
            verts = [self._origin[h] for h in loop]
            if len(set(verts)) != len(verts):
                raise TopologyError(f"face {f} repeats a vertex: {verts}")
            walked += len(loop)
        if walked != live:
            raise TopologyError(f"face cycles cover {walked} half-edges, {live} are live")
        if live_faces != self._n_live_faces:
            raise TopologyError(f"live face count {self._n_live_faces} != {live_faces}")

        around = 0
        for v, alive in enumerate(self._vertex_alive):
            if not alive:
                continue
            for start in self._fan_starts(v):
                if not (0 <= start < n_he and self._he_alive[start]) or self._origin[start] != v:
                    raise TopologyError(f"vertex {v} has invalid fan start {start}")
            around += len(self._outgoing(v))
        if around != live:
            raise TopologyError(f"vertex rotations cover {around} half-edges, {live} are live")

        for key, record in self._nm_edges.items():
            for h in record:
                if not self._he_alive[h] or edge_key(self._origin[h], self._origin[self._next[h]]) != key:
                    raise TopologyError(f"non-manifold record {key} lists stray half-edge {h}")

    # ------------------------------------------------------------------
    # Copies, export, compaction
    # ------------------------------------------------------------------
    def copy(self, share_geometry: bool = True) -> "ConnectivityStructure":
        """Independent topology snapshot; geometry is shared unless asked otherwise."""
        out = ConnectivityStructure.__new__(ConnectivityStructure)
        out.geometry = self.geometry if share_geometry else self.geometry.copy()
        for name in (
            "_origin",
            "_twin",
            "_next",
            "_prev",
            "_face",
            "_he_alive",
            "_face_he",
            "_face_alive",
            "_vertex_he",
            "_vertex_alive",
        ):
            setattr(out, name, list(getattr(self, name)))
        out._nm_edges = {k: list(v) for k, v in self._nm_edges.items()}
        out._nm_vertices = {k: list(v) for k, v in self._nm_vertices.items()}
        out._winding_conflicts = dict(self._winding_conflicts)
        out._n_live_he = self._n_live_he
        out._n_live_faces = self._n_live_faces
        out._n_live_vertices = self._n_live_vertices
        out._state = self._state
        return out

    def to_arrays(self) -> Dict[str, np.ndarray]:
        """Raw arena as int64 arrays (deleted records included, see ``*_alive``)."""
        return {
            "origin": np.asarray(self._origin, dtype=np.int64),
            "twin": np.asarray(self._twin, dtype=np.int64),
            "next": np.asarray(self._next, dtype=np.int64),
            "prev": np.asarray(self._prev, dtype=np.int64),
            "face": np.asarray(self._face, dtype=np.int64),
            "half_edge_alive": np.asarray(self._he_alive, dtype=bool),
            "face_half_edge": np.asarray(self._face_he, dtype=np.int64),
            "face_alive": np.asarray(self._face_alive, dtype=bool),
            "vertex_half_edge": np.asarray(self._vertex_he, dtype=np.int64),
            "vertex_alive": np.asarray(self._vertex_alive, dtype=bool),
        }

    def face_array(self) -> List[List[int]]:
        """Vertex cycles of the live faces, in face index order."""
        return [self.face_vertices(f) for f in self.faces()]

    def compact(self) -> CompactionMap:
        """
        Drop deleted records and renumber everything densely.

        Indices held by callers are invalidated; use the returned map to
        translate them. The geometry reference is replaced by a compacted copy,
        so a store shared with other snapshots is left as is.
        """
        def remap(alive: List[bool]) -> np.ndarray:
            m = np.full(len(alive), NONE, dtype=np.int64)
            keep = np.flatnonzero(np.asarray(alive, dtype=bool))
            m[keep] = np.arange(len(keep))
            return m

        vmap = remap(self._vertex_alive)
        hmap = remap(self._he_alive)
        fmap = remap(self._face_alive)

        def mapped(m: np.ndarray, i: int) -> int:
            return NONE if i == NONE else int(m[i])

        keep_he = [h for h, a in enumerate(self._he_alive) if a]
        keep_f = [f for f, a in enumerate(self._face_alive) if a]
        keep_v = [v for v, a in enumerate(self._vertex_alive) if a]

        before = (len(self._vertex_alive), len(self._he_alive), len(self._face_alive))

        self._origin = [mapped(vmap, self._origin[h]) for h in keep_he]
        self._twin = [mapped(hmap, self._twin[h]) for h in keep_he]
        self._next = [mapped(hmap, self._next[h]) for h in keep_he]
        self._prev = [mapped(hmap, self._prev[h]) for h in keep_he]
        self._face = [mapped(fmap, self._face[h]) for h in keep_he]
        self._he_alive = [True] * len(keep_he)
        self._face_he = [mapped(hmap, self._face_he[f]) for f in keep_f]
        self._face_alive = [True] * len(keep_f)
        self._vertex_he = [mapped(hmap, self._vertex_he[v]) for v in keep_v]
        self._vertex_alive = [True] * len(keep_v)

        self._nm_edges = {
            edge_key(int(vmap[a]), int(vmap[b])): [int(hmap[h]) for h in hs]
            for (a, b), hs in self._nm_edges.items()
        }
        self._nm_vertices = {
            int(vmap[v]): [int(hmap[h]) for h in hs] for v, hs in self._nm_vertices.items()
        }
        self._winding_conflicts = {
            edge_key(int(vmap[a]), int(vmap[b])): tuple(int(hmap[h]) for h in hs)
            for (a, b), hs in self._winding_conflicts.items()
        }
        self.geometry = self.geometry.take(keep_v)

        logger.info(
            "Compacted mesh: vertices %d -> %d, half-edges %d -> %d, faces %d -> %d",
            before[0],
            len(keep_v),
            before[1],
            len(keep_he),
            before[2],
            len(keep_f),
        )
        return CompactionMap(vertex_map=vmap, half_edge_map=hmap, face_map=fmap)

    # ------------------------------------------------------------------
    # Mutation entry points
    # ------------------------------------------------------------------
    def collapse_edge(self, h: int) -> int:
        from .mutation import collapse_edge

        return collapse_edge(self, h)

    def split_edge(self, h: int, position) -> int:
        from .mutation import split_edge

        return split_edge(self, h, position)

    def flip_edge(self, h: int):
        from .mutation import flip_edge

        return flip_edge(self, h)

    def __repr__(self) -> str:
        return (
            f"ConnectivityStructure(vertices={self.n_vertices}, faces={self.n_faces}, "
            f"half_edges={self.n_half_edges}, manifold={self.is_manifold()})"
        )
