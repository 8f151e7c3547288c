"""
Exceptions and build diagnostics.

Failures fall into three groups:
- fatal build errors (`InvalidIndex`, `EmptyMesh`) abort construction and no
  structure is returned;
- mutation errors (`WouldCreateNonManifold`, `InvalidFlip`, `NotABoundaryEdge`)
  are local, the structure is left exactly as it was;
- query errors (`OutOfRange`) flag stale or invalid indices.

Recoverable irregularities found while building are not raised at all. They are
collected as `Diagnostic` records and returned next to a usable structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


class MeshError(Exception):
    """Base class for every error raised by this package."""


class BuildError(MeshError, ValueError):
    """Construction failed; no structure was produced."""


class InvalidIndex(BuildError):
    """A face references a vertex outside ``[0, vertex_count)``."""

    def __init__(self, face_index: int, vertex: object, vertex_count: int):
        self.face_index = face_index
        self.vertex = vertex
        self.vertex_count = vertex_count
        super().__init__(
            f"Face {face_index} references vertex {vertex!r}, "
            f"valid range is [0, {vertex_count})"
        )


class EmptyMesh(BuildError):
    """Every input face was rejected."""


class MutationError(MeshError, ValueError):
    """A topology edit was rejected before anything was changed."""


class WouldCreateNonManifold(MutationError):
    pass


class InvalidFlip(MutationError):
    pass


class NotABoundaryEdge(MutationError):
    pass


class OutOfRange(MeshError, IndexError):
    """An index is negative, past the end, or refers to a deleted record."""

    def __init__(self, kind: str, index: object, count: int):
        self.kind = kind
        self.index = index
        self.count = count
        super().__init__(f"{kind} index {index!r} out of range (count={count})")


class Cancelled(MeshError):
    """A bulk operation was aborted through its cancel callback."""


class TopologyError(MeshError, RuntimeError):
    """An internal invariant does not hold."""


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Diagnostic:
    kind: str = field(init=False, default="diagnostic")

    @property
    def message(self) -> str:  # pragma: no cover - overridden
        return self.kind


@dataclass(frozen=True)
class DegenerateFace(Diagnostic):
    """An input face with fewer than 3 distinct vertices, or a repeated vertex."""

    face_index: int
    vertices: Tuple[int, ...]
    reason: str
    kind: str = field(init=False, default="degenerate_face")

    @property
    def message(self) -> str:
        return f"face {self.face_index} {self.vertices} is degenerate: {self.reason}"


@dataclass(frozen=True)
class DuplicateFace(Diagnostic):
    """An input face with the same cyclic vertex sequence as an earlier one."""

    face_index: int
    duplicate_of: int
    same_orientation: bool
    dropped: bool
    kind: str = field(init=False, default="duplicate_face")

    @property
    def message(self) -> str:
        how = "same" if self.same_orientation else "opposite"
        action = "dropped" if self.dropped else "kept"
        return (
            f"face {self.face_index} duplicates face {self.duplicate_of} "
            f"({how} orientation, {action})"
        )


@dataclass(frozen=True)
class WindingConflict(Diagnostic):
    """Two faces traverse the same directed edge."""

    edge: Tuple[int, int]
    half_edges: Tuple[int, ...]
    kind: str = field(init=False, default="winding_conflict")

    @property
    def message(self) -> str:
        return (
            f"directed edge {self.edge[0]}->{self.edge[1]} is used by "
            f"half-edges {self.half_edges}"
        )


@dataclass(frozen=True)
class NonManifoldEdge(Diagnostic):
    """More than two half-edges share one undirected vertex pair."""

    edge: Tuple[int, int]
    half_edges: Tuple[int, ...]
    kind: str = field(init=False, default="non_manifold_edge")

    @property
    def message(self) -> str:
        return (
            f"edge {self.edge} has {len(self.half_edges)} incident half-edges"
        )


@dataclass(frozen=True)
class NonManifoldVertex(Diagnostic):
    """The faces around a vertex form more than one fan."""

    vertex: int
    fans: Tuple[int, ...]
    kind: str = field(init=False, default="non_manifold_vertex")

    @property
    def message(self) -> str:
        return f"vertex {self.vertex} has {len(self.fans)} separate fans"


def describe(diagnostic: Diagnostic, prefix: Optional[str] = None) -> str:
    """One-line text for logs and warnings."""
    text = f"[{diagnostic.kind}] {diagnostic.message}"
    return f"{prefix}: {text}" if prefix else text
