"""
Geometry Store: flat storage of vertex positions and per-vertex attributes.

Positions live in one growable ``(capacity, 3)`` float64 buffer; capacity
doubles when full, so appends are amortized O(1) and random access is O(1).
Optional attributes (``"normal"``, ``"color"``, ...) are parallel buffers of
a fixed width.

The store knows nothing about connectivity. A single store may back several
`ConnectivityStructure` snapshots; moving positions never invalidates them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .errors import OutOfRange
from .rotation import quaternion_matrix

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_MIN_CAPACITY = 8


def _as_point(position: Iterable[float]) -> np.ndarray:
    p = np.asarray(position, dtype=float).reshape(-1)
    if p.shape != (3,):
        raise ValueError(f"Position must have 3 components, got shape {p.shape}")
    if not np.all(np.isfinite(p)):
        raise ValueError(f"Position must be finite, got {p.tolist()}")
    return p


@dataclass
class Transform:
    name: str
    M: np.ndarray  # 4x4 homogeneous
    params: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)


class GeometryStore:
    """
    Vertex positions plus optional fixed-width per-vertex attributes.

    Attributes named ``"normal"`` are treated as directions by the transform
    methods: they are rotated but not translated or scaled. Every transform is
    recorded on `transform_stack`, oldest first.
    """

    def __init__(self, capacity: int = _MIN_CAPACITY):
        self.transform_stack: List[Transform] = []
        capacity = max(int(capacity), _MIN_CAPACITY)
        self._positions = np.zeros((capacity, 3), dtype=float)
        self._attributes: Dict[str, np.ndarray] = {}
        self._fills: Dict[str, np.ndarray] = {}
        self._count = 0

    @classmethod
    def from_array(cls, positions: np.ndarray) -> "GeometryStore":
        pts = np.asarray(positions, dtype=float)
        if pts.size == 0:
            pts = pts.reshape(0, 3)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise ValueError(f"Positions must be an (N,3) array, got shape {pts.shape}")
        if not np.all(np.isfinite(pts)):
            raise ValueError("Positions must be finite")
        store = cls(capacity=len(pts))
        store._positions[: len(pts)] = pts
        store._count = len(pts)
        return store

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return self._count

    @property
    def capacity(self) -> int:
        return int(self._positions.shape[0])

    def _grow(self, needed: int) -> None:
        cap = self.capacity
        if needed <= cap:
            return
        while cap < needed:
            cap *= 2
        grown = np.zeros((cap, 3), dtype=float)
        grown[: self._count] = self._positions[: self._count]
        self._positions = grown
        for name, buf in self._attributes.items():
            new_buf = np.empty((cap, buf.shape[1]), dtype=float)
            new_buf[:] = self._fills[name]
            new_buf[: self._count] = buf[: self._count]
            self._attributes[name] = new_buf

    def _check(self, index: int) -> int:
        try:
            i = int(index)
        except (TypeError, ValueError):
            raise OutOfRange("vertex", index, self._count) from None
        if i < 0 or i >= self._count:
            raise OutOfRange("vertex", index, self._count)
        return i

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------
    def add_vertex(self, position: Iterable[float]) -> int:
        """Append a vertex and return its index."""
        p = _as_point(position)
        self._grow(self._count + 1)
        i = self._count
        self._positions[i] = p
        for name, buf in self._attributes.items():
            buf[i] = self._fills[name]
        self._count += 1
        return i

    def position(self, index: int) -> np.ndarray:
        return self._positions[self._check(index)].copy()

    def set_position(self, index: int, position: Iterable[float]) -> None:
        i = self._check(index)
        self._positions[i] = _as_point(position)

    @property
    def positions(self) -> np.ndarray:
        """Read-only view of the live ``(N,3)`` positions."""
        view = self._positions[: self._count].view()
        view.flags.writeable = False
        return view

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------
    def add_attribute(self, name: str, width: int, fill: float | Sequence[float] = 0.0) -> None:
        if name in self._attributes:
            raise ValueError(f"Attribute {name!r} already exists")
        width = int(width)
        if width < 1:
            raise ValueError("Attribute width must be >= 1")
        fill_arr = np.broadcast_to(np.asarray(fill, dtype=float), (width,)).copy()
        buf = np.empty((self.capacity, width), dtype=float)
        buf[:] = fill_arr
        self._attributes[name] = buf
        self._fills[name] = fill_arr

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    @property
    def attribute_names(self) -> list[str]:
        return list(self._attributes)

    def _buffer(self, name: str) -> np.ndarray:
        try:
            return self._attributes[name]
        except KeyError:
            raise KeyError(f"Unknown vertex attribute {name!r}") from None

    def attribute(self, name: str, index: int) -> np.ndarray:
        buf = self._buffer(name)
        return buf[self._check(index)].copy()

    def set_attribute(self, name: str, index: int, value: Iterable[float]) -> None:
        buf = self._buffer(name)
        i = self._check(index)
        v = np.asarray(value, dtype=float).reshape(-1)
        if v.shape != (buf.shape[1],):
            raise ValueError(
                f"Attribute {name!r} has width {buf.shape[1]}, got {v.shape[0]} values"
            )
        buf[i] = v

    def attribute_array(self, name: str) -> np.ndarray:
        return self._buffer(name)[: self._count].copy()

    def set_attribute_array(self, name: str, values: np.ndarray) -> None:
        buf = self._buffer(name)
        vals = np.asarray(values, dtype=float)
        if vals.shape != (self._count, buf.shape[1]):
            raise ValueError(
                f"Expected shape {(self._count, buf.shape[1])} for {name!r}, got {vals.shape}"
            )
        buf[: self._count] = vals

    def paint(self, color: Iterable[float]) -> None:
        """Set the ``"color"`` attribute of every vertex."""
        c = np.asarray(color, dtype=float).reshape(-1)
        if c.shape != (3,):
            raise ValueError("Color must have 3 components")
        if not self.has_attribute("color"):
            self.add_attribute("color", 3, fill=(1.0, 1.0, 1.0))
        self._attributes["color"][: self._count] = c
        self._fills["color"] = c.copy()

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------
    def take(self, indices: Sequence[int]) -> "GeometryStore":
        """New store holding the given vertices, in the given order."""
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        if idx.size and (idx.min() < 0 or idx.max() >= self._count):
            bad = idx[(idx < 0) | (idx >= self._count)][0]
            raise OutOfRange("vertex", int(bad), self._count)
        out = GeometryStore.from_array(self._positions[idx])
        for name, buf in self._attributes.items():
            out.add_attribute(name, buf.shape[1], fill=self._fills[name])
            out._attributes[name][: len(idx)] = buf[idx]
        return out

    def copy(self) -> "GeometryStore":
        out = self.take(np.arange(self._count))
        out.transform_stack = list(self.transform_stack)
        return out

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------
    def _transform_points(self, M: np.ndarray) -> None:
        n = self._count
        if n == 0:
            return
        pts = self._positions[:n]
        ones = np.ones((n, 1), dtype=float)
        self._positions[:n] = (M @ np.hstack([pts, ones]).T).T[:, :3]
        if "normal" in self._attributes:
            normals = self._attributes["normal"][:n]
            rotated = (M[:3, :3] @ normals.T).T
            lengths = np.linalg.norm(rotated, axis=1, keepdims=True)
            lengths[lengths == 0.0] = 1.0
            self._attributes["normal"][:n] = rotated / lengths

    def apply_transform(
        self,
        M: np.ndarray,
        *,
        name: str = "custom",
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Apply a 4x4 homogeneous matrix to every position and record it."""
        M = np.asarray(M, dtype=float)
        if M.shape != (4, 4):
            raise ValueError(f"Transform matrix must be 4x4, got shape {M.shape}")
        self._transform_points(M)
        self.transform_stack.append(
            Transform(name=name, M=M.copy(), params=None if params is None else dict(params))
        )
        logger.debug("Applied %r to %d vertices", name, self._count)

    def undo_last_transform(self) -> Optional[Transform]:
        """Revert the most recent transform. Returns the popped record, if any."""
        if not self.transform_stack:
            return None
        last = self.transform_stack[-1]
        try:
            inv = np.linalg.inv(last.M)
        except np.linalg.LinAlgError as e:
            raise ValueError(f"Transform {last.name!r} is not invertible") from e
        self._transform_points(inv)
        self.transform_stack.pop()
        return last

    def get_composite_matrix(self) -> np.ndarray:
        """Cumulative 4x4 matrix of the recorded transforms, in applied order."""
        M = np.eye(4, dtype=float)
        for t in self.transform_stack:
            M = t.M @ M
        return M

    def get_inverse_matrix(self) -> np.ndarray:
        return np.linalg.inv(self.get_composite_matrix())

    def translate(self, t: Iterable[float]) -> None:
        tx, ty, tz = [float(c) for c in t]
        T = np.eye(4, dtype=float)
        T[:3, 3] = [tx, ty, tz]
        self.apply_transform(T, name="translate", params={"t": [tx, ty, tz]})

    def scale(self, s: float) -> None:
        sf = float(s)
        S = np.diag([sf, sf, sf, 1.0])
        self.apply_transform(S, name="scale", params={"scale": sf})

    def rotate(self, quaternion: Iterable[float], center: Optional[Iterable[float]] = None) -> None:
        """Rotate by an ``(x, y, z, w)`` quaternion about `center` (origin by default)."""
        q = [float(c) for c in quaternion]
        R = quaternion_matrix(q)
        if center is not None:
            c = _as_point(center)
            T = np.eye(4, dtype=float)
            T[:3, 3] = c
            Ti = np.eye(4, dtype=float)
            Ti[:3, 3] = -c
            R = T @ R @ Ti
        self.apply_transform(R, name="rotate", params={"quaternion": q})

    def centroid(self) -> Optional[np.ndarray]:
        if self._count == 0:
            return None
        return self._positions[: self._count].mean(axis=0)
