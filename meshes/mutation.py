"""
Topology editing primitives.

Each primitive is a local rewrite of the half-edge arena. All preconditions are
checked before the first write, so a call either commits completely or raises
and leaves every query answering exactly as before.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Set, Tuple

from .connectivity import NONE, edge_key
from .errors import InvalidFlip, WouldCreateNonManifold
from .geometry import _as_point

if TYPE_CHECKING:
    from .connectivity import ConnectivityStructure

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class MutationResult:
    half_edge: int
    faces: Tuple[int, ...]
    # endpoints of `half_edge` after the edit
    vertices: Tuple[int, int]


def _neighbors(mesh: "ConnectivityStructure", outgoing: Iterable[int]) -> Set[int]:
    o, nx, pv = mesh._origin, mesh._next, mesh._prev
    out = set()
    for h in outgoing:
        out.add(o[nx[h]])
        out.add(o[pv[h]])
    return out


def _replace_start(mesh: "ConnectivityStructure", v: int, old: int, new: int) -> None:
    if mesh._vertex_he[v] == old:
        mesh._vertex_he[v] = new
    starts = mesh._nm_vertices.get(v)
    if starts is not None:
        mesh._nm_vertices[v] = [new if s == old else s for s in starts]


def _rekey(table: dict, old_vertex: int, new_vertex: int) -> None:
    for key in [k for k in table if old_vertex in k]:
        u, v = key
        u = new_vertex if u == old_vertex else u
        v = new_vertex if v == old_vertex else v
        table[edge_key(u, v)] = table.pop(key)


# ---------------------------------------------------------------------------
# Collapse
# ---------------------------------------------------------------------------
def collapse_edge(mesh: "ConnectivityStructure", h: int) -> int:
    """
    Merge the origin of `h` into its destination and return the kept vertex.

    Triangles incident to the edge vanish and their two remaining sides are
    glued; larger polygons just lose one side. The removed vertex is deleted
    logically and its position stays in the geometry store.

    Raises:
        OutOfRange: `h` is not a live half-edge.
        WouldCreateNonManifold: the result would contain a duplicate edge, a
            folded or pinched neighbourhood, or the edit touches a
            non-manifold record.
    """
    h = mesh._check_half_edge(h)
    o, tw, nx, pv, fc = mesh._origin, mesh._twin, mesh._next, mesh._prev, mesh._face
    a, b = o[h], o[nx[h]]
    g = tw[h]
    key = edge_key(a, b)

    def reject(reason: str) -> None:
        logger.debug("Rejected collapse of half-edge %d (%d->%d): %s", h, a, b, reason)
        raise WouldCreateNonManifold(f"cannot collapse half-edge {h} ({a}->{b}): {reason}")

    if key in mesh._nm_edges:
        reject("the edge is non-manifold")
    if key in mesh._winding_conflicts:
        reject("the edge has a winding conflict")
    if a in mesh._nm_vertices or b in mesh._nm_vertices:
        reject("an endpoint has more than one fan")

    sides = [s for s in (h, g) if s != NONE]
    triangles: List[int] = []
    apexes: List[int] = []
    for s in sides:
        if nx[nx[nx[s]]] != s:
            continue
        n, p = nx[s], pv[s]
        c = o[p]
        if c in mesh._nm_vertices:
            reject(f"apex vertex {c} has more than one fan")
        for e in (n, p):
            k = edge_key(o[e], o[nx[e]])
            if k in mesh._nm_edges or k in mesh._winding_conflicts:
                reject(f"edge {k} of a collapsing triangle is irregular")
        triangles.append(s)
        apexes.append(c)

    out_a = mesh._outgoing(a)
    out_b = mesh._outgoing(b)
    shared = (_neighbors(mesh, out_a) & _neighbors(mesh, out_b)) - {a, b}
    extra = shared - set(apexes)
    if extra:
        reject(f"endpoints already share neighbours {sorted(extra)}")
    if len(apexes) == 2:
        c, d = apexes
        if c == d:
            reject("both incident triangles have the same apex")
        if d in _neighbors(mesh, mesh._outgoing(c)):
            reject(f"apex vertices {c} and {d} are already connected")
    incident = {fc[s] for s in sides}
    for e in out_a:
        f = fc[e]
        if f in incident:
            continue
        if any(o[x] == b for x in mesh._face_loop(f)):
            reject(f"face {f} contains both endpoints")
    if g != NONE:
        a_boundary = any(tw[e] == NONE for e in out_a)
        b_boundary = any(tw[e] == NONE for e in out_b)
        if a_boundary and b_boundary:
            reject("interior edge joins two boundary vertices")

    apex_out = {c: mesh._outgoing(c) for c in apexes}

    # ---- commit ---------------------------------------------------------
    removed_faces = []
    for s in sides:
        f = fc[s]
        if s in triangles:
            n, p = nx[s], pv[s]
            tn, tp = tw[n], tw[p]
            for e in (s, n, p):
                mesh._kill_half_edge(e)
            mesh._kill_face(f)
            mesh._link_twins(tn, tp)
            removed_faces.append(f)
        else:
            ps, ns = pv[s], nx[s]
            nx[ps] = ns
            pv[ns] = ps
            if mesh._face_he[f] == s:
                mesh._face_he[f] = ns
            mesh._kill_half_edge(s)

    alive = mesh._he_alive
    for e in out_a:
        if alive[e]:
            o[e] = b
    _rekey(mesh._nm_edges, a, b)
    _rekey(mesh._winding_conflicts, a, b)

    mesh._kill_vertex(a)
    mesh._assign_vertex(b, [e for e in out_a + out_b if alive[e]])
    for c, outs in apex_out.items():
        mesh._assign_vertex(c, [e for e in outs if alive[e]])

    logger.debug(
        "Collapsed half-edge %d: vertex %d merged into %d, removed faces %s",
        h,
        a,
        b,
        removed_faces,
    )
    return b


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------
def split_edge(mesh: "ConnectivityStructure", h: int, position) -> int:
    """
    Insert a new vertex at `position` on the edge of `h` and return its index.

    Every face incident to the edge gains one vertex (a triangle becomes a
    quad). For a non-manifold edge all incident faces are subdivided and the
    side-table entry is split in two.
    """
    h = mesh._check_half_edge(h)
    p = _as_point(position)
    o, tw, nx, pv, fc = mesh._origin, mesh._twin, mesh._next, mesh._prev, mesh._face
    a, b = o[h], o[nx[h]]
    key = edge_key(a, b)

    if key in mesh._nm_edges:
        group = list(mesh._nm_edges[key])
    elif key in mesh._winding_conflicts:
        group = list(mesh._winding_conflicts[key])
    else:
        group = [h] if tw[h] == NONE else [h, tw[h]]

    m = mesh.geometry.add_vertex(p)
    mesh._ensure_vertex(m)

    piece = {}
    for s in group:
        s2 = mesh._new_half_edge(m, fc[s])
        n = nx[s]
        nx[s2] = n
        pv[n] = s2
        nx[s] = s2
        pv[s2] = s
        piece[s] = s2

    done = set()
    for s in group:
        t = tw[s]
        if t == NONE or s in done:
            continue
        done.update((s, t))
        mesh._link_twins(s, piece[t])
        mesh._link_twins(piece[s], t)

    lo, hi = edge_key(a, m), edge_key(m, b)
    near_a = {s: s if o[s] == a else piece[s] for s in group}
    near_b = {s: piece[s] if o[s] == a else s for s in group}
    if key in mesh._nm_edges:
        del mesh._nm_edges[key]
        mesh._nm_edges[lo] = [near_a[s] for s in group]
        mesh._nm_edges[hi] = [near_b[s] for s in group]
    if key in mesh._winding_conflicts:
        members = mesh._winding_conflicts.pop(key)
        mesh._winding_conflicts[lo] = tuple(near_a[s] for s in members)
        mesh._winding_conflicts[hi] = tuple(near_b[s] for s in members)

    mesh._assign_vertex(m, [piece[s] for s in group])
    logger.debug("Split half-edge %d (%d->%d) at new vertex %d", h, a, b, m)
    return m


# ---------------------------------------------------------------------------
# Flip
# ---------------------------------------------------------------------------
def flip_edge(mesh: "ConnectivityStructure", h: int) -> MutationResult:
    """
    Replace the diagonal shared by two triangles with the other diagonal.

    For triangles ``(a, b, c)`` and ``(b, a, d)`` around ``h = a->b`` the
    result is ``(a, d, c)`` and ``(d, b, c)``; `h` then runs ``d->c``.

    Raises:
        OutOfRange: `h` is not a live half-edge.
        InvalidFlip: boundary or non-manifold edge, a non-triangular incident
            face, or ``c`` and ``d`` coincide or are already connected.
    """
    h = mesh._check_half_edge(h)
    o, tw, nx, pv, fc = mesh._origin, mesh._twin, mesh._next, mesh._prev, mesh._face
    a, b = o[h], o[nx[h]]
    g = tw[h]

    def reject(reason: str) -> None:
        logger.debug("Rejected flip of half-edge %d (%d->%d): %s", h, a, b, reason)
        raise InvalidFlip(f"cannot flip half-edge {h} ({a}->{b}): {reason}")

    if g == NONE:
        reject("boundary edge")
    if edge_key(a, b) in mesh._nm_edges:
        reject("the edge is non-manifold")
    f1, f2 = fc[h], fc[g]
    if f1 == f2:
        reject("both sides lie on the same face")
    if nx[nx[nx[h]]] != h or nx[nx[nx[g]]] != g:
        reject("an incident face is not a triangle")

    n1, p1 = nx[h], pv[h]
    n2, p2 = nx[g], pv[g]
    c, d = o[p1], o[p2]
    if c == d:
        reject("opposite vertices coincide")
    if d in _neighbors(mesh, mesh._outgoing(c)):
        reject(f"vertices {c} and {d} are already connected")

    # ---- commit ---------------------------------------------------------
    o[h] = d
    o[g] = c

    nx[n2], nx[h], nx[p1] = h, p1, n2
    pv[h], pv[p1], pv[n2] = n2, h, p1
    fc[n2] = f1

    nx[p2], nx[n1], nx[g] = n1, g, p2
    pv[n1], pv[g], pv[p2] = p2, n1, g
    fc[n1] = f2

    mesh._face_he[f1] = h
    mesh._face_he[f2] = g
    _replace_start(mesh, a, h, n2)
    _replace_start(mesh, b, g, n1)

    logger.debug("Flipped half-edge %d: %d-%d -> %d-%d", h, a, b, d, c)
    return MutationResult(half_edge=h, faces=(f1, f2), vertices=(d, c))
