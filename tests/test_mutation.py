"""
Tests for edge collapse, split and flip.
"""

import numpy as np
import pytest

from conftest import assert_same_snapshot, face_sets, snapshot
from meshes import (
    GeometryStore,
    InvalidFlip,
    MutationError,
    OutOfRange,
    WouldCreateNonManifold,
    boundary_loops,
    build,
    collapse_edge,
    flip_edge,
    plane,
    split_edge,
)


def assert_closed_manifold(mesh):
    mesh.validate()
    assert mesh.is_manifold()
    assert all(mesh.twin(h) is not None for h in mesh.half_edges())


class TestCollapse:
    """Edge collapse keeps the destination vertex."""

    def test_collapse_on_closed_mesh(self, octahedron):
        kept = collapse_edge(octahedron, octahedron.find_half_edge(4, 0))

        assert kept == 0
        assert octahedron.n_vertices == 5
        assert octahedron.n_faces == 6
        assert octahedron.n_half_edges == 18
        assert octahedron.n_edges == 9
        assert_closed_manifold(octahedron)
        assert 4 not in set(octahedron.vertices())
        assert len(octahedron.outgoing_half_edges(0)) == 4

    def test_collapse_interior_edge_of_fan(self, hexagon_fan):
        h = hexagon_fan.find_half_edge(0, 1)
        kept = hexagon_fan.collapse_edge(h)

        assert kept == 1
        assert hexagon_fan.n_faces == 4
        assert hexagon_fan.n_half_edges == 12
        assert face_sets(hexagon_fan) == [(1, 2, 3), (1, 3, 4), (1, 4, 5), (1, 5, 6)]
        hexagon_fan.validate()
        assert hexagon_fan.is_manifold()
        rep = hexagon_fan.vertex_half_edge(1)
        assert hexagon_fan.twin(rep) is None
        assert len(hexagon_fan.outgoing_half_edges(1)) == 4
        loops = boundary_loops(hexagon_fan)
        assert len(loops) == 1
        assert len(loops[0]) == 6

    def test_collapse_boundary_edge(self, hexagon_fan):
        h = hexagon_fan.find_half_edge(1, 2)
        kept = hexagon_fan.collapse_edge(h)

        assert kept == 2
        assert hexagon_fan.n_faces == 5
        assert hexagon_fan.n_half_edges == 15
        assert face_sets(hexagon_fan) == [(0, 2, 3), (0, 2, 6), (0, 3, 4), (0, 4, 5), (0, 5, 6)]
        hexagon_fan.validate()
        assert not hexagon_fan.is_boundary_vertex(0)
        assert len(boundary_loops(hexagon_fan)[0]) == 5

    def test_collapse_on_polygon_shortens_face(self):
        mesh = plane(1.0, 1.0, quad=True).mesh
        kept = mesh.collapse_edge(mesh.find_half_edge(0, 1))

        assert kept == 1
        assert mesh.n_faces == 1
        assert mesh.n_half_edges == 3
        assert sorted(mesh.face_vertices(0)) == [1, 2, 3]
        mesh.validate()

    def test_collapse_undoes_split(self, two_triangles):
        m = two_triangles.split_edge(two_triangles.find_half_edge(0, 1), (0.5, 0.0, 0.0))
        two_triangles.collapse_edge(two_triangles.find_half_edge(m, 1))

        assert two_triangles.n_half_edges == 6
        assert face_sets(two_triangles) == [(0, 1, 2), (0, 1, 3)]
        two_triangles.validate()
        h = two_triangles.find_half_edge(0, 1)
        assert two_triangles.twin(h) == two_triangles.find_half_edge(1, 0)

    def test_removed_vertex_keeps_position(self, octahedron):
        octahedron.collapse_edge(octahedron.find_half_edge(4, 0))
        np.testing.assert_allclose(octahedron.geometry.position(4), [0.0, 0.0, 1.0])


class TestCollapseRejected:
    """Rejected collapses leave every query unchanged."""

    def test_endpoints_share_another_neighbor(self):
        # outer triangle 0-1-2 around inner vertex 3
        mesh = build(4, [[0, 1, 3], [1, 2, 3], [2, 0, 3]]).mesh
        before = snapshot(mesh)
        n_half_edges = mesh.n_half_edges

        with pytest.raises(WouldCreateNonManifold):
            mesh.collapse_edge(mesh.find_half_edge(0, 1))

        assert mesh.n_half_edges == n_half_edges == 9
        assert_same_snapshot(before, snapshot(mesh))
        mesh.validate()

    def test_tetrahedron_edge(self, tetrahedron):
        before = snapshot(tetrahedron)
        with pytest.raises(WouldCreateNonManifold):
            tetrahedron.collapse_edge(tetrahedron.find_half_edge(0, 2))
        assert_same_snapshot(before, snapshot(tetrahedron))

    def test_non_manifold_edge(self, book):
        mesh = book.mesh
        before = snapshot(mesh)
        with pytest.raises(WouldCreateNonManifold):
            mesh.collapse_edge(0)
        assert_same_snapshot(before, snapshot(mesh))

    def test_interior_edge_between_boundary_vertices(self):
        # two fans glued along 0-1; both ends lie on the outer boundary
        mesh = build(4, [[0, 1, 2], [1, 0, 3]]).mesh
        with pytest.raises(WouldCreateNonManifold):
            mesh.collapse_edge(mesh.find_half_edge(0, 1))
        assert mesh.n_faces == 2

    def test_face_holding_both_endpoints(self):
        # the pentagon visits 0 and 1 without an edge between them
        mesh = build(5, [[0, 2, 1, 3, 4], [0, 1, 2]]).mesh
        before = snapshot(mesh)

        with pytest.raises(WouldCreateNonManifold):
            mesh.collapse_edge(mesh.find_half_edge(0, 1))

        assert_same_snapshot(before, snapshot(mesh))
        assert mesh.face_vertices(0) == [0, 2, 1, 3, 4]
        mesh.validate()

    def test_rejection_is_a_mutation_error(self, tetrahedron):
        with pytest.raises(MutationError):
            tetrahedron.collapse_edge(0)
        with pytest.raises(ValueError):
            tetrahedron.collapse_edge(0)

    def test_stale_half_edge(self, octahedron):
        h = octahedron.find_half_edge(4, 0)
        octahedron.collapse_edge(h)
        with pytest.raises(OutOfRange):
            octahedron.collapse_edge(h)


class TestSplit:
    """Edge split inserts a vertex into every incident face."""

    def test_split_interior_edge(self, two_triangles):
        m = split_edge(two_triangles, two_triangles.find_half_edge(0, 1), (0.5, 0.0, 0.0))

        assert m == 4
        assert two_triangles.n_vertices == 5
        assert two_triangles.n_half_edges == 8
        assert two_triangles.face_vertices(0) == [0, 4, 1, 2]
        assert two_triangles.face_vertices(1) == [1, 4, 0, 3]
        a = two_triangles.find_half_edge(0, 4)
        b = two_triangles.find_half_edge(4, 0)
        assert two_triangles.twin(a) == b
        assert two_triangles.twin(two_triangles.find_half_edge(4, 1)) == two_triangles.find_half_edge(1, 4)
        assert not two_triangles.is_boundary_vertex(4)
        two_triangles.validate()
        assert two_triangles.is_manifold()
        np.testing.assert_allclose(two_triangles.geometry.position(4), [0.5, 0.0, 0.0])

    def test_split_boundary_edge(self, triangle):
        m = triangle.split_edge(0, (0.5, 0.0, 0.0))

        assert triangle.face_vertices(0) == [0, m, 1, 2]
        assert triangle.is_boundary_vertex(m)
        assert len(boundary_loops(triangle)[0]) == 4
        triangle.validate()

    def test_split_non_manifold_edge(self, book):
        mesh = book.mesh
        m = mesh.split_edge(0, (0.0, 0.0, 0.0))

        assert m == 5
        assert mesh.n_half_edges == 12
        assert (0, 1) not in mesh.non_manifold_edges
        assert len(mesh.non_manifold_edges[(0, 5)]) == 3
        assert len(mesh.non_manifold_edges[(1, 5)]) == 3
        assert m in mesh.non_manifold_vertices
        assert (0, 1) not in mesh.winding_conflicts
        assert len(mesh.winding_conflicts[(0, 5)]) == 2
        assert len(mesh.winding_conflicts[(1, 5)]) == 2
        assert all(mesh.face_degree(f) == 4 for f in mesh.faces())
        mesh.validate()

    def test_split_on_shared_store_stays_private(self, two_triangles):
        a = two_triangles.copy()
        b = two_triangles.copy()
        assert a.geometry is b.geometry

        assert a.split_edge(a.find_half_edge(0, 1), (0.5, 0.0, 0.0)) == 4
        assert b.split_edge(b.find_half_edge(0, 1), (0.5, 0.0, 0.0)) == 5

        assert list(a.vertices()) == [0, 1, 2, 3, 4]
        assert list(b.vertices()) == [0, 1, 2, 3, 5]
        assert b.n_vertices == 5
        with pytest.raises(OutOfRange):
            b.is_isolated(4)
        assert two_triangles.n_vertices == 4
        a.validate()
        b.validate()

    def test_split_with_larger_store(self):
        store = GeometryStore.from_array(np.zeros((5, 3)))
        mesh = build(3, [[0, 1, 2]], geometry=store).mesh

        m = mesh.split_edge(0, (0.5, 0.0, 0.0))

        assert m == 5
        assert list(mesh.vertices()) == [0, 1, 2, 5]
        assert mesh.n_vertices == 4
        with pytest.raises(OutOfRange):
            mesh.outgoing_half_edges(3)
        mesh.validate()

    def test_split_rejects_bad_position(self, two_triangles):
        before = snapshot(two_triangles)
        with pytest.raises(ValueError):
            two_triangles.split_edge(0, (0.0, float("nan"), 0.0))
        with pytest.raises(ValueError):
            two_triangles.split_edge(0, (0.0, 1.0))
        assert_same_snapshot(before, snapshot(two_triangles))
        assert len(two_triangles.geometry) == 4


class TestFlip:
    """Diagonal flip between two triangles."""

    def test_flip_quad_diagonal(self, two_triangles):
        h = two_triangles.find_half_edge(0, 1)
        result = flip_edge(two_triangles, h)

        assert result.half_edge == h
        assert result.vertices == (3, 2)
        assert result.faces == (0, 1)
        assert two_triangles.endpoints(h) == (3, 2)
        assert two_triangles.find_half_edge(0, 1) is None
        assert two_triangles.find_half_edge(3, 2) == h
        assert sorted(two_triangles.face_vertices(0)) == [0, 2, 3]
        assert sorted(two_triangles.face_vertices(1)) == [1, 2, 3]
        two_triangles.validate()
        assert two_triangles.is_manifold()

    def test_flip_twice_restores_adjacency(self, two_triangles):
        h = two_triangles.find_half_edge(0, 1)
        two_triangles.flip_edge(h)
        two_triangles.flip_edge(h)

        assert face_sets(two_triangles) == [(0, 1, 2), (0, 1, 3)]
        assert two_triangles.endpoints(h) == (1, 0)
        two_triangles.validate()

    def test_flip_on_closed_mesh(self, octahedron):
        octahedron.flip_edge(octahedron.find_half_edge(4, 0))

        assert_closed_manifold(octahedron)
        assert len(octahedron.outgoing_half_edges(4)) == 3
        assert len(octahedron.outgoing_half_edges(0)) == 3
        assert len(octahedron.outgoing_half_edges(2)) == 5
        assert len(octahedron.outgoing_half_edges(3)) == 5
        assert octahedron.find_half_edge(2, 3) is not None

    def test_flip_boundary_edge(self, two_triangles):
        before = snapshot(two_triangles)
        with pytest.raises(InvalidFlip):
            two_triangles.flip_edge(two_triangles.find_half_edge(1, 2))
        assert_same_snapshot(before, snapshot(two_triangles))

    def test_flip_would_duplicate_edge(self, tetrahedron):
        before = snapshot(tetrahedron)
        with pytest.raises(InvalidFlip):
            tetrahedron.flip_edge(tetrahedron.find_half_edge(0, 2))
        assert_same_snapshot(before, snapshot(tetrahedron))

    def test_flip_next_to_polygon(self):
        mesh = build(5, [[0, 1, 2, 3], [1, 0, 4]]).mesh
        with pytest.raises(InvalidFlip):
            mesh.flip_edge(mesh.find_half_edge(0, 1))

    def test_flip_non_manifold_edge(self, book):
        with pytest.raises(InvalidFlip):
            book.mesh.flip_edge(0)
