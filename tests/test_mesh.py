"""
Tests for the simplicial mesh (construction, point location, facets)
"""

import pytest
import numpy as np
from plasmapic.mesh import SimplexMesh, box_mesh, delaunay_mesh


class TestBoxMesh:
    """Test structured box triangulation."""

    def test_1d_cells(self):
        """A 1D box splits into equal intervals."""
        mesh = box_mesh(0.0, 2.0, 4)

        assert mesh.dim == 1
        assert mesh.num_cells == 4
        assert mesh.num_vertices == 5
        np.testing.assert_allclose(mesh.volumes, 0.5)

    def test_2d_counts_and_volume(self):
        """Each square splits into 2 triangles; volumes add up to the box."""
        mesh = box_mesh([0, 0], [1, 2], 4)

        assert mesh.num_cells == 4 * 8 * 2
        assert mesh.num_vertices == 5 * 9
        assert mesh.volume() == pytest.approx(2.0)

    def test_3d_counts_and_volume(self):
        """Each cube splits into 6 tetrahedra of equal volume."""
        mesh = box_mesh([0, 0, 0], [1, 1, 1], 2)

        assert mesh.num_cells == 8 * 6
        assert mesh.volume() == pytest.approx(1.0)
        np.testing.assert_allclose(mesh.volumes, 1.0 / 48)

    def test_bounding_box(self):
        mesh = box_mesh([-1, 0], [1, 3], 2)
        np.testing.assert_allclose(mesh.bounding_box(), [[-1, 1], [0, 3]])

    def test_invalid_arguments(self):
        """Inverted corners and zero resolution are rejected."""
        with pytest.raises(ValueError):
            box_mesh([0, 0], [1, -1], 2)
        with pytest.raises(ValueError):
            box_mesh([0, 0], [1, 1], 0)


class TestSimplexMesh:
    """Test general mesh construction and basis functions."""

    def test_degenerate_cell_rejected(self):
        """Collinear triangle has no area."""
        points = [[0, 0], [1, 1], [2, 2]]
        with pytest.raises(ValueError, match="degenerate"):
            SimplexMesh(points, [[0, 1, 2]])

    def test_wrong_arity_rejected(self):
        with pytest.raises(ValueError):
            SimplexMesh([[0, 0], [1, 0], [0, 1]], [[0, 1]])

    def test_basis_partition_of_unity(self):
        """Barycentric weights are non-negative inside a cell and sum to 1."""
        mesh = box_mesh([0, 0, 0], [1, 1, 1], 2)
        rng = np.random.default_rng(0)
        xs = rng.random((200, 3))
        cells = mesh.locate(xs)

        lam = mesh.basis_values(cells, xs)

        np.testing.assert_allclose(lam.sum(axis=1), 1.0)
        assert np.all(lam >= -1e-12)

    def test_basis_at_vertices(self):
        """Each basis function is 1 at its own vertex and 0 at the others."""
        mesh = box_mesh([0, 0], [1, 1], 1)
        cell = 0
        xs = mesh.points[mesh.cells[cell]]

        lam = mesh.basis_values(np.full(3, cell), xs)

        np.testing.assert_allclose(lam, np.eye(3), atol=1e-12)

    def test_basis_gradients_reproduce_linear_function(self):
        """Sum of phi_k grad(lambda_k) is the gradient of a linear phi."""
        mesh = box_mesh([0, 0], [1, 1], 3)
        slope = np.array([2.0, -3.0])
        phi = mesh.points @ slope

        cells = np.arange(mesh.num_cells)
        grads = mesh.basis_gradients(cells)
        local_phi = phi[mesh.cell_dofs(cells)]
        grad_phi = np.einsum("ck,ckd->cd", local_phi, grads)

        np.testing.assert_allclose(grad_phi, np.tile(slope, (mesh.num_cells, 1)), atol=1e-10)

    def test_vertex_adjacent_cells(self):
        """Corner vertex of a 1D mesh touches one cell, interior ones two."""
        mesh = box_mesh(0.0, 1.0, 3)

        assert len(mesh.vertex_adjacent_cells(0)) == 1
        assert len(mesh.vertex_adjacent_cells(1)) == 2


class TestLocate:
    """Test point location."""

    def test_located_cell_contains_point(self):
        """Every located point lies in its cell."""
        mesh = box_mesh([0, 0, 0], [1, 1, 1], 3)
        rng = np.random.default_rng(1)
        xs = rng.random((500, 3))

        cells = mesh.locate(xs)

        assert np.all(cells >= 0)
        assert np.all(mesh.contains(cells, xs))

    def test_outside_returns_negative(self):
        mesh = box_mesh([0, 0], [1, 1], 2)
        cells = mesh.locate(np.array([[1.5, 0.5], [-0.1, 0.2], [0.5, 0.5]]))

        assert cells[0] < 0
        assert cells[1] < 0
        assert cells[2] >= 0

    def test_single_point_returns_int(self):
        mesh = box_mesh([0, 0], [1, 1], 2)

        cell = mesh.locate([0.3, 0.6])

        assert isinstance(cell, int)
        assert mesh.contains([cell], [[0.3, 0.6]])[0]

    def test_1d_scalar(self):
        mesh = box_mesh(0.0, 1.0, 4)

        assert mesh.locate(0.6) == 2
        assert mesh.locate(1.2) == -1

    def test_contains_negative_cell(self):
        """A negative cell index never contains anything."""
        mesh = box_mesh([0, 0], [1, 1], 1)
        assert not mesh.contains([-1], [[0.5, 0.5]])[0]

    def test_delaunay_mesh_locate(self):
        """Unstructured mesh of a square covers the whole square."""
        rng = np.random.default_rng(2)
        corners = np.array([[0, 0], [1, 0], [0, 1], [1, 1]], dtype=float)
        points = np.vstack([corners, rng.random((40, 2))])
        mesh = delaunay_mesh(points)

        xs = rng.random((300, 2))
        cells = mesh.locate(xs)

        assert mesh.volume() == pytest.approx(1.0)
        assert np.all(cells >= 0)
        assert np.all(mesh.contains(cells, xs))


class TestExteriorFacets:
    """Test boundary facet extraction."""

    def test_1d_facets(self):
        """1D boundary facets are the two end points."""
        mesh = box_mesh(0.0, 1.0, 4)
        facets = mesh.exterior_facets

        assert len(facets) == 2
        by_position = sorted(facets, key=lambda f: f.vertices[0, 0])
        np.testing.assert_allclose(by_position[0].normal, [-1.0])
        np.testing.assert_allclose(by_position[1].normal, [1.0])
        assert by_position[0].area == 1.0

    def test_2d_facets_outward(self):
        """Square boundary: total length 4, normals point away from the center."""
        mesh = box_mesh([0, 0], [1, 1], 2)
        facets = mesh.exterior_facets

        assert len(facets) == 8
        assert sum(f.area for f in facets) == pytest.approx(4.0)
        for f in facets:
            assert np.dot(f.normal, f.centroid - 0.5) > 0
            np.testing.assert_allclose(f.inward_normal, -f.normal)

    def test_3d_facets(self):
        """Cube boundary: total area 6, unit normals along the axes."""
        mesh = box_mesh([0, 0, 0], [1, 1, 1], 2)
        facets = mesh.exterior_facets

        assert sum(f.area for f in facets) == pytest.approx(6.0)
        for f in facets:
            assert np.linalg.norm(f.normal) == pytest.approx(1.0)
            assert np.max(np.abs(f.normal)) == pytest.approx(1.0)
            assert np.dot(f.normal, f.centroid - 0.5) > 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
