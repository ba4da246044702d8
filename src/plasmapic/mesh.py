"""
Simplicial Mesh and Point Location

Geometry collaborator consumed by the PIC kernel. Provides:
- point location (which cell contains a position)
- cell volumes and vertex adjacency (Voronoi volume approximation)
- P1 (barycentric) basis values at particle positions
- exterior boundary facets with outward normals (particle injection)

Supports intervals (1D), triangles (2D) and tetrahedra (3D). Degrees of
freedom are the mesh vertices (continuous piecewise-linear elements).
"""

import itertools
import math

import numpy as np
from scipy.spatial import Delaunay, cKDTree

# Barycentric tolerance: a point this far outside a cell still counts as inside
LOCATE_TOL = 1e-12

# Nearest cell centroids tried before falling back to an exhaustive search
N_CANDIDATES = 16


class ExteriorFacet:
    """
    Boundary facet of the mesh through which particles may enter.

    Attributes:
        vertices: Facet vertex coordinates, one row per vertex [dim, dim]
        normal: Outward unit normal [dim]
        area: Facet measure (1 for a 1D point facet, length in 2D, area in 3D)
        cell: Index of the cell owning the facet
    """

    def __init__(self, vertices, normal, area, cell):
        self.vertices = np.asarray(vertices, dtype=np.float64)
        self.normal = np.asarray(normal, dtype=np.float64)
        self.area = float(area)
        self.cell = int(cell)

    @property
    def inward_normal(self):
        """Unit normal pointing into the domain (direction of injection)."""
        return -self.normal

    @property
    def centroid(self):
        return self.vertices.mean(axis=0)

    def __repr__(self):
        return (f"ExteriorFacet(cell={self.cell}, area={self.area:.3e}, "
                f"normal={np.array2string(self.normal, precision=3)})")


class SimplexMesh:
    """
    Unstructured simplicial mesh.

    Cells are stored as vertex index tuples. For every cell the affine map
    to barycentric coordinates is precomputed, so locating a point and
    evaluating the P1 basis are both a single small matrix product.

    Attributes:
        dim: Geometric dimension (1, 2 or 3)
        points: Vertex coordinates [num_vertices, dim]
        cells: Vertex indices per cell [num_cells, dim+1]
        volumes: Cell volumes [num_cells]
        centroids: Cell centroids [num_cells, dim]
    """

    def __init__(self, points, cells):
        """
        Args:
            points: Vertex coordinates, shape (num_vertices, dim) or (num_vertices,) in 1D
            cells: Vertex indices per cell, shape (num_cells, dim+1)

        Raises:
            ValueError: If cell arity does not match the dimension, or a cell is degenerate
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points[:, None]
        cells = np.asarray(cells, dtype=np.int64)

        dim = points.shape[1]
        if cells.ndim != 2 or cells.shape[1] != dim + 1:
            raise ValueError(
                f"A {dim}D mesh needs cells with {dim + 1} vertices, got shape {cells.shape}"
            )
        if len(cells) == 0:
            raise ValueError("Mesh has no cells")

        self.dim = dim
        self.points = points
        self.cells = cells
        self.num_vertices = len(points)
        self.num_cells = len(cells)

        # Rows of `edges` are p_k - p_0, so x - p_0 = lambda[1:] @ edges
        origin = points[cells[:, 0]]
        edges = points[cells[:, 1:]] - origin[:, None, :]
        h = np.abs(edges).max(axis=(1, 2))
        self.volumes = np.abs(np.linalg.det(edges)) / math.factorial(dim)
        if np.any(self.volumes <= 1e-12 * h**dim):
            bad = np.flatnonzero(self.volumes <= 1e-12 * h**dim)
            raise ValueError(f"Mesh contains {len(bad)} degenerate cell(s), first: {bad[0]}")

        self._origin = origin
        self._transform = np.linalg.inv(edges)
        self.centroids = points[cells].mean(axis=1)
        self._tree = cKDTree(self.centroids)
        self._lower = points.min(axis=0)
        self._upper = points.max(axis=0)
        self._facets = None

    # ==================== GEOMETRY ====================

    def bounding_box(self):
        """Per-axis [low, high] bounds, shape (dim, 2)."""
        return np.column_stack([self._lower, self._upper])

    def cell_volume(self, cell):
        return float(self.volumes[cell])

    def volume(self):
        """Total volume of the mesh."""
        return float(np.sum(self.volumes))

    def cell_dofs(self, cells):
        """Degrees of freedom (vertex indices) of the given cells."""
        return self.cells[cells]

    def vertex_adjacent_cells(self, vertex):
        """Indices of all cells sharing the given vertex."""
        return np.flatnonzero(np.any(self.cells == vertex, axis=1))

    # ==================== BASIS / LOCATION ====================

    def basis_values(self, cells, xs):
        """
        P1 basis values (barycentric coordinates) at positions xs.

        Args:
            cells: Cell index per position [n]
            xs: Positions [n, dim]

        Returns:
            weights: Basis value per cell vertex [n, dim+1], ordered as
                     mesh.cells[cells]
        """
        cells = np.asarray(cells, dtype=np.int64)
        xs = np.asarray(xs, dtype=np.float64).reshape(-1, self.dim)
        lam = np.einsum("ni,nij->nj", xs - self._origin[cells], self._transform[cells])
        return np.column_stack([1.0 - lam.sum(axis=1), lam])

    def basis_gradients(self, cells):
        """
        Gradients of the P1 basis functions (constant per cell).

        Returns:
            grads: [n, dim+1, dim]
        """
        T = self._transform[np.asarray(cells, dtype=np.int64)]
        # d lambda_k / dx = column k of T for k >= 1
        grad_rest = np.transpose(T, (0, 2, 1))
        grad_0 = -grad_rest.sum(axis=1, keepdims=True)
        return np.concatenate([grad_0, grad_rest], axis=1)

    def contains(self, cells, xs):
        """
        Check whether each position lies inside the paired cell.

        Negative cell indices are never a match.
        """
        cells = np.asarray(cells, dtype=np.int64)
        xs = np.asarray(xs, dtype=np.float64).reshape(-1, self.dim)
        result = np.zeros(len(xs), dtype=np.bool_)
        valid = cells >= 0
        if np.any(valid):
            lam = self.basis_values(cells[valid], xs[valid])
            result[valid] = lam.min(axis=1) >= -LOCATE_TOL
        return result

    def locate(self, x):
        """
        Find the cell containing each position.

        Args:
            x: A single position of shape (dim,) or positions of shape (n, dim)

        Returns:
            cell: Cell index (int) for a single position, or an int array
                  for many positions. -1 marks positions outside the mesh.
        """
        x = np.asarray(x, dtype=np.float64)
        single = x.ndim == 0 or (x.ndim == 1 and x.shape[0] == self.dim)
        xs = x.reshape(-1, self.dim)
        cells = self._locate_many(xs)
        return int(cells[0]) if single else cells

    def _locate_many(self, xs):
        n = len(xs)
        found = np.full(n, -1, dtype=np.int64)
        if n == 0:
            return found

        k = min(N_CANDIDATES, self.num_cells)
        _, candidates = self._tree.query(xs, k=k)
        candidates = np.asarray(candidates, dtype=np.int64).reshape(n, k)

        todo = np.arange(n)
        for j in range(k):
            c = candidates[todo, j]
            inside = self.contains(c, xs[todo])
            found[todo[inside]] = c[inside]
            todo = todo[~inside]
            if todo.size == 0:
                return found

        # Nearest centroids missed: exhaustive check for points in the bounding box
        tol = LOCATE_TOL * max(1.0, float(np.max(self._upper - self._lower)))
        pts = xs[todo]
        in_box = np.all((pts >= self._lower - tol) & (pts <= self._upper + tol), axis=1)
        all_cells = np.arange(self.num_cells)
        for i in todo[in_box]:
            lam = self.basis_values(all_cells, np.broadcast_to(xs[i], (self.num_cells, self.dim)))
            hit = np.flatnonzero(lam.min(axis=1) >= -LOCATE_TOL)
            if hit.size:
                found[i] = hit[0]
        return found

    # ==================== BOUNDARY ====================

    @property
    def exterior_facets(self):
        """Facets owned by exactly one cell, with outward unit normals."""
        if self._facets is None:
            self._facets = self._build_exterior_facets()
        return self._facets

    def _build_exterior_facets(self):
        d = self.dim
        # Local facet j of a cell omits local vertex j
        local = np.array([[k for k in range(d + 1) if k != j] for j in range(d + 1)])
        faces = self.cells[:, local].reshape(-1, d)

        _, first, counts = np.unique(
            np.sort(faces, axis=1), axis=0, return_index=True, return_counts=True
        )
        boundary = np.sort(first[counts == 1])
        owner = boundary // (d + 1)
        opposite = self.cells[owner, boundary % (d + 1)]
        verts = self.points[faces[boundary]]

        if d == 1:
            normals = np.ones((len(boundary), 1))
            areas = np.ones(len(boundary))
        else:
            edges = verts[:, 1:, :] - verts[:, :1, :]
            _, _, vh = np.linalg.svd(edges)
            normals = vh[:, -1, :]
            gram = edges @ np.transpose(edges, (0, 2, 1))
            areas = np.sqrt(np.abs(np.linalg.det(gram))) / math.factorial(d - 1)

        # Orient away from the vertex opposite the facet
        outward = verts.mean(axis=1) - self.points[opposite]
        normals = normals * np.sign(np.sum(normals * outward, axis=1))[:, None]

        return [
            ExteriorFacet(verts[i], normals[i], areas[i], owner[i])
            for i in range(len(boundary))
        ]

    def __repr__(self):
        return (f"SimplexMesh(dim={self.dim}, num_cells={self.num_cells}, "
                f"num_vertices={self.num_vertices}, volume={self.volume():.3e})")


# ==================== CONSTRUCTORS ====================


def box_mesh(lower, upper, resolution):
    """
    Structured simplicial mesh of an axis-aligned box.

    Each hypercube of the grid is split into dim! simplices of equal volume
    (Kuhn / Freudenthal triangulation), so the mesh is conforming without
    relying on Delaunay tie-breaking for the cospherical grid points.

    Args:
        lower: Lower corner [dim] (or scalar in 1D)
        upper: Upper corner [dim] (or scalar in 1D)
        resolution: Cells per axis (int or per-axis sequence)

    Returns:
        mesh: SimplexMesh instance

    Example:
        >>> mesh = box_mesh([0, 0], [1, 1], 4)
        >>> mesh.num_cells
        32
    """
    lower = np.atleast_1d(np.asarray(lower, dtype=np.float64))
    upper = np.atleast_1d(np.asarray(upper, dtype=np.float64))
    dim = len(lower)
    res = np.broadcast_to(np.asarray(resolution, dtype=np.int64), (dim,)).copy()

    if len(upper) != dim:
        raise ValueError("lower and upper must have the same length")
    if np.any(res < 1):
        raise ValueError(f"Resolution must be at least 1 per axis, got {res}")
    if np.any(upper <= lower):
        raise ValueError("upper must exceed lower on every axis")

    axes = [np.linspace(lower[i], upper[i], res[i] + 1) for i in range(dim)]
    grid = np.meshgrid(*axes, indexing="ij")
    points = np.column_stack([g.ravel() for g in grid])

    shape = tuple(res + 1)
    base = np.indices(tuple(res)).reshape(dim, -1).T

    blocks = []
    for perm in itertools.permutations(range(dim)):
        corner = base.copy()
        simplex = [np.ravel_multi_index(tuple(corner.T), shape)]
        for axis in perm:
            corner[:, axis] += 1
            simplex.append(np.ravel_multi_index(tuple(corner.T), shape))
        blocks.append(np.column_stack(simplex))

    return SimplexMesh(points, np.concatenate(blocks))


def delaunay_mesh(points):
    """
    Simplicial mesh of the convex hull of a point cloud.

    Uses scipy's Qhull Delaunay triangulation in 2D/3D and sorted intervals
    in 1D. Zero-volume slivers (cospherical input) are discarded.
    """
    points = np.asarray(points, dtype=np.float64)
    if points.ndim == 1 or points.shape[1] == 1:
        x = np.unique(points.ravel())
        idx = np.arange(len(x))
        return SimplexMesh(x[:, None], np.column_stack([idx[:-1], idx[1:]]))

    tri = Delaunay(points)
    simplices = tri.simplices
    p = tri.points
    edges = p[simplices[:, 1:]] - p[simplices[:, :1]]
    volumes = np.abs(np.linalg.det(edges))
    keep = volumes > 1e-10 * volumes.max()

    return SimplexMesh(p, simplices[keep])
