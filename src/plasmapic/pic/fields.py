"""
Electric Field Collaborators

A field is any callable E(cells, xs) -> (n, dim) array giving the electric
field at particle positions xs inside the paired cells. A field solver
exposes:

    solve(rho, objects) -> potential per mesh vertex
    electric_field(phi) -> field callable

This module provides the simple fields used for test-particle runs and a
helper that turns a P1 potential into a piecewise-constant field. The
Poisson solve itself lives outside this package.
"""

import numpy as np


class UniformField:
    """Spatially constant electric field."""

    def __init__(self, E0):
        self.E0 = np.atleast_1d(np.asarray(E0, dtype=np.float64))

    def __call__(self, cells, xs):
        n = len(np.atleast_1d(cells))
        return np.broadcast_to(self.E0, (n, len(self.E0))).copy()


class CellField:
    """
    Piecewise-constant field, one vector per cell.

    Args:
        values: Field per cell [num_cells, dim] [V/m]
    """

    def __init__(self, values):
        self.values = np.asarray(values, dtype=np.float64)

    def __call__(self, cells, xs):
        return self.values[np.asarray(cells, dtype=np.int64)]

    @classmethod
    def from_potential(cls, mesh, phi):
        """
        Field E = -grad(phi) of a P1 potential, exact per cell.

        Args:
            mesh: SimplexMesh
            phi: Potential per vertex [num_vertices] [V]
        """
        cells = np.arange(mesh.num_cells)
        grads = mesh.basis_gradients(cells)
        local_phi = np.asarray(phi, dtype=np.float64)[mesh.cell_dofs(cells)]
        return cls(-np.einsum("ck,ckd->cd", local_phi, grads))


def interpolate_potential(mesh, phi, cells, xs):
    """
    P1 interpolation of a vertex potential at positions.

    Args:
        mesh: SimplexMesh
        phi: Potential per vertex [num_vertices]
        cells: Containing cell per position [n]
        xs: Positions [n, dim]

    Returns:
        phi_x: Potential at each position [n]
    """
    cells = np.asarray(cells, dtype=np.int64)
    weights = mesh.basis_values(cells, xs)
    return np.sum(weights * np.asarray(phi)[mesh.cell_dofs(cells)], axis=1)


class StaticFieldSolver:
    """
    Solver stand-in for test-particle runs: zero potential, fixed field.

    Args:
        mesh: Mesh the potential lives on
        field: Field callable returned by electric_field (default: zero field)
    """

    def __init__(self, mesh, field=None):
        self.mesh = mesh
        self.field = field if field is not None else UniformField(np.zeros(mesh.dim))

    def solve(self, rho, objects=()):
        return np.zeros(self.mesh.num_vertices)

    def electric_field(self, phi):
        return self.field
