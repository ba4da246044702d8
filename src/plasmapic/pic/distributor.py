"""
Charge Deposition on Mesh Vertices

Scatters particle charge to the P1 degrees of freedom (mesh vertices)
with barycentric weights, then divides by an approximate Voronoi volume
per vertex to turn deposited charge into charge density:

    rho_i = dv_inv_i * sum_p q_p * lambda_i(x_p)

    dv_inv_i = (dim + 1) / sum of volumes of the cells sharing vertex i

Each cell spreads its volume equally over its dim + 1 vertices, so the
vertex volumes sum to the mesh volume.

Reference:
    Birdsall & Langdon (2004), "Plasma Physics via Computer Simulation",
    Chapter 8: Weighting
"""

import numpy as np
import numba


# ==================== VOLUME WEIGHTS ====================


def voronoi_volume_approx(mesh):
    """
    Inverse effective volume per vertex.

    Args:
        mesh: Mesh with cells, volumes and num_vertices

    Returns:
        dv_inv: (dim + 1) / adjacent cell volume per vertex [num_vertices];
                0 for vertices no cell touches
    """
    n_local = mesh.dim + 1
    adjacent = np.bincount(
        mesh.cells.ravel(),
        weights=np.repeat(mesh.volumes, n_local),
        minlength=mesh.num_vertices,
    )
    dv_inv = np.zeros(mesh.num_vertices)
    used = adjacent > 0
    dv_inv[used] = n_local / adjacent[used]
    return dv_inv


# ==================== SCATTER ====================


@numba.njit
def _scatter(dofs, weights, values, out):
    """
    Accumulate values[p] * weights[p, k] into out[dofs[p, k]].

    Args:
        dofs: Vertex indices per particle [n, dim+1]
        weights: Basis values per particle [n, dim+1]
        values: Quantity carried by each particle [n]
        out: Accumulator per vertex (modified in place)
    """
    n, n_local = dofs.shape
    for p in range(n):
        for k in range(n_local):
            out[dofs[p, k]] += values[p] * weights[p, k]


def _deposit(mesh, pop, values, mask=None):
    n = pop.n_particles
    out = np.zeros(mesh.num_vertices)
    if n == 0:
        return out
    cells = pop.cell[:n]
    x = pop.x[:n]
    if mask is not None:
        cells, x, values = cells[mask], x[mask], values[mask]
    if len(cells) == 0:
        return out
    weights = mesh.basis_values(cells, x)
    dofs = np.ascontiguousarray(mesh.cell_dofs(cells), dtype=np.int64)
    _scatter(dofs, weights, np.ascontiguousarray(values, dtype=np.float64), out)
    return out


def distribute(mesh, pop, dv_inv):
    """
    Charge density on the mesh vertices.

    Args:
        mesh: Mesh supplying basis_values and cell_dofs
        pop: Population
        dv_inv: Inverse vertex volumes from voronoi_volume_approx

    Returns:
        rho: Charge density per vertex [num_vertices] [C/m^3]
    """
    rho = _deposit(mesh, pop, pop.q[:pop.n_particles])
    rho *= dv_inv
    return rho


def density(mesh, pop, dv_inv):
    """
    Macro-particle number densities of negative and positive particles.

    Returns:
        ne: Density of negatively charged particles per vertex [1/m^3]
        ni: Density of positively charged particles per vertex [1/m^3]
    """
    n = pop.n_particles
    q = pop.q[:n]
    ones = np.ones(n)
    ne = _deposit(mesh, pop, ones, q < 0) * dv_inv
    ni = _deposit(mesh, pop, ones, q > 0) * dv_inv
    return ne, ni


def ema(value, average, dt, tau):
    """
    Exponential moving average with time constant tau.

    Args:
        value: New sample
        average: Previous average
        dt: Time since the previous sample [s]
        tau: Averaging time constant [s]

    Returns:
        Updated average (value itself when dt >= tau)
    """
    if not tau > 0:
        raise ValueError(f"Averaging time constant must be positive, got {tau}")
    w = min(dt / tau, 1.0)
    return w * np.asarray(value) + (1.0 - w) * np.asarray(average)
