"""
Facet Flux Precomputation

For every species and exterior facet this computes:
- num_particles[facet]: expected macro-particles entering through the
  facet per unit time and unit density,
      area * integral of max(0, v.n) f(v) dv
  with n the inward unit normal
- pdf_max[facet]: maximum of the flux-weighted distribution
  max(0, v.n) f(v), found by a grid search over the velocity domain,
  polished by a local optimizer and scaled by a safety margin, for the
  injection rejection sampler

Facets sharing a normal (e.g. all facets on one face of a box) share the
same velocity-space quantities, so the work runs once per distinct normal.

Reference:
    Birdsall & Langdon (2004), "Plasma Physics via Computer Simulation",
    Section 16.5: Injection of particles
"""

import logging

import numpy as np

from ..sampling import (
    GridEnvelope,
    flux_weighted,
    grid_vertices,
    refine_maximum,
    velocity_grid_shape,
)

logger = logging.getLogger(__name__)

# Grid points along the first velocity axis
DEFAULT_RESOLUTION = 64

# Multiplicative margin on the refined maximum
DEFAULT_MARGIN = 1.1

# Resolution doublings tried when the grid misses a non-zero flux entirely
MAX_REFINEMENTS = 3


def group_facets(facets, decimals=12):
    """
    Group exterior facets by inward normal.

    Args:
        facets: Sequence of ExteriorFacet
        decimals: Rounding applied before comparing normals

    Returns:
        normals: Distinct unit inward normals [n_groups, dim]
        inverse: Group index of every facet [n_facets]
    """
    normals = np.array([f.inward_normal for f in facets], dtype=np.float64)
    # Adding 0.0 turns -0.0 into 0.0 so both compare equal
    rounded = np.round(normals, decimals) + 0.0
    unique, inverse = np.unique(rounded, axis=0, return_inverse=True)
    unique /= np.linalg.norm(unique, axis=1, keepdims=True)
    return unique, np.asarray(inverse).reshape(-1)


def flux_number(vdf, normal, resolution=DEFAULT_RESOLUTION):
    """
    Particle flux per unit density through a surface.

    Uses the distribution's closed form when it has one, otherwise
    midpoint quadrature of max(0, v.normal) f(v) over the velocity domain.

    Args:
        vdf: Velocity distribution
        normal: Unit normal pointing into the domain [dim]
        resolution: Quadrature cells along the first axis

    Returns:
        flux: Integral of max(0, v.normal) f(v) dv [m/s]
    """
    if hasattr(vdf, "flux_number"):
        return float(vdf.flux_number(normal))

    shape = velocity_grid_shape(vdf.domain, resolution)
    spacing = (vdf.domain[:, 1] - vdf.domain[:, 0]) / shape
    centers = grid_vertices(vdf.domain + 0.5 * spacing[:, None] * [1, -1], shape - 1)
    return float(np.sum(flux_weighted(vdf, normal)(centers)) * np.prod(spacing))


def grid_maximum(vdf, normal, resolution=DEFAULT_RESOLUTION):
    """Largest value of the flux-weighted vdf on the grid vertices."""
    return _grid_argmax(vdf, normal, resolution)[1]


def _grid_argmax(vdf, normal, resolution):
    vertices = grid_vertices(vdf.domain, velocity_grid_shape(vdf.domain, resolution))
    values = flux_weighted(vdf, normal)(vertices)
    best = int(np.argmax(values))
    return vertices[best], float(values[best])


def _reaches_inflow(domain, normal):
    """True when some velocity in the box domain has v.normal > 0."""
    corners = np.where(normal > 0, domain[:, 1], domain[:, 0])
    return float(corners @ normal) > 0


def create_flux(species, facets, resolution=DEFAULT_RESOLUTION, margin=DEFAULT_MARGIN,
                envelope=False):
    """
    Precompute injection intensities and sampler maxima.

    Sets species.num_particles and species.pdf_max (one entry per facet)
    on every species, and species.envelopes when envelope is True.

    A normal gets zero intensity when the sampler could never produce an
    inflowing velocity for it: the species has zero density, the velocity
    domain lies entirely on the outflow side (e.g. a beam drifting faster
    than the domain cutoff away from the facet), or the grid search finds
    no positive flux even after refinement.

    Args:
        species: Sequence of Species
        facets: Exterior facets particles are injected through
        resolution: Velocity grid points along the first axis
        margin: Safety factor applied to the refined maximum
        envelope: Also build a GridEnvelope sampler per facet normal
    """
    facets = list(facets)
    if not facets:
        for sp in species:
            sp.num_particles = np.zeros(0)
            sp.pdf_max = np.zeros(0)
            sp.envelopes = [] if envelope else None
        return

    normals, inverse = group_facets(facets)
    areas = np.array([f.area for f in facets], dtype=np.float64)

    for sp in species:
        flux = np.zeros(len(normals))
        peak = np.zeros(len(normals))
        samplers = []
        for k, normal in enumerate(normals):
            if sp.n > 0 and _reaches_inflow(sp.vdf.domain, normal):
                flux[k] = max(flux_number(sp.vdf, normal, resolution), 0.0)
            if flux[k] > 0:
                peak[k] = _search_maximum(sp.vdf, normal, resolution)
                if peak[k] == 0.0:
                    flux[k] = 0.0
            if envelope:
                samplers.append(GridEnvelope(sp.vdf, sp.vdf.domain, resolution, normal, margin)
                                if flux[k] > 0 else None)

        sp.num_particles = areas * flux[inverse]
        sp.pdf_max = margin * peak[inverse]
        sp.envelopes = [samplers[k] for k in inverse] if envelope else None

        logger.info("Flux for %r: %d facets, %d normals, %.3e particles/s at unit density",
                    sp, len(facets), len(normals), float(np.sum(sp.num_particles)))


def _search_maximum(vdf, normal, resolution):
    res = resolution
    f = flux_weighted(vdf, normal)
    for attempt in range(MAX_REFINEMENTS + 1):
        vertex, peak = _grid_argmax(vdf, normal, res)
        if peak > 0:
            spacing = (vdf.domain[:, 1] - vdf.domain[:, 0]) / velocity_grid_shape(vdf.domain, res)
            return refine_maximum(f, vertex, vdf.domain, spacing)[1]
        if attempt < MAX_REFINEMENTS:
            logger.warning("Flux grid of resolution %d missed the distribution along %s; "
                           "refining to %d", res, normal, 2 * res)
            res *= 2
    logger.warning("No positive flux along %s at resolution %d; injecting nothing "
                   "through these facets", normal, res)
    return 0.0
