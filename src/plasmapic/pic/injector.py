"""
Particle Injection and Initial Loading

inject_particles: each step, creates the macro-particles that flow into
the domain through its exterior facets. The expected count per facet is
intensity * density * dt; the integral part is injected deterministically
and one more particle is added with probability equal to the fractional
part (unbiased stochastic rounding). Positions are uniform on the facet,
velocities follow the flux-weighted distribution, and each particle is
advanced by r * dt * v with r ~ U(0, 1) so birth times are spread over
the step instead of all sitting on the boundary.

load_particles: one-time fill of the domain from the species' position
and velocity distributions.
"""

import logging

import numpy as np

from ..sampling import random_facet_points, rejection_sampler

logger = logging.getLogger(__name__)


def injection_counts(expected, rng):
    """
    Stochastically rounded particle counts.

    Args:
        expected: Expected counts (non-negative) [n_facets]
        rng: numpy.random.Generator

    Returns:
        counts: floor(expected), plus one with probability of the remainder
    """
    expected = np.asarray(expected, dtype=np.float64)
    base = np.floor(expected)
    return (base + (rng.random(expected.shape) < expected - base)).astype(np.int64)


def _flux_velocities(species, facet_index, normal, n, rng):
    if species.envelopes is not None and species.envelopes[facet_index] is not None:
        return species.envelopes[facet_index].sample(n, rng)
    return rejection_sampler(n, species.vdf, species.pdf_max[facet_index],
                             species.vdf.domain, rng, normal=normal)


def inject_particles(pop, species, facets, dt, rng):
    """
    Inject particles through exterior facets for one time step.

    Args:
        pop: Population receiving the particles
        species: Sequence of Species with flux precomputed (create_flux)
        facets: Exterior facets, in the order used by create_flux
        dt: Time step [s]
        rng: numpy.random.Generator

    Returns:
        diagnostics: dict with keys
            - n_sampled: Particles created on the facets
            - n_injected: Particles inserted into the population

    Raises:
        ValueError: If a species has no flux data
    """
    facets = list(facets)
    if not facets:
        return {"n_sampled": 0, "n_injected": 0}
    vertices = np.array([f.vertices for f in facets], dtype=np.float64)
    normals = np.array([f.inward_normal for f in facets], dtype=np.float64)

    n_sampled = 0
    n_injected = 0
    for sp in species:
        if not sp.has_flux:
            raise ValueError(f"{sp!r} has no flux data; call create_flux first")

        counts = injection_counts(sp.num_particles * sp.n * dt, rng)
        total = int(counts.sum())
        if total == 0:
            continue

        xs = random_facet_points(vertices, counts, rng)
        vs = np.empty_like(xs)
        offset = 0
        for i in np.flatnonzero(counts):
            k = int(counts[i])
            vs[offset:offset + k] = _flux_velocities(sp, i, normals[i], k, rng)
            offset += k

        xs += rng.random((total, 1)) * dt * vs
        n_sampled += total
        n_injected += pop.add_particles(xs, vs, sp.q, sp.m)

    logger.debug("Injected %d of %d sampled particles", n_injected, n_sampled)
    return {"n_sampled": n_sampled, "n_injected": n_injected}


def load_particles(pop, species, rng):
    """
    Fill the domain with each species' initial particles.

    Positions come from species.pdf by rejection sampling; velocities from
    the inverse CDF when the distribution has one, otherwise by rejection
    sampling over the full velocity domain.

    Args:
        pop: Population to fill
        species: Sequence of Species
        rng: numpy.random.Generator

    Returns:
        n_loaded: Particles inserted
    """
    n_loaded = 0
    for sp in species:
        n = sp.num
        xs = rejection_sampler(n, sp.pdf, sp.pdf.max(), sp.pdf.domain, rng)
        if sp.vdf.has_icdf:
            vs = sp.vdf.icdf(rng.random((n, sp.vdf.dim)))
        else:
            vs = rejection_sampler(n, sp.vdf, sp.vdf.max(), sp.vdf.domain, rng)
        added = pop.add_particles(xs, vs, sp.q, sp.m)
        n_loaded += added
        logger.info("Loaded %d particles of %r", added, sp)
    return n_loaded
