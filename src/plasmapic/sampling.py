"""
Monte-Carlo Samplers

Implements:
- Standard rejection sampling from any density with a known maximum
- Flux-weighted rejection sampling through a surface with a given normal
- Piecewise-constant envelope sampling (grid envelope) for expensive
  flux distributions
- Uniform sampling of points on exterior facets

All samplers take an explicit numpy Generator, so a fixed seed reproduces
a run and parallel workers can each own an independent stream.

Reference:
    Robert & Casella (2004), "Monte Carlo Statistical Methods", Ch. 2.3
"""

import itertools
import logging

import numpy as np
from scipy.optimize import minimize

logger = logging.getLogger(__name__)

# Batches drawn before a sampler gives up
MAX_ROUNDS = 1000

# Proposal batch size limits
MIN_BATCH = 64
MAX_BATCH = 1_000_000


class SamplingError(RuntimeError):
    """A sampler could not produce the requested number of samples."""


def flux_weighted(pdf, normal):
    """
    Flux-weighted density max(0, v.normal) * pdf(v).

    Args:
        pdf: Density callable accepting (n, dim) arrays
        normal: Unit normal along which the flux counts as positive [dim]

    Returns:
        vdf_flux: Callable with the same calling convention as pdf
    """
    normal = np.asarray(normal, dtype=np.float64)

    def vdf_flux(v):
        v = np.asarray(v, dtype=np.float64).reshape(-1, len(normal))
        return np.maximum(v @ normal, 0.0) * pdf(v)

    return vdf_flux


def _batch_size(needed, acceptance):
    return int(min(MAX_BATCH, max(MIN_BATCH, np.ceil(1.2 * needed / acceptance))))


def _warn_overshoot(name, n_over, n_proposed):
    if n_over:
        logger.warning("%s: %d of %d proposals exceeded the density bound; "
                       "samples near the peak are under-represented", name, n_over, n_proposed)


def rejection_sampler(n, pdf, pdf_max, domain, rng, normal=None, max_rounds=MAX_ROUNDS):
    """
    Draw n samples from pdf by rejection against a uniform proposal.

    A proposal v, uniform in the domain, is accepted when
    u * pdf_max <= pdf(v) with u ~ U(0, 1). With a normal given, pdf is
    replaced by its flux-weighted version, so only velocities with
    v.normal > 0 are accepted.

    Args:
        n: Number of samples
        pdf: Density callable accepting (n, dim) arrays
        pdf_max: Upper bound of pdf (or of the flux-weighted pdf) on the domain
        domain: Per-axis [low, high] bounds, shape (dim, 2)
        rng: numpy.random.Generator
        normal: Optional unit normal for flux-weighted sampling [dim]
        max_rounds: Proposal batches before giving up

    Returns:
        samples: Array of shape (n, dim)

    Raises:
        SamplingError: If pdf_max is not positive, or max_rounds batches did
                       not yield n accepted samples
    """
    domain = np.asarray(domain, dtype=np.float64).reshape(-1, 2)
    dim = len(domain)
    samples = np.empty((n, dim), dtype=np.float64)
    if n == 0:
        return samples
    if not pdf_max > 0:
        raise SamplingError(f"Cannot draw {n} samples from a density with maximum {pdf_max}")

    f = flux_weighted(pdf, normal) if normal is not None else pdf
    lower = domain[:, 0]
    width = domain[:, 1] - domain[:, 0]

    filled = 0
    n_accepted = 0
    n_proposed = 0
    n_over = 0
    acceptance = 1.0
    for _ in range(max_rounds):
        batch = _batch_size(n - filled, acceptance)
        v = lower + width * rng.random((batch, dim))
        u = rng.random(batch)
        fv = f(v)
        n_over += int(np.count_nonzero(fv > pdf_max))
        accepted = v[u * pdf_max <= fv]

        k = min(len(accepted), n - filled)
        samples[filled:filled + k] = accepted[:k]
        filled += k
        n_accepted += len(accepted)
        n_proposed += batch
        if filled == n:
            _warn_overshoot("Rejection sampler", n_over, n_proposed)
            logger.debug("Rejection sampler: %d samples from %d proposals", n, n_proposed)
            return samples
        acceptance = max(n_accepted, 1) / n_proposed

    raise SamplingError(
        f"Rejection sampler accepted {filled} of {n} samples after {n_proposed} "
        f"proposals ({max_rounds} rounds); check pdf_max and the domain"
    )


def velocity_grid_shape(domain, resolution):
    """
    Cells per axis of a velocity grid with equal spacing on every axis.

    The first axis gets `resolution` cells; the others are scaled by their
    extent relative to the first.
    """
    domain = np.asarray(domain, dtype=np.float64).reshape(-1, 2)
    width = domain[:, 1] - domain[:, 0]
    return np.maximum(1, np.round(resolution * width / width[0]).astype(np.int64))


def grid_vertices(domain, shape):
    """All vertices of a structured grid over the domain, shape (M, dim)."""
    domain = np.asarray(domain, dtype=np.float64).reshape(-1, 2)
    axes = [np.linspace(lo, hi, s + 1) for (lo, hi), s in zip(domain, shape)]
    grid = np.meshgrid(*axes, indexing="ij")
    return np.column_stack([g.ravel() for g in grid])


def refine_maximum(f, x0, domain, scale):
    """
    Polish a grid maximum with a bounded Nelder-Mead search.

    Grid vertices can miss a narrow peak by a large factor (heavy-tailed
    distributions in 3D are the usual case), so the best vertex is used
    as the starting point of a local search. The search runs in units of
    `scale` so SI velocities and unit velocities converge alike.

    Args:
        f: Function accepting (n, dim) arrays
        x0: Starting point, normally the best grid vertex [dim]
        domain: Per-axis [low, high] bounds, shape (dim, 2)
        scale: Per-axis length scale, normally the grid spacing [dim]

    Returns:
        x: Location of the maximum [dim]
        value: f(x), never below f(x0)
    """
    domain = np.asarray(domain, dtype=np.float64).reshape(-1, 2)
    x0 = np.asarray(x0, dtype=np.float64)
    scale = np.asarray(scale, dtype=np.float64)
    f0 = float(f(x0[None])[0])
    if not f0 > 0:
        return x0, f0

    dim = len(x0)
    bounds = (domain - x0[:, None]) / scale[:, None]
    # Initial simplex: half a grid cell per axis, stepping back from an upper edge
    step = np.where(bounds[:, 1] >= 0.5, 0.5, -0.5)
    simplex = np.vstack([np.zeros(dim), np.diag(step)])

    def objective(z):
        return -float(f((x0 + scale * z)[None])[0]) / f0

    result = minimize(objective, np.zeros(dim), method="Nelder-Mead", bounds=bounds,
                      options={"initial_simplex": simplex, "xatol": 1e-8, "fatol": 1e-12})
    value = -float(result.fun) * f0
    if value <= f0:
        return x0, f0
    return x0 + scale * np.asarray(result.x), value


class GridEnvelope:
    """
    Rejection sampler with a piecewise-constant envelope.

    The domain is divided into a structured grid of bins. Each bin's
    envelope value is the (margin-scaled) maximum of the density over the
    bin corners; the bins touching the global peak use the peak value found
    by refine_maximum instead. A bin is drawn with probability proportional to its
    envelope mass, a point is drawn uniformly inside it, and the point is
    accepted against the bin's envelope value. For peaked densities such
    as flux-weighted Maxwellians in 3D this accepts far more proposals
    than a single global maximum.

    Attributes:
        shape: Bins per axis
        bin_max: Envelope value per bin (flattened, C order)
        total: Integral of the envelope (upper estimate of the density mass)
    """

    def __init__(self, pdf, domain, resolution=32, normal=None, margin=1.1):
        """
        Args:
            pdf: Density callable accepting (n, dim) arrays
            domain: Per-axis [low, high] bounds, shape (dim, 2)
            resolution: Bins along the first axis
            normal: Optional unit normal for flux-weighted sampling
            margin: Multiplicative safety margin on the corner maxima
        """
        domain = np.asarray(domain, dtype=np.float64).reshape(-1, 2)
        self.dim = len(domain)
        self.f = flux_weighted(pdf, normal) if normal is not None else pdf
        self.shape = tuple(int(s) for s in velocity_grid_shape(domain, resolution))
        self.lower = domain[:, 0]
        self.spacing = (domain[:, 1] - domain[:, 0]) / np.array(self.shape)

        vertices = grid_vertices(domain, self.shape)
        values = self.f(vertices).reshape(tuple(s + 1 for s in self.shape))
        bin_max = np.zeros(self.shape)
        for corner in itertools.product((0, 1), repeat=self.dim):
            window = tuple(slice(c, c + s) for c, s in zip(corner, self.shape))
            np.maximum(bin_max, values[window], out=bin_max)

        # Bins touching the peak get the optimizer's value, not their corner maximum
        best = int(np.argmax(values))
        x, peak = refine_maximum(self.f, vertices[best], domain, self.spacing)
        if peak > 0:
            z = (x - self.lower) / self.spacing
            last = np.array(self.shape) - 1
            lo = np.clip(np.floor(z - 1e-6).astype(np.int64), 0, last)
            hi = np.clip(np.floor(z + 1e-6).astype(np.int64), 0, last)
            region = bin_max[tuple(slice(a, b + 1) for a, b in zip(lo, hi))]
            np.maximum(region, peak, out=region)

        self.bin_max = margin * bin_max.ravel()
        weights = self.bin_max * np.prod(self.spacing)
        self.total = float(np.sum(weights))
        self.cdf = np.cumsum(weights) / self.total if self.total > 0 else None

    def sample(self, n, rng, max_rounds=MAX_ROUNDS):
        """
        Draw n samples.

        Returns:
            samples: Array of shape (n, dim)

        Raises:
            SamplingError: If the envelope is empty or max_rounds is exhausted
        """
        samples = np.empty((n, self.dim), dtype=np.float64)
        if n == 0:
            return samples
        if self.cdf is None:
            raise SamplingError(f"Cannot draw {n} samples from an empty envelope")

        last = len(self.cdf) - 1
        filled = 0
        n_accepted = 0
        n_proposed = 0
        n_over = 0
        acceptance = 1.0
        for _ in range(max_rounds):
            batch = _batch_size(n - filled, acceptance)
            idx = np.minimum(np.searchsorted(self.cdf, rng.random(batch), side="right"), last)
            bins = np.column_stack(np.unravel_index(idx, self.shape))
            v = self.lower + self.spacing * (bins + rng.random((batch, self.dim)))
            fv = self.f(v)
            n_over += int(np.count_nonzero(fv > self.bin_max[idx]))
            accepted = v[self.bin_max[idx] * rng.random(batch) <= fv]

            k = min(len(accepted), n - filled)
            samples[filled:filled + k] = accepted[:k]
            filled += k
            n_accepted += len(accepted)
            n_proposed += batch
            if filled == n:
                _warn_overshoot("Envelope sampler", n_over, n_proposed)
                return samples
            acceptance = max(n_accepted, 1) / n_proposed

        raise SamplingError(
            f"Envelope sampler accepted {filled} of {n} samples after {n_proposed} proposals"
        )


def random_facet_points(vertices, counts, rng):
    """
    Uniformly distributed points on simplicial facets.

    In 1D a facet is a single point, so every sample is that point. In 2D
    the facet is a segment and in 3D a triangle; triangle points use
    barycentric sampling with reflection of the r1 + r2 > 1 half.

    Args:
        vertices: One facet (k, dim) or a stack of facets (F, k, dim)
        counts: Points per facet, int or array [F]
        rng: numpy.random.Generator

    Returns:
        xs: Points grouped by facet in input order, shape (sum(counts), dim)
    """
    vertices = np.asarray(vertices, dtype=np.float64)
    if vertices.ndim == 2:
        vertices = vertices[None]
    counts = np.broadcast_to(np.asarray(counts, dtype=np.int64), (len(vertices),))

    v = vertices[np.repeat(np.arange(len(vertices)), counts)]
    n, k, _ = v.shape

    if k == 1:
        return v[:, 0, :].copy()
    elif k == 2:
        r = rng.random(n)
        return v[:, 0] + r[:, None] * (v[:, 1] - v[:, 0])
    elif k == 3:
        r1 = rng.random(n)
        r2 = rng.random(n)
        flip = r1 + r2 > 1.0
        r1[flip] = 1.0 - r1[flip]
        r2[flip] = 1.0 - r2[flip]
        return v[:, 0] + r1[:, None] * (v[:, 1] - v[:, 0]) + r2[:, None] * (v[:, 2] - v[:, 0])

    raise ValueError(f"Facets with {k} vertices are not supported (1D-3D meshes only)")
