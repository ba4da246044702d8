"""
Plasma Species Setup

A species bundles the physical parameters of one kind of simulation
particle (charge, mass, density) with its position and velocity
distributions. Simulation particles are macro-particles: each carries
the charge and mass of w real particles, where the statistical weight w
is chosen so that `num` macro-particles fill the domain at the physical
density.

After flux precomputation (see pic.flux.create_flux) a species also holds
per-facet injection intensities and flux-distribution maxima.
"""

import logging

import numpy as np

from . import constants
from .distributions import UniformPosition, create_vdf, VDF_TYPES

logger = logging.getLogger(__name__)


class Species:
    """
    One population of macro-particles.

    Attributes:
        q: Macro-particle charge [C]
        m: Macro-particle mass [kg]
        n: Macro-particle number density [1/m^3]
        num: Number of macro-particles loaded at start
        weight: Real particles per macro-particle
        pdf: Position distribution
        vdf: Velocity distribution
        num_particles: Expected injections per unit time and unit density,
                       per exterior facet (None before create_flux)
        pdf_max: Flux-weighted vdf maximum per exterior facet (None before
                 create_flux)
        envelopes: Optional envelope sampler per exterior facet
    """

    def __init__(self, q, m, n, pdf, vdf, num=0, weight=1.0):
        self.q = float(q)
        self.m = float(m)
        self.n = float(n)
        self.pdf = pdf
        self.vdf = vdf
        self.num = int(num)
        self.weight = float(weight)
        self.num_particles = None
        self.pdf_max = None
        self.envelopes = None

    @property
    def has_flux(self):
        return self.num_particles is not None

    def __repr__(self):
        return (f"Species(q={self.q:.3e}, m={self.m:.3e}, n={self.n:.3e}, "
                f"num={self.num}, vdf={self.vdf!r})")


class CreateSpecies:
    """
    Factory that turns physical parameters into weighted species.

    Args:
        mesh: Mesh providing volume() and num_cells
    """

    def __init__(self, mesh):
        self.mesh = mesh
        self.volume = mesh.volume()
        self.num_cells = mesh.num_cells
        self.species = []

    def create_raw(self, q, m, n, pdf, vdf, npc=0, num=0):
        """
        Create a species from physical charge, mass and density.

        A species with zero density is kept with unit weight and no
        particles, so it neither loads nor injects anything.

        Args:
            q: Physical particle charge [C]
            m: Physical particle mass [kg]
            n: Physical number density [1/m^3]
            pdf: Position distribution
            vdf: Velocity distribution
            npc: Macro-particles per cell (used when num is 0)
            num: Total macro-particles (overrides npc)

        Returns:
            species: The created Species (also appended to self.species)

        Raises:
            ValueError: If the mass is not positive, the density is negative,
                        or neither npc nor num gives a positive particle
                        count for a non-zero density
        """
        if not m > 0:
            raise ValueError(f"Particle mass must be positive, got {m}")
        if not n >= 0:
            raise ValueError(f"Number density must be non-negative, got {n}")
        if n == 0:
            species = Species(q, m, 0.0, pdf, vdf, num=0, weight=1.0)
            self.species.append(species)
            logger.warning("Species q=%.3e m=%.3e has zero density; it loads and injects "
                           "no particles", q, m)
            return species

        if num == 0:
            num = npc * self.num_cells
        if num <= 0:
            raise ValueError(f"Species needs a positive particle count (npc={npc}, num={num})")

        w = n * self.volume / num
        species = Species(q * w, m * w, n / w, pdf, vdf, num=num, weight=w)
        self.species.append(species)
        logger.info("Created species q=%.3e m=%.3e with %d particles (weight %.3e)",
                    q, m, num, w)
        return species


def _per_species(config, key, count, default=None):
    values = config.get(key, default)
    if values is None:
        return None
    values = list(np.atleast_1d(values))
    if len(values) == 1 and count > 1:
        values = values * count
    if len(values) != count:
        raise ValueError(f"Option '{key}' has {len(values)} values, expected {count}")
    return values


def species_from_config(mesh, config):
    """
    Build species from option sequences.

    Args:
        mesh: Mesh the species live on
        config: Mapping with per-species sequences:
            - charge: Charge in elementary charges
            - mass: Mass in electron masses
            - density: Number density [1/m^3]
            - thermal: Thermal speed [m/s]
            - distribution: "maxwellian", "kappa", "cairns" or "kappa-cairns"
            - vx: Drift along the first axis [m/s] (default 0)
            - kappa, alpha: Shape parameters (default 0)
            - npc: Macro-particles per cell
            - num: Macro-particles in total (overrides npc)

    Returns:
        species: List of Species

    Raises:
        ValueError: For mismatched lengths or invalid distribution parameters
    """
    charge = np.atleast_1d(config["charge"])
    count = len(charge)

    mass = _per_species(config, "mass", count)
    density = _per_species(config, "density", count)
    thermal = _per_species(config, "thermal", count)
    names = _per_species(config, "distribution", count, "maxwellian")
    vx = _per_species(config, "vx", count, 0.0)
    kappa = _per_species(config, "kappa", count, 0.0)
    alpha = _per_species(config, "alpha", count, 0.0)

    npc = _per_species(config, "npc", count, 0)
    num = _per_species(config, "num", count, 0)
    if mass is None or density is None or thermal is None:
        raise ValueError("Options 'mass', 'density' and 'thermal' are required")

    for name in names:
        if str(name).lower() not in VDF_TYPES:
            raise ValueError(f"Unsupported velocity distribution: {name!r}")

    factory = CreateSpecies(mesh)
    pdf = UniformPosition(mesh)
    for i in range(count):
        vd = np.zeros(mesh.dim)
        vd[0] = vx[i]
        vdf = create_vdf(str(names[i]), thermal[i], vd, kappa[i], alpha[i])
        factory.create_raw(charge[i] * constants.e, mass[i] * constants.m_e, density[i],
                           pdf, vdf, npc=int(npc[i]), num=int(num[i]))

    return factory.species


def plasma_frequency(q, n, m):
    """Plasma frequency sqrt(q^2 n / (eps0 m)) [rad/s]."""
    return np.sqrt(q * q * n / (constants.eps0 * m))


def resolve_timestep(q, n, m, dt=None, dtwp=None):
    """
    Time step from an explicit value or a fraction of the plasma period.

    Args:
        q, n, m: Charge, density and mass of the species (sequences allowed;
                 the first species sets the plasma frequency)
        dt: Explicit time step [s] (takes precedence)
        dtwp: Time step in units of 1/w_p

    Raises:
        ValueError: If neither dt nor dtwp is given
    """
    if dt is not None:
        return float(dt)
    if dtwp is None:
        raise ValueError("Either dt or dtwp must be given")
    wp = plasma_frequency(np.atleast_1d(q)[0], np.atleast_1d(n)[0], np.atleast_1d(m)[0])
    return float(dtwp / wp)
