"""
plasmapic: Particle-in-Cell Kernel for Plasma Simulation

Particle population, boundary injection, charge deposition and
Newton-Lorentz pushing on unstructured simplicial meshes.
"""

__version__ = "0.1.0"

# Import key classes for convenient access
from .constants import *
from .mesh import SimplexMesh, ExteriorFacet, box_mesh, delaunay_mesh
from .particles import Population
from .distributions import (
    Maxwellian,
    Kappa,
    Cairns,
    KappaCairns,
    UniformPosition,
    create_vdf,
)
from .sampling import SamplingError, rejection_sampler, random_facet_points, GridEnvelope
from .species import Species, CreateSpecies, species_from_config, resolve_timestep
from .simulation import Simulation

__all__ = [
    "SimplexMesh",
    "ExteriorFacet",
    "box_mesh",
    "delaunay_mesh",
    "Population",
    "Maxwellian",
    "Kappa",
    "Cairns",
    "KappaCairns",
    "UniformPosition",
    "create_vdf",
    "SamplingError",
    "rejection_sampler",
    "random_facet_points",
    "GridEnvelope",
    "Species",
    "CreateSpecies",
    "species_from_config",
    "resolve_timestep",
    "Simulation",
]
