"""
Particle-in-Cell (PIC) Module

Components:
- flux: per-facet injection intensities and flux maxima
- injector: boundary injection and initial loading
- distributor: charge deposition on mesh vertices
- fields: electric field collaborators
- mover: electrostatic and Boris pushers
- surfaces: internal absorbing objects
- diagnostics: energies and run history
"""

from .flux import create_flux, flux_number, group_facets
from .injector import inject_particles, load_particles
from .distributor import voronoi_volume_approx, distribute, density, ema
from .fields import UniformField, CellField, interpolate_potential, StaticFieldSolver
from .mover import accel, boris, move
from .surfaces import ObjectBoundary, SphericalObject, BoxObject
from .diagnostics import History, kinetic_energy, potential_energy

__all__ = [
    # Flux / injection
    "create_flux",
    "flux_number",
    "group_facets",
    "inject_particles",
    "load_particles",
    # Deposition
    "voronoi_volume_approx",
    "distribute",
    "density",
    "ema",
    # Fields
    "UniformField",
    "CellField",
    "interpolate_potential",
    "StaticFieldSolver",
    # Mover
    "accel",
    "boris",
    "move",
    # Objects
    "ObjectBoundary",
    "SphericalObject",
    "BoxObject",
    # Diagnostics
    "History",
    "kinetic_energy",
    "potential_energy",
]
