"""
PIC Time-Step Driver

Each step runs, in order:
    distribute -> solve -> electric field -> push velocities -> record
    -> move -> relocate (update) -> object currents -> inject

The first push uses dt/2 so velocities sit half a step behind positions
(leapfrog). The integrator is picked once: Boris when an external
magnetic field is present, plain electrostatic kicks otherwise.

Usage:
    mesh = box_mesh([0, 0], [1, 1], 16)
    species = species_from_config(mesh, {...})
    sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1e-9,
                     rng=np.random.default_rng(1))
    sim.initialize()
    sim.run(100)
    sim.history.summary()
"""

import logging

import numpy as np

from .particles import Population
from .pic.diagnostics import History, potential_energy
from .pic.distributor import distribute, voronoi_volume_approx
from .pic.flux import DEFAULT_MARGIN, DEFAULT_RESOLUTION, create_flux
from .pic.injector import inject_particles, load_particles
from .pic.mover import accel, boris, has_magnetic_field, move

logger = logging.getLogger(__name__)


class Simulation:
    """
    Particle-in-cell run on a fixed mesh.

    Attributes:
        pop: Population
        dv_inv: Inverse vertex volumes for charge deposition
        facets: Exterior facets used for injection
        history: History of recorded steps
        n: Steps taken
        t: Simulation time [s]
        rho, phi: Charge density and potential of the last step
    """

    def __init__(
        self,
        mesh,
        species,
        solver,
        dt,
        B=None,
        objects=(),
        rng=None,
        facets=None,
        inject=True,
        flux_resolution=DEFAULT_RESOLUTION,
        flux_margin=DEFAULT_MARGIN,
        envelope=False,
        capacity=1024,
    ):
        """
        Args:
            mesh: Mesh collaborator
            species: Sequence of Species
            solver: Field solver with solve(rho, objects) and electric_field(phi)
            dt: Time step [s]
            B: Uniform external magnetic field [3] [T] (optional)
            objects: Internal absorbing objects
            rng: numpy.random.Generator (default: freshly seeded)
            facets: Injection facets (default: all exterior facets)
            inject: Inject particles through the facets every step
            flux_resolution: Velocity grid resolution for create_flux
            flux_margin: Safety margin on the flux maxima
            envelope: Sample injected velocities with grid envelopes
            capacity: Initial particle capacity
        """
        if not dt > 0:
            raise ValueError(f"Time step must be positive, got {dt}")

        self.mesh = mesh
        self.species = list(species)
        self.solver = solver
        self.dt = float(dt)
        self.objects = list(objects)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.facets = list(mesh.exterior_facets if facets is None else facets)
        self.inject = inject
        self.flux_resolution = flux_resolution
        self.flux_margin = flux_margin
        self.envelope = envelope

        self.magnetized = has_magnetic_field(B)
        self.B = np.asarray(B, dtype=np.float64) if self.magnetized else None

        self.pop = Population(mesh, capacity)
        self.dv_inv = voronoi_volume_approx(mesh)
        self.history = History()
        self.n = 0
        self.t = 0.0
        self.rho = None
        self.phi = None

    def initialize(self):
        """Precompute injection fluxes and load the initial particles."""
        if self.inject:
            create_flux(self.species, self.facets, self.flux_resolution,
                        self.flux_margin, self.envelope)
        n_loaded = load_particles(self.pop, self.species, self.rng)
        logger.info("Initialized %d particles (%s integrator)", n_loaded,
                    "Boris" if self.magnetized else "electrostatic")

    def step(self):
        """
        Advance one time step.

        Returns:
            diagnostics: dict with the step's relocation and injection counts
        """
        self.rho = distribute(self.mesh, self.pop, self.dv_inv)
        self.phi = self.solver.solve(self.rho, self.objects)
        field = self.solver.electric_field(self.phi)

        if self.n == 0:
            # Energy of the loaded velocities, before the half-step push
            KE = self.pop.kinetic_energy()
            dt_push = 0.5 * self.dt
        else:
            dt_push = self.dt

        if self.magnetized:
            KE_push = boris(self.pop, field, self.B, dt_push)
        else:
            KE_push = accel(self.pop, field, dt_push)
        if self.n > 0:
            KE = KE_push

        PE = potential_energy(self.mesh, self.pop, self.phi)
        self.history.record(self.n, self.t, self.pop, KE, PE, self.objects)

        move(self.pop, self.dt)
        diagnostics = self.pop.update(self.objects)
        for obj in self.objects:
            obj.update_current(self.dt)

        if self.inject:
            diagnostics.update(
                inject_particles(self.pop, self.species, self.facets, self.dt, self.rng)
            )

        self.n += 1
        self.t += self.dt
        return diagnostics

    def run(self, steps, log_interval=100):
        """
        Run a number of steps.

        Args:
            steps: Steps to take
            log_interval: Log progress every this many steps (0 disables)
        """
        for _ in range(steps):
            diagnostics = self.step()
            if log_interval and self.n % log_interval == 0:
                logger.info("Step %d: t=%.3e s, %d particles, %s", self.n, self.t,
                            self.pop.n_particles, diagnostics)
        return self.history
