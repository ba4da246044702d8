"""
Internal Object Boundaries

Objects (probes, spacecraft bodies) embedded in the plasma absorb every
particle that enters them. Population.update removes those particles and
notifies the object through on_particle_absorbed(cell, charge); the
object keeps the collected charge so a circuit model can turn it into a
current or a floating potential.
"""

import numpy as np


class ObjectBoundary:
    """
    Absorbing object. Subclasses implement contains(xs).

    Attributes:
        charge: Total charge collected since creation [C]
        num_absorbed: Particles absorbed since creation
        current: Current collected over the last step [A]
        absorbed_cells: Cells in which particles were absorbed this step
    """

    def __init__(self, name=""):
        self.name = name
        self.charge = 0.0
        self.num_absorbed = 0
        self.current = 0.0
        self._step_charge = 0.0
        self.absorbed_cells = []

    def contains(self, xs):
        raise NotImplementedError

    def on_particle_absorbed(self, cell, charge):
        self.charge += charge
        self._step_charge += charge
        self.num_absorbed += 1
        self.absorbed_cells.append(cell)

    def update_current(self, dt):
        """
        Close the current step's accounting.

        Returns:
            current: Charge collected during the step divided by dt [A]
        """
        self.current = self._step_charge / dt
        self._step_charge = 0.0
        self.absorbed_cells = []
        return self.current

    def __repr__(self):
        return (f"{type(self).__name__}(name={self.name!r}, charge={self.charge:.3e}, "
                f"num_absorbed={self.num_absorbed})")


class SphericalObject(ObjectBoundary):
    """Sphere (disk in 2D, interval in 1D) of given center and radius."""

    def __init__(self, center, radius, name="sphere"):
        super().__init__(name)
        if not radius > 0:
            raise ValueError(f"Object radius must be positive, got {radius}")
        self.center = np.atleast_1d(np.asarray(center, dtype=np.float64))
        self.radius = float(radius)

    def contains(self, xs):
        xs = np.asarray(xs, dtype=np.float64).reshape(-1, len(self.center))
        return np.sum((xs - self.center) ** 2, axis=1) < self.radius**2


class BoxObject(ObjectBoundary):
    """Axis-aligned box between lower and upper corners."""

    def __init__(self, lower, upper, name="box"):
        super().__init__(name)
        self.lower = np.atleast_1d(np.asarray(lower, dtype=np.float64))
        self.upper = np.atleast_1d(np.asarray(upper, dtype=np.float64))
        if np.any(self.upper <= self.lower):
            raise ValueError("Box upper corner must exceed the lower corner on every axis")

    def contains(self, xs):
        xs = np.asarray(xs, dtype=np.float64).reshape(-1, len(self.lower))
        return np.all((xs > self.lower) & (xs < self.upper), axis=1)
