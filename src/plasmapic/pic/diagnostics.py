"""
Run Diagnostics

Energy and particle-count bookkeeping for a PIC run:
- Kinetic energy of the population
- Electrostatic potential energy 0.5 * sum q phi(x)
- History: per-step time series with plots and a printed summary
"""

from typing import Dict, List, Optional, Sequence

import numpy as np

from .fields import interpolate_potential


def kinetic_energy(pop):
    """Total kinetic energy 0.5 * sum m |v|^2 [J]."""
    return pop.kinetic_energy()


def potential_energy(mesh, pop, phi):
    """
    Electrostatic potential energy of the particles.

    Args:
        mesh: Mesh the potential lives on
        pop: Population
        phi: Potential per vertex [V]

    Returns:
        PE: 0.5 * sum q phi(x) [J]
    """
    n = pop.n_particles
    if n == 0:
        return 0.0
    phi_x = interpolate_potential(mesh, phi, pop.cell[:n], pop.x[:n])
    return 0.5 * float(np.sum(pop.q[:n] * phi_x))


class History:
    """
    In-memory time series of a run.

    Usage:
        history = History()
        for n in range(steps):
            # ... push ...
            history.record(n, t, pop, KE, PE, objects)
        history.plot()
        history.summary()
    """

    FIELDS = ("n", "t", "num_negatives", "num_positives", "kinetic_energy",
              "potential_energy")

    def __init__(self):
        self.rows: List[Dict[str, float]] = []
        self.object_charge: List[List[float]] = []

    def record(
        self,
        n: int,
        t: float,
        pop,
        kinetic: float,
        potential: float,
        objects: Sequence = (),
    ):
        """
        Record one time step.

        Args:
            n: Step number
            t: Time [s]
            pop: Population (for particle counts)
            kinetic: Kinetic energy [J]
            potential: Potential energy [J]
            objects: Internal objects whose collected charge is recorded
        """
        self.rows.append({
            "n": n,
            "t": t,
            "num_negatives": pop.num_of_negatives(),
            "num_positives": pop.num_of_positives(),
            "kinetic_energy": kinetic,
            "potential_energy": potential,
        })
        self.object_charge.append([obj.charge for obj in objects])

    def __len__(self):
        return len(self.rows)

    def __getitem__(self, key: str) -> np.ndarray:
        if key not in self.FIELDS:
            raise KeyError(f"Unknown history field {key!r}")
        return np.array([row[key] for row in self.rows])

    @property
    def total_energy(self) -> np.ndarray:
        return self["kinetic_energy"] + self["potential_energy"]

    def energy_drift(self) -> Optional[float]:
        """Relative change of total energy from the first to the last record."""
        if len(self.rows) < 2:
            return None
        total = self.total_energy
        if total[0] == 0:
            return None
        return float((total[-1] - total[0]) / abs(total[0]))

    def plot(self, show=True, save_filename=None):
        """
        Plot particle counts, energies and object charge.

        Args:
            show: Display plots interactively
            save_filename: Save figure to file (optional)
        """
        import matplotlib.pyplot as plt

        fig, axes = plt.subplots(1, 3, figsize=(16, 5))
        t = self["t"]

        ax = axes[0]
        ax.plot(t, self["num_negatives"], 'b-', linewidth=2, label='Negative')
        ax.plot(t, self["num_positives"], 'r-', linewidth=2, label='Positive')
        ax.set_xlabel('Time (s)', fontsize=12)
        ax.set_ylabel('Particles', fontsize=12)
        ax.set_title('Particle Population', fontsize=14, fontweight='bold')
        ax.legend(fontsize=10)
        ax.grid(True, alpha=0.3)

        ax = axes[1]
        ax.plot(t, self["kinetic_energy"], 'g-', linewidth=2, label='Kinetic')
        ax.plot(t, self["potential_energy"], 'm-', linewidth=2, label='Potential')
        ax.plot(t, self.total_energy, 'k--', linewidth=1, label='Total')
        ax.set_xlabel('Time (s)', fontsize=12)
        ax.set_ylabel('Energy (J)', fontsize=12)
        ax.set_title('Energy', fontsize=14, fontweight='bold')
        ax.legend(fontsize=10)
        ax.grid(True, alpha=0.3)

        ax = axes[2]
        if self.object_charge and self.object_charge[0]:
            charge = np.array(self.object_charge)
            for j in range(charge.shape[1]):
                ax.plot(t, charge[:, j], linewidth=2, label=f'Object {j}')
            ax.legend(fontsize=10)
        ax.set_xlabel('Time (s)', fontsize=12)
        ax.set_ylabel('Collected charge (C)', fontsize=12)
        ax.set_title('Object Charge', fontsize=14, fontweight='bold')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        if save_filename:
            plt.savefig(save_filename, dpi=150, bbox_inches='tight')
        if show:
            plt.show()
        return fig

    def summary(self):
        """Print summary statistics."""
        print("\n" + "=" * 70)
        print("RUN SUMMARY")
        print("=" * 70)
        if not self.rows:
            print("  No steps recorded")
            print("=" * 70 + "\n")
            return

        last = self.rows[-1]
        print(f"\nFinal State (step {last['n']}, t = {last['t']:.3e} s):")
        print(f"  Negative particles: {last['num_negatives']:,}")
        print(f"  Positive particles: {last['num_positives']:,}")
        print(f"  Kinetic energy:     {last['kinetic_energy']:.3e} J")
        print(f"  Potential energy:   {last['potential_energy']:.3e} J")
        for j, charge in enumerate(self.object_charge[-1]):
            print(f"  Object {j} charge:    {charge:.3e} C")

        drift = self.energy_drift()
        if drift is not None:
            print(f"\nEnergy drift: {drift:.2%}")
        print("=" * 70 + "\n")
