"""
Integration tests for the PIC time-step driver
"""

import pytest
import numpy as np
from plasmapic.constants import m_e, thermal_speed
from plasmapic.mesh import box_mesh
from plasmapic.species import species_from_config
from plasmapic.simulation import Simulation
from plasmapic.pic.fields import StaticFieldSolver, UniformField
from plasmapic.pic.surfaces import SphericalObject


def electron_config(**overrides):
    config = {
        "charge": [-1],
        "mass": [1],
        "density": [1e6],
        "thermal": [0.05],
    }
    config.update(overrides)
    return config


class TestSimulation:
    """Test the step sequence and its bookkeeping."""

    def test_history_and_first_energy(self):
        """Step 0 records the energy of the loaded velocities."""
        mesh = box_mesh([0, 0], [1, 1], 4)
        species = species_from_config(mesh, electron_config(npc=[5]))
        sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1.0, inject=False,
                         rng=np.random.default_rng(0))
        sim.initialize()
        KE0 = sim.pop.kinetic_energy()

        sim.run(5)

        assert len(sim.history) == 5
        np.testing.assert_array_equal(sim.history["n"], [0, 1, 2, 3, 4])
        np.testing.assert_allclose(sim.history["t"], [0.0, 1.0, 2.0, 3.0, 4.0])
        assert sim.history["kinetic_energy"][0] == pytest.approx(KE0)
        assert sim.n == 5
        assert sim.t == pytest.approx(5.0)

    def test_half_step_on_first_push(self):
        """The first push applies half the field impulse."""
        mesh = box_mesh(0.0, 1.0, 4)
        species = species_from_config(mesh, electron_config(num=[20], thermal=[1e-9]))
        solver = StaticFieldSolver(mesh, UniformField([1e-12]))
        sim = Simulation(mesh, species, solver, dt=1e-3, inject=False,
                         rng=np.random.default_rng(1))
        sim.initialize()
        n = sim.pop.n_particles
        v0 = sim.pop.v[:n].copy()

        sim.step()

        qm = species[0].q / species[0].m
        np.testing.assert_allclose(sim.pop.v[:n], v0 + 0.5 * qm * 1e-12 * 1e-3, rtol=1e-9)

    def test_steady_state_with_injection(self):
        """Injection balances outflow, so the particle count stays near the load."""
        mesh = box_mesh(0.0, 1.0, 16)
        species = species_from_config(mesh, electron_config(npc=[50]))
        sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1.0,
                         rng=np.random.default_rng(2))
        sim.initialize()

        sim.run(60)

        counts = sim.history["num_negatives"]
        assert counts[0] == 800
        assert np.mean(counts[20:]) == pytest.approx(800, rel=0.15)

    def test_object_absorbs_particles(self):
        mesh = box_mesh([0, 0], [1, 1], 8)
        species = species_from_config(mesh, electron_config(npc=[10], thermal=[0.02]))
        probe = SphericalObject([0.5, 0.5], 0.2)
        sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1.0, objects=[probe],
                         inject=False, rng=np.random.default_rng(3))
        sim.initialize()

        sim.run(10)

        n = sim.pop.n_particles
        assert probe.num_absorbed > 0
        assert probe.charge < 0
        assert not np.any(probe.contains(sim.pop.x[:n]))
        assert sim.history.object_charge[-1][0] <= 0

    def test_integrator_selection(self):
        mesh = box_mesh([0, 0, 0], [1, 1, 1], 1)
        species = species_from_config(mesh, electron_config(num=[10]))
        solver = StaticFieldSolver(mesh)

        assert Simulation(mesh, species, solver, dt=1.0, B=[0, 0, 1e-3]).magnetized
        assert not Simulation(mesh, species, solver, dt=1.0, B=[0, 0, 1e-12]).magnetized
        assert not Simulation(mesh, species, solver, dt=1.0).magnetized

    def test_magnetized_run_conserves_energy(self):
        """Without electric field and outflow, Boris keeps the kinetic energy."""
        mesh = box_mesh([0, 0, 0], [1, 1, 1], 2)
        species = species_from_config(mesh, electron_config(num=[200], thermal=[1e-6]))
        sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1e-3, B=[0.0, 0.0, 1e-6],
                         inject=False, rng=np.random.default_rng(4))
        sim.initialize()

        sim.run(20)

        KE = sim.history["kinetic_energy"]
        np.testing.assert_allclose(KE, KE[0], rtol=1e-10)

    def test_reproducible(self):
        mesh = box_mesh([0, 0], [1, 1], 4)
        runs = []
        for _ in range(2):
            species = species_from_config(mesh, electron_config(npc=[5]))
            sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1.0,
                             rng=np.random.default_rng(5))
            sim.initialize()
            sim.run(5)
            runs.append(sim.history["kinetic_energy"])

        np.testing.assert_array_equal(runs[0], runs[1])

    def test_supersonic_ion_flow(self):
        """Ions drifting faster than the velocity cutoff still initialize and inject."""
        mesh = box_mesh([0, 0], [1, 1], 4)
        config = {
            "charge": [-1, 1],
            "mass": [1, 1836],
            "density": [1e10, 1e10],
            "thermal": [thermal_speed(1.0, m_e), thermal_speed(0.1, 1836 * m_e)],
            "vx": [0.0, 2e4],
            "npc": [2, 2],
        }
        species = species_from_config(mesh, config)
        sim = Simulation(mesh, species, StaticFieldSolver(mesh), dt=1e-6,
                         rng=np.random.default_rng(6))

        sim.initialize()
        sim.run(3)

        ions = species[1]
        for i, f in enumerate(sim.facets):
            if f.inward_normal[0] < -0.5:
                assert ions.num_particles[i] == 0.0
        assert np.sum(ions.num_particles) > 0
        assert sim.history["num_positives"][-1] > 0

    def test_invalid_dt(self):
        mesh = box_mesh(0.0, 1.0, 2)
        species = species_from_config(mesh, electron_config(num=[10]))
        with pytest.raises(ValueError):
            Simulation(mesh, species, StaticFieldSolver(mesh), dt=0.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
