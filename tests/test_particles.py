"""
Unit tests for the cell-partitioned particle population
"""

import pytest
import numpy as np
from plasmapic.mesh import box_mesh
from plasmapic.particles import Population
from plasmapic.pic.surfaces import SphericalObject


@pytest.fixture
def mesh2d():
    return box_mesh([0, 0], [1, 1], 4)


class TestAddParticles:
    """Test particle insertion."""

    def test_initialization(self, mesh2d):
        pop = Population(mesh2d, capacity=100)

        assert pop.n_particles == 0
        assert pop.max_particles == 100
        assert pop.x.shape == (100, 2)
        assert pop.num_of_particles() == 0

    def test_add_flat_arrays(self, mesh2d):
        """Flat arrays are split into dim-sized slices."""
        pop = Population(mesh2d)

        n = pop.add_particles([0.1, 0.2, 0.5, 0.5, 0.9, 0.3], [1, 0, 0, 1, -1, -1], 1.0, 2.0)

        assert n == 3
        assert pop.num_of_particles() == 3
        np.testing.assert_array_almost_equal(pop.x[1], [0.5, 0.5])
        np.testing.assert_array_almost_equal(pop.v[2], [-1, -1])
        assert np.all(pop.m[:3] == 2.0)

    def test_located_cells_contain_positions(self, mesh2d):
        """Every added particle sits in a cell that contains it."""
        rng = np.random.default_rng(0)
        pop = Population(mesh2d)
        pop.add_particles(rng.random((300, 2)), np.zeros((300, 2)), 1.0, 1.0)

        n = pop.n_particles
        assert np.all(mesh2d.contains(pop.cell[:n], pop.x[:n]))
        assert pop.cell_counts().sum() == n

    def test_locate(self, mesh2d):
        pop = Population(mesh2d)
        cell = pop.locate([0.3, 0.6])

        assert cell >= 0
        assert mesh2d.contains([cell], [[0.3, 0.6]])[0]
        assert pop.locate([1.5, 0.5]) < 0

    def test_mismatched_lengths(self, mesh2d):
        pop = Population(mesh2d)
        with pytest.raises(ValueError):
            pop.add_particles([0.1, 0.2], [1.0, 0.0, 0.0, 0.0], 1.0, 1.0)

    def test_not_whole_particles(self, mesh2d):
        pop = Population(mesh2d)
        with pytest.raises(ValueError):
            pop.add_particles([0.1, 0.2, 0.3], [1.0, 0.0, 0.0], 1.0, 1.0)

    def test_outside_particles_dropped(self, mesh2d):
        """Particles outside the domain are dropped without error."""
        pop = Population(mesh2d)

        n = pop.add_particles([[0.5, 0.5], [1.5, 0.5], [0.2, -0.1]], np.zeros((3, 2)), 1.0, 1.0)

        assert n == 1
        assert pop.n_particles == 1

    def test_capacity_grows(self, mesh2d):
        pop = Population(mesh2d, capacity=2)
        rng = np.random.default_rng(1)
        xs = rng.random((50, 2))

        pop.add_particles(xs, np.ones((50, 2)), 1.0, 1.0)

        assert pop.n_particles == 50
        assert pop.max_particles >= 50
        np.testing.assert_array_almost_equal(pop.x[:50], xs)

    def test_sign_counts(self, mesh2d):
        pop = Population(mesh2d)
        q = np.array([1.0, -1.0, -1.0, 2.0, -3.0])
        pop.add_particles(np.full((5, 2), 0.5), np.zeros((5, 2)), q, 1.0)

        assert pop.num_of_positives() == 2
        assert pop.num_of_negatives() == 3
        assert pop.total_charge() == pytest.approx(-2.0)


class TestUpdate:
    """Test relocation and removal after position changes."""

    def test_relocation(self, mesh2d):
        """A particle moved to another cell gets its cell index rewritten."""
        pop = Population(mesh2d)
        pop.add_particles([0.1, 0.1], [0, 0], 1.0, 1.0)
        old_cell = pop.cell[0]

        pop.x[0] = [0.9, 0.9]
        result = pop.update()

        assert result["n_relocated"] == 1
        assert result["n_removed"] == 0
        assert pop.cell[0] != old_cell
        assert mesh2d.contains(pop.cell[:1], pop.x[:1])[0]

    def test_unchanged_cell(self, mesh2d):
        pop = Population(mesh2d)
        pop.add_particles([0.1, 0.05], [0, 0], 1.0, 1.0)

        pop.x[0] = [0.11, 0.05]
        result = pop.update()

        assert result["n_relocated"] == 0
        assert pop.n_particles == 1

    def test_removal_outside(self, mesh2d):
        """Particles that leave the domain are removed; others keep their data."""
        pop = Population(mesh2d)
        pop.add_particles([[0.1, 0.1], [0.5, 0.5], [0.9, 0.9]], [[0, 0], [1, 2], [3, 4]],
                          [1.0, 2.0, 3.0], 1.0)

        pop.x[0] = [-0.5, 0.1]
        result = pop.update()

        assert result["n_removed"] == 1
        assert pop.n_particles == 2
        np.testing.assert_array_almost_equal(pop.q[:2], [2.0, 3.0])
        np.testing.assert_array_almost_equal(pop.v[1], [3, 4])

    def test_absorption_reported(self, mesh2d):
        """Particles inside an object are removed and reported to it."""
        pop = Population(mesh2d)
        probe = SphericalObject([0.5, 0.5], 0.1)
        pop.add_particles([[0.1, 0.1], [0.2, 0.2]], np.zeros((2, 2)), [-1.0, 1.0], 1.0)

        pop.x[0] = [0.5, 0.52]
        result = pop.update([probe])

        assert result["n_absorbed"] == 1
        assert pop.n_particles == 1
        assert probe.num_absorbed == 1
        assert probe.charge == pytest.approx(-1.0)

    def test_absorbed_not_counted_as_relocated(self, mesh2d):
        """Only surviving particles count as relocated."""
        pop = Population(mesh2d)
        probe = SphericalObject([0.5, 0.5], 0.1)
        pop.add_particles([[0.1, 0.1], [0.2, 0.2]], np.zeros((2, 2)), [-1.0, 1.0], 1.0)

        pop.x[0] = [0.5, 0.52]
        pop.x[1] = [0.9, 0.85]
        result = pop.update([probe])

        assert result["n_absorbed"] == 1
        assert result["n_relocated"] == 1
        assert result["n_removed"] == 0
        assert pop.n_particles == 1

    def test_count_and_charge_conserved_inside(self, mesh2d):
        """Moving particles inside the domain never changes count or charge."""
        rng = np.random.default_rng(2)
        pop = Population(mesh2d)
        xs = 0.1 + 0.8 * rng.random((200, 2))
        q = rng.choice([-1.0, 1.0], 200)
        pop.add_particles(xs, np.zeros((200, 2)), q, 1.0)
        charge = pop.total_charge()

        for _ in range(10):
            pop.x[:pop.n_particles] = 0.1 + 0.8 * rng.random((pop.n_particles, 2))
            pop.update()

        assert pop.n_particles == 200
        assert pop.total_charge() == pytest.approx(charge)
        assert np.all(mesh2d.contains(pop.cell[:200], pop.x[:200]))


class TestCellPartition:
    """Test the per-cell view of the population."""

    def test_cell_index(self, mesh2d):
        rng = np.random.default_rng(3)
        pop = Population(mesh2d)
        pop.add_particles(rng.random((100, 2)), np.zeros((100, 2)), 1.0, 1.0)

        order, offsets = pop.cell_index()

        assert offsets[-1] == pop.n_particles
        for c in range(mesh2d.num_cells):
            members = order[offsets[c]:offsets[c + 1]]
            np.testing.assert_array_equal(members, pop.particles_in_cell(c))
            assert np.all(pop.cell[members] == c)

    def test_kinetic_energy(self, mesh2d):
        pop = Population(mesh2d)
        pop.add_particles([[0.5, 0.5], [0.2, 0.2]], [[3, 4], [1, 0]], 1.0, [2.0, 4.0])

        # 0.5*2*25 + 0.5*4*1
        assert pop.kinetic_energy() == pytest.approx(27.0)

    def test_summary_prints(self, mesh2d, capsys):
        pop = Population(mesh2d)
        pop.add_particles([0.5, 0.5], [1, 0], 1.0, 1.0)
        pop.summary()

        assert "Total particles:  1" in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
