"""
Cell-Partitioned Particle Population

Uses Structure-of-Arrays (SoA) layout: every particle property lives in its
own contiguous array, and the cell membership is one more integer array.
Moving a particle between cells only rewrites its cell index, so relocation
never touches other cells' data. The per-cell view (which particles live in
cell c) is derived from the cell array on demand.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)


class Population:
    """
    Plasma particle population on a mesh.

    The population is the single source of truth for which particles exist
    and where. Every live particle belongs to exactly one cell, and that cell
    contains the particle's position after each update().

    Attributes:
        mesh: Mesh collaborator (locate, contains, num_cells)
        dim: Geometric dimension
        x: Positions [max_particles, dim] (first n_particles rows live)
        v: Velocities [max_particles, dim]
        q: Charges [max_particles]
        m: Masses [max_particles]
        cell: Containing cell per particle [max_particles]
        n_particles: Number of live particles
        max_particles: Current capacity (grows on demand)
    """

    def __init__(self, mesh, capacity=1024):
        """
        Args:
            mesh: Mesh providing locate(), contains() and num_cells
            capacity: Initial number of particle slots
        """
        self.mesh = mesh
        self.dim = mesh.dim
        self.num_cells = mesh.num_cells
        self.n_particles = 0
        self.max_particles = 0
        self._allocate(max(int(capacity), 1))

    def _allocate(self, capacity):
        n = self.n_particles
        x = np.zeros((capacity, self.dim), dtype=np.float64)
        v = np.zeros((capacity, self.dim), dtype=np.float64)
        q = np.zeros(capacity, dtype=np.float64)
        m = np.zeros(capacity, dtype=np.float64)
        cell = np.full(capacity, -1, dtype=np.int64)
        if n:
            x[:n] = self.x[:n]
            v[:n] = self.v[:n]
            q[:n] = self.q[:n]
            m[:n] = self.m[:n]
            cell[:n] = self.cell[:n]
        self.x, self.v, self.q, self.m, self.cell = x, v, q, m, cell
        self.max_particles = capacity

    def _reserve(self, n_add):
        """Grow the arrays geometrically so n_add more particles fit."""
        needed = self.n_particles + n_add
        if needed > self.max_particles:
            capacity = self.max_particles
            while capacity < needed:
                capacity *= 2
            self._allocate(capacity)

    # ==================== INSERTION / LOCATION ====================

    def locate(self, x):
        """Containing cell of a position (or positions); negative if outside."""
        return self.mesh.locate(x)

    def add_particles(self, xs, vs, q, m, cells=None):
        """
        Insert particles, one per consecutive dim-sized slice of xs and vs.

        Particles outside the domain are dropped silently, since injected
        particles can land marginally outside through rounding.

        Args:
            xs: Positions, flat (n*dim,) or shaped (n, dim)
            vs: Velocities, same size as xs
            q: Charge, scalar or per particle [n]
            m: Mass, scalar or per particle [n]
            cells: Already known containing cells [n] (skips locating)

        Returns:
            n_added: Number of particles inserted

        Raises:
            ValueError: If xs and vs differ in size or are not a whole number
                        of dim-sized slices
        """
        xs = np.asarray(xs, dtype=np.float64)
        vs = np.asarray(vs, dtype=np.float64)
        if xs.size != vs.size:
            raise ValueError(
                f"Positions ({xs.size} values) and velocities ({vs.size} values) differ in length"
            )
        if xs.size % self.dim != 0:
            raise ValueError(f"{xs.size} values is not a whole number of {self.dim}D particles")

        xs = xs.reshape(-1, self.dim)
        vs = vs.reshape(-1, self.dim)
        n = len(xs)
        q = np.broadcast_to(np.asarray(q, dtype=np.float64), (n,))
        m = np.broadcast_to(np.asarray(m, dtype=np.float64), (n,))

        if cells is None:
            cells = self.mesh.locate(xs) if n else np.zeros(0, dtype=np.int64)
        cells = np.asarray(cells, dtype=np.int64).reshape(n)

        inside = cells >= 0
        n_add = int(np.count_nonzero(inside))
        if n_add < n:
            logger.debug("Dropped %d of %d particles outside the domain", n - n_add, n)
        if n_add == 0:
            return 0

        self._reserve(n_add)
        start = self.n_particles
        end = start + n_add

        self.x[start:end] = xs[inside]
        self.v[start:end] = vs[inside]
        self.q[start:end] = q[inside]
        self.m[start:end] = m[inside]
        self.cell[start:end] = cells[inside]
        self.n_particles = end

        return n_add

    # ==================== RELOCATION / REMOVAL ====================

    def update(self, objects=()):
        """
        Relocate every particle after its position changed.

        Particles still in their cell are left alone; particles that moved
        to another cell get their cell index rewritten; particles outside
        the domain are removed; particles inside an internal object are
        removed and reported to that object.

        Args:
            objects: Internal boundaries with contains(xs) and
                     on_particle_absorbed(cell, charge)

        Returns:
            diagnostics: dict with keys
                - n_relocated: Surviving particles that changed cell
                - n_removed: Particles that left the domain
                - n_absorbed: Particles absorbed by internal objects
        """
        n = self.n_particles
        x = self.x[:n]
        cell = self.cell[:n]

        stayed = self.mesh.contains(cell, x)
        moved = np.flatnonzero(~stayed)
        new_cells = cell.copy()
        if moved.size:
            new_cells[moved] = self.mesh.locate(x[moved])

        outside = new_cells < 0
        remove = outside.copy()
        n_absorbed = 0
        for obj in objects:
            hit = np.flatnonzero(obj.contains(x) & ~remove)
            for i in hit:
                obj.on_particle_absorbed(int(new_cells[i]), float(self.q[i]))
            remove[hit] = True
            n_absorbed += hit.size

        n_relocated = int(np.count_nonzero((new_cells != cell) & ~remove))
        self.cell[:n] = new_cells
        if np.any(remove):
            self.remove(remove)

        diagnostics = {
            "n_relocated": n_relocated,
            "n_removed": int(np.count_nonzero(outside)),
            "n_absorbed": int(n_absorbed),
        }
        logger.debug("Population update: %s", diagnostics)
        return diagnostics

    def remove(self, mask):
        """
        Compact the arrays, dropping particles where mask is True.

        Args:
            mask: Boolean array of shape (n_particles,)
        """
        keep = ~np.asarray(mask, dtype=np.bool_)
        n_keep = int(np.count_nonzero(keep))
        n = self.n_particles

        self.x[:n_keep] = self.x[:n][keep]
        self.v[:n_keep] = self.v[:n][keep]
        self.q[:n_keep] = self.q[:n][keep]
        self.m[:n_keep] = self.m[:n][keep]
        self.cell[:n_keep] = self.cell[:n][keep]
        self.cell[n_keep:n] = -1

        self.n_particles = n_keep

    # ==================== CELL PARTITION ====================

    def cell_counts(self):
        """Number of particles in every cell, shape (num_cells,)."""
        return np.bincount(self.cell[:self.n_particles], minlength=self.num_cells)

    def cell_index(self):
        """
        Group particle indices by cell.

        Returns:
            order: Particle indices sorted by cell (stable) [n_particles]
            offsets: Particles of cell c are order[offsets[c]:offsets[c+1]]
                     [num_cells + 1]
        """
        order = np.argsort(self.cell[:self.n_particles], kind="stable")
        offsets = np.zeros(self.num_cells + 1, dtype=np.int64)
        np.cumsum(self.cell_counts(), out=offsets[1:])
        return order, offsets

    def particles_in_cell(self, cell):
        """Indices of the particles currently in a cell, in insertion order."""
        return np.flatnonzero(self.cell[:self.n_particles] == cell)

    # ==================== AGGREGATES ====================

    def num_of_particles(self):
        return self.n_particles

    def num_of_positives(self):
        return int(np.count_nonzero(self.q[:self.n_particles] > 0))

    def num_of_negatives(self):
        return int(np.count_nonzero(self.q[:self.n_particles] < 0))

    def total_charge(self):
        return float(np.sum(self.q[:self.n_particles]))

    def kinetic_energy(self):
        """
        Total kinetic energy of all particles.

        Returns:
            KE: sum of 0.5 * m * |v|^2 [J]
        """
        n = self.n_particles
        return 0.5 * float(np.sum(self.m[:n] * np.sum(self.v[:n] ** 2, axis=1)))

    def __len__(self):
        return self.n_particles

    def __repr__(self):
        return (f"Population(dim={self.dim}, n_particles={self.n_particles}, "
                f"cells={self.num_cells}, max={self.max_particles})")

    def summary(self):
        """Print summary statistics."""
        counts = self.cell_counts()
        print(f"\nPopulation Summary:")
        print(f"  Total particles:  {self.n_particles}")
        print(f"  Positive:         {self.num_of_positives()}")
        print(f"  Negative:         {self.num_of_negatives()}")
        print(f"  Capacity:         {self.max_particles}")
        if self.n_particles > 0:
            print(f"  Particles/cell:   {counts.mean():.2f} mean, {counts.max()} max")
            print(f"  Kinetic energy:   {self.kinetic_energy():.3e} J")
