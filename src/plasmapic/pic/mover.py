"""
Particle Pusher: Electrostatic Leapfrog and Boris Rotation

Implements:
- accel: electrostatic velocity update v += (q/m) E dt
- boris: Boris push for a uniform external magnetic field
  (half electric kick, magnetic rotation, half electric kick)
- move: explicit position update x += v dt

Velocities live at half steps and positions at whole steps (leapfrog);
the driver passes dt/2 on the very first push to stagger them. Both
velocity updates return the total kinetic energy centered at the
position time level, 0.5 m (|v_old|^2 + |v_new|^2) / 2 per particle.

Boris rotation:
    t = (q dt / 2m) B
    s = 2t / (1 + |t|^2)
    v' = v- + v- x t
    v+ = v- + v' x s

The rotation preserves |v| exactly, so a pure magnetic push conserves
kinetic energy to round-off.

Reference:
    Boris (1970), Proc. 4th Conf. Num. Sim. Plasmas, pp. 3-67
    Birdsall & Langdon (2004), Section 4.4
"""

import numpy as np
import numba

# |B| below this is treated as no magnetic field
B_THRESHOLD = 1e-10


# ==================== KERNELS ====================


@numba.njit
def _accel_kernel(v, E, q, m, dt):
    """
    Electrostatic kick in place.

    Args:
        v: Velocities [n, dim] (modified in place)
        E: Field at each particle [n, dim]
        q: Charges [n]
        m: Masses [n]
        dt: Step [s]

    Returns:
        KE: Time-centered kinetic energy [J]
    """
    n, dim = v.shape
    KE = 0.0
    for i in range(n):
        qm_dt = q[i] / m[i] * dt
        v2_old = 0.0
        v2_new = 0.0
        for d in range(dim):
            v2_old += v[i, d] * v[i, d]
            v[i, d] += qm_dt * E[i, d]
            v2_new += v[i, d] * v[i, d]
        KE += 0.25 * m[i] * (v2_old + v2_new)
    return KE


@numba.njit
def _boris_kernel(v, E, B, q, m, dt):
    """
    Boris push in place for 3-component velocities and fields.

    Args:
        v: Velocities [n, 3] (modified in place)
        E: Electric field at each particle [n, 3]
        B: Uniform magnetic field [3]
        q: Charges [n]
        m: Masses [n]
        dt: Step [s]

    Returns:
        KE: Time-centered kinetic energy [J]
    """
    n = v.shape[0]
    KE = 0.0
    t = np.zeros(3)
    s = np.zeros(3)
    v_minus = np.zeros(3)
    v_prime = np.zeros(3)

    for i in range(n):
        qm_half = 0.5 * q[i] / m[i] * dt

        t[0] = qm_half * B[0]
        t[1] = qm_half * B[1]
        t[2] = qm_half * B[2]
        t_mag2 = t[0] * t[0] + t[1] * t[1] + t[2] * t[2]
        s[0] = 2.0 * t[0] / (1.0 + t_mag2)
        s[1] = 2.0 * t[1] / (1.0 + t_mag2)
        s[2] = 2.0 * t[2] / (1.0 + t_mag2)

        v2_old = v[i, 0] * v[i, 0] + v[i, 1] * v[i, 1] + v[i, 2] * v[i, 2]

        # Half electric kick
        v_minus[0] = v[i, 0] + qm_half * E[i, 0]
        v_minus[1] = v[i, 1] + qm_half * E[i, 1]
        v_minus[2] = v[i, 2] + qm_half * E[i, 2]

        # v' = v- + v- x t
        v_prime[0] = v_minus[0] + (v_minus[1] * t[2] - v_minus[2] * t[1])
        v_prime[1] = v_minus[1] + (v_minus[2] * t[0] - v_minus[0] * t[2])
        v_prime[2] = v_minus[2] + (v_minus[0] * t[1] - v_minus[1] * t[0])

        # v+ = v- + v' x s, then the second half kick
        v[i, 0] = v_minus[0] + (v_prime[1] * s[2] - v_prime[2] * s[1]) + qm_half * E[i, 0]
        v[i, 1] = v_minus[1] + (v_prime[2] * s[0] - v_prime[0] * s[2]) + qm_half * E[i, 1]
        v[i, 2] = v_minus[2] + (v_prime[0] * s[1] - v_prime[1] * s[0]) + qm_half * E[i, 2]

        v2_new = v[i, 0] * v[i, 0] + v[i, 1] * v[i, 1] + v[i, 2] * v[i, 2]
        KE += 0.25 * m[i] * (v2_old + v2_new)

    return KE


@numba.njit
def _move_kernel(x, v, dt):
    n, dim = x.shape
    for i in range(n):
        for d in range(dim):
            x[i, d] += v[i, d] * dt


# ==================== POPULATION-LEVEL PUSH ====================


def accel(pop, field, dt):
    """
    Electrostatic velocity update of every particle.

    Args:
        pop: Population
        field: Callable E(cells, xs) -> [n, dim]
        dt: Effective step (dt/2 on the first step of a run) [s]

    Returns:
        KE: Kinetic energy centered between the old and new velocities [J]
    """
    n = pop.n_particles
    if n == 0:
        return 0.0
    E = np.ascontiguousarray(field(pop.cell[:n], pop.x[:n]), dtype=np.float64)
    v = pop.v[:n]
    KE = _accel_kernel(v, E.reshape(n, pop.dim), pop.q[:n], pop.m[:n], dt)
    return float(KE)


def _check_magnetic_field(B, dim):
    """
    Validate that the velocity plane of a dim-dimensional population is
    invariant under v x B.
    """
    B = np.asarray(B, dtype=np.float64).reshape(-1)
    if len(B) != 3:
        raise ValueError(f"Magnetic field must have 3 components, got {len(B)}")
    if dim == 2 and np.any(B[:2] != 0.0):
        raise ValueError("2D populations only support a magnetic field along z")
    if dim == 1 and np.any(B[1:] != 0.0):
        raise ValueError("1D populations only support a magnetic field along x")
    return B


def boris(pop, field, B, dt):
    """
    Boris velocity update of every particle in a uniform magnetic field.

    Args:
        pop: Population
        field: Callable E(cells, xs) -> [n, dim]
        B: Magnetic field [3] [T]
        dt: Effective step [s]

    Returns:
        KE: Kinetic energy centered between the old and new velocities [J]

    Raises:
        ValueError: If B has other than 3 components, or would rotate
                    velocities out of the population's dimensions
    """
    B = _check_magnetic_field(B, pop.dim)
    n = pop.n_particles
    if n == 0:
        return 0.0

    dim = pop.dim
    E3 = np.zeros((n, 3))
    E3[:, :dim] = np.asarray(field(pop.cell[:n], pop.x[:n])).reshape(n, dim)
    v3 = np.zeros((n, 3))
    v3[:, :dim] = pop.v[:n]

    KE = _boris_kernel(v3, E3, B, pop.q[:n], pop.m[:n], dt)
    pop.v[:n] = v3[:, :dim]
    return float(KE)


def move(pop, dt):
    """
    Advance positions by x += v dt. Relocation is left to Population.update.
    """
    n = pop.n_particles
    if n:
        _move_kernel(pop.x[:n], pop.v[:n], dt)


def has_magnetic_field(B):
    """True when B is given and its norm exceeds B_THRESHOLD."""
    return B is not None and float(np.linalg.norm(B)) > B_THRESHOLD
