"""
Position and Velocity Distribution Functions

Every distribution exposes the capability set the samplers need:
    pdf(v)      density at one point (dim,) or many points (n, dim)
    pdf.max()   global maximum of the density over its domain
    pdf.domain  per-axis [low, high] bounds, shape (dim, 2)
    pdf.dim     dimensionality
    pdf.has_icdf / pdf.icdf(u)   optional direct sampling

Velocity distributions are isotropic about a drift velocity vd and depend
only on the reduced speed s = |v - vd|^2 / vth^2:

    Maxwellian    f ~ exp(-s/2)
    Kappa         f ~ (1 + s/(2k-3))^-(k + (d-1)/2)
    Cairns        f ~ (1 + a s^2) exp(-s/2)
    Kappa-Cairns  f ~ (1 + a s^2) (1 + s/(2k-3))^-(k + (d-1)/2)

All are normalized to unit integral over R^d and have per-axis variance
vth^2 (Maxwellian and Kappa).

Reference:
    Livadiotis (2017), "Kappa Distributions", Ch. 1
    Cairns et al. (1995), Geophys. Res. Lett. 22, 2709
"""

import numpy as np
from scipy.special import erf, erfinv, gammaln


class Pdf:
    """
    Probability density over a bounded domain.

    Subclasses implement _evaluate(v) for v of shape (n, dim) and max().
    """

    has_icdf = False

    def __init__(self, dim, domain):
        self.dim = int(dim)
        self.domain = np.asarray(domain, dtype=np.float64).reshape(self.dim, 2)

    def __call__(self, v):
        """
        Density at v.

        Args:
            v: One point (dim,) or many points (n, dim)

        Returns:
            density: float for one point, array (n,) for many
        """
        v = np.asarray(v, dtype=np.float64)
        single = v.ndim == 0 or (v.ndim == 1 and v.shape[0] == self.dim)
        values = self._evaluate(v.reshape(-1, self.dim))
        return float(values[0]) if single else values

    value = __call__

    def _evaluate(self, v):
        raise NotImplementedError

    def max(self):
        raise NotImplementedError

    def icdf(self, u):
        raise NotImplementedError(f"{type(self).__name__} has no inverse CDF")


class UniformPosition(Pdf):
    """
    Uniform density over the mesh (1 inside, 0 outside).

    The domain is the mesh bounding box, so rejection sampling fills
    non-box meshes by discarding points that fall outside every cell.
    """

    def __init__(self, mesh):
        super().__init__(mesh.dim, mesh.bounding_box())
        self.mesh = mesh

    def _evaluate(self, x):
        return (self.mesh.locate(x) >= 0).astype(np.float64)

    def max(self):
        return 1.0


class _IsotropicVdf(Pdf):
    """
    Velocity distribution isotropic about a drift velocity.

    Args:
        vth: Thermal speed [m/s]
        vd: Drift velocity vector [dim] (its length sets the dimension)
        cutoff: Domain half-width in units of vth
    """

    cutoff = 6.0

    def __init__(self, vth, vd, cutoff=None):
        vd = np.atleast_1d(np.asarray(vd, dtype=np.float64))
        if not vth > 0:
            raise ValueError(f"Thermal speed must be positive, got {vth}")
        if cutoff is not None:
            self.cutoff = float(cutoff)

        self.vth = float(vth)
        self.vd = vd
        half = self.cutoff * self.vth
        super().__init__(len(vd), np.column_stack([vd - half, vd + half]))

    def _reduced_speed(self, v):
        w = v - self.vd
        return np.sum(w * w, axis=1) / self.vth**2

    def _evaluate(self, v):
        return self.norm * self._shape(self._reduced_speed(v))

    def _shape(self, s):
        raise NotImplementedError

    def _stationary_points(self):
        """Positive stationary points of _shape(s), besides s = 0."""
        return np.zeros(0)

    def max(self):
        s = np.concatenate([[0.0], self._stationary_points()])
        return float(self.norm * np.max(self._shape(s)))

    def __repr__(self):
        return f"{type(self).__name__}(vth={self.vth:.3e}, vd={self.vd.tolist()})"


class Maxwellian(_IsotropicVdf):
    """Drifting Maxwellian, with closed-form inverse CDF and flux moment."""

    has_icdf = True
    cutoff = 6.0

    def __init__(self, vth, vd, cutoff=None):
        super().__init__(vth, vd, cutoff)
        self.norm = (2.0 * np.pi * self.vth**2) ** (-0.5 * self.dim)

    def _shape(self, s):
        return np.exp(-0.5 * s)

    def icdf(self, u):
        """
        Map uniform samples to velocities, independently per axis.

        Args:
            u: Uniform samples in (0, 1), shape (n, dim) or flat (n*dim,)

        Returns:
            v: Velocities, same shape as u
        """
        u = np.asarray(u, dtype=np.float64)
        shape = u.shape
        # erfinv(-1) and erfinv(1) are infinite
        eps = np.finfo(np.float64).eps
        u = np.clip(u, eps, 1.0 - eps)
        v = self.vd + np.sqrt(2.0) * self.vth * erfinv(2.0 * u.reshape(-1, self.dim) - 1.0)
        return v.reshape(shape)

    def flux_number(self, normal):
        """
        Particle flux per unit density through a surface with unit normal.

        Integral of max(0, v.normal) f(v) over velocity space.
        """
        u = float(np.dot(self.vd, normal))
        vth = self.vth
        return (vth / np.sqrt(2.0 * np.pi) * np.exp(-0.5 * (u / vth) ** 2)
                + 0.5 * u * (1.0 + erf(u / (np.sqrt(2.0) * vth))))


class Kappa(_IsotropicVdf):
    """Kappa distribution; requires kappa > 3/2 for a finite temperature."""

    cutoff = 12.0

    def __init__(self, vth, vd, kappa, cutoff=None):
        super().__init__(vth, vd, cutoff)
        if not kappa > 1.5:
            raise ValueError(f"Kappa distribution requires kappa > 1.5, got {kappa}")
        self.kappa = float(kappa)
        self._b = 2.0 * self.kappa - 3.0
        self._p = self.kappa + 0.5 * (self.dim - 1)
        self.norm = np.exp(
            gammaln(self._p) - gammaln(self.kappa - 0.5)
            - 0.5 * self.dim * np.log(np.pi * self._b * self.vth**2)
        )

    def _shape(self, s):
        return (1.0 + s / self._b) ** (-self._p)


class Cairns(_IsotropicVdf):
    """Cairns distribution with non-thermal parameter alpha >= 0."""

    cutoff = 8.0

    def __init__(self, vth, vd, alpha, cutoff=None):
        super().__init__(vth, vd, cutoff)
        if alpha < 0:
            raise ValueError(f"Cairns distribution requires alpha >= 0, got {alpha}")
        self.alpha = float(alpha)
        d = self.dim
        self.norm = (2.0 * np.pi * self.vth**2) ** (-0.5 * d) / (1.0 + self.alpha * d * (d + 2))

    def _shape(self, s):
        return (1.0 + self.alpha * s * s) * np.exp(-0.5 * s)

    def _stationary_points(self):
        # a s^2 - 4 a s + 1 = 0
        a = self.alpha
        if a < 0.25:
            return np.zeros(0)
        root = np.sqrt(4.0 - 1.0 / a)
        return np.array([2.0 - root, 2.0 + root])


class KappaCairns(_IsotropicVdf):
    """Kappa-Cairns distribution; requires kappa > 5/2 and alpha >= 0."""

    cutoff = 12.0

    def __init__(self, vth, vd, kappa, alpha, cutoff=None):
        super().__init__(vth, vd, cutoff)
        if not kappa > 2.5:
            raise ValueError(f"Kappa-Cairns distribution requires kappa > 2.5, got {kappa}")
        if alpha < 0:
            raise ValueError(f"Kappa-Cairns distribution requires alpha >= 0, got {alpha}")
        self.kappa = float(kappa)
        self.alpha = float(alpha)
        d = self.dim
        self._b = 2.0 * self.kappa - 3.0
        self._p = self.kappa + 0.5 * (d - 1)
        fourth_moment = d * (d + 2) * (2.0 * self.kappa - 3.0) / (2.0 * self.kappa - 5.0)
        self.norm = np.exp(
            gammaln(self._p) - gammaln(self.kappa - 0.5)
            - 0.5 * d * np.log(np.pi * self._b * self.vth**2)
        ) / (1.0 + self.alpha * fourth_moment)

    def _shape(self, s):
        return (1.0 + self.alpha * s * s) * (1.0 + s / self._b) ** (-self._p)

    def _stationary_points(self):
        # a (2 - p) s^2 + 2 a b s - p = 0
        a, b, p = self.alpha, self._b, self._p
        if a == 0.0:
            return np.zeros(0)
        roots = np.roots([a * (2.0 - p), 2.0 * a * b, -p])
        roots = roots[np.isreal(roots)].real
        return roots[roots > 0]


VDF_TYPES = ("maxwellian", "kappa", "cairns", "kappa-cairns")


def create_vdf(name, vth, vd, kappa=0.0, alpha=0.0):
    """
    Build a velocity distribution by name.

    Args:
        name: One of "maxwellian", "kappa", "cairns", "kappa-cairns"
        vth: Thermal speed [m/s]
        vd: Drift velocity [dim] [m/s]
        kappa: Spectral index (kappa family only)
        alpha: Non-thermal parameter (Cairns family only)

    Raises:
        ValueError: For an unsupported name or invalid parameters
    """
    key = name.lower()
    if key == "maxwellian":
        return Maxwellian(vth, vd)
    elif key == "kappa":
        return Kappa(vth, vd, kappa)
    elif key == "cairns":
        return Cairns(vth, vd, alpha)
    elif key == "kappa-cairns":
        return KappaCairns(vth, vd, kappa, alpha)
    raise ValueError(f"Unsupported velocity distribution: {name!r} (choose from {VDF_TYPES})")
