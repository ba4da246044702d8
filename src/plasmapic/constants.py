"""
Physical Constants

All units in SI unless otherwise noted.
"""

import numpy as np

# ==================== FUNDAMENTAL CONSTANTS ====================

e = 1.602176634e-19  # Elementary charge [C]
m_e = 9.1093837015e-31  # Electron mass [kg]
m_p = 1.67262192369e-27  # Proton mass [kg]
eps0 = 8.8541878128e-12  # Vacuum permittivity [F/m]
mu0 = 1.25663706212e-6  # Vacuum permeability [H/m]
kB = 1.380649e-23  # Boltzmann constant [J/K]
AMU = 1.66053906660e-27  # Atomic mass unit [kg]
eV = e  # 1 eV in Joules [J]

# ==================== DERIVED HELPERS ====================


def thermal_speed(T_eV, mass):
    """
    Thermal speed sqrt(kT/m) of a species.

    Args:
        T_eV: Temperature [eV]
        mass: Particle mass [kg]

    Returns:
        v_th: Thermal speed [m/s]
    """
    return np.sqrt(T_eV * eV / mass)


def debye_length(n, T_eV):
    """
    Debye length sqrt(eps0 kT / (n e^2)).

    Args:
        n: Number density [m^-3]
        T_eV: Temperature [eV]

    Returns:
        lambda_D: Debye length [m]
    """
    return np.sqrt(eps0 * T_eV * eV / (n * e**2))
