"""Physical constants and unit conventions for jaxcls.

Lengths are in Mpc (no factor of h), wavenumbers in Mpc^-1 and power
spectra in Mpc^3. The Hubble rate enters the projection kernels as
h * E(a) / CLIGHT_HMPC, i.e. in Mpc^-1.

References:
    CLASS source: include/background.h
    CCL source: include/ccl_constants.h
"""

import math

# --- Distances ---
CLIGHT_HMPC = 2997.92458
"""Hubble distance c/H0 in Mpc/h."""

Mpc_over_m = 3.085677581282e22
"""Conversion factor from meters to megaparsecs."""

# --- Fundamental constants (SI) ---
c_SI = 2.99792458e8
"""Speed of light in m/s."""

G_SI = 6.67428e-11
"""Newton's gravitational constant in m^3/kg/s^2 (CLASS value)."""

k_B_SI = 1.3806504e-23
"""Boltzmann constant in J/K."""

h_P_SI = 6.62606896e-34
"""Planck constant in J*s."""

sigma_B = 2.0 * math.pi**5 * k_B_SI**4 / (15.0 * h_P_SI**3 * c_SI**2)
"""Stefan-Boltzmann constant in W/m^2/K^4."""

# --- Defaults ---
T_cmb_default = 2.7255
"""Default CMB temperature today in Kelvin (Fixsen 2009)."""

N_ur_default = 3.046
"""Effective number of massless neutrino species."""

# --- Small-argument cut-offs ---
CHI_EPS = 1e-10
"""Comoving distance [Mpc] below which 1/chi^2 terms are set to zero."""

X_SMALL_BESSEL = 1e-10
"""k*chi below which the closed-form small-argument series is used."""
