"""Background cosmology module for jaxcls.

Provides the distance-redshift relation, the dimensionless Hubble rate and
the linear growth of structure for a w0/wa cosmology with curvature,
photons and massless neutrinos.

The comoving-distance integral and the growth equation are integrated
together in log(a) with Diffrax from a_min to a = 1, and stored as cubic
splines:

    d s/d(loga)  = 1 / (a E(a))                              [distance, units of c/H0]
    d D/d(loga)  = D'
    d D'/d(loga) = -(2 + dlnE/dloga) D' + 1.5 Omega_m(a) D    [growth]

with chi(a) = (c/H0) [s(1) - s(a)].

Key functions:
    background_solve(params, prec) -> BackgroundResult
    h_over_h0, comoving_radial_distance, scale_factor_of_chi,
    growth_factor, growth_rate, sinn

References:
    CCL source: src/ccl_background.c
    CLASS source: source/background.c (background_derivs)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import diffrax
import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from jaxcls import constants as const
from jaxcls.errors import IntegrationError
from jaxcls.interpolation import CubicSpline
from jaxcls.ode import solve_nonstiff
from jaxcls.params import CosmoParams, PrecisionParams

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# BackgroundResult
# ---------------------------------------------------------------------------

@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class BackgroundResult:
    """Output of the background module.

    Splines are functions of log(a), except loga_of_chi which inverts the
    distance relation. Distances are in Mpc.
    """

    # Grid
    chi_table: Float[Array, "N"]

    # Splines
    chi_of_loga: CubicSpline          # comoving radial distance chi(log a) [Mpc]
    loga_of_chi: CubicSpline          # inverse: log(a)(chi)
    D_of_loga: CubicSpline            # growth factor, D(a=1) = 1
    f_of_loga: CubicSpline            # growth rate f = d ln D / d ln a

    # Density fractions today and dark-energy equation of state
    h: float
    Omega_m: float
    Omega_r: float
    Omega_k: float
    Omega_de: float
    w0: float
    wa: float

    def tree_flatten(self):
        fields = [
            self.chi_table,
            self.chi_of_loga, self.loga_of_chi, self.D_of_loga, self.f_of_loga,
            self.h, self.Omega_m, self.Omega_r, self.Omega_k, self.Omega_de,
            self.w0, self.wa,
        ]
        return fields, None

    @classmethod
    def tree_unflatten(cls, aux, fields):
        return cls(*fields)


# ---------------------------------------------------------------------------
# Radiation densities
# ---------------------------------------------------------------------------

def _compute_omega_g(T_cmb: float, h: float) -> float:
    """Photon density parameter Omega_g from T_cmb.

    rho_g = (4 sigma_B / c) T^4 [J/m^3], converted to units where
    H^2 = sum(rho) with H in Mpc^-1, divided by H0^2 = (h * 1e5 / c)^2.
    """
    H0 = h * 1e5 / const.c_SI
    rho_g_phys = 4.0 * const.sigma_B / const.c_SI * T_cmb**4
    rho_g_class = (
        8.0 * math.pi * const.G_SI / 3.0
        * rho_g_phys
        * const.Mpc_over_m**2
        / const.c_SI**4
    )
    return rho_g_class / H0**2


def _compute_omega_ur(N_ur: float, Omega_g: float) -> float:
    """Omega_ur = N_ur * (7/8) * (4/11)^(4/3) * Omega_g."""
    return N_ur * (7.0 / 8.0) * (4.0 / 11.0) ** (4.0 / 3.0) * Omega_g


# ---------------------------------------------------------------------------
# Expansion rate
# ---------------------------------------------------------------------------

def _w_de(a, w0, wa):
    """CPL dark energy equation of state: w(a) = w0 + wa * (1 - a)."""
    return w0 + wa * (1.0 - a)


def _de_density_ratio(a, w0, wa):
    """rho_de(a) / rho_de(1) for the CPL equation of state."""
    return a ** (-3.0 * (1.0 + w0 + wa)) * jnp.exp(-3.0 * wa * (1.0 - a))


def _E2(a, Omega_m, Omega_r, Omega_k, Omega_de, w0, wa):
    """(H/H0)^2 at scale factor a."""
    return (
        Omega_m / a**3
        + Omega_r / a**4
        + Omega_k / a**2
        + Omega_de * _de_density_ratio(a, w0, wa)
    )


def _dE2_dloga(a, Omega_m, Omega_r, Omega_k, Omega_de, w0, wa):
    return (
        -3.0 * Omega_m / a**3
        - 4.0 * Omega_r / a**4
        - 2.0 * Omega_k / a**2
        - 3.0 * (1.0 + _w_de(a, w0, wa)) * Omega_de * _de_density_ratio(a, w0, wa)
    )


def _background_rhs(loga, y, args):
    """Right-hand side in log(a). State y = [s, D, dD/dloga]."""
    a = jnp.exp(loga)
    E2 = _E2(a, *args)
    dlnE_dloga = 0.5 * _dE2_dloga(a, *args) / E2
    Omega_m = args[0]

    ds_dloga = 1.0 / (a * jnp.sqrt(E2))
    D = y[1]
    D_prime = y[2]
    dDprime_dloga = -(2.0 + dlnE_dloga) * D_prime + 1.5 * Omega_m / a**3 / E2 * D

    return jnp.array([ds_dloga, D_prime, dDprime_dloga])


# ---------------------------------------------------------------------------
# Main solver
# ---------------------------------------------------------------------------

def background_solve(
    params: CosmoParams,
    prec: PrecisionParams = PrecisionParams(),
) -> BackgroundResult:
    """Tabulate distances and growth for the given cosmology.

    Args:
        params: cosmological parameters
        prec: precision parameters (static)

    Returns:
        BackgroundResult with distance and growth splines

    Raises:
        IntegrationError: the ODE solver did not reach a = 1
    """
    Omega_g = _compute_omega_g(params.T_cmb, params.h)
    Omega_r = Omega_g + _compute_omega_ur(params.N_ur, Omega_g)
    Omega_m = params.Omega_c + params.Omega_b
    Omega_de = 1.0 - Omega_m - Omega_r - params.Omega_k
    ode_args = (Omega_m, Omega_r, params.Omega_k, Omega_de, params.w0, params.wa)

    loga_min = math.log(prec.bg_a_min)
    loga_grid = jnp.linspace(loga_min, 0.0, prec.bg_n_points)

    # D grows as a once matter dominates; the decaying mode is irrelevant by z ~ 10
    a_ini = prec.bg_a_min
    y0 = jnp.array([0.0, a_ini, a_ini])

    sol = solve_nonstiff(
        rhs_fn=_background_rhs,
        t0=loga_min,
        t1=0.0,
        y0=y0,
        saveat=diffrax.SaveAt(ts=loga_grid),
        args=ode_args,
        rtol=prec.bg_tol,
        atol=prec.bg_tol * 1e-3,
        max_steps=65536,
        throw=False,
    )
    if not bool(sol.result == diffrax.RESULTS.successful):
        raise IntegrationError(
            "background ODE failed to reach a=1", context="background_solve"
        )

    s_grid = sol.ys[:, 0]
    D_grid = sol.ys[:, 1]
    D_prime_grid = sol.ys[:, 2]

    chi_grid = const.CLIGHT_HMPC / params.h * (s_grid[-1] - s_grid)
    f_grid = D_prime_grid / D_grid
    D_grid = D_grid / D_grid[-1]

    logger.debug(
        "background_solve: chi(a=%.1e) = %.1f Mpc, %d grid points",
        prec.bg_a_min, float(chi_grid[0]), prec.bg_n_points,
    )

    return BackgroundResult(
        chi_table=chi_grid,
        chi_of_loga=CubicSpline(loga_grid, chi_grid),
        # chi decreases with log(a); reverse so the knots increase
        loga_of_chi=CubicSpline(chi_grid[::-1], loga_grid[::-1]),
        D_of_loga=CubicSpline(loga_grid, D_grid),
        f_of_loga=CubicSpline(loga_grid, f_grid),
        h=params.h,
        Omega_m=Omega_m,
        Omega_r=Omega_r,
        Omega_k=params.Omega_k,
        Omega_de=Omega_de,
        w0=params.w0,
        wa=params.wa,
    )


# ---------------------------------------------------------------------------
# Background quantities
# ---------------------------------------------------------------------------

def h_over_h0(bg: BackgroundResult, a):
    """Dimensionless Hubble rate E(a) = H(a)/H0."""
    return jnp.sqrt(_E2(
        jnp.asarray(a), bg.Omega_m, bg.Omega_r, bg.Omega_k, bg.Omega_de, bg.w0, bg.wa
    ))


def hubble_rate(bg: BackgroundResult, a):
    """H(a)/c in Mpc^-1, i.e. h E(a) / (c/H0 in Mpc/h)."""
    return bg.h * h_over_h0(bg, a) / const.CLIGHT_HMPC


def omega_m_of_a(bg: BackgroundResult, a):
    """Matter density fraction at scale factor a."""
    a = jnp.asarray(a)
    return bg.Omega_m / a**3 / h_over_h0(bg, a) ** 2


def omega_v_of_a(bg: BackgroundResult, a):
    """Vacuum/DE density fraction at scale factor a (everything but matter and radiation)."""
    a = jnp.asarray(a)
    E2 = h_over_h0(bg, a) ** 2
    return 1.0 - bg.Omega_m / a**3 / E2 - bg.Omega_r / a**4 / E2


def w_of_a(bg: BackgroundResult, a):
    """Dark energy equation of state at scale factor a."""
    return _w_de(jnp.asarray(a), bg.w0, bg.wa)


def comoving_radial_distance(bg: BackgroundResult, a):
    """Comoving radial distance to scale factor a in Mpc."""
    return bg.chi_of_loga.evaluate(jnp.log(jnp.asarray(a)))


def scale_factor_of_chi(bg: BackgroundResult, chi):
    """Scale factor at comoving radial distance chi [Mpc]."""
    return jnp.exp(bg.loga_of_chi.evaluate(jnp.asarray(chi)))


def growth_factor(bg: BackgroundResult, a):
    """Linear growth factor normalised to D(a=1) = 1."""
    return bg.D_of_loga.evaluate(jnp.log(jnp.asarray(a)))


def growth_rate(bg: BackgroundResult, a):
    """Logarithmic growth rate f = d ln D / d ln a."""
    return bg.f_of_loga.evaluate(jnp.log(jnp.asarray(a)))


def sinn(bg: BackgroundResult, chi):
    """Curvature-aware transverse distance function.

    sinh(sqrt(K) chi)/sqrt(K) for an open universe (Omega_k > 0),
    sin(sqrt(|K|) chi)/sqrt(|K|) for a closed one and chi when flat,
    with sqrt(|K|) = sqrt(|Omega_k|) h / (c/H0).
    """
    chi = jnp.asarray(chi)
    sqrtk = jnp.sqrt(jnp.abs(bg.Omega_k)) * bg.h / const.CLIGHT_HMPC
    sqrtk_safe = jnp.where(sqrtk > 0, sqrtk, 1.0)
    open_ = jnp.sinh(sqrtk_safe * chi) / sqrtk_safe
    closed = jnp.sin(sqrtk_safe * chi) / sqrtk_safe
    return jnp.where(bg.Omega_k > 0, open_, jnp.where(bg.Omega_k < 0, closed, chi))
