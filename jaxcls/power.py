"""Three-dimensional matter power spectrum.

Linear spectrum

    P_lin(k, a) = A k^{n_s} T(k)^2 D(a)^2

with T(k) the BBKS (Bardeen et al. 1986) or the Eisenstein & Hu (1998)
no-wiggle transfer function and A fixed by sigma8 (top-hat window of radius
8 Mpc/h today). The non-linear spectrum applies HaloFit with the spectral
parameters splined in log(a).

Wavenumbers are in Mpc^-1 and P(k) in Mpc^3.

References:
    CCL source: src/ccl_power.c (ccl_bbks_power, ccl_eh_power, sigma8 normalisation)
    Eisenstein & Hu (1998), ApJ 496, 605, eqs. 26-31
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from jaxcls import background as bkg
from jaxcls.background import BackgroundResult
from jaxcls.interpolation import CubicSpline
from jaxcls.nonlinear import halofit_from_parameters, halofit_parameters
from jaxcls.params import Configuration, CosmoParams, PrecisionParams

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# PowerResult
# ---------------------------------------------------------------------------

@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class PowerResult:
    """Normalisation of the linear spectrum and HaloFit tables.

    The model choices are static pytree metadata.
    """

    amplitude: float                   # A in P_lin(k, 1) = A k^n_s T(k)^2

    # HaloFit spectral parameters as functions of log(a)
    log_ksigma_of_loga: CubicSpline
    neff_of_loga: CubicSpline
    C_of_loga: CubicSpline
    loga_min_nonlinear: float

    transfer_function: str = "bbks"
    matter_power_spectrum: str = "halofit"

    def tree_flatten(self):
        children = [
            self.amplitude, self.log_ksigma_of_loga, self.neff_of_loga,
            self.C_of_loga, self.loga_min_nonlinear,
        ]
        return children, (self.transfer_function, self.matter_power_spectrum)

    @classmethod
    def tree_unflatten(cls, aux, children):
        return cls(*children, *aux)


# ---------------------------------------------------------------------------
# Transfer functions
# ---------------------------------------------------------------------------

def _transfer_bbks(params: CosmoParams, k):
    """BBKS fit with the Sugiyama (1995) baryon shape correction."""
    Omega_m = params.Omega_c + params.Omega_b
    h = params.h
    q = k / (Omega_m * h**2 * jnp.exp(-params.Omega_b * (1.0 + jnp.sqrt(2.0 * h) / Omega_m)))
    return (
        jnp.log(1.0 + 2.34 * q) / (2.34 * q)
        * (1.0 + 3.89 * q + (16.1 * q) ** 2 + (5.46 * q) ** 3 + (6.71 * q) ** 4) ** -0.25
    )


def _transfer_eh_nowiggle(params: CosmoParams, k):
    """Eisenstein & Hu zero-baryon-oscillation fit with baryon suppression."""
    Omega_m = params.Omega_c + params.Omega_b
    h = params.h
    om_h2 = Omega_m * h**2
    ob_h2 = params.Omega_b * h**2
    fb = params.Omega_b / Omega_m
    theta = params.T_cmb / 2.7

    # Approximate sound horizon [Mpc], eq. 26
    s = 44.5 * jnp.log(9.83 / om_h2) / jnp.sqrt(1.0 + 10.0 * ob_h2**0.75)
    alpha_gamma = 1.0 - 0.328 * jnp.log(431.0 * om_h2) * fb + 0.38 * jnp.log(22.3 * om_h2) * fb**2
    gamma_eff = Omega_m * h * (alpha_gamma + (1.0 - alpha_gamma) / (1.0 + (0.43 * k * s) ** 4))

    q = k / h * theta**2 / gamma_eff
    L0 = jnp.log(2.0 * math.e + 1.8 * q)
    C0 = 14.2 + 731.0 / (1.0 + 62.5 * q)
    return L0 / (L0 + C0 * q**2)


def _transfer(params: CosmoParams, k, transfer_function: str):
    if transfer_function == "bbks":
        return _transfer_bbks(params, k)
    return _transfer_eh_nowiggle(params, k)


def _unnormalised_pk(params: CosmoParams, k, transfer_function: str):
    return k**params.n_s * _transfer(params, k, transfer_function) ** 2


# ---------------------------------------------------------------------------
# Top-hat variance
# ---------------------------------------------------------------------------

def _tophat_window(x):
    """W(x) = 3 (sin x - x cos x) / x^3, with its series below x = 1e-3."""
    x_safe = jnp.where(x < 1e-3, 1e-3, x)
    exact = 3.0 * (jnp.sin(x_safe) - x_safe * jnp.cos(x_safe)) / x_safe**3
    return jnp.where(x < 1e-3, 1.0 - x**2 / 10.0, exact)


def _sigma2_tophat(lnk, pk, R):
    """sigma^2(R) = 1/(2 pi^2) int dlnk k^3 P(k) W(kR)^2, trapezoidal in ln k."""
    k = jnp.exp(lnk)
    integrand = k**3 * pk * _tophat_window(k * R) ** 2 / (2.0 * jnp.pi**2)
    return jnp.sum(0.5 * (integrand[1:] + integrand[:-1]) * (lnk[1:] - lnk[:-1]))


def _sigma_lnk_grid(prec: PrecisionParams):
    return jnp.linspace(math.log(1e-5), math.log(1e3), prec.sigma8_n_k)


# ---------------------------------------------------------------------------
# Main solver
# ---------------------------------------------------------------------------

def power_solve(
    params: CosmoParams,
    bg: BackgroundResult,
    prec: PrecisionParams = PrecisionParams(),
    config: Configuration = Configuration(),
) -> PowerResult:
    """Normalise the linear spectrum and tabulate the HaloFit parameters.

    Args:
        params: cosmological parameters
        bg: background tables for the same parameters
        prec: precision parameters (static)
        config: model choices (static)

    Returns:
        PowerResult
    """
    lnk = _sigma_lnk_grid(prec)
    pk_shape = _unnormalised_pk(params, jnp.exp(lnk), config.transfer_function)
    amplitude = params.sigma8**2 / _sigma2_tophat(lnk, pk_shape, 8.0 / params.h)

    # HaloFit parameters on a log(a) table; P_lin(k, a) = D(a)^2 P_lin(k, 1)
    loga_min = math.log(prec.halofit_a_min)
    loga_grid = jnp.linspace(loga_min, 0.0, prec.halofit_n_a)
    lnk_hf = jnp.linspace(
        math.log(prec.halofit_k_min), math.log(prec.halofit_k_max), prec.halofit_n_k
    )
    pk_today = amplitude * _unnormalised_pk(params, jnp.exp(lnk_hf), config.transfer_function)
    growth = bkg.growth_factor(bg, jnp.exp(loga_grid))

    k_sigma, n_eff, C = jax.vmap(
        lambda D: halofit_parameters(lnk_hf, D**2 * pk_today)
    )(growth)

    logger.debug(
        "power_solve: transfer=%s, A=%.4e, k_sigma(a=1)=%.4g Mpc^-1",
        config.transfer_function, float(amplitude), float(k_sigma[-1]),
    )

    return PowerResult(
        amplitude=amplitude,
        log_ksigma_of_loga=CubicSpline(loga_grid, jnp.log(k_sigma)),
        neff_of_loga=CubicSpline(loga_grid, n_eff),
        C_of_loga=CubicSpline(loga_grid, C),
        loga_min_nonlinear=loga_min,
        transfer_function=config.transfer_function,
        matter_power_spectrum=config.matter_power_spectrum,
    )


# ---------------------------------------------------------------------------
# Spectra
# ---------------------------------------------------------------------------

def linear_matter_power(params: CosmoParams, bg: BackgroundResult, pw: PowerResult, k, a):
    """Linear P(k, a) [Mpc^3]; k [Mpc^-1] and a broadcast."""
    k = jnp.asarray(k)
    a = jnp.asarray(a)
    return (
        pw.amplitude
        * _unnormalised_pk(params, k, pw.transfer_function)
        * bkg.growth_factor(bg, a) ** 2
    )


def nonlinear_matter_power(params: CosmoParams, bg: BackgroundResult, pw: PowerResult, k, a):
    """HaloFit P(k, a) [Mpc^3]; linear before the earliest tabulated epoch."""
    k = jnp.asarray(k)
    a = jnp.asarray(a)
    pk_lin = linear_matter_power(params, bg, pw, k, a)
    loga = jnp.log(a)
    pk_nl = halofit_from_parameters(
        k,
        pk_lin,
        jnp.exp(pw.log_ksigma_of_loga.evaluate(loga)),
        pw.neff_of_loga.evaluate(loga),
        pw.C_of_loga.evaluate(loga),
        bkg.omega_m_of_a(bg, a),
        bkg.omega_v_of_a(bg, a),
        bkg.w_of_a(bg, a),
    )
    return jnp.where(loga >= pw.loga_min_nonlinear, pk_nl, pk_lin)


def matter_power(params: CosmoParams, bg: BackgroundResult, pw: PowerResult, k, a):
    """P(k, a) [Mpc^3] for the configured model."""
    if pw.matter_power_spectrum == "linear":
        return linear_matter_power(params, bg, pw, k, a)
    return nonlinear_matter_power(params, bg, pw, k, a)


def sigma_tophat(
    params: CosmoParams,
    bg: BackgroundResult,
    pw: PowerResult,
    R: float,
    a: float = 1.0,
    n_k: int = 4096,
):
    """RMS linear fluctuation in a top-hat sphere of radius R [Mpc] at scale factor a."""
    lnk = jnp.linspace(math.log(1e-5), math.log(1e3), n_k)
    pk = linear_matter_power(params, bg, pw, jnp.exp(lnk), a)
    return jnp.sqrt(_sigma2_tophat(lnk, pk, R))
