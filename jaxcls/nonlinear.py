"""Non-linear matter power spectrum (HaloFit).

Implements the Takahashi et al. (2012) revision of the HaloFit fitting
formula. The spectral parameters (k_sigma, n_eff, C) only depend on the
linear spectrum at the epoch of interest, so they are found once per
scale factor on a table and splined in log(a) by the power module; the
fitting formula itself is then applied pointwise in k.

All functions are pure JAX (differentiable, JIT-compatible).

References:
    Smith et al. (2003), MNRAS 341, 1311 (original HaloFit)
    Takahashi et al. (2012), ApJ 761, 152 (revised fitting formulas)
    CLASS: external/Halofit/halofit.c
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

# Below this wavenumber [Mpc^-1] the linear spectrum is returned unchanged
K_MIN_NONLINEAR = 1e-3


# ---------------------------------------------------------------------------
# sigma(R) with a Gaussian window
# ---------------------------------------------------------------------------

def _sigma_integrals(
    R: float,
    lnk: Float[Array, "N"],
    pk: Float[Array, "N"],
) -> tuple[float, float, float]:
    """The three Gaussian-window moments HaloFit needs at radius R.

        sigma^2(R) = 1/(2 pi^2) int dk k^2 P(k) exp(-(kR)^2)
        d1(R)      = 1/(2 pi^2) int dk k^2 P(k) 2 (kR)^2 exp(-(kR)^2)
        d2(R)      = 1/(2 pi^2) int dk k^2 P(k) 4 (kR)^2 (1 - (kR)^2) exp(-(kR)^2)

    Trapezoidal rule in ln(k).
    """
    k = jnp.exp(lnk)
    x2 = (k * R) ** 2
    base = pk * k**3 / (2.0 * jnp.pi**2) * jnp.exp(-x2)

    integrands = jnp.stack([base, base * 2.0 * x2, base * 4.0 * x2 * (1.0 - x2)])
    dlnk = lnk[1:] - lnk[:-1]
    sums = jnp.sum(0.5 * (integrands[:, 1:] + integrands[:, :-1]) * dlnk, axis=1)
    return sums[0], sums[1], sums[2]


def sigma_R(
    R: float,
    lnk: Float[Array, "N"],
    pk: Float[Array, "N"],
) -> float:
    """RMS linear density fluctuation in a Gaussian window of radius R [Mpc]."""
    sum1, _, _ = _sigma_integrals(R, lnk, pk)
    return jnp.sqrt(sum1)


# ---------------------------------------------------------------------------
# Non-linear scale by bisection on sigma(R) = 1
# ---------------------------------------------------------------------------

def _bisect_sigma_body(carry, _):
    xlogr1, xlogr2, lnk, pk, tol = carry
    xlogr_mid = 0.5 * (xlogr1 + xlogr2)
    sigma = sigma_R(10.0**xlogr_mid, lnk, pk)
    diff = sigma - 1.0

    # sigma too large means R too small
    xlogr1 = jnp.where(diff > tol, xlogr_mid, xlogr1)
    xlogr2 = jnp.where(diff < -tol, xlogr_mid, xlogr2)
    return (xlogr1, xlogr2, lnk, pk, tol), None


def halofit_parameters(
    lnk: Float[Array, "N"],
    pk: Float[Array, "N"],
) -> tuple[float, float, float]:
    """Non-linear scale k_sigma, effective slope n_eff and curvature C.

    R_nl solves sigma(R_nl) = 1; then, with the moments at R_nl,
        d1 = -sum2/sum1,  d2 = -sum2^2/sum1^2 - sum3/sum1
        k_sigma = 1/R_nl,  n_eff = -3 - d1,  C = -d2

    Args:
        lnk: log wavenumbers, shape (N,)
        pk: linear power spectrum P(k) [Mpc^3], shape (N,)

    Returns:
        (k_sigma [Mpc^-1], n_eff, C)
    """
    k = jnp.exp(lnk)
    tol = 1e-6

    # Smallest R for which exp(-(k_max R)^2) is negligible
    xlogr1 = jnp.log10(jnp.sqrt(-jnp.log(1e-7)) / k[-1])
    xlogr2 = jnp.log10(1000.0)

    carry = (xlogr1, xlogr2, lnk, pk, tol)
    carry, _ = jax.lax.scan(_bisect_sigma_body, carry, None, length=60)
    xlogr1, xlogr2, _, _, _ = carry

    rmid = 10.0 ** (0.5 * (xlogr1 + xlogr2))
    sum1, sum2, sum3 = _sigma_integrals(rmid, lnk, pk)

    d1 = -sum2 / sum1
    d2 = -sum2**2 / sum1**2 - sum3 / sum1
    return 1.0 / rmid, -3.0 - d1, -d2


# ---------------------------------------------------------------------------
# Takahashi (2012) fitting formula
# ---------------------------------------------------------------------------

def halofit_from_parameters(
    k,
    pk_lin,
    k_sigma,
    n_eff,
    C,
    Omega_m,
    Omega_v,
    w,
):
    """Apply the HaloFit fitting formula for given spectral parameters.

    P_NL = (Delta^2_Q + Delta^2_H) 2 pi^2 / k^3. All arguments broadcast, so
    this can be evaluated pointwise in (k, a).

    Args:
        k: wavenumbers [Mpc^-1]
        pk_lin: linear P(k) [Mpc^3] at the same epoch
        k_sigma, n_eff, C: output of halofit_parameters at that epoch
        Omega_m, Omega_v, w: matter and dark energy fractions and the dark
            energy equation of state at that epoch

    Returns:
        P_NL(k) [Mpc^3]
    """
    anorm = 1.0 / (2.0 * jnp.pi**2)
    delta_lin = pk_lin * k**3 * anorm
    y = k / k_sigma

    gam = 0.1971 - 0.0843 * n_eff + 0.8460 * C
    a_coeff = 10.0 ** (
        1.5222 + 2.8553 * n_eff + 2.3706 * n_eff**2
        + 0.9903 * n_eff**3 + 0.2250 * n_eff**4
        - 0.6038 * C + 0.1749 * Omega_v * (1.0 + w)
    )
    b_coeff = 10.0 ** (
        -0.5642 + 0.5864 * n_eff + 0.5716 * n_eff**2
        - 1.5474 * C + 0.2279 * Omega_v * (1.0 + w)
    )
    c_coeff = 10.0 ** (0.3698 + 2.0404 * n_eff + 0.8161 * n_eff**2 + 0.5869 * C)
    xnu = 10.0 ** (5.2105 + 3.6902 * n_eff)
    alpha = jnp.abs(6.0835 + 1.3373 * n_eff - 0.1959 * n_eff**2 - 5.5274 * C)
    beta = (
        2.0379 - 0.7354 * n_eff + 0.3157 * n_eff**2
        + 1.2490 * n_eff**3 + 0.3980 * n_eff**4 - 0.1682 * C
    )

    # Interpolate between open and flat-Lambda Omega dependences
    has_de = jnp.abs(1.0 - Omega_m) > 0.01
    frac = jnp.where(has_de, Omega_v / jnp.where(has_de, 1.0 - Omega_m, 1.0), 0.0)
    f1 = jnp.where(has_de, frac * Omega_m**-0.0307 + (1.0 - frac) * Omega_m**-0.0732, 1.0)
    f2 = jnp.where(has_de, frac * Omega_m**-0.0585 + (1.0 - frac) * Omega_m**-0.1423, 1.0)
    f3 = jnp.where(has_de, frac * Omega_m**0.0743 + (1.0 - frac) * Omega_m**0.0725, 1.0)

    delta_halo = (
        a_coeff * y ** (f1 * 3.0)
        / (1.0 + b_coeff * y**f2 + (f3 * c_coeff * y) ** (3.0 - gam))
    ) / (1.0 + xnu * y**-2)

    delta_quasi = (
        delta_lin
        * (1.0 + delta_lin) ** beta
        / (1.0 + delta_lin * alpha)
        * jnp.exp(-y / 4.0 - y**2 / 8.0)
    )

    pk_nl = (delta_halo + delta_quasi) / (k**3 * anorm)
    return jnp.where(k > K_MIN_NONLINEAR, pk_nl, pk_lin)


def halofit_nl_pk(
    k: Float[Array, "N"],
    pk_lin: Float[Array, "N"],
    Omega_m: float,
    Omega_v: float,
    w: float,
) -> Float[Array, "N"]:
    """Non-linear P(k) from a tabulated linear P(k) at a single epoch.

    Args:
        k: wavenumbers [Mpc^-1], shape (N,), wide enough to converge sigma(R)
        pk_lin: linear P(k) [Mpc^3], shape (N,)
        Omega_m, Omega_v, w: background quantities at the same epoch

    Returns:
        P_NL(k) [Mpc^3], shape (N,)
    """
    k_sigma, n_eff, C = halofit_parameters(jnp.log(k), pk_lin)
    return halofit_from_parameters(k, pk_lin, k_sigma, n_eff, C, Omega_m, Omega_v, w)
