"""Harmonic-space transfer functions Delta_l(k) of number counts and shear.

For multipoles above prec.l_limber the line-of-sight integral is collapsed
onto chi = (l + 1/2)/k (Limber). At and below the threshold it is summed
exactly on midpoints spaced by prec.transfer_dchi, with spherical Bessel
functions.

Number counts:
    density        N(z) b(z) H(z)
    RSD            N(z) f(z) H(z) times j_l''(x); in the Limber limit the
                   derivative is approximated with the l and l+1 surrogates
    magnification  -2 prefac l(l+1) W_M(chi)/(a chi) / k^2

Shear:
    lensing        prefac W_L(chi)/(a chi)
    NLA alignment  N(z) b_IA(z) A_IA(z) H(z) / chi^2
    both multiplied by l(l+1)/k^2

Each term is weighted by sqrt(P(k, a(chi))).

References:
    CCL source: src/ccl_cls.c (transfer_nc, transfer_wl)
"""

from __future__ import annotations

import logging
from functools import partial

import jax
import jax.numpy as jnp
import numpy as np

from jaxcls.bessel import j_bessel_limber, spherical_jl
from jaxcls.constants import CHI_EPS, X_SMALL_BESSEL
from jaxcls.errors import InconsistentInputError
from jaxcls.tracers import Tracer, TracerKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Radial weights
# ---------------------------------------------------------------------------

def _redshift(a):
    return 1.0 / a - 1.0


def _f_dens(cosmo, tracer: Tracer, a):
    z = _redshift(a)
    return tracer.nz.evaluate(z) * tracer.bias.evaluate(z) * cosmo.hubble_rate(a)


def _f_rsd(cosmo, tracer: Tracer, a):
    return tracer.nz.evaluate(_redshift(a)) * cosmo.growth_rate(a) * cosmo.hubble_rate(a)


def _f_mag(tracer: Tracer, a, chi):
    w = tracer.mag_kernel.evaluate(chi)
    return jnp.where(w > 0, w / (a * chi), 0.0)


def _f_lensing(tracer: Tracer, a, chi):
    w = tracer.lensing_kernel.evaluate(chi)
    return jnp.where(w > 0, tracer.prefac_lensing * w / (a * chi), 0.0)


def _f_ia_nla(cosmo, tracer: Tracer, a, chi):
    z = _redshift(a)
    chi_safe = jnp.where(chi > CHI_EPS, chi, 1.0)
    f = (
        tracer.nz.evaluate(z)
        * tracer.ia_bias.evaluate(z)
        * tracer.ia_amplitude.evaluate(z)
        * cosmo.hubble_rate(a)
        / chi_safe**2
    )
    return jnp.where(chi > CHI_EPS, f, 0.0)


def _rsd_bessel_term(l: int, x):
    """((x^2 - l(l-1)) j_l(x) - 2x j_{l+1}(x)) / x^2, with its small-x limit."""
    x_safe = jnp.where(x < X_SMALL_BESSEL, 1.0, x)
    exact = (
        (x_safe**2 - l * (l - 1.0)) * spherical_jl(l, x_safe)
        - 2.0 * x_safe * spherical_jl(l + 1, x_safe)
    ) / x_safe**2
    if l == 0:
        series = 1.0 / 3.0 - x**2 / 10.0
    elif l == 2:
        series = -2.0 / 15.0 + 2.0 * x**2 / 35.0
    else:
        series = jnp.zeros_like(x)
    return jnp.where(x < X_SMALL_BESSEL, series, exact)


# ---------------------------------------------------------------------------
# Limber
# ---------------------------------------------------------------------------

@jax.jit
def _transfer_nc_limber(cosmo, tracer: Tracer, ell, k):
    x0 = ell + 0.5
    chi0 = x0 / k
    a0 = cosmo.scale_factor_of_chi(chi0)
    pk0 = cosmo.matter_power(k, a0)
    jl0 = j_bessel_limber(ell, k)

    f_all = _f_dens(cosmo, tracer, a0) * jl0
    if tracer.has_rsd:
        x1 = ell + 1.5
        chi1 = x1 / k
        a1 = cosmo.scale_factor_of_chi(chi1)
        pk1 = cosmo.matter_power(k, a1)
        jl1 = j_bessel_limber(ell + 1, k)
        f_all = f_all + (
            _f_rsd(cosmo, tracer, a0) * (1.0 - ell * (ell - 1.0) / x0**2) * jl0
            - _f_rsd(cosmo, tracer, a1) * 2.0 * jl1 * jnp.sqrt(pk1 / pk0) / x1
        )
    if tracer.has_magnification:
        f_all = f_all - (
            2.0 * tracer.prefac_lensing * ell * (ell + 1.0)
            * _f_mag(tracer, a0, chi0) * jl0 / k**2
        )
    return jnp.where(chi0 <= tracer.chimax, f_all * jnp.sqrt(pk0), 0.0)


@jax.jit
def _transfer_wl_limber(cosmo, tracer: Tracer, ell, k):
    chi = (ell + 0.5) / k
    a = cosmo.scale_factor_of_chi(chi)
    pk = cosmo.matter_power(k, a)
    jl = j_bessel_limber(ell, k)

    f_all = _f_lensing(tracer, a, chi) * jl
    if tracer.has_intrinsic_alignment:
        f_all = f_all + _f_ia_nla(cosmo, tracer, a, chi) * jl
    ret = jnp.where(chi <= tracer.chimax, f_all * jnp.sqrt(pk), 0.0)
    return (ell + 1.0) * ell * ret / k**2


# ---------------------------------------------------------------------------
# Exact line-of-sight sum
# ---------------------------------------------------------------------------

def exact_chi_grid(tracer: Tracer, dchi: float = 3.0) -> np.ndarray:
    """Midpoints chimin + dchi (i + 1/2) that do not exceed chimax."""
    chimin = float(tracer.chimin)
    chimax = float(tracer.chimax)
    n = int((chimax - chimin) / dchi) + 1
    chi = chimin + dchi * (np.arange(n) + 0.5)
    return chi[chi <= chimax]


@partial(jax.jit, static_argnames=("ell",))
def _transfer_nc_exact(cosmo, tracer: Tracer, ell: int, k, chi, dchi):
    k = k[:, None]
    a = cosmo.scale_factor_of_chi(chi)[None, :]
    chi = chi[None, :]
    x = k * chi
    pk = cosmo.matter_power(k, a)
    jl = spherical_jl(ell, x)

    f_all = _f_dens(cosmo, tracer, a) * jl
    if tracer.has_rsd:
        f_all = f_all + _f_rsd(cosmo, tracer, a) * _rsd_bessel_term(ell, x)
    if tracer.has_magnification:
        f_all = f_all - (
            2.0 * tracer.prefac_lensing * ell * (ell + 1.0)
            * _f_mag(tracer, a, chi) * jl / k**2
        )
    return dchi * jnp.sum(f_all * jnp.sqrt(pk), axis=1)


@partial(jax.jit, static_argnames=("ell",))
def _transfer_wl_exact(cosmo, tracer: Tracer, ell: int, k, chi, dchi):
    k = k[:, None]
    a = cosmo.scale_factor_of_chi(chi)[None, :]
    chi = chi[None, :]
    pk = cosmo.matter_power(k, a)
    jl = spherical_jl(ell, k * chi)

    f_all = _f_lensing(tracer, a, chi) * jl
    if tracer.has_intrinsic_alignment:
        f_all = f_all + _f_ia_nla(cosmo, tracer, a, chi) * jl
    ret = dchi * jnp.sum(f_all * jnp.sqrt(pk), axis=1)
    return (ell + 1.0) * ell * ret / k[:, 0] ** 2


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def transfer(ell: int, k, cosmo, tracer: Tracer):
    """Transfer function Delta_l(k) of a tracer.

    Args:
        ell: multipole, non-negative integer
        k: wavenumber(s) [Mpc^-1], scalar or 1-D array
        cosmo: Cosmology bundle
        tracer: Tracer

    Returns:
        Delta_l(k), same shape as k

    Raises:
        InconsistentInputError: negative multipole or unsupported tracer kind
    """
    if ell < 0:
        raise InconsistentInputError(f"multipole must be non-negative, got {ell}", context="transfer")
    if tracer.kind not in (TracerKind.NUMBER_COUNTS, TracerKind.WEAK_LENSING):
        raise InconsistentInputError(f"unsupported tracer kind {tracer.kind!r}", context="transfer")

    is_nc = tracer.kind is TracerKind.NUMBER_COUNTS
    k = jnp.asarray(k, dtype=float)

    if ell > cosmo.prec.l_limber:
        fn = _transfer_nc_limber if is_nc else _transfer_wl_limber
        return fn(cosmo, tracer, jnp.asarray(float(ell)), k)

    dchi = cosmo.prec.transfer_dchi
    chi = jnp.asarray(exact_chi_grid(tracer, dchi))
    fn = _transfer_nc_exact if is_nc else _transfer_wl_exact
    out = fn(cosmo, tracer, int(ell), jnp.atleast_1d(k), chi, dchi)
    return out.reshape(k.shape)
