"""Angular power spectra C_l between two tracers.

    C_l = (2/pi) ln(10) int dlog10(k) k^3 Delta_l^1(k) Delta_l^2(k)

The integral runs over the log10(k) window where the kernels have support
and is done with adaptive Gauss-Kronrod quadrature.

References:
    CCL source: src/ccl_cls.c (get_k_interval, ccl_angular_cl)
"""

from __future__ import annotations

import logging
import math

import jax.numpy as jnp
import numpy as np

from jaxcls.errors import IntegrationError
from jaxcls.quadrature import integrate_qag
from jaxcls.tracers import Tracer, TracerKind
from jaxcls.transfer import transfer

logger = logging.getLogger(__name__)


def k_interval(cosmo, tracer1: Tracer, tracer2: Tracer, ell: int) -> tuple[float, float]:
    """log10(k) range [Mpc^-1] where the product of transfer functions has support.

    Number-counts tracers bound the range by their comoving-distance window
    (the intersection when both are number counts); two shear tracers use
    the spline k range.
    """
    prec = cosmo.prec
    nc1 = tracer1.kind is TracerKind.NUMBER_COUNTS
    nc2 = tracer2.kind is TracerKind.NUMBER_COUNTS
    x = ell + 0.5

    if nc1 and nc2:
        chimin = max(float(tracer1.chimin), float(tracer2.chimin))
        chimax = min(float(tracer1.chimax), float(tracer2.chimax))
    elif nc1:
        chimin, chimax = float(tracer1.chimin), float(tracer1.chimax)
    elif nc2:
        chimin, chimax = float(tracer2.chimin), float(tracer2.chimax)
    else:
        chimin = 0.5 * x / prec.k_max
        chimax = 2.0 * x / prec.k_min

    if chimin <= 0:
        chimin = 0.5 * x / prec.k_max

    lkmax = min(prec.lk_max_clip, math.log10(2.0 * x / chimin))
    lkmin = max(prec.lk_min_clip, math.log10(0.5 * x / chimax)) if chimax > 0 else prec.lk_max_clip
    return lkmin, lkmax


def angular_cl(cosmo, ell: int, tracer1: Tracer, tracer2: Tracer) -> float:
    """Angular power spectrum C_l between two tracers.

    Args:
        cosmo: Cosmology bundle
        ell: multipole
        tracer1, tracer2: Tracer objects

    Returns:
        C_l (dimensionless)

    Raises:
        IntegrationError: the k integral did not converge
    """
    lkmin, lkmax = k_interval(cosmo, tracer1, tracer2, ell)
    if lkmin >= lkmax:
        logger.debug("angular_cl: empty k window at l=%d", ell)
        return 0.0

    def integrand(lk):
        k = jnp.asarray(10.0**lk)
        d1 = transfer(ell, k, cosmo, tracer1)
        d2 = d1 if tracer2 is tracer1 else transfer(ell, k, cosmo, tracer2)
        return np.asarray(k**3 * d1 * d2)

    prec = cosmo.prec
    try:
        res = integrate_qag(
            integrand,
            lkmin,
            lkmax,
            epsabs=prec.epsabs,
            epsrel=prec.epsrel,
            limit=prec.integration_limit,
        )
    except IntegrationError as e:
        raise IntegrationError(
            f"integrating over log10(k) in [{lkmin:.4f}, {lkmax:.4f}]: {e.message}",
            context=f"angular_cl(l={ell})",
        ) from e

    logger.debug(
        "angular_cl: l=%d, log10(k) in [%.3f, %.3f], %d intervals",
        ell, lkmin, lkmax, res.n_intervals,
    )
    return res.value * math.log(10.0) * 2.0 / math.pi


def angular_cls(cosmo, ells, tracer1: Tracer, tracer2: Tracer) -> np.ndarray:
    """C_l for each multipole in ells."""
    return np.array([angular_cl(cosmo, int(ell), tracer1, tracer2) for ell in ells])
