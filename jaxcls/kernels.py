"""Projection kernels for lensing and lensing magnification.

    W(chi) = int_chi^chi_max dchi' H(chi') f(z(chi')) sinn(chi' - chi) / sinn(chi')

with H = h E(a) / (c/H0) [Mpc^-1] and f = N(z) for shear or
f = N(z) (1 - 2.5 s(z)) for magnification. The window is computed with
adaptive quadrature on a uniform comoving-distance grid from 0 to chi_max
and stored as a BoundedSpline that is W(0) below the grid and zero beyond
it.

The integrands are jitted JAX functions of the cosmology and spline
pytrees; the quadrature itself runs on the host.
"""

from __future__ import annotations

import logging

import jax
import jax.numpy as jnp
import numpy as np

from jaxcls.errors import (
    AllocationError,
    GridSpacingError,
    InconsistentInputError,
    IntegrationError,
)
from jaxcls.interpolation import BoundedSpline
from jaxcls.quadrature import integrate_qag

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Grids
# ---------------------------------------------------------------------------

def linear_spacing(xmin: float, xmax: float, n: int) -> np.ndarray:
    """n linearly spaced values from xmin to xmax, both included."""
    if n < 1:
        raise InconsistentInputError(f"need at least one point, got {n}", context="linear_spacing")
    try:
        return np.linspace(xmin, xmax, n)
    except MemoryError as e:
        raise AllocationError(f"cannot allocate {n} points", context="linear_spacing") from e


def log_spacing(xmin: float, xmax: float, n: int) -> np.ndarray:
    """n logarithmically spaced values from xmin to xmax, both included."""
    if n < 1:
        raise InconsistentInputError(f"need at least one point, got {n}", context="log_spacing")
    if xmin <= 0 or xmax <= 0:
        raise InconsistentInputError(
            f"bounds must be positive, got [{xmin}, {xmax}]", context="log_spacing"
        )
    try:
        return np.geomspace(xmin, xmax, n)
    except MemoryError as e:
        raise AllocationError(f"cannot allocate {n} points", context="log_spacing") from e


def check_grid_endpoints(grid, start: float, stop: float, tol: float = 1e-5) -> None:
    """Raise GridSpacingError unless grid[0] ~ start and grid[-1] ~ stop within tol."""
    grid = np.asarray(grid)
    if grid.ndim != 1 or grid.size == 0:
        raise GridSpacingError("grid is empty", context="check_grid_endpoints")
    if abs(grid[0] - start) > tol or abs(grid[-1] - stop) > tol:
        raise GridSpacingError(
            f"grid spans [{grid[0]:.8g}, {grid[-1]:.8g}], expected [{start:.8g}, {stop:.8g}]",
            context="check_grid_endpoints",
        )


def kernel_chi_grid(chi_max: float, dchi: float = 5.0, tol: float = 1e-5) -> np.ndarray:
    """Uniform comoving-distance grid on [0, chi_max] with step close to dchi."""
    n = int(chi_max / dchi) + 1
    grid = linear_spacing(0.0, chi_max, n)
    check_grid_endpoints(grid, 0.0, chi_max, tol)
    return grid


# ---------------------------------------------------------------------------
# Integrands
# ---------------------------------------------------------------------------

def _distance_ratio(cosmo, chi, chip):
    """sinn(chi' - chi) / sinn(chi'), equal to 1 at chi' = 0."""
    chip_safe = jnp.where(chip > 0, chip, 1.0)
    ratio = cosmo.sinn(chip - chi) / cosmo.sinn(chip_safe)
    return jnp.where(chip > 0, ratio, 1.0)


@jax.jit
def _lensing_integrand(cosmo, nz, chi, chip):
    a = cosmo.scale_factor_of_chi(chip)
    z = 1.0 / a - 1.0
    return cosmo.hubble_rate(a) * nz.evaluate(z) * _distance_ratio(cosmo, chi, chip)


@jax.jit
def _magnification_integrand(cosmo, nz, sz, chi, chip):
    a = cosmo.scale_factor_of_chi(chip)
    z = 1.0 / a - 1.0
    weight = nz.evaluate(z) * (1.0 - 2.5 * sz.evaluate(z))
    return cosmo.hubble_rate(a) * weight * _distance_ratio(cosmo, chi, chip)


def _window(integrand, chi, chi_max, epsabs, epsrel, limit, name):
    try:
        return integrate_qag(
            lambda x: np.asarray(integrand(jnp.asarray(x))),
            chi,
            chi_max,
            epsabs=epsabs,
            epsrel=epsrel,
            limit=limit,
        ).value
    except IntegrationError as e:
        raise IntegrationError(e.message, context=f"{name}(chi={chi:.6g})") from e


def lensing_window(
    cosmo, nz, chi: float, chi_max: float,
    epsrel: float = 1e-4, limit: int = 1000, epsabs: float = 1e-12,
):
    """Shear window W_L(chi) for the normalised redshift distribution nz."""
    return _window(
        lambda x: _lensing_integrand(cosmo, nz, chi, x),
        chi, chi_max, epsabs, epsrel, limit, "lensing_window",
    )


def magnification_window(
    cosmo, nz, sz, chi: float, chi_max: float,
    epsrel: float = 1e-4, limit: int = 1000, epsabs: float = 1e-12,
):
    """Magnification window W_M(chi); sz is the magnification slope s(z).

    The absolute floor epsabs lets the window vanish when 1 - 2.5 s(z) does.
    """
    return _window(
        lambda x: _magnification_integrand(cosmo, nz, sz, chi, x),
        chi, chi_max, epsabs, epsrel, limit, "magnification_window",
    )


# ---------------------------------------------------------------------------
# Kernel splines
# ---------------------------------------------------------------------------

def _tabulate(window_fn, cosmo, chi_max):
    prec = cosmo.prec
    grid = kernel_chi_grid(chi_max, prec.kernel_dchi, prec.kernel_grid_tol)
    try:
        values = np.empty_like(grid)
    except MemoryError as e:
        raise AllocationError(f"cannot allocate {grid.size} kernel values", context="kernels") from e
    for j, chi in enumerate(grid):
        values[j] = window_fn(float(chi), prec.epsrel, prec.integration_limit, prec.kernel_epsabs)
    logger.debug("tabulated kernel on %d points up to chi=%.2f Mpc", grid.size, chi_max)
    return BoundedSpline(grid, values, values[0], 0.0)


def lensing_kernel(cosmo, nz, chi_max: float) -> BoundedSpline:
    """Shear kernel spline on [0, chi_max]."""
    return _tabulate(
        lambda chi, epsrel, limit, epsabs: lensing_window(
            cosmo, nz, chi, chi_max, epsrel, limit, epsabs
        ),
        cosmo, chi_max,
    )


def magnification_kernel(cosmo, nz, sz, chi_max: float) -> BoundedSpline:
    """Magnification kernel spline on [0, chi_max]."""
    return _tabulate(
        lambda chi, epsrel, limit, epsabs: magnification_window(
            cosmo, nz, sz, chi, chi_max, epsrel, limit, epsabs
        ),
        cosmo, chi_max,
    )
