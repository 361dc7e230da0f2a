"""Tracers of the large-scale structure: galaxy number counts and shear.

A Tracer bundles everything the transfer functions need about one sample:
the normalised redshift distribution, the clustering bias, the magnification
slope and kernel, the shear kernel and the intrinsic-alignment profiles,
together with the comoving-distance range where the tracer has support.

Tracers are immutable JAX pytrees. The kind and the capability flags are
static metadata, so jitted transfer functions specialise on them; the
splines and scalars are leaves.

build_tracer either returns a fully built tracer or raises; nothing
partially constructed is handed back.

References:
    CCL source: src/ccl_cls.c (cl_tracer_new)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import jax
import jax.numpy as jnp
import numpy as np

from jaxcls.errors import InconsistentInputError, IntegrationError
from jaxcls.interpolation import BoundedSpline, flat_spline
from jaxcls.kernels import lensing_kernel, magnification_kernel
from jaxcls.quadrature import integrate_qag

logger = logging.getLogger(__name__)


class TracerKind(enum.Enum):
    NUMBER_COUNTS = "number_counts"
    WEAK_LENSING = "weak_lensing"


@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class Tracer:
    """A fully built tracer. Channels the tracer does not have are None."""

    kind: TracerKind
    nz: BoundedSpline                       # normalised N(z), zero outside its table
    chimin: float                           # Mpc
    chimax: float                           # Mpc
    prefac_lensing: float                   # 1.5 (H0/c)^2 Omega_m [Mpc^-2]

    has_rsd: bool = False
    has_magnification: bool = False
    has_intrinsic_alignment: bool = False

    bias: BoundedSpline | None = None       # b(z), number counts
    mag_slope: BoundedSpline | None = None  # s(z), number counts with magnification
    mag_kernel: BoundedSpline | None = None
    lensing_kernel: BoundedSpline | None = None
    ia_bias: BoundedSpline | None = None    # b_IA(z), shear with alignments
    ia_amplitude: BoundedSpline | None = None

    def tree_flatten(self):
        children = [
            self.nz, self.chimin, self.chimax, self.prefac_lensing,
            self.bias, self.mag_slope, self.mag_kernel, self.lensing_kernel,
            self.ia_bias, self.ia_amplitude,
        ]
        aux = (self.kind, self.has_rsd, self.has_magnification, self.has_intrinsic_alignment)
        return children, aux

    @classmethod
    def tree_unflatten(cls, aux, children):
        kind, has_rsd, has_magnification, has_ia = aux
        (nz, chimin, chimax, prefac, bias, mag_slope, mag_kernel,
         wl_kernel, ia_bias, ia_amplitude) = children
        return cls(
            kind=kind, nz=nz, chimin=chimin, chimax=chimax, prefac_lensing=prefac,
            has_rsd=has_rsd, has_magnification=has_magnification,
            has_intrinsic_alignment=has_ia,
            bias=bias, mag_slope=mag_slope, mag_kernel=mag_kernel,
            lensing_kernel=wl_kernel, ia_bias=ia_bias, ia_amplitude=ia_amplitude,
        )

    # --- Accessors ---

    def evaluate_nz(self, z):
        return self.nz.evaluate(z)

    def evaluate_bias(self, z):
        if self.bias is None:
            raise InconsistentInputError("tracer has no bias", context="Tracer.evaluate_bias")
        return self.bias.evaluate(z)

    def evaluate_kernel(self, chi):
        """Shear kernel for lensing tracers, magnification kernel for number counts."""
        kernel = (
            self.lensing_kernel if self.kind is TracerKind.WEAK_LENSING else self.mag_kernel
        )
        if kernel is None:
            raise InconsistentInputError(
                "tracer has no projection kernel", context="Tracer.evaluate_kernel"
            )
        return kernel.evaluate(chi)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def _table(z, values, name):
    """Validate a (z, f(z)) table and return it as float arrays."""
    if z is None or values is None:
        raise InconsistentInputError(f"{name} table is required", context="build_tracer")
    z = np.asarray(z, dtype=float)
    values = np.asarray(values, dtype=float)
    if z.ndim != 1 or values.ndim != 1 or z.shape != values.shape:
        raise InconsistentInputError(
            f"{name}: redshifts and values must be 1-D arrays of equal length",
            context="build_tracer",
        )
    if z.size < 2:
        raise InconsistentInputError(
            f"{name}: need at least 2 points, got {z.size}", context="build_tracer"
        )
    if not (np.all(np.isfinite(z)) and np.all(np.isfinite(values))):
        raise InconsistentInputError(f"{name}: non-finite entries", context="build_tracer")
    if np.any(np.diff(z) <= 0):
        raise InconsistentInputError(
            f"{name}: redshifts must be strictly increasing", context="build_tracer"
        )
    return z, values


@jax.jit
def _spline_values(spline, x):
    return spline.evaluate(x)


def _normalise_nz(z_n, n, prec):
    raw = BoundedSpline(z_n, n, 0.0, 0.0)
    try:
        norm = integrate_qag(
            lambda z: np.asarray(_spline_values(raw, jnp.asarray(z))),
            z_n[0],
            z_n[-1],
            epsabs=prec.epsabs,
            epsrel=prec.epsrel,
            limit=prec.integration_limit,
        ).value
    except IntegrationError as e:
        raise IntegrationError(f"normalising N(z): {e.message}", context="build_tracer") from e
    if not (np.isfinite(norm) and norm > 0):
        raise IntegrationError(
            f"N(z) integrates to {norm:.6g}, expected a positive value",
            context="build_tracer",
        )
    return BoundedSpline(z_n, n / norm, 0.0, 0.0)


def build_tracer(
    cosmo,
    kind: TracerKind,
    *,
    has_rsd: bool = False,
    has_magnification: bool = False,
    has_intrinsic_alignment: bool = False,
    z_n=None,
    n=None,
    z_b=None,
    b=None,
    z_s=None,
    s=None,
    z_ba=None,
    ba=None,
    z_rf=None,
    rf=None,
) -> Tracer:
    """Build a tracer from tabulated redshift profiles.

    Args:
        cosmo: Cosmology bundle
        kind: TracerKind.NUMBER_COUNTS or TracerKind.WEAK_LENSING
        has_rsd: add redshift-space distortions (number counts)
        has_magnification: add lensing magnification (number counts)
        has_intrinsic_alignment: add NLA intrinsic alignments (shear)
        z_n, n: redshift distribution; any normalisation, zero outside the table
        z_b, b: clustering bias, held constant outside the table
        z_s, s: magnification slope, held constant outside the table
        z_ba, ba: intrinsic-alignment bias, held constant outside the table
        z_rf, rf: aligned (red) fraction, held constant outside the table

    Returns:
        Tracer

    Raises:
        InconsistentInputError: unknown kind or an invalid table
        IntegrationError: N(z) normalisation or a kernel integral failed
        GridSpacingError: the kernel grid does not reach its endpoints
    """
    if not isinstance(kind, TracerKind):
        raise InconsistentInputError(f"unknown tracer kind {kind!r}", context="build_tracer")

    is_nc = kind is TracerKind.NUMBER_COUNTS
    has_rsd = bool(has_rsd) and is_nc
    has_magnification = bool(has_magnification) and is_nc
    has_intrinsic_alignment = bool(has_intrinsic_alignment) and not is_nc

    z_n, n = _table(z_n, n, "N(z)")
    if is_nc:
        z_b, b = _table(z_b, b, "bias")
    if has_magnification:
        z_s, s = _table(z_s, s, "magnification slope")
    if has_intrinsic_alignment:
        z_ba, ba = _table(z_ba, ba, "alignment bias")
        z_rf, rf = _table(z_rf, rf, "aligned fraction")

    prec = cosmo.prec
    prefac_lensing = 1.5 * float(cosmo.hubble_rate(1.0)) ** 2 * float(cosmo.Omega_m)
    chimax = float(cosmo.comoving_radial_distance(1.0 / (1.0 + z_n[-1])))

    nz = _normalise_nz(z_n, n, prec)

    channels = {}
    if is_nc:
        channels["bias"] = flat_spline(z_b, b)
        if has_magnification:
            channels["mag_slope"] = flat_spline(z_s, s)
            channels["mag_kernel"] = magnification_kernel(cosmo, nz, channels["mag_slope"], chimax)
        chimin = float(cosmo.comoving_radial_distance(1.0 / (1.0 + z_n[0])))
    else:
        channels["lensing_kernel"] = lensing_kernel(cosmo, nz, chimax)
        if has_intrinsic_alignment:
            channels["ia_bias"] = flat_spline(z_ba, ba)
            channels["ia_amplitude"] = flat_spline(z_rf, rf)
        chimin = 0.0

    logger.debug(
        "built %s tracer: chi in [%.2f, %.2f] Mpc, rsd=%s, magnification=%s, ia=%s",
        kind.value, chimin, chimax, has_rsd, has_magnification, has_intrinsic_alignment,
    )

    return Tracer(
        kind=kind,
        nz=nz,
        chimin=chimin,
        chimax=chimax,
        prefac_lensing=prefac_lensing,
        has_rsd=has_rsd,
        has_magnification=has_magnification,
        has_intrinsic_alignment=has_intrinsic_alignment,
        **channels,
    )


def number_counts_tracer_simple(cosmo, z_n, n, z_b, b) -> Tracer:
    """Number counts with density and bias only."""
    return build_tracer(cosmo, TracerKind.NUMBER_COUNTS, z_n=z_n, n=n, z_b=z_b, b=b)


def number_counts_tracer(
    cosmo, z_n, n, z_b, b, *, has_rsd=False, has_magnification=False, z_s=None, s=None
) -> Tracer:
    """Number counts with optional redshift-space distortions and magnification."""
    return build_tracer(
        cosmo,
        TracerKind.NUMBER_COUNTS,
        has_rsd=has_rsd,
        has_magnification=has_magnification,
        z_n=z_n, n=n, z_b=z_b, b=b, z_s=z_s, s=s,
    )


def lensing_tracer_simple(cosmo, z_n, n) -> Tracer:
    """Cosmic shear without intrinsic alignments."""
    return build_tracer(cosmo, TracerKind.WEAK_LENSING, z_n=z_n, n=n)


def lensing_tracer(
    cosmo, z_n, n, *, has_intrinsic_alignment=False, z_ba=None, ba=None, z_rf=None, rf=None
) -> Tracer:
    """Cosmic shear with optional NLA intrinsic alignments."""
    return build_tracer(
        cosmo,
        TracerKind.WEAK_LENSING,
        has_intrinsic_alignment=has_intrinsic_alignment,
        z_n=z_n, n=n, z_ba=z_ba, ba=ba, z_rf=z_rf, rf=rf,
    )
