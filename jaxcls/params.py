"""Parameter containers for jaxcls.

CosmoParams: cosmological parameters, JAX-traced (for autodiff).
PrecisionParams: numerical precision settings, static (not traced).
Configuration: choice of transfer function and non-linear model, static.

References:
    CCL source: include/ccl_core.h (ccl_parameters, ccl_configuration)
    CCL source: include/ccl_constants.h (precision macros)
"""

from __future__ import annotations

from dataclasses import dataclass, fields

import jax

from jaxcls.constants import N_ur_default, T_cmb_default
from jaxcls.errors import InconsistentInputError


# ---------------------------------------------------------------------------
# CosmoParams: traced by JAX for autodiff
# ---------------------------------------------------------------------------

@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class CosmoParams:
    """Cosmological parameters. All fields are JAX-traceable floats.

    Units:
        - Omega_c, Omega_b, Omega_k: density fractions today (no h^2)
        - h: dimensionless Hubble parameter H0/(100 km/s/Mpc)
        - sigma8: rms linear fluctuation in 8 Mpc/h spheres today
        - T_cmb: CMB temperature in Kelvin (sets the photon density)
        - N_ur: effective number of massless neutrinos
    """

    Omega_c: float = 0.25
    Omega_b: float = 0.05
    h: float = 0.7
    sigma8: float = 0.8
    n_s: float = 0.96

    # Curvature: Omega_k > 0 is an open universe
    Omega_k: float = 0.0

    # Dark energy (CPL: w(a) = w0 + wa*(1-a))
    w0: float = -1.0
    wa: float = 0.0

    # Radiation
    T_cmb: float = T_cmb_default
    N_ur: float = N_ur_default

    @property
    def Omega_m(self):
        return self.Omega_c + self.Omega_b

    # --- PyTree registration ---
    def tree_flatten(self):
        children = [getattr(self, f.name) for f in fields(self)]
        aux_data = tuple(f.name for f in fields(self))
        return children, aux_data

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        return cls(**dict(zip(aux_data, children)))

    def replace(self, **kwargs) -> CosmoParams:
        """Return a new CosmoParams with specified fields replaced."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update(kwargs)
        return CosmoParams(**current)


# ---------------------------------------------------------------------------
# PrecisionParams: NOT traced by JAX (static, controls array shapes)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrecisionParams:
    """Numerical precision parameters. These are NOT JAX-traced.

    Grid sizes change array shapes, so the whole object is used as static
    metadata of the Cosmology pytree.
    """

    # Background
    bg_a_min: float = 1e-5          # earliest scale factor of the distance/growth tables
    bg_n_points: int = 1000         # number of log(a) grid points
    bg_tol: float = 1e-10           # ODE tolerance

    # Spline-domain wavenumbers [Mpc^-1]
    k_min: float = 5e-5
    k_max: float = 1e3

    # sigma8 normalisation
    sigma8_n_k: int = 4096          # log-spaced k points for the top-hat integral

    # HaloFit tables
    halofit_a_min: float = 0.1       # linear spectrum below this scale factor
    halofit_n_a: int = 64
    halofit_k_min: float = 1e-4
    halofit_k_max: float = 1e3
    halofit_n_k: int = 768

    # Projection kernels
    kernel_dchi: float = 5.0        # Mpc, comoving-distance step of the kernel grids
    kernel_grid_tol: float = 1e-5   # Mpc, allowed endpoint mismatch of the kernel grids
    kernel_epsabs: float = 1e-12    # absolute floor of the window integrals, N(z) has unit norm

    # Transfer functions
    transfer_dchi: float = 3.0      # Mpc, midpoint step of the exact line-of-sight sum
    l_limber: int = 20              # Limber for l > l_limber, exact Bessel sum otherwise

    # Adaptive quadrature
    epsabs: float = 0.0
    epsrel: float = 1e-4
    integration_limit: int = 1000

    # log10(k) safety rails for the C_l integral
    lk_min_clip: float = -4.0
    lk_max_clip: float = 2.0

    @staticmethod
    def fast():
        """Coarser tables for quick iteration and tests."""
        return PrecisionParams(
            sigma8_n_k=2048,
            halofit_n_a=24,
            halofit_n_k=256,
        )


# ---------------------------------------------------------------------------
# Configuration: model choices (static)
# ---------------------------------------------------------------------------

TRANSFER_FUNCTIONS = ("bbks", "eisenstein_hu")
MATTER_POWER_SPECTRA = ("linear", "halofit")


@dataclass(frozen=True)
class Configuration:
    """Which linear transfer function and non-linear model to use."""

    transfer_function: str = "bbks"
    matter_power_spectrum: str = "halofit"

    def __post_init__(self):
        if self.transfer_function not in TRANSFER_FUNCTIONS:
            raise InconsistentInputError(
                f"unknown transfer function {self.transfer_function!r}, "
                f"expected one of {TRANSFER_FUNCTIONS}",
                context="Configuration",
            )
        if self.matter_power_spectrum not in MATTER_POWER_SPECTRA:
            raise InconsistentInputError(
                f"unknown matter power spectrum {self.matter_power_spectrum!r}, "
                f"expected one of {MATTER_POWER_SPECTRA}",
                context="Configuration",
            )
