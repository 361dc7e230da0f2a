"""Cosmology bundle: parameters, model choices and precomputed tables.

A Cosmology is a JAX pytree, so it can be passed to jitted integrands. The
parameters and tables are leaves; the precision settings and model
configuration are static metadata.

Usage:
    cosmo = jaxcls.compute(CosmoParams(Omega_c=0.25, h=0.7))
    chi = cosmo.comoving_radial_distance(0.5)
    pk = cosmo.matter_power(0.1, 0.5)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import jax

from jaxcls import background as bkg
from jaxcls import power
from jaxcls.background import BackgroundResult
from jaxcls.params import Configuration, CosmoParams, PrecisionParams
from jaxcls.power import PowerResult

logger = logging.getLogger(__name__)


@jax.tree_util.register_pytree_node_class
@dataclass(frozen=True)
class Cosmology:
    """Everything the tracer and C_l modules need from the cosmology."""

    params: CosmoParams
    bg: BackgroundResult
    pw: PowerResult
    prec: PrecisionParams = PrecisionParams()
    config: Configuration = Configuration()

    def tree_flatten(self):
        return [self.params, self.bg, self.pw], (self.prec, self.config)

    @classmethod
    def tree_unflatten(cls, aux, fields):
        return cls(*fields, *aux)

    @property
    def h(self):
        return self.params.h

    @property
    def Omega_m(self):
        return self.params.Omega_m

    # --- Background ---

    def h_over_h0(self, a):
        return bkg.h_over_h0(self.bg, a)

    def hubble_rate(self, a):
        """H(a)/c in Mpc^-1."""
        return bkg.hubble_rate(self.bg, a)

    def comoving_radial_distance(self, a):
        return bkg.comoving_radial_distance(self.bg, a)

    def scale_factor_of_chi(self, chi):
        return bkg.scale_factor_of_chi(self.bg, chi)

    def growth_factor(self, a):
        return bkg.growth_factor(self.bg, a)

    def growth_rate(self, a):
        return bkg.growth_rate(self.bg, a)

    def sinn(self, chi):
        return bkg.sinn(self.bg, chi)

    # --- Matter power ---

    def linear_matter_power(self, k, a):
        return power.linear_matter_power(self.params, self.bg, self.pw, k, a)

    def matter_power(self, k, a):
        """P(k, a) [Mpc^3] for the configured model, k in Mpc^-1."""
        return power.matter_power(self.params, self.bg, self.pw, k, a)

    def sigma8(self):
        """sigma8 recomputed from the normalised linear spectrum."""
        return power.sigma_tophat(self.params, self.bg, self.pw, 8.0 / self.params.h)


def compute(
    params: CosmoParams = CosmoParams(),
    prec: PrecisionParams = PrecisionParams(),
    config: Configuration = Configuration(),
) -> Cosmology:
    """Solve the background and normalise the matter power spectrum.

    Args:
        params: cosmological parameters (JAX-traced)
        prec: precision parameters (static)
        config: transfer function and non-linear model (static)

    Returns:
        Cosmology bundle
    """
    bg = bkg.background_solve(params, prec)
    pw = power.power_solve(params, bg, prec, config)
    logger.debug(
        "compute: Omega_m=%.4f h=%.4f sigma8=%.4f (%s, %s)",
        float(params.Omega_m), float(params.h), float(params.sigma8),
        config.transfer_function, config.matter_power_spectrum,
    )
    return Cosmology(params=params, bg=bg, pw=pw, prec=prec, config=config)
