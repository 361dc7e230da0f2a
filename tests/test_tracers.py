"""Test tracer construction, validation and accessors."""

import jax
import numpy as np
import pytest

from jaxcls.errors import ErrorKind, InconsistentInputError, IntegrationError
from jaxcls.quadrature import integrate_qag
from jaxcls.tracers import (
    Tracer,
    TracerKind,
    build_tracer,
    lensing_tracer,
    lensing_tracer_simple,
    number_counts_tracer,
    number_counts_tracer_simple,
)
from tests.conftest import gaussian_nz


class TestNumberCounts:

    def test_nz_normalised(self, nc_low):
        """The normalised N(z) integrates to 1 within the quadrature tolerance."""
        z0, zf = float(nc_low.nz.x0), float(nc_low.nz.xf)
        res = integrate_qag(lambda z: np.asarray(nc_low.evaluate_nz(z)), z0, zf)
        assert res.value == pytest.approx(1.0, rel=2e-4)

    def test_nz_zero_outside(self, nc_low):
        assert float(nc_low.evaluate_nz(0.1)) == 0.0
        assert float(nc_low.evaluate_nz(3.0)) == 0.0

    def test_normalisation_independent_of_scale(self, cosmo, nc_low):
        z, nz = gaussian_nz(1.0)
        scaled = number_counts_tracer_simple(cosmo, z, 1e5 * nz, z, np.ones_like(z))
        np.testing.assert_allclose(
            np.asarray(scaled.evaluate_nz(z)), np.asarray(nc_low.evaluate_nz(z)), rtol=1e-10
        )

    def test_distance_range(self, cosmo, nc_low):
        z, _ = gaussian_nz(1.0)
        assert nc_low.chimin == pytest.approx(float(cosmo.comoving_radial_distance(1.0 / (1.0 + z[0]))))
        assert nc_low.chimax == pytest.approx(float(cosmo.comoving_radial_distance(1.0 / (1.0 + z[-1]))))
        assert 0 < nc_low.chimin < nc_low.chimax

    def test_bias_flat_outside(self, cosmo):
        z, nz = gaussian_nz(1.0)
        zb = np.array([0.5, 1.0, 1.5])
        tracer = number_counts_tracer_simple(cosmo, z, nz, zb, np.array([1.2, 1.5, 2.0]))
        assert float(tracer.evaluate_bias(0.0)) == 1.2
        assert float(tracer.evaluate_bias(5.0)) == 2.0

    def test_flags(self, nc_low):
        assert nc_low.kind is TracerKind.NUMBER_COUNTS
        assert not nc_low.has_rsd and not nc_low.has_magnification
        assert nc_low.mag_kernel is None and nc_low.lensing_kernel is None

    def test_no_kernel_without_magnification(self, nc_low):
        with pytest.raises(InconsistentInputError):
            nc_low.evaluate_kernel(100.0)

    def test_magnification_kernel(self, cosmo):
        z, nz = gaussian_nz(1.0)
        tracer = number_counts_tracer(
            cosmo, z, nz, z, np.ones_like(z),
            has_rsd=True, has_magnification=True, z_s=z, s=np.zeros_like(z),
        )
        assert tracer.has_rsd and tracer.has_magnification
        # chimin is the near edge of N(z), even with magnification
        assert tracer.chimin == pytest.approx(float(cosmo.comoving_radial_distance(1.0 / (1.0 + z[0]))))
        assert float(tracer.evaluate_kernel(0.0)) == pytest.approx(1.0, rel=1e-3)
        assert float(tracer.evaluate_kernel(tracer.chimax)) == 0.0

    def test_magnification_vanishes_at_critical_slope(self, cosmo):
        """s = 0.4 gives an identically zero magnification kernel, not an error."""
        z, nz = gaussian_nz(1.0, n=64)
        tracer = number_counts_tracer(
            cosmo, z, nz, z, np.ones_like(z),
            has_magnification=True, z_s=z, s=np.full_like(z, 0.4),
        )
        chi = np.linspace(0.0, tracer.chimax, 50)
        assert np.all(np.abs(np.asarray(tracer.evaluate_kernel(chi))) < 1e-12)

    def test_missing_bias(self, cosmo):
        z, nz = gaussian_nz(1.0)
        with pytest.raises(InconsistentInputError):
            build_tracer(cosmo, TracerKind.NUMBER_COUNTS, z_n=z, n=nz)

    def test_missing_slope(self, cosmo):
        z, nz = gaussian_nz(1.0)
        with pytest.raises(InconsistentInputError):
            number_counts_tracer(cosmo, z, nz, z, np.ones_like(z), has_magnification=True)


class TestWeakLensing:

    def test_distance_range(self, wl_source):
        assert wl_source.chimin == 0.0
        assert wl_source.kind is TracerKind.WEAK_LENSING

    def test_prefactor(self, cosmo, wl_source):
        """1.5 (H0/c)^2 Omega_m in Mpc^-2."""
        ref = 1.5 * (cosmo.h / 2997.92458) ** 2 * cosmo.Omega_m
        assert wl_source.prefac_lensing == pytest.approx(ref, rel=1e-12)

    def test_intrinsic_alignment(self, cosmo):
        z, nz = gaussian_nz(1.0)
        zz = np.array([0.0, 3.0])
        tracer = lensing_tracer(
            cosmo, z, nz, has_intrinsic_alignment=True,
            z_ba=zz, ba=np.array([1.0, 1.0]), z_rf=zz, rf=np.array([0.5, 0.5]),
        )
        assert tracer.has_intrinsic_alignment
        assert float(tracer.ia_bias.evaluate(1.0)) == pytest.approx(1.0)
        assert float(tracer.ia_amplitude.evaluate(1.0)) == pytest.approx(0.5)

    def test_flags_ignored_for_shear(self, cosmo):
        z, nz = gaussian_nz(1.0)
        tracer = build_tracer(cosmo, TracerKind.WEAK_LENSING, has_rsd=True, z_n=z, n=nz)
        assert not tracer.has_rsd

    def test_simple_matches_full(self, cosmo, wl_source):
        z, nz = gaussian_nz(1.0)
        tracer = lensing_tracer(cosmo, z, nz)
        chi = np.linspace(0.0, wl_source.chimax, 50)
        np.testing.assert_allclose(
            np.asarray(tracer.evaluate_kernel(chi)), np.asarray(wl_source.evaluate_kernel(chi))
        )


class TestValidation:

    @pytest.mark.parametrize("z, n", [
        (np.array([0.5]), np.array([1.0])),
        (np.array([0.5, 1.0, 0.9]), np.array([1.0, 2.0, 1.0])),
        (np.array([0.5, 1.0, 1.0]), np.array([1.0, 2.0, 1.0])),
        (np.array([0.5, 1.0, 1.5]), np.array([1.0, 2.0])),
        (np.array([0.5, 1.0, 1.5]), np.array([1.0, np.nan, 1.0])),
    ])
    def test_bad_nz_tables(self, cosmo, z, n):
        with pytest.raises(InconsistentInputError) as excinfo:
            lensing_tracer_simple(cosmo, z, n)
        assert excinfo.value.kind is ErrorKind.INCONSISTENT_INPUT

    def test_unknown_kind(self, cosmo):
        z, nz = gaussian_nz(1.0)
        with pytest.raises(InconsistentInputError):
            build_tracer(cosmo, "galaxy_shape", z_n=z, n=nz)

    def test_zero_nz(self, cosmo):
        z = np.linspace(0.5, 1.5, 20)
        with pytest.raises(IntegrationError):
            lensing_tracer_simple(cosmo, z, np.zeros_like(z))

    def test_negative_nz(self, cosmo):
        z = np.linspace(0.5, 1.5, 20)
        with pytest.raises(IntegrationError):
            lensing_tracer_simple(cosmo, z, -np.ones_like(z))


def test_tracer_is_pytree(nc_low):
    leaves, treedef = jax.tree_util.tree_flatten(nc_low)
    rebuilt = jax.tree_util.tree_unflatten(treedef, leaves)
    assert isinstance(rebuilt, Tracer)
    assert rebuilt.kind is nc_low.kind
    assert float(rebuilt.evaluate_nz(1.0)) == float(nc_low.evaluate_nz(1.0))


def test_tracer_is_immutable(nc_low):
    with pytest.raises(AttributeError):
        nc_low.chimax = 0.0
