"""Test fixtures for the jaxcls test suite.

Provides:
- Fiducial cosmologies (linear and HaloFit) on coarse precision settings
- Gaussian redshift distributions and tracers built from them
- --fast flag for quick regression checks
"""

# Enable 64-bit JAX (required for the background and kernel integrals)
import jax
jax.config.update("jax_enable_x64", True)

import numpy as np
import pytest

from jaxcls.cosmology import compute
from jaxcls.params import Configuration, CosmoParams, PrecisionParams
from jaxcls.tracers import lensing_tracer_simple, number_counts_tracer_simple

PREC = PrecisionParams.fast()
FIDUCIAL = CosmoParams(Omega_c=0.25, Omega_b=0.05, h=0.7, sigma8=0.8, n_s=0.96)


def pytest_addoption(parser):
    parser.addoption(
        "--fast", action="store_true", default=False,
        help="Run fast subset of tests (fewer multipoles)"
    )


@pytest.fixture
def fast_mode(request):
    return request.config.getoption("--fast")


def gaussian_nz(mean, sigma=0.15, n=512):
    """Gaussian N(z) sampled on mean +/- 5 sigma."""
    z = np.linspace(mean - 5.0 * sigma, mean + 5.0 * sigma, n)
    return z, np.exp(-0.5 * ((z - mean) / sigma) ** 2)


@pytest.fixture(scope="session")
def cosmo():
    """Fiducial cosmology with the linear matter power spectrum."""
    return compute(FIDUCIAL, PREC, Configuration(matter_power_spectrum="linear"))


@pytest.fixture(scope="session")
def cosmo_halofit():
    """Fiducial cosmology with the HaloFit matter power spectrum."""
    return compute(FIDUCIAL, PREC, Configuration(matter_power_spectrum="halofit"))


@pytest.fixture(scope="session")
def nc_low(cosmo):
    """Number counts at z = 1.0 +/- 0.15 with unit bias."""
    z, nz = gaussian_nz(1.0)
    return number_counts_tracer_simple(cosmo, z, nz, z, np.ones_like(z))


@pytest.fixture(scope="session")
def nc_high(cosmo):
    """Number counts at z = 1.5 +/- 0.15 with unit bias."""
    z, nz = gaussian_nz(1.5)
    return number_counts_tracer_simple(cosmo, z, nz, z, np.ones_like(z))


@pytest.fixture(scope="session")
def wl_source(cosmo):
    """Shear sources at z = 1.0 +/- 0.15."""
    z, nz = gaussian_nz(1.0)
    return lensing_tracer_simple(cosmo, z, nz)


def relative_error(computed, reference, eps=1e-30):
    """Compute relative error, avoiding division by zero."""
    return np.abs(computed - reference) / (np.abs(reference) + eps)


def max_relative_error(computed, reference, eps=1e-30):
    """Return (max_rel_err, index_of_max)."""
    rel = relative_error(computed, reference, eps)
    idx = np.argmax(rel)
    return float(rel[idx]), int(idx)


def assert_close(computed, reference, rtol, name="quantity", coordinate=None):
    """Assert computed matches reference within rtol, with a concise message."""
    computed = np.atleast_1d(np.asarray(computed, dtype=float))
    reference = np.atleast_1d(np.asarray(reference, dtype=float))
    max_err, idx = max_relative_error(computed, reference)
    if max_err > rtol:
        coord_str = f" at index {idx}"
        if coordinate is not None:
            coord_str = f" at {coordinate[idx]:.6g}"
        msg = (
            f"{name}: max rel error {max_err:.4%}{coord_str}"
            f" (expected {reference[idx]:.6e}, got {computed[idx]:.6e})"
            f" -- tolerance {rtol:.4%}"
        )
        raise AssertionError(msg)
