"""Test grids and projection kernels."""

import numpy as np
import pytest

from jaxcls.errors import ErrorKind, GridSpacingError, InconsistentInputError
from jaxcls.interpolation import flat_spline
from jaxcls.kernels import (
    check_grid_endpoints,
    kernel_chi_grid,
    lensing_window,
    linear_spacing,
    log_spacing,
    magnification_window,
)


class TestSpacing:

    def test_linear_spacing(self):
        x = linear_spacing(1.0, 3.0, 5)
        np.testing.assert_allclose(x, [1.0, 1.5, 2.0, 2.5, 3.0])

    def test_log_spacing(self):
        x = log_spacing(1e-3, 10.0, 5)
        np.testing.assert_allclose(x, [1e-3, 1e-2, 1e-1, 1.0, 10.0], rtol=1e-12)

    def test_log_spacing_rejects_non_positive(self):
        with pytest.raises(InconsistentInputError):
            log_spacing(0.0, 1.0, 10)

    def test_rejects_empty(self):
        with pytest.raises(InconsistentInputError):
            linear_spacing(0.0, 1.0, 0)


class TestKernelGrid:

    @pytest.mark.parametrize("chi_max", [7.3, 1234.5678, 4321.0])
    def test_endpoints(self, chi_max):
        grid = kernel_chi_grid(chi_max)
        assert grid.size == int(chi_max / 5.0) + 1
        assert abs(grid[0]) <= 1e-5
        assert abs(grid[-1] - chi_max) <= 1e-5

    def test_spacing_close_to_step(self):
        grid = kernel_chi_grid(1000.0)
        assert np.all(np.abs(np.diff(grid) - 5.0) < 0.01)

    def test_corrupted_grid_rejected(self):
        grid = kernel_chi_grid(1000.0)
        grid[-1] -= 1e-3
        with pytest.raises(GridSpacingError) as excinfo:
            check_grid_endpoints(grid, 0.0, 1000.0)
        assert excinfo.value.kind is ErrorKind.GRID_SPACING

    def test_shifted_start_rejected(self):
        grid = kernel_chi_grid(1000.0) + 2e-5
        with pytest.raises(GridSpacingError):
            check_grid_endpoints(grid, 0.0, 1000.0 + 2e-5)

    def test_too_short_for_step(self):
        """chi_max below one step leaves a single point that cannot reach chi_max."""
        with pytest.raises(GridSpacingError):
            kernel_chi_grid(3.0)


class TestWindows:

    def test_window_at_origin_is_normalisation(self, cosmo, wl_source):
        """H dchi = dz, so W(0) = int N(z) dz = 1."""
        w0 = lensing_window(cosmo, wl_source.nz, 0.0, wl_source.chimax)
        assert w0 == pytest.approx(1.0, rel=1e-3)

    def test_window_vanishes_at_chi_max(self, cosmo, wl_source):
        assert lensing_window(cosmo, wl_source.nz, wl_source.chimax, wl_source.chimax) == 0.0

    def test_zero_slope_magnification_equals_lensing(self, cosmo, wl_source):
        sz = flat_spline([0.0, 3.0], [0.0, 0.0])
        chi = 1500.0
        w_l = lensing_window(cosmo, wl_source.nz, chi, wl_source.chimax)
        w_m = magnification_window(cosmo, wl_source.nz, sz, chi, wl_source.chimax)
        assert w_m == pytest.approx(w_l, rel=1e-10)

    def test_critical_slope_cancels(self, cosmo, wl_source):
        """s = 0.4 makes 1 - 2.5 s vanish."""
        sz = flat_spline([0.0, 3.0], [0.4, 0.4])
        w_m = magnification_window(cosmo, wl_source.nz, sz, 1000.0, wl_source.chimax)
        assert abs(w_m) < 1e-12


class TestKernelSpline:

    def test_kernel_boundaries(self, wl_source):
        kernel = wl_source.lensing_kernel
        assert float(kernel.evaluate(wl_source.chimax)) == 0.0
        assert float(kernel.evaluate(-1.0)) == pytest.approx(1.0, rel=1e-3)

    def test_kernel_decreasing(self, wl_source):
        chi = np.linspace(0.0, wl_source.chimax, 300)
        w = np.asarray(wl_source.evaluate_kernel(chi))
        assert np.all(np.diff(w) <= 1e-6)
        assert np.all(w >= -1e-6)
