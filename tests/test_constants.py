"""Test physical constants and unit conventions."""

import pytest

from jaxcls import constants as const


def test_hubble_distance():
    """c/H0 = c [km/s] / 100 in Mpc/h."""
    assert const.CLIGHT_HMPC == pytest.approx(const.c_SI / 1e3 / 100.0, rel=1e-15)


def test_mpc_over_m():
    assert const.Mpc_over_m == 3.085677581282e22


def test_speed_of_light():
    assert const.c_SI == 2.99792458e8


def test_gravitational_constant():
    assert const.G_SI == 6.67428e-11


def test_stefan_boltzmann():
    """sigma_B should be approximately 5.670400e-8."""
    assert abs(const.sigma_B - 5.670400e-8) / 5.670400e-8 < 1e-4


def test_defaults():
    assert const.T_cmb_default == 2.7255
    assert const.N_ur_default == 3.046


def test_small_argument_cutoffs():
    assert 0 < const.CHI_EPS < 1e-6
    assert 0 < const.X_SMALL_BESSEL < 1e-6
