"""Test spherical Bessel functions against closed forms and identities."""

import math

import jax.numpy as jnp
import numpy as np
import pytest

from jaxcls.bessel import j_bessel_limber, spherical_jl
from tests.conftest import assert_close


def _j2_exact(x):
    return (3.0 / x**2 - 1.0) * np.sin(x) / x - 3.0 * np.cos(x) / x**2


def _j3_exact(x):
    return (15.0 / x**3 - 6.0 / x) * np.sin(x) / x - (15.0 / x**2 - 1.0) * np.cos(x) / x


def _double_factorial(n):
    return math.prod(range(n, 0, -2))


class TestClosedForms:

    def test_j0(self):
        x = np.linspace(0.1, 50.0, 300)
        assert_close(np.asarray(spherical_jl(0, x)), np.sin(x) / x, 1e-12, "j_0")

    def test_j1(self):
        x = np.linspace(0.1, 50.0, 300)
        ref = np.sin(x) / x**2 - np.cos(x) / x
        assert np.max(np.abs(np.asarray(spherical_jl(1, x)) - ref)) < 1e-12

    def test_j2_both_regimes(self):
        """Covers x < l (backward recurrence) and x > l (upward recurrence)."""
        x = np.linspace(0.5, 40.0, 400)
        err = np.abs(np.asarray(spherical_jl(2, x)) - _j2_exact(x))
        assert np.max(err) < 1e-10, f"j_2 max abs error {np.max(err):.2e}"

    def test_j3_both_regimes(self):
        x = np.linspace(0.5, 40.0, 400)
        err = np.abs(np.asarray(spherical_jl(3, x)) - _j3_exact(x))
        assert np.max(err) < 1e-10, f"j_3 max abs error {np.max(err):.2e}"


class TestIdentities:

    @pytest.mark.parametrize("l", [2, 5, 10, 20])
    def test_three_term_recurrence(self, l):
        """j_{l-1} + j_{l+1} = (2l+1)/x j_l."""
        x = np.linspace(0.3, 60.0, 250)
        lhs = np.asarray(spherical_jl(l - 1, x)) + np.asarray(spherical_jl(l + 1, x))
        rhs = (2 * l + 1) / x * np.asarray(spherical_jl(l, x))
        scale = np.max(np.abs(rhs))
        assert np.max(np.abs(lhs - rhs)) < 1e-9 * max(scale, 1.0)

    @pytest.mark.parametrize("l", [2, 5, 12])
    def test_small_argument(self, l):
        """j_l(x) -> x^l / (2l+1)!! as x -> 0."""
        x = 1e-3
        ref = x**l / _double_factorial(2 * l + 1)
        val = float(spherical_jl(l, jnp.array(x)))
        assert val == pytest.approx(ref, rel=1e-5)

    @pytest.mark.parametrize("x", [0.7, 5.0, 17.3])
    def test_sum_rule(self, x):
        """sum_n (2n+1) j_n(x)^2 = 1."""
        total = sum((2 * n + 1) * float(spherical_jl(n, jnp.array(x))) ** 2 for n in range(80))
        assert total == pytest.approx(1.0, abs=1e-10)

    def test_zero_argument(self):
        assert float(spherical_jl(0, jnp.array(0.0))) == 1.0
        assert abs(float(spherical_jl(4, jnp.array(0.0)))) < 1e-100

    def test_negative_order(self):
        with pytest.raises(ValueError):
            spherical_jl(-1, jnp.array(1.0))


def test_limber_surrogate():
    k = jnp.array([0.01, 0.1, 1.0])
    ref = np.sqrt(np.pi / 201.0) / np.asarray(k)
    assert_close(np.asarray(j_bessel_limber(100, k)), ref, 1e-14, "j_bessel_limber")
