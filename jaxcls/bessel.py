"""Spherical Bessel functions for jaxcls.

Computes j_l(x) for integer l >= 0 and real x using:
- Direct formulas for l=0,1
- Upward recurrence for |x| > l (stable regime)
- Miller's backward recurrence for |x| <= l, normalised with the sum rule
  sum_n (2n+1) j_n(x)^2 = 1, so zeros of j_0 do not spoil the result

The Limber surrogate j_l(k) ~ sqrt(pi/(2l+1))/k replaces the Bessel function
when the line-of-sight integral is collapsed onto chi = (l+1/2)/k.

References:
    Numerical Recipes Ch. 6.7
    Abramowitz & Stegun 10.1
"""

import math

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float


def spherical_jl(l: int, x: Float[Array, "..."]) -> Float[Array, "..."]:
    """Compute the spherical Bessel function j_l(x).

    Args:
        l: order (non-negative integer, static)
        x: argument(s), any shape

    Returns:
        j_l(x), same shape as x
    """
    x = jnp.asarray(x, dtype=float)
    if l < 0:
        raise ValueError(f"spherical_jl: order must be non-negative, got {l}")
    if l == 0:
        return _j0(x)
    if l == 1:
        return _j1(x)

    j_up = _jl_upward(l, x)
    j_down = _jl_miller(l, x)
    return jnp.where(jnp.abs(x) > l, j_up, j_down)


def j_bessel_limber(l, k):
    """Limber surrogate for j_l at chi = (l+1/2)/k: sqrt(pi/(2l+1))/k."""
    return jnp.sqrt(jnp.pi / (2.0 * l + 1.0)) / k


def _j0(x: Float[Array, "..."]) -> Float[Array, "..."]:
    """j_0(x) = sin(x) / x."""
    x_safe = jnp.where(jnp.abs(x) < 1e-8, 1e-8, x)
    return jnp.where(jnp.abs(x) < 1e-8, 1.0 - x**2 / 6.0, jnp.sin(x_safe) / x_safe)


def _j1(x: Float[Array, "..."]) -> Float[Array, "..."]:
    """j_1(x) = sin(x)/x^2 - cos(x)/x."""
    x_safe = jnp.where(jnp.abs(x) < 1e-2, 1e-2, x)
    return jnp.where(
        jnp.abs(x) < 1e-2,
        x / 3.0 - x**3 / 30.0 + x**5 / 840.0,
        jnp.sin(x_safe) / x_safe**2 - jnp.cos(x_safe) / x_safe,
    )


def _jl_upward(l: int, x: Float[Array, "..."]) -> Float[Array, "..."]:
    """j_l(x) from j_0, j_1 by upward recurrence. Accurate only for |x| > l."""
    x_safe = jnp.where(jnp.abs(x) < 1e-30, 1e-30, x)

    def body_fn(n, state):
        j_prev, j_curr = state
        j_next = (2.0 * n + 1.0) / x_safe * j_curr - j_prev
        return (j_curr, j_next)

    _, j_l = jax.lax.fori_loop(1, l, body_fn, (_j0(x), _j1(x)))
    return j_l


def _jl_miller(l: int, x: Float[Array, "..."]) -> Float[Array, "..."]:
    """j_l(x) by backward recurrence from n_start down to 0.

    The unnormalised sequence f_n is rescaled whenever it grows past unity;
    the running sum of (2n+1) f_n^2 is rescaled with it and gives the
    normalisation. The overall sign is fixed against whichever of j_0, j_1 is
    larger in magnitude.
    """
    n_start = l + int(math.sqrt(40.0 * (l + 1))) + 10
    x_safe = jnp.where(jnp.abs(x) < 1e-30, 1e-30, x)

    def body_fn(i, state):
        f_next, f_curr, f_l, norm = state
        n = n_start - i
        f_prev = (2.0 * n + 1.0) / x_safe * f_curr - f_next
        norm = norm + (2.0 * n - 1.0) * f_prev**2
        f_l = jnp.where(n - 1 == l, f_prev, f_l)
        scale = jnp.maximum(jnp.abs(f_prev), 1.0)
        return (f_curr / scale, f_prev / scale, f_l / scale, norm / scale**2)

    init = (
        jnp.zeros_like(x),
        jnp.ones_like(x),
        jnp.zeros_like(x),
        (2.0 * n_start + 1.0) * jnp.ones_like(x),
    )
    f_1, f_0, f_l, norm = jax.lax.fori_loop(0, n_start, body_fn, init)

    j0 = _j0(x)
    j1 = _j1(x)
    sign = jnp.where(
        jnp.abs(j0) >= jnp.abs(j1),
        jnp.sign(f_0) * jnp.sign(j0),
        jnp.sign(f_1) * jnp.sign(j1),
    )
    return sign * f_l / jnp.sqrt(norm)
