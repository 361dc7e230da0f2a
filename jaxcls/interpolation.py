"""Cubic spline interpolation for jaxcls.

Provides a natural cubic spline registered as a JAX pytree, so it can live
inside other pytrees (BackgroundResult, Tracer) and flow through jit/vmap,
and a bounded variant that returns fixed constants outside its knot range
instead of extrapolating.

The coefficients are obtained with the Thomas algorithm for the tridiagonal
system (jax.lax.fori_loop), intervals are located with jnp.searchsorted.

References:
    DISCO-EB: src/discoeb/spline_interpolation.py
    GSL: interpolation/cspline.c (natural boundary conditions)
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float

from jaxcls.errors import InterpolantError


@jax.tree_util.register_pytree_node_class
class CubicSpline:
    """Natural cubic spline interpolation, registered as a JAX pytree.

    The spline satisfies S''(x[0]) = S''(x[-1]) = 0. Evaluation outside the
    knot range clamps to the end values.

    Attributes:
        x: knot positions, shape (N,), strictly increasing
        y: knot values, shape (N,)
        d2y: second derivatives at knots, shape (N,), from tridiagonal solve
    """

    def __init__(self, x: Float[Array, "N"], y: Float[Array, "N"]):
        self.x = jnp.asarray(x, dtype=float)
        self.y = jnp.asarray(y, dtype=float)
        self.d2y = _compute_natural_spline_coeffs(self.x, self.y)

    def _locate(self, x_eval):
        x_clamped = jnp.clip(x_eval, self.x[0], self.x[-1])
        idx = jnp.searchsorted(self.x, x_clamped, side="right") - 1
        idx = jnp.clip(idx, 0, len(self.x) - 2)
        h = self.x[idx + 1] - self.x[idx]
        A = (self.x[idx + 1] - x_clamped) / h
        B = (x_clamped - self.x[idx]) / h
        return idx, h, A, B

    def evaluate(self, x_eval: Float[Array, "..."]) -> Float[Array, "..."]:
        """Evaluate the spline at given points.

            S(x) = A*y_i + B*y_{i+1} + (A^3 - A)*d2y_i*h^2/6 + (B^3 - B)*d2y_{i+1}*h^2/6

        where A = (x_{i+1} - x) / h, B = (x - x_i) / h, h = x_{i+1} - x_i.
        """
        idx, h, A, B = self._locate(jnp.asarray(x_eval))
        return (
            A * self.y[idx]
            + B * self.y[idx + 1]
            + ((A**3 - A) * self.d2y[idx] + (B**3 - B) * self.d2y[idx + 1])
            * h**2
            / 6.0
        )

    def derivative(self, x_eval: Float[Array, "..."]) -> Float[Array, "..."]:
        """First derivative of the spline."""
        idx, h, A, B = self._locate(jnp.asarray(x_eval))
        return (
            (self.y[idx + 1] - self.y[idx]) / h
            - (3.0 * A**2 - 1.0) * self.d2y[idx] * h / 6.0
            + (3.0 * B**2 - 1.0) * self.d2y[idx + 1] * h / 6.0
        )

    # --- JAX pytree registration ---

    def tree_flatten(self):
        return (self.x, self.y, self.d2y), None

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        obj = object.__new__(cls)
        obj.x, obj.y, obj.d2y = children
        return obj


@jax.tree_util.register_pytree_node_class
class BoundedSpline(CubicSpline):
    """Cubic spline with fixed values outside its domain.

    evaluate(x) returns y_below for x <= x[0], y_above for x >= x[-1] and
    the interpolated value in between. It never extrapolates and never fails,
    so it can be used freely inside integrands.

    Construction validates the tables and raises InterpolantError for fewer
    than two points, mismatched lengths, non-finite values or abscissae that
    are not strictly increasing.
    """

    def __init__(self, x, y, y_below: float, y_above: float):
        x_np = np.asarray(x, dtype=float)
        y_np = np.asarray(y, dtype=float)
        _validate_knots(x_np, y_np)
        if not (np.isfinite(y_below) and np.isfinite(y_above)):
            raise InterpolantError(
                "boundary values must be finite", context="BoundedSpline"
            )
        super().__init__(x_np, y_np)
        self.y_below = jnp.asarray(y_below, dtype=float)
        self.y_above = jnp.asarray(y_above, dtype=float)

    @property
    def x0(self):
        return self.x[0]

    @property
    def xf(self):
        return self.x[-1]

    def evaluate(self, x_eval: Float[Array, "..."]) -> Float[Array, "..."]:
        x_eval = jnp.asarray(x_eval)
        inside = super().evaluate(x_eval)
        return jnp.where(
            x_eval <= self.x[0],
            self.y_below,
            jnp.where(x_eval >= self.x[-1], self.y_above, inside),
        )

    def tree_flatten(self):
        return (self.x, self.y, self.d2y, self.y_below, self.y_above), None

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        obj = object.__new__(cls)
        obj.x, obj.y, obj.d2y, obj.y_below, obj.y_above = children
        return obj


def flat_spline(x, y) -> BoundedSpline:
    """BoundedSpline that holds its first/last sample value outside the domain."""
    y_np = np.asarray(y, dtype=float)
    if y_np.ndim != 1 or y_np.size == 0:
        raise InterpolantError("values must be a non-empty 1-D array", context="flat_spline")
    return BoundedSpline(x, y_np, y_np[0], y_np[-1])


def _validate_knots(x: np.ndarray, y: np.ndarray) -> None:
    if x.ndim != 1 or y.ndim != 1:
        raise InterpolantError("knots and values must be 1-D", context="BoundedSpline")
    if x.shape != y.shape:
        raise InterpolantError(
            f"got {x.size} knots but {y.size} values", context="BoundedSpline"
        )
    if x.size < 2:
        raise InterpolantError(
            f"need at least 2 knots, got {x.size}", context="BoundedSpline"
        )
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise InterpolantError("knots and values must be finite", context="BoundedSpline")
    if np.any(np.diff(x) <= 0):
        raise InterpolantError("knots must be strictly increasing", context="BoundedSpline")


def _compute_natural_spline_coeffs(
    x: Float[Array, "N"], y: Float[Array, "N"]
) -> Float[Array, "N"]:
    """Second derivatives for a natural cubic spline via the Thomas algorithm.

    The tridiagonal system for the interior points is:
        h_{i-1} * d2y_{i-1} + 2(h_{i-1} + h_i) * d2y_i + h_i * d2y_{i+1} = rhs_i
    with h_i = x_{i+1} - x_i and rhs_i = 6 * [(y_{i+1}-y_i)/h_i - (y_i-y_{i-1})/h_{i-1}].
    Two knots give a straight line (no interior points).
    """
    n = x.shape[0]
    if n < 3:
        return jnp.zeros(n)

    h = x[1:] - x[:-1]

    rhs = 6.0 * ((y[2:] - y[1:-1]) / h[1:] - (y[1:-1] - y[:-2]) / h[:-1])
    diag = 2.0 * (h[:-1] + h[1:])
    lower = h[:-1]
    upper = h[1:]

    def forward_step(i, carry):
        d, r = carry
        w = lower[i] / d[i - 1]
        d = d.at[i].set(d[i] - w * upper[i - 1])
        r = r.at[i].set(r[i] - w * r[i - 1])
        return (d, r)

    diag_mod, rhs_mod = jax.lax.fori_loop(1, n - 2, forward_step, (diag, rhs))

    d2y_interior = jnp.zeros(n - 2)
    d2y_interior = d2y_interior.at[-1].set(rhs_mod[-1] / diag_mod[-1])

    def backward_step(i, d2y):
        # j counts down from n-4 to 0
        j = n - 4 - i
        return d2y.at[j].set((rhs_mod[j] - upper[j] * d2y[j + 1]) / diag_mod[j])

    d2y_interior = jax.lax.fori_loop(0, n - 3, backward_step, d2y_interior)

    return jnp.concatenate([jnp.array([0.0]), d2y_interior, jnp.array([0.0])])
