"""Adaptive quadrature on the host.

Thin wrapper around scipy.integrate.quad (QUADPACK QAGS) that turns its
status codes into the jaxcls error types. The integrand is called with one
abscissa at a time, as a 0-d array, so jitted JAX functions of a scalar can
be passed directly.

Non-finite integrand values, exhausting the subdivision limit, round-off
and unresolvable singularities all raise IntegrationError.
"""

from __future__ import annotations

import logging
import math
import warnings
from typing import Callable, NamedTuple

import numpy as np
from scipy.integrate import IntegrationWarning, quad

from jaxcls.errors import InconsistentInputError, IntegrationError

logger = logging.getLogger(__name__)

_EPMACH = np.finfo(float).eps


class QuadResult(NamedTuple):
    """Outcome of a successful adaptive integration."""

    value: float
    abserr: float
    n_intervals: int
    n_evals: int


def integrate_qag(
    f: Callable,
    a: float,
    b: float,
    epsabs: float = 0.0,
    epsrel: float = 1e-4,
    limit: int = 1000,
) -> QuadResult:
    """Adaptively integrate f over [a, b].

    Args:
        f: callable mapping an abscissa to the integrand value
        a, b: integration limits
        epsabs: absolute tolerance
        epsrel: relative tolerance
        limit: maximum number of subintervals

    Returns:
        QuadResult with the integral and its error estimate

    Raises:
        IntegrationError: the requested accuracy could not be reached
        InconsistentInputError: the tolerances or the limit are invalid
    """
    if limit < 1:
        raise InconsistentInputError(f"limit must be >= 1, got {limit}", context="integrate_qag")
    if epsabs <= 0 and (epsrel < 50 * _EPMACH or epsrel < 0.5e-28):
        raise InconsistentInputError(
            f"tolerance cannot be achieved with epsabs={epsabs}, epsrel={epsrel}",
            context="integrate_qag",
        )

    def scalar(x):
        value = float(np.asarray(f(np.asarray(x))))
        if not math.isfinite(value):
            raise IntegrationError(
                f"integrand returned a non-finite value at x={x:.6g}",
                context="integrate_qag",
            )
        return value

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", IntegrationWarning)
            out = quad(
                scalar, float(a), float(b),
                epsabs=epsabs, epsrel=epsrel, limit=limit, full_output=1,
            )
    except IntegrationWarning as e:
        raise IntegrationError(str(e), context="integrate_qag") from e
    except ValueError as e:
        raise InconsistentInputError(str(e), context="integrate_qag") from e

    value, abserr, info = out[0], out[1], out[2]
    if len(out) > 3:
        raise IntegrationError(
            f"{out[3].strip()} (estimate {value:.6g} +/- {abserr:.3g})",
            context="integrate_qag",
        )

    logger.debug(
        "integrate_qag: [%.6g, %.6g] converged with %d intervals, %d evaluations",
        a, b, info["last"], info["neval"],
    )
    return QuadResult(float(value), float(abserr), int(info["last"]), int(info["neval"]))
