"""ODE solver wrapper around Diffrax for jaxcls.

References:
    Diffrax docs: https://docs.kidger.site/diffrax/
"""

import diffrax
from jaxtyping import Array, Float


def solve_nonstiff(
    rhs_fn,
    t0: float,
    t1: float,
    y0: Float[Array, "D"],
    saveat: diffrax.SaveAt,
    args=None,
    rtol: float = 1e-10,
    atol: float = 1e-13,
    max_steps: int = 16384,
    throw: bool = True,
):
    """Solve a non-stiff ODE system using Tsit5 (explicit RK4/5).

    Used for the distance integral and the linear growth equation.

    Args:
        rhs_fn: callable (t, y, args) -> dy, the ODE right-hand side
        t0: initial time
        t1: final time
        y0: initial state vector
        saveat: Diffrax SaveAt specification (e.g., SaveAt(ts=time_grid))
        args: additional arguments passed to rhs_fn
        rtol: relative tolerance
        atol: absolute tolerance
        max_steps: maximum number of solver steps
        throw: raise inside diffrax on failure; if False, inspect sol.result

    Returns:
        Diffrax solution object with .ys (saved states) and .ts (saved times)
    """
    return diffrax.diffeqsolve(
        diffrax.ODETerm(rhs_fn),
        solver=diffrax.Tsit5(),
        t0=t0,
        t1=t1,
        dt0=None,
        y0=y0,
        saveat=saveat,
        stepsize_controller=diffrax.PIDController(rtol=rtol, atol=atol),
        max_steps=max_steps,
        args=args,
        throw=throw,
    )
