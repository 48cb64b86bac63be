# Black-box integrator used by all stepping loops of the inflation module.
# Each call advances the state over one short stretch [t0, t1] chosen by the
# caller; diffrax takes care of the adaptive sub-steps inside the stretch.

# Global
from collections import namedtuple

# Local
import jax
from diffrax import (
    diffeqsolve,
    ODETerm,
    Tsit5,
    PIDController,
    SaveAt,
    RESULTS,
)

jax.config.update("jax_enable_x64", True)


SolverOptions = namedtuple(
    "SolverOptions", ["rtol", "atol", "dtmin", "max_steps"]
)


def integrate(rhs, t0, t1, y0, args, solver_opts):
    """
    Integrates dy/dt = rhs(t, y, args) from t0 to t1 and returns the state at
    t1. Safe to call inside ``jax.jit``, ``jax.lax.while_loop`` and
    ``jax.vmap``: failures are reported through the returned flag instead of
    raising.

    Parameters
    ----------
    rhs : function
        Right-hand side with signature (t, y, args) -> dy.
    t0 : float
        Start of the stretch.
    t1 : float
        End of the stretch, must be larger than t0.
    y0 : array-like
        State at t0.
    args : tuple
        Additional arguments passed to rhs.
    solver_opts : NamedTuple (SolverOptions)
        Options for the differential equation solver.

    Returns
    -------
    y1 : array-like
        State at t1.
    ok : bool
        False if the solver did not reach t1 (step rejected below dtmin,
        too many steps, non-finite values).
    """
    stepsize_controller = PIDController(
        rtol=solver_opts.rtol,
        atol=solver_opts.atol,
        dtmin=solver_opts.dtmin,
    )

    sol = diffeqsolve(
        ODETerm(rhs),
        Tsit5(),
        t0=t0,
        t1=t1,
        dt0=t1 - t0,
        y0=y0,
        args=args,
        stepsize_controller=stepsize_controller,
        saveat=SaveAt(t1=True),
        max_steps=solver_opts.max_steps,
        throw=False,
    )

    return sol.ys[-1], sol.result == RESULTS.successful
