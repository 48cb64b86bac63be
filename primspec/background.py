# Background evolution of a single inflaton field in conformal time, in units
# with G = 1. The state vector holds the scale factor a, the field phi and
# dphi = a dphi/dt = dphi/dtau; the perturbation slots are only filled by the
# mode integrator (see ms_solver.py).
#
# The stepping loops run inside jax.lax.while_loop. A loop cannot raise, so it
# carries a Status code that the Python wrappers turn into a PrimordialError.

# Global
import enum
import logging
from collections import namedtuple

import numpy as np

# Local
import jax
from jax import numpy as jnp
from jax import lax

from primspec.ode import integrate
from primspec.potential import (
    check_potential,
    polynomial_potential,
    potential_is_valid,
    slow_roll_epsilon,
)
from primspec.utils import PrimordialError

jax.config.update("jax_enable_x64", True)


StateIndices = namedtuple(
    "StateIndices",
    [
        "a",
        "phi",
        "dphi",
        "ksi_re",
        "ksi_im",
        "dksi_re",
        "dksi_im",
        "ah_re",
        "ah_im",
        "dah_re",
        "dah_im",
        "bg_size",
        "size",
    ],
)


def inflation_indices():
    """
    Offsets of the variables in the state vector. The background block comes
    first so that background-only integrations can use the first bg_size
    slots of the same layout.
    """
    background = ["a", "phi", "dphi"]
    perturbations = [
        "ksi_re",
        "ksi_im",
        "dksi_re",
        "dksi_im",
        "ah_re",
        "ah_im",
        "dah_re",
        "dah_im",
    ]
    offsets = {name: i for i, name in enumerate(background + perturbations)}
    return StateIndices(
        **offsets,
        bg_size=len(background),
        size=len(background) + len(perturbations),
    )


IDX = inflation_indices()


class Status(enum.IntEnum):
    OK = 0
    INVALID_POTENTIAL = 1
    EPSILON_CROSSED = 2
    INTEGRATION_FAILED = 3
    MAX_STEPS = 4


# Plain ints for use inside traced code
_OK = int(Status.OK)
_INVALID_POTENTIAL = int(Status.INVALID_POTENTIAL)
_EPSILON_CROSSED = int(Status.EPSILON_CROSSED)
_INTEGRATION_FAILED = int(Status.INTEGRATION_FAILED)
_MAX_STEPS = int(Status.MAX_STEPS)


IterationResult = namedtuple(
    "IterationResult", ["converged", "value", "iterations"]
)


def raise_for_status(status, phi, pot, prec, context):
    """
    Convert the status code returned by a stepping loop into a
    PrimordialError.

    Parameters
    ----------
    status : int
        Status code of the loop.
    phi : float
        Field value at which the loop stopped.
    pot : NamedTuple (PotentialParams)
        Potential coefficients.
    prec : PrecisionParams
        Precision parameters.
    context : str
        What the loop was doing, for the error message.
    """
    status = Status(int(status))
    phi = float(phi)
    if status == Status.OK:
        return
    if status == Status.INVALID_POTENTIAL:
        check_potential(phi, pot)
        raise PrimordialError(
            f"invalid potential at phi={phi:g} while {context}"
        )
    if status == Status.EPSILON_CROSSED:
        raise PrimordialError(
            "Inflaton evolution crosses the border from epsilon<1 to "
            f"epsilon>1 at phi={phi:g}. Inflation disrupted during the "
            "observable e-folds"
        )
    if status == Status.INTEGRATION_FAILED:
        raise PrimordialError(
            f"integration failed at phi={phi:g} while {context}"
        )
    raise PrimordialError(
        f"more than {prec.inflation_max_steps} steps while {context} "
        f"(stopped at phi={phi:g})"
    )


def effective_masses(aH, dphi, a2dV, a2ddV):
    """
    Effective mass terms z''/z (curvature) and a''/a (tensors) of the
    mode equations.
    """
    zpp_over_z = (
        2.0 * aH**2
        - a2ddV
        - 4.0 * jnp.pi * (7.0 * dphi**2 + 4.0 * dphi / aH * a2dV)
        + 32.0 * jnp.pi**2 * dphi**4 / aH**2
    )
    app_over_a = 2.0 * aH**2 - 4.0 * jnp.pi * dphi**2
    return zpp_over_z, app_over_a


def conformal_hubble(y, pot):
    """aH = a'/a for a given state vector (background slots only)."""
    V, _, _ = polynomial_potential(y[IDX.phi], pot)
    a = y[IDX.a]
    dphi = y[IDX.dphi]
    return jnp.sqrt((8.0 * jnp.pi / 3.0) * (0.5 * dphi**2 + a**2 * V))


def inflation_derivs(tau, y, args):
    """
    Derivatives of the state vector with respect to conformal time.

    Parameters
    ----------
    tau : float
        Conformal time (the system is autonomous).
    y : array-like
        State vector with either IDX.bg_size or IDX.size slots.
    args : tuple
        (pot, k): potential coefficients and the wavenumber of the modes.
        k is ignored for background-only states.

    Returns
    -------
    array-like
        dy/dtau, same size as y.
    """
    pot, k = args
    V, dV, ddV = polynomial_potential(y[IDX.phi], pot)

    a = y[IDX.a]
    dphi = y[IDX.dphi]
    a2V = a * a * V
    a2dV = a * a * dV
    aH = jnp.sqrt((8.0 * jnp.pi / 3.0) * (0.5 * dphi**2 + a2V))

    derivs = [
        a * aH,
        dphi,
        -2.0 * aH * dphi - a2dV,
    ]
    if y.shape[0] == IDX.bg_size:
        return jnp.stack(derivs)

    zpp_over_z, app_over_a = effective_masses(aH, dphi, a2dV, a * a * ddV)
    scalar_freq2 = k * k - zpp_over_z
    tensor_freq2 = k * k - app_over_a

    derivs += [
        y[IDX.dksi_re],
        y[IDX.dksi_im],
        -scalar_freq2 * y[IDX.ksi_re],
        -scalar_freq2 * y[IDX.ksi_im],
        y[IDX.dah_re],
        y[IDX.dah_im],
        -tensor_freq2 * y[IDX.ah_re],
        -tensor_freq2 * y[IDX.ah_im],
    ]
    return jnp.stack(derivs)


def _background_stepsize(y, pot, prec):
    """Conformal-time step, a fraction of the Hubble time or of the time
    scale on which dphi changes, whichever is shorter."""
    y_bg = y[: IDX.bg_size]
    dy = inflation_derivs(0.0, y_bg, (pot, 0.0))
    aH = dy[IDX.a] / y_bg[IDX.a]
    return prec.inflation_bg_stepsize * jnp.minimum(
        1.0 / aH, jnp.abs(y_bg[IDX.dphi] / dy[IDX.dphi])
    )


def _step_status(valid, ok, status):
    status = jnp.where(valid, status, _INVALID_POTENTIAL)
    status = jnp.where(valid & ~ok, _INTEGRATION_FAILED, status)
    return status


def _advance_background(pot, prec):
    """Builds the (advance, hold) pair of branches for lax.cond."""
    args = (pot, 0.0)
    solver_opts = prec.solver_options

    def advance(operand):
        y, tau, dtau = operand
        return integrate(
            inflation_derivs, tau, tau + dtau, y, args, solver_opts
        )

    def hold(operand):
        return operand[0], jnp.asarray(False)

    return advance, hold


def _evolve_background_loop(y, pot, phi_stop, prec):
    advance, hold = _advance_background(pot, prec)

    def cond(carry):
        y, tau, eps, status, n = carry
        dtau = _background_stepsize(y, pot, prec)
        not_there = y[IDX.phi] + y[IDX.dphi] * dtau <= phi_stop
        return (
            (status == _OK)
            & (n < prec.inflation_max_steps)
            & (~potential_is_valid(y[IDX.phi], pot) | not_there)
        )

    def body(carry):
        y, tau, eps, status, n = carry
        valid = potential_is_valid(y[IDX.phi], pot)
        dtau = _background_stepsize(y, pot, prec)
        y_new, ok = lax.cond(valid, advance, hold, (y, tau, dtau))

        eps_new = slow_roll_epsilon(y_new[IDX.phi], pot)
        crossed = valid & ok & (eps_new > 1.0) & (eps <= 1.0)
        new_status = _step_status(valid, ok, status)
        new_status = jnp.where(crossed, _EPSILON_CROSSED, new_status)

        y_next = jnp.where(valid & ok, y_new, y)
        return (
            y_next,
            tau + dtau,
            jnp.where(valid & ok, eps_new, eps),
            new_status.astype(status.dtype),
            n + 1,
        )

    init = (
        y,
        jnp.zeros((), dtype=y.dtype),
        slow_roll_epsilon(y[IDX.phi], pot).astype(y.dtype),
        jnp.asarray(_OK, dtype=jnp.int32),
        jnp.asarray(0, dtype=jnp.int32),
    )
    y, tau, _, status, n = lax.while_loop(cond, body, init)
    status = jnp.where(
        (status == _OK) & (n >= prec.inflation_max_steps), _MAX_STEPS, status
    ).astype(jnp.int32)

    # Land exactly on phi_stop with one linear extrapolation
    dy = inflation_derivs(tau, y, (pot, 0.0))
    dtau = (phi_stop - y[IDX.phi]) / dy[IDX.phi]
    y = jnp.where(status == _OK, y + dy * dtau, y)
    return y, status


def _reach_aH_loop(y, pot, aH_stop, prec):
    advance, hold = _advance_background(pot, prec)

    def cond(carry):
        y, tau, status, n = carry
        return (
            (status == _OK)
            & (n < prec.inflation_max_steps)
            & (
                ~potential_is_valid(y[IDX.phi], pot)
                | (conformal_hubble(y, pot) < aH_stop)
            )
        )

    def body(carry):
        y, tau, status, n = carry
        valid = potential_is_valid(y[IDX.phi], pot)
        dtau = _background_stepsize(y, pot, prec)
        y_new, ok = lax.cond(valid, advance, hold, (y, tau, dtau))
        new_status = _step_status(valid, ok, status)
        return (
            jnp.where(valid & ok, y_new, y),
            tau + dtau,
            new_status.astype(status.dtype),
            n + 1,
        )

    init = (
        y,
        jnp.zeros((), dtype=y.dtype),
        jnp.asarray(_OK, dtype=jnp.int32),
        jnp.asarray(0, dtype=jnp.int32),
    )
    y, _, status, n = lax.while_loop(cond, body, init)
    status = jnp.where(
        (status == _OK) & (n >= prec.inflation_max_steps), _MAX_STEPS, status
    ).astype(jnp.int32)
    return y, status


_evolve_background = jax.jit(_evolve_background_loop, static_argnums=(3,))
_reach_aH = jax.jit(_reach_aH_loop, static_argnums=(3,))


def evolve_background(y, pot, phi_stop, prec):
    """
    Evolves the background state forward in time until the field reaches
    phi_stop. The last step is a linear extrapolation so that the returned
    state sits exactly at phi_stop.

    Parameters
    ----------
    y : array-like
        Background state [a, phi, dphi] with phi < phi_stop.
    pot : NamedTuple (PotentialParams)
        Potential coefficients.
    phi_stop : float
        Target field value.
    prec : PrecisionParams
        Precision parameters.

    Returns
    -------
    jax.numpy.ndarray
        Background state at phi_stop.
    """
    y = jnp.asarray(y, dtype=jnp.float64)
    y, status = _evolve_background(y, pot, float(phi_stop), prec)
    raise_for_status(
        status,
        y[IDX.phi],
        pot,
        prec,
        f"evolving the background up to phi={float(phi_stop):g}",
    )
    return y


def reach_aH(y, pot, aH_stop, prec):
    """
    Evolves the background state forward in time until the conformal Hubble
    rate aH reaches aH_stop.

    Parameters
    ----------
    y : array-like
        Background state [a, phi, dphi].
    pot : NamedTuple (PotentialParams)
        Potential coefficients.
    aH_stop : float
        Target value of aH (in 1/Mpc when a is normalised to the pivot).
    prec : PrecisionParams
        Precision parameters.

    Returns
    -------
    jax.numpy.ndarray
        Background state with aH >= aH_stop.
    """
    y = jnp.asarray(y, dtype=jnp.float64)
    y, status = _reach_aH(y, pot, float(aH_stop), prec)
    raise_for_status(
        status,
        y[IDX.phi],
        pot,
        prec,
        f"evolving the background up to aH={float(aH_stop):g}",
    )
    return y


def slow_roll_velocity(phi, pot):
    """dphi/dt on the slow-roll trajectory, -V'/(3H) with H^2 = 8 pi V/3."""
    V, dV, _ = polynomial_potential(phi, pot)
    return -dV / 3.0 / np.sqrt((8.0 * np.pi / 3.0) * V)


def attractor_iteration(pot, phi_0, precision, prec):
    """
    Fixed-point search of the attractor velocity dphi/dt at phi_0. Each
    iteration starts half an e-fold further in the past, on the slow-roll
    trajectory, and evolves the background up to phi_0.

    Parameters
    ----------
    pot : NamedTuple (PotentialParams)
        Potential coefficients.
    phi_0 : float
        Field value at which the attractor velocity is wanted.
    precision : float
        Relative change between two iterations below which the search has
        converged.
    prec : PrecisionParams
        Precision parameters (provides the iteration cap).

    Returns
    -------
    IterationResult
        (converged, dphi/dt at phi_0, number of iterations).
    """
    phi_0 = float(phi_0)
    phi = phi_0
    V_0, dV_0, _ = polynomial_potential(phi, pot)

    dphidt_0new = slow_roll_velocity(phi, pot)
    dphidt_0old = dphidt_0new / (precision + 2.0)
    counter = 0

    while abs(dphidt_0new / dphidt_0old - 1.0) >= precision:
        counter += 1
        if counter >= prec.inflation_attractor_maxit:
            return IterationResult(False, dphidt_0new, counter)

        dphidt_0old = dphidt_0new

        phi = phi + dV_0 / V_0 / (16.0 * np.pi)
        check_potential(phi, pot)

        y = jnp.array([1.0, phi, slow_roll_velocity(phi, pot)])
        y = evolve_background(y, pot, phi_0, prec)
        dphidt_0new = float(y[IDX.dphi] / y[IDX.a])

        logging.debug(
            f"attractor search at phi={phi_0:g}: iteration {counter}, "
            f"dphi/dt={dphidt_0new:e}"
        )

    return IterationResult(True, dphidt_0new, counter)


def find_attractor(pot, phi_0, precision, prec):
    """
    Hubble rate and field velocity at phi_0 on the inflationary attractor.

    Parameters
    ----------
    pot : NamedTuple (PotentialParams)
        Potential coefficients.
    phi_0 : float
        Field value.
    precision : float
        Relative convergence criterion on dphi/dt.
    prec : PrecisionParams
        Precision parameters.

    Returns
    -------
    H_0 : float
        Hubble rate at phi_0.
    dphidt_0 : float
        dphi/dt at phi_0.
    """
    result = attractor_iteration(pot, phi_0, precision, prec)
    if not result.converged:
        raise PrimordialError(
            f"could not converge after {result.iterations} iterations: there "
            f"exists no attractor solution near phi={float(phi_0):g}. "
            "Potential probably too steep in this region, or precision "
            f"parameter {precision:g} too small"
        )

    dphidt_0 = result.value
    V_0, _, _ = polynomial_potential(float(phi_0), pot)
    H_0 = np.sqrt((8.0 * np.pi / 3.0) * (0.5 * dphidt_0**2 + V_0))
    return float(H_0), dphidt_0
