# Inflaton potential and its validity checks. All functions work on plain
# floats as well as on traced JAX values.

# Global
from collections import namedtuple

# Local
import jax
from jax import numpy as jnp

from primspec.utils import PrimordialError

jax.config.update("jax_enable_x64", True)


PotentialParams = namedtuple(
    "PotentialParams", ["V0", "V1", "V2", "V3", "V4", "phi_pivot"]
)


def potential_from_params(params):
    """Extract the potential coefficients from a PrimordialParams."""
    return PotentialParams(
        V0=float(params.V0),
        V1=float(params.V1),
        V2=float(params.V2),
        V3=float(params.V3),
        V4=float(params.V4),
        phi_pivot=float(params.phi_pivot),
    )


def polynomial_potential(phi, pot):
    """
    Degree-4 Taylor expansion of the potential around the pivot field value.

    Parameters
    ----------
    phi : float or array-like
        Field value.
    pot : NamedTuple (PotentialParams)
        Taylor coefficients V0..V4 and the pivot field value.

    Returns
    -------
    V, dV, ddV : float or array-like
        The potential and its first and second derivative with respect to
        the field.
    """
    x = phi - pot.phi_pivot
    V = (
        pot.V0
        + x * pot.V1
        + x**2 / 2.0 * pot.V2
        + x**3 / 6.0 * pot.V3
        + x**4 / 24.0 * pot.V4
    )
    dV = pot.V1 + x * pot.V2 + x**2 / 2.0 * pot.V3 + x**3 / 6.0 * pot.V4
    ddV = pot.V2 + x * pot.V3 + x**2 / 2.0 * pot.V4
    return V, dV, ddV


def potential_is_valid(phi, pot):
    """True where V > 0 and dV/dphi < 0 (jit-compatible)."""
    V, dV, _ = polynomial_potential(phi, pot)
    return jnp.logical_and(V > 0.0, dV < 0.0)


def check_potential(phi, pot):
    """
    Raise a PrimordialError if the potential cannot be handled at phi.

    The whole inflation module assumes a positive potential with a negative
    slope, i.e. a field rolling towards larger values.
    """
    phi = float(phi)
    V, dV, _ = polynomial_potential(phi, pot)
    if V <= 0.0:
        raise PrimordialError(
            f"This potential becomes negative at phi={phi:g}, before the end "
            "of observable inflation. It cannot be treated by this code"
        )
    if dV >= 0.0:
        raise PrimordialError(
            "All the code is written for the case dV/dphi<0. Here, in "
            f"phi={phi:g}, we have dV/dphi={dV:g}. This potential cannot be "
            "treated by this code"
        )


def slow_roll_epsilon(phi, pot):
    r"""
    First potential slow-roll parameter
    :math:`\epsilon_V = (V'/V)^2 / (16\pi)` in units with G = 1.
    """
    V, dV, _ = polynomial_potential(phi, pot)
    return (dV / V) ** 2 / (16.0 * jnp.pi)


def slow_roll_predictions(pot):
    """
    Leading-order slow-roll observables at the pivot field value. Used as a
    reference for the numerical spectra.

    Parameters
    ----------
    pot : NamedTuple (PotentialParams)
        Potential coefficients.

    Returns
    -------
    dict
        A_s, r, n_s, n_t and the tensor amplitude A_t.
    """
    ratio = pot.V1 / pot.V0
    A_s = 128.0 * jnp.pi / 3.0 * pot.V0**3 / pot.V1**2
    r = ratio**2 / jnp.pi
    return {
        "A_s": float(A_s),
        "r": float(r),
        "A_t": float(r * A_s),
        "n_s": float(
            1.0
            - 6.0 / (16.0 * jnp.pi) * ratio**2
            + 2.0 / (8.0 * jnp.pi) * pot.V2 / pot.V0
        ),
        "n_t": float(-2.0 / (16.0 * jnp.pi) * ratio**2),
    }
