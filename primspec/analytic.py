# Analytic primordial spectra: each initial condition and each correlated
# pair of initial conditions is described by an amplitude, a tilt and a
# running at the pivot scale.

# Global
import enum
from collections import namedtuple

import numpy as np

# Local
from primspec.utils import PrimordialError, pair_index, pair_size


class Mode(enum.Enum):
    SCALARS = "scalars"
    TENSORS = "tensors"


class InitialCondition(enum.Enum):
    AD = "ad"
    BI = "bi"
    CDI = "cdi"
    NID = "nid"
    NIV = "niv"
    TEN = "ten"


ISOCURVATURE = (
    InitialCondition.BI,
    InitialCondition.CDI,
    InitialCondition.NID,
    InitialCondition.NIV,
)

# Isocurvature (f, n, alpha) when none is given
DEFAULT_ISOCURVATURE = (1.0, 1.0, 0.0)


AnalyticTerms = namedtuple(
    "AnalyticTerms", ["amplitude", "tilt", "running", "is_non_zero"]
)


def _adiabatic(params, ic):
    return params.A_s, params.n_s, params.alpha_s


def _isocurvature(params, ic):
    f, n, alpha = params.isocurvature.get(ic.value, DEFAULT_ISOCURVATURE)
    return params.A_s * f**2, n, alpha


def _tensor(params, ic):
    return params.A_s * params.r, params.n_t + 1.0, params.alpha_t


# (amplitude, tilt, running) of the auto-spectrum of each initial condition
DIAGONAL_SPECTRA = {
    InitialCondition.AD: _adiabatic,
    InitialCondition.BI: _isocurvature,
    InitialCondition.CDI: _isocurvature,
    InitialCondition.NID: _isocurvature,
    InitialCondition.NIV: _isocurvature,
    InitialCondition.TEN: _tensor,
}

# Pairs of scalar initial conditions that may be correlated
CROSS_SPECTRA = frozenset(
    frozenset((ic1, ic2))
    for i, ic1 in enumerate((InitialCondition.AD,) + ISOCURVATURE)
    for ic2 in ((InitialCondition.AD,) + ISOCURVATURE)[i + 1 :]
)


def parse_initial_conditions(names, mode):
    """
    Convert initial-condition names into InitialCondition members.

    Parameters
    ----------
    names : iterable of str or InitialCondition
        Requested initial conditions for the scalar mode. Ignored for
        tensors, which always have the single initial condition "ten".
    mode : Mode
        Perturbation mode.

    Returns
    -------
    tuple of InitialCondition
    """
    if mode == Mode.TENSORS:
        return (InitialCondition.TEN,)

    ics = []
    for name in names:
        try:
            ic = InitialCondition(name)
        except ValueError:
            raise PrimordialError(
                f"unknown initial condition {name!r}; expected one of "
                f"{[ic.value for ic in (InitialCondition.AD,) + ISOCURVATURE]}"
            )
        if ic == InitialCondition.TEN:
            raise PrimordialError(
                "the tensor initial condition cannot be used for scalars"
            )
        if ic in ics:
            raise PrimordialError(f"initial condition {ic.value!r} repeated")
        ics.append(ic)
    if not ics:
        raise PrimordialError("no initial condition requested for scalars")
    return tuple(ics)


def cross_correlation(params, ic1, ic2):
    """
    (c, n, alpha) of the correlation between two scalar initial
    conditions, zero if the pair is not listed in params.correlations.
    """
    if frozenset((ic1, ic2)) not in CROSS_SPECTRA:
        raise ValueError(f"no cross spectrum between {ic1} and {ic2}")
    for key in ((ic1.value, ic2.value), (ic2.value, ic1.value)):
        if key in params.correlations:
            return tuple(params.correlations[key])
    return 0.0, 0.0, 0.0


def analytic_spectrum_init(params, mode, ics):
    """
    Amplitudes, tilts and runnings of all pairs of initial conditions of
    one mode, in the packed upper-triangular order of pair_index.

    Parameters
    ----------
    params : PrimordialParams
        Physical parameters.
    mode : Mode
        Perturbation mode.
    ics : tuple of InitialCondition
        Initial conditions of this mode.

    Returns
    -------
    AnalyticTerms
        Arrays of size n(n+1)/2 with n = len(ics).
    """
    n = len(ics)
    amplitude = np.zeros(pair_size(n))
    tilt = np.zeros(pair_size(n))
    running = np.zeros(pair_size(n))
    is_non_zero = np.zeros(pair_size(n), dtype=bool)

    for i, ic in enumerate(ics):
        index = pair_index(i, i, n)
        A, n_i, alpha_i = DIAGONAL_SPECTRA[ic](params, ic)
        if A <= 0.0:
            raise PrimordialError(
                f"{mode.value}: amplitude of the {ic.value} mode is {A:e}, "
                "it should be strictly positive"
            )
        amplitude[index] = A
        tilt[index] = n_i
        running[index] = alpha_i
        is_non_zero[index] = True

    for i in range(n):
        for j in range(i + 1, n):
            index = pair_index(i, j, n)
            c, n_c, alpha_c = cross_correlation(params, ics[i], ics[j])
            if c < -1.0 or c > 1.0:
                raise PrimordialError(
                    f"{mode.value}: correlation between {ics[i].value} and "
                    f"{ics[j].value} is {c:g}, it should lie in [-1, 1]"
                )
            ii = pair_index(i, i, n)
            jj = pair_index(j, j, n)
            amplitude[index] = np.sqrt(amplitude[ii] * amplitude[jj]) * c
            tilt[index] = 0.5 * (tilt[ii] + tilt[jj]) + n_c
            running[index] = 0.5 * (running[ii] + running[jj]) + alpha_c
            is_non_zero[index] = c != 0.0

    return AnalyticTerms(amplitude, tilt, running, is_non_zero)


def analytic_spectrum(k, terms, index, k_pivot):
    """
    P(k) = A exp((n - 1) ln(k/k_pivot) + alpha/2 ln^2(k/k_pivot)) for the
    pair stored at index, zero for an uncorrelated pair.

    Parameters
    ----------
    k : float or array-like
        Wavenumber in 1/Mpc.
    terms : NamedTuple (AnalyticTerms)
        Output of analytic_spectrum_init.
    index : int
        Packed pair index.
    k_pivot : float
        Pivot wavenumber in 1/Mpc.
    """
    if not terms.is_non_zero[index]:
        return 0.0 * np.asarray(k, dtype=float)
    lnkk = np.log(k / k_pivot)
    return terms.amplitude[index] * np.exp(
        (terms.tilt[index] - 1.0) * lnkk
        + 0.5 * terms.running[index] * lnkk**2
    )
