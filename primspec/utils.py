# Global
import numpy as np

# Local
import jax

jax.config.update("jax_enable_x64", True)

# Sparsest sampling of the primordial spectrum that is not considered a typo
K_PER_DECADE_PRIMORDIAL_MIN = 1.0


# Create an Exception class for all fatal errors of the primordial module
class PrimordialError(Exception):
    pass


# Utils for the k-grid
def get_lnk_list(k_min, k_max, k_per_decade):
    """
    Build the list of ln(k) values on which the primordial spectrum is
    tabulated. The first node is exactly ln(k_min), the nodes are
    equally spaced in ln(k) and the last node is the first one that is
    larger than or equal to ln(k_max).

    Parameters
    ----------
    k_min : float
        Smallest wavenumber (in 1/Mpc) that must be covered.
    k_max : float
        Largest wavenumber (in 1/Mpc) that must be covered.
    k_per_decade : float
        Number of nodes per decade in k.

    Returns
    -------
    lnk : numpy.ndarray
        Monotonically increasing array of ln(k).
    """
    if k_min <= 0.0 or k_max <= k_min:
        raise PrimordialError(
            f"inconsistent values of kmin={k_min:e}, kmax={k_max:e}"
        )
    if k_per_decade <= K_PER_DECADE_PRIMORDIAL_MIN:
        raise PrimordialError(
            f"k_per_decade_primordial = {k_per_decade:e}: you ask for such a "
            "sparse sampling of the primordial spectrum that this is "
            "probably a mistake"
        )

    lnk_size = int(np.log(k_max / k_min) / np.log(10.0) * k_per_decade) + 2
    return np.log(k_min) + np.arange(lnk_size) * np.log(10.0) / k_per_decade


# Utils for symmetric matrices of initial conditions
def pair_index(i, j, n):
    """
    Linear offset of the pair (i, j) in a packed upper-triangular matrix of
    size n. The pairs are stored row by row, (0, 0), (0, 1), ..., (0, n-1),
    (1, 1), ... so that there are n(n+1)/2 of them in total.

    Parameters
    ----------
    i : int
        Row index, must satisfy 0 <= i <= j.
    j : int
        Column index, must satisfy i <= j < n.
    n : int
        Size of the matrix.

    Returns
    -------
    int
        Offset of the pair in the packed storage.
    """
    if not 0 <= i <= j < n:
        raise ValueError(
            f"pair_index needs 0 <= i <= j < n, got i={i}, j={j}, n={n}"
        )
    return i * n - i * (i - 1) // 2 + (j - i)


def pair_size(n):
    """Number of independent pairs among n initial conditions."""
    return n * (n + 1) // 2


# Utils for spectral parameters
def finite_difference_parameters(lnpk_minus, lnpk_pivot, lnpk_plus, dlnk):
    """
    First and second logarithmic derivative of a spectrum from a two-sided
    difference around the pivot.

    Parameters
    ----------
    lnpk_minus, lnpk_pivot, lnpk_plus : float
        ln P at ln(k_pivot) - dlnk, ln(k_pivot) and ln(k_pivot) + dlnk.
    dlnk : float
        Step in ln(k).

    Returns
    -------
    tilt : float
        d ln P / d ln k at the pivot.
    running : float
        d^2 ln P / d ln k^2 at the pivot.
    """
    tilt = (lnpk_plus - lnpk_minus) / (2.0 * dlnk)
    running = (lnpk_plus - 2.0 * lnpk_pivot + lnpk_minus) / dlnk**2
    return tilt, running
