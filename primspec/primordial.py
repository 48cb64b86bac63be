# Primordial spectrum context: builds the table of ln P(k) for each mode and
# each pair of initial conditions, either from the analytic parametrisation or
# from a numerical integration of inflation, and serves interpolated values.

# Global
import logging

import numpy as np
import matplotlib.pyplot as plt
from scipy.interpolate import CubicSpline

# Local
from primspec.analytic import (
    InitialCondition,
    Mode,
    analytic_spectrum,
    analytic_spectrum_init,
    parse_initial_conditions,
)
from primspec.ms_solver import InflationSolver
from primspec.params import SPECTRUM_TYPES, PrecisionParams, PrimordialParams
from primspec.potential import potential_from_params
from primspec.utils import (
    PrimordialError,
    finite_difference_parameters,
    get_lnk_list,
    pair_index,
    pair_size,
)


class PrimordialSpectrum:
    """
    Tabulated primordial power spectra between k_min and k_max.

    For every mode (scalars, and tensors if requested) the table
    ``lnpk[mode]`` has one row per ln(k) node and one column per pair of
    initial conditions (packed as in ``primspec.utils.pair_index``). Diagonal
    columns hold ln P; off-diagonal columns hold the cosine of the
    correlation angle, P_12 / sqrt(P_11 P_22), and are zero for uncorrelated
    pairs.

    Parameters
    ----------
    params : PrimordialParams
        Physical parameters.
    k_min : float
        Smallest wavenumber in 1/Mpc that must be covered.
    k_max : float
        Largest wavenumber in 1/Mpc that must be covered.
    prec : PrecisionParams, optional
        Precision parameters. The default precision parameters are used if
        None.
    """

    def __init__(self, params, k_min, k_max, prec=None):
        if prec is None:
            prec = PrecisionParams()
        if not isinstance(params, PrimordialParams):
            raise ValueError("params must be a PrimordialParams instance")
        if params.spectrum_type not in SPECTRUM_TYPES:
            raise PrimordialError(
                f"spectrum_type {params.spectrum_type!r} not coded; "
                f"expected one of {SPECTRUM_TYPES}"
            )
        if params.k_pivot <= 0.0:
            raise PrimordialError(
                "k_pivot negative or null: stop to avoid segmentation fault"
            )

        self.params = params
        self.prec = prec
        self.k_pivot = params.k_pivot
        self.spectrum_type = params.spectrum_type

        self.modes = [Mode.SCALARS]
        if params.has_tensors:
            self.modes.append(Mode.TENSORS)
        self.ics = {
            mode: parse_initial_conditions(params.initial_conditions, mode)
            for mode in self.modes
        }

        self.lnk = get_lnk_list(k_min, k_max, prec.k_per_decade_primordial)
        logging.info(
            f"Computing primordial spectra ({self.spectrum_type}) on "
            f"{len(self.lnk)} wavenumbers"
        )

        self.lnpk = {}
        self.is_non_zero = {}
        self.analytic_terms = {}
        if self.spectrum_type == "analytic":
            self._fill_analytic()
        else:
            self._fill_inflation()

        self.splines = {
            mode: CubicSpline(self.lnk, self.lnpk[mode], axis=0)
            for mode in self.modes
        }

        self._derived_parameters()

    def ic_size(self, mode):
        """Number of initial conditions of a mode."""
        return len(self.ics[mode])

    def _fill_analytic(self):
        k = np.exp(self.lnk)
        for mode in self.modes:
            ics = self.ics[mode]
            n = len(ics)
            terms = analytic_spectrum_init(self.params, mode, ics)
            self.analytic_terms[mode] = terms
            self.is_non_zero[mode] = terms.is_non_zero

            table = np.zeros((len(k), pair_size(n)))
            for i in range(n):
                ii = pair_index(i, i, n)
                table[:, ii] = np.log(
                    analytic_spectrum(k, terms, ii, self.k_pivot)
                )
            for i in range(n):
                for j in range(i + 1, n):
                    ij = pair_index(i, j, n)
                    if not terms.is_non_zero[ij]:
                        continue
                    p_12 = analytic_spectrum(k, terms, ij, self.k_pivot)
                    table[:, ij] = p_12 / np.sqrt(
                        np.exp(
                            table[:, pair_index(i, i, n)]
                            + table[:, pair_index(j, j, n)]
                        )
                    )
            self.lnpk[mode] = table

    def _fill_inflation(self):
        if not self.params.has_tensors:
            raise PrimordialError(
                "inflationary module cannot work if you do not ask for "
                "tensor modes"
            )
        if self.ics[Mode.SCALARS] != (InitialCondition.AD,):
            raise PrimordialError(
                "inflationary module cannot work if you ask for isocurvature "
                "modes"
            )

        solver = InflationSolver(potential_from_params(self.params), self.prec)
        lnpk_scalar, lnpk_tensor = solver.solve(self.lnk, self.k_pivot)

        self.lnpk[Mode.SCALARS] = np.asarray(lnpk_scalar).reshape(-1, 1)
        self.lnpk[Mode.TENSORS] = np.asarray(lnpk_tensor).reshape(-1, 1)
        for mode in self.modes:
            self.is_non_zero[mode] = np.ones(1, dtype=bool)
        for lnk, lnps, lnpt in zip(self.lnk, lnpk_scalar, lnpk_tensor):
            logging.debug(
                f"k={np.exp(lnk):e}: P_R={np.exp(lnps):e}, "
                f"P_h={np.exp(lnpt):e}"
            )

    def _analytic_at_k(self, mode, k, logarithmic):
        ics = self.ics[mode]
        n = len(ics)
        terms = self.analytic_terms[mode]
        pk = np.zeros(pair_size(n))
        for i in range(n):
            ii = pair_index(i, i, n)
            pk[ii] = analytic_spectrum(k, terms, ii, self.k_pivot)
        for i in range(n):
            for j in range(i + 1, n):
                ij = pair_index(i, j, n)
                pk[ij] = analytic_spectrum(k, terms, ij, self.k_pivot)
                if logarithmic:
                    pk[ij] /= np.sqrt(
                        pk[pair_index(i, i, n)] * pk[pair_index(j, j, n)]
                    )
        if logarithmic:
            for i in range(n):
                ii = pair_index(i, i, n)
                pk[ii] = np.log(pk[ii])
        return pk

    def spectrum_at_k(self, mode, value, logarithmic=False):
        """
        Primordial spectra of one mode at a single wavenumber, for all pairs
        of initial conditions.

        Parameters
        ----------
        mode : Mode
            Perturbation mode.
        value : float
            k in 1/Mpc, or ln(k) if logarithmic is True.
        logarithmic : bool, optional
            If False (default), return P on the diagonal and the cross
            spectra P_12 off the diagonal (zero when uncorrelated). If True,
            return ln P on the diagonal and the cosine of the correlation
            angle off the diagonal.

        Returns
        -------
        numpy.ndarray
            One value per pair of initial conditions.
        """
        if mode not in self.lnpk:
            raise PrimordialError(f"mode {mode} was not computed")
        if not logarithmic and not value > 0.0:
            raise PrimordialError(f"k = {float(value):e}")
        lnk = float(value) if logarithmic else float(np.log(value))

        if lnk < self.lnk[0] or lnk > self.lnk[-1]:
            if self.spectrum_type == "analytic":
                return self._analytic_at_k(mode, np.exp(lnk), logarithmic)
            raise PrimordialError(
                f"k={np.exp(lnk):e} out of range "
                f"[{np.exp(self.lnk[0]):e} : {np.exp(self.lnk[-1]):e}]"
            )

        pk = np.array(self.splines[mode](lnk), dtype=float)
        if logarithmic:
            return pk

        n = self.ic_size(mode)
        for i in range(n):
            ii = pair_index(i, i, n)
            pk[ii] = np.exp(pk[ii])
        for i in range(n):
            for j in range(i + 1, n):
                ij = pair_index(i, j, n)
                if self.is_non_zero[mode][ij]:
                    pk[ij] *= np.sqrt(
                        pk[pair_index(i, i, n)] * pk[pair_index(j, j, n)]
                    )
                else:
                    pk[ij] = 0.0
        return pk

    def _derived_parameters(self):
        """
        A_s, n_s, alpha_s (and r, n_t, alpha_t with tensors) at the pivot.
        Given directly in analytic mode, measured on the table otherwise.
        """
        if self.spectrum_type == "analytic":
            self.A_s = self.params.A_s
            self.n_s = self.params.n_s
            self.alpha_s = self.params.alpha_s
            self.r = self.params.r
            self.n_t = self.params.n_t
            self.alpha_t = self.params.alpha_t
            return

        dlnk = np.log(10.0) / self.prec.k_per_decade_primordial
        lnk_pivot = np.log(self.k_pivot)

        def lnpk_around_pivot(mode):
            return [
                self.spectrum_at_k(mode, lnk_pivot + shift, True)[0]
                for shift in (-dlnk, 0.0, dlnk)
            ]

        minus, pivot, plus = lnpk_around_pivot(Mode.SCALARS)
        tilt, self.alpha_s = finite_difference_parameters(
            minus, pivot, plus, dlnk
        )
        self.A_s = float(np.exp(pivot))
        self.n_s = tilt + 1.0

        minus, pivot, plus = lnpk_around_pivot(Mode.TENSORS)
        self.n_t, self.alpha_t = finite_difference_parameters(
            minus, pivot, plus, dlnk
        )
        self.r = float(np.exp(pivot)) / self.A_s

        logging.info(
            f"Scalar spectrum: A_s={self.A_s:e}, n_s={self.n_s:f}, "
            f"alpha_s={self.alpha_s:e}"
        )
        logging.info(
            f"Tensor spectrum: r={self.r:e}, n_t={self.n_t:e}, "
            f"alpha_t={self.alpha_t:e}"
        )

    def plot_spectrum(self, n_points=200):
        """
        Plots the auto-spectra of all modes and initial conditions over the
        tabulated range.

        Parameters
        ----------
        n_points : int, optional
            Number of points to plot, by default 200.

        Returns
        -------
        fig : matplotlib.figure.Figure
            The matplotlib figure object containing the plot.
        """
        lnk = np.linspace(self.lnk[0], self.lnk[-1], n_points)
        k = np.exp(lnk)

        fig, ax = plt.subplots()
        for mode in self.modes:
            n = self.ic_size(mode)
            for i, ic in enumerate(self.ics[mode]):
                ii = pair_index(i, i, n)
                pk = np.exp(self.splines[mode](lnk)[:, ii])
                ax.loglog(k, pk, label=f"{mode.value} ({ic.value})")
        ax.axvline(self.k_pivot, color="k", ls="--")
        ax.set_xlabel("$k$ [1/Mpc]")
        ax.set_ylabel("$P(k)$")
        ax.legend()
        return fig
