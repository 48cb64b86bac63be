# Module that computes the primordial spectra of a single inflaton field with a
# given potential. First the initial field value is found by shooting from the
# pivot scale, then the background is evolved and the Mukhanov-Sasaki and
# tensor mode equations are integrated for each wavenumber until the curvature
# spectrum has frozen.

# Global
import logging
from functools import partial

import numpy as np
import matplotlib.pyplot as plt

# Local
import jax
from jax import numpy as jnp
from jax import lax

from primspec.background import (
    IDX,
    IterationResult,
    Status,
    conformal_hubble,
    effective_masses,
    evolve_background,
    find_attractor,
    inflation_derivs,
    raise_for_status,
    reach_aH,
    _reach_aH_loop,
    _step_status,
)
from primspec.ode import integrate
from primspec.params import PrecisionParams
from primspec.potential import (
    PotentialParams,
    check_potential,
    polynomial_potential,
    potential_from_params,
    potential_is_valid,
    slow_roll_predictions,
)
from primspec.utils import PrimordialError

jax.config.update("jax_enable_x64", True)


_OK = int(Status.OK)
_MAX_STEPS = int(Status.MAX_STEPS)


def bunch_davies_state(k, y_bg):
    """
    Full state vector with the background y_bg and both modes in the
    Bunch-Davies vacuum, ksi = ah = exp(-ik tau)/sqrt(2k).
    """
    norm = 1.0 / jnp.sqrt(2.0 * k)
    y = jnp.zeros(IDX.size, dtype=jnp.float64)
    y = y.at[: IDX.bg_size].set(y_bg)
    y = y.at[IDX.ksi_re].set(norm)
    y = y.at[IDX.dksi_im].set(-k * norm)
    y = y.at[IDX.ah_re].set(norm)
    y = y.at[IDX.dah_im].set(-k * norm)
    return y


def mode_spectra(k, y, pot):
    """
    Curvature and tensor power spectra of the modes stored in y.

    Returns
    -------
    aH : float
        Conformal Hubble rate.
    curvature : float
        P_R = k^3/(2 pi^2) |ksi|^2 / z^2 with z = a dphi / aH.
    tensor : float
        P_h = 32 k^3 / pi |ah|^2 / a^2.
    """
    aH = conformal_hubble(y, pot)
    a = y[IDX.a]
    z = a * y[IDX.dphi] / aH
    ksi2 = y[IDX.ksi_re] ** 2 + y[IDX.ksi_im] ** 2
    ah2 = y[IDX.ah_re] ** 2 + y[IDX.ah_im] ** 2
    curvature = k**3 / (2.0 * jnp.pi**2) * ksi2 / z**2
    tensor = 32.0 * k**3 / jnp.pi * ah2 / a**2
    return aH, curvature, tensor


def _perturbation_stepsize(k, y, pot, prec):
    """A fixed fraction of the oscillation period of the curvature mode, or
    of 2 pi / k once the mode is frozen."""
    aH = conformal_hubble(y, pot)
    _, dV, ddV = polynomial_potential(y[IDX.phi], pot)
    a2 = y[IDX.a] ** 2
    zpp_over_z, _ = effective_masses(aH, y[IDX.dphi], a2 * dV, a2 * ddV)
    omega = jnp.sqrt(jnp.abs(k * k - zpp_over_z))
    return prec.inflation_pt_stepsize * 2.0 * jnp.pi / jnp.maximum(omega, k)


def _one_k_loop(k, y_bg, pot, prec):
    args = (pot, k)
    solver_opts = prec.solver_options

    def advance(operand):
        y, tau, dtau = operand
        return integrate(
            inflation_derivs, tau, tau + dtau, y, args, solver_opts
        )

    def hold(operand):
        return operand[0], jnp.asarray(False)

    def cond(carry):
        y, tau, dtau, curvature, dlnPdN, status, n = carry
        aH = conformal_hubble(y, pot)
        not_frozen = (k / aH >= prec.inflation_ratio_max) | (
            jnp.abs(dlnPdN) > prec.inflation_tol_curvature
        )
        return (
            (status == _OK)
            & (n < prec.inflation_max_steps)
            & (~potential_is_valid(y[IDX.phi], pot) | not_frozen)
        )

    def body(carry):
        y, tau, dtau, curvature_old, _, status, n = carry
        valid = potential_is_valid(y[IDX.phi], pot)
        y_new, ok = lax.cond(valid, advance, hold, (y, tau, dtau))

        aH, curvature_new, _ = mode_spectra(k, y_new, pot)
        # The first step has no previous value and never counts as frozen
        dlnPdN = jnp.where(
            jnp.isfinite(curvature_old),
            (curvature_new - curvature_old) / (curvature_new * aH * dtau),
            jnp.inf,
        )

        new_status = _step_status(valid, ok, status)
        y_next = jnp.where(valid & ok, y_new, y)
        return (
            y_next,
            tau + dtau,
            _perturbation_stepsize(k, y_next, pot, prec),
            curvature_new,
            dlnPdN,
            new_status.astype(status.dtype),
            n + 1,
        )

    y = bunch_davies_state(k, y_bg)
    init = (
        y,
        jnp.zeros((), dtype=y.dtype),
        _perturbation_stepsize(k, y, pot, prec),
        jnp.asarray(jnp.inf, dtype=y.dtype),
        jnp.asarray(jnp.inf, dtype=y.dtype),
        jnp.asarray(_OK, dtype=jnp.int32),
        jnp.asarray(0, dtype=jnp.int32),
    )
    y, _, _, _, _, status, n = lax.while_loop(cond, body, init)
    status = jnp.where(
        (status == _OK) & (n >= prec.inflation_max_steps), _MAX_STEPS, status
    ).astype(jnp.int32)

    _, curvature, tensor = mode_spectra(k, y, pot)
    return curvature, tensor, y[IDX.phi], status


def _solve_k(k, y_ini, pot, prec):
    """Evolve the background from y_ini until k/aH = ratio_min, then follow
    the modes of wavenumber k."""
    aH_stop = k / prec.inflation_ratio_min
    y_bg, status = _reach_aH_loop(y_ini, pot, aH_stop, prec)
    curvature, tensor, phi, status_k = _one_k_loop(k, y_bg, pot, prec)
    phi = jnp.where(status == _OK, phi, y_bg[IDX.phi])
    status = jnp.where(status == _OK, status_k, status)
    return curvature, tensor, phi, status


_one_k = jax.jit(_one_k_loop, static_argnums=(3,))
_solve_single_k = jax.jit(_solve_k, static_argnums=(3,))


@partial(jax.jit, static_argnums=(3,))
def _solve_all_k(k, y_ini, pot, prec):
    """Vectorised version of _solve_k over an array of wavenumbers."""
    return jax.vmap(lambda kk: _solve_k(kk, y_ini, pot, prec))(k)


def check_spectra(k, curvature, tensor):
    """Raise a PrimordialError unless both spectra are strictly positive."""
    if not curvature > 0.0:
        raise PrimordialError(
            f"negative curvature spectrum at k={float(k):e}: "
            f"P_R={float(curvature):e}"
        )
    if not tensor > 0.0:
        raise PrimordialError(
            f"negative tensor spectrum at k={float(k):e}: "
            f"P_h={float(tensor):e}"
        )


def one_k(k, y_bg, pot, prec):
    """
    Integrates the curvature and tensor modes of wavenumber k, starting in
    the Bunch-Davies vacuum at the background state y_bg, until the mode is
    well outside the horizon and the curvature spectrum has frozen.

    Parameters
    ----------
    k : float
        Wavenumber in 1/Mpc (with the scale factor normalised at the pivot).
    y_bg : array-like
        Background state [a, phi, dphi], usually with k/aH = ratio_min.
    pot : NamedTuple (PotentialParams)
        Potential coefficients.
    prec : PrecisionParams
        Precision parameters.

    Returns
    -------
    curvature : float
        Curvature power spectrum P_R(k).
    tensor : float
        Tensor power spectrum P_h(k).
    """
    y_bg = jnp.asarray(y_bg, dtype=jnp.float64)[: IDX.bg_size]
    curvature, tensor, phi, status = _one_k(float(k), y_bg, pot, prec)
    raise_for_status(
        status, phi, pot, prec, f"integrating the modes of k={float(k):e}"
    )
    check_spectra(k, curvature, tensor)
    return float(curvature), float(tensor)


class InflationSolver:
    """
    This class computes the primordial curvature and tensor spectra of a
    single inflaton field rolling down a polynomial potential
    V(phi) = V0 + V1 x + V2 x^2/2 + V3 x^3/6 + V4 x^4/24 with
    x = phi - phi_pivot.

    The potential is only needed over the observable window. The pivot
    scale k_pivot crosses the Hubble radius when phi = phi_pivot and the scale
    factor is normalised by a_pivot H_pivot = k_pivot, so that comoving
    wavenumbers are in 1/Mpc.

    Parameters
    ----------
    pot : NamedTuple (PotentialParams) or PrimordialParams
        Potential coefficients, or a parameter set holding them.
    prec : PrecisionParams, optional
        Precision parameters. The default precision parameters are used if
        None.
    """

    def __init__(self, pot, prec=None):
        if not isinstance(pot, PotentialParams):
            pot = potential_from_params(pot)
        if prec is None:
            prec = PrecisionParams()
        self.pot = pot
        self.prec = prec

    def find_attractor(self, phi_0, precision):
        """
        Hubble rate and field velocity on the attractor at phi_0.
        See primspec.background.find_attractor.
        """
        return find_attractor(self.pot, phi_0, precision, self.prec)

    def evolve_background(self, y, phi_stop):
        """Evolve the background state y until phi = phi_stop."""
        return evolve_background(y, self.pot, phi_stop, self.prec)

    def reach_aH(self, y, aH_stop):
        """Evolve the background state y until aH = aH_stop."""
        return reach_aH(y, self.pot, aH_stop, self.prec)

    def one_k(self, k, y_bg):
        """Curvature and tensor spectrum at a single wavenumber."""
        return one_k(k, y_bg, self.pot, self.prec)

    def _shoot_initial_field(self, a_pivot, H_pivot, dphidt_pivot, aH_ini):
        """
        Moves the initial field value back in time until the attractor
        solution starting there has aH < aH_ini.

        Returns
        -------
        IterationResult
            value is the tuple (a_ini, phi_ini, dphidt_ini).
        """
        pot, prec = self.pot, self.prec

        a_try = a_pivot
        H_try = H_pivot
        phi_try = pot.phi_pivot
        dphidt_try = dphidt_pivot
        counter = 0

        while a_try * H_try >= aH_ini:
            counter += 1
            if counter >= prec.inflation_phi_ini_maxit:
                return IterationResult(
                    False, (a_try, phi_try, dphidt_try), counter
                )

            V, dV, _ = polynomial_potential(phi_try, pot)
            phi_try += (
                prec.inflation_jump_initial
                * np.log(a_try * H_try / aH_ini)
                * dV
                / V
                / (8.0 * np.pi)
            )

            H_try, dphidt_try = self.find_attractor(
                phi_try, prec.inflation_attractor_precision_initial
            )
            y = self.evolve_background(
                [1.0, phi_try, dphidt_try], pot.phi_pivot
            )
            a_try = a_pivot / float(y[IDX.a])

            logging.debug(
                f"initial field search: iteration {counter}, "
                f"phi_ini={phi_try:g}, a_ini H_ini={a_try * H_try:e}"
            )

        return IterationResult(True, (a_try, phi_try, dphidt_try), counter)

    def initial_state(self, lnk, k_pivot):
        """
        Background state [a, phi, dphi] at which the integration of all
        modes starts, such that the largest scale k_min is still deep inside
        the Hubble radius (k_min / aH > ratio_min).

        Parameters
        ----------
        lnk : array-like
            Tabulated ln(k), in increasing order.
        k_pivot : float
            Pivot wavenumber in 1/Mpc.

        Returns
        -------
        jax.numpy.ndarray
            Initial background state.
        """
        pot, prec = self.pot, self.prec
        k_min = float(np.exp(lnk[0]))
        k_max = float(np.exp(lnk[-1]))

        check_potential(pot.phi_pivot, pot)
        H_pivot, dphidt_pivot = self.find_attractor(
            pot.phi_pivot, prec.inflation_attractor_precision_pivot
        )
        a_pivot = k_pivot / H_pivot
        logging.debug(
            f"pivot: H={H_pivot:e}, dphi/dt={dphidt_pivot:e}, a={a_pivot:e}"
        )

        # Inflation must last until the smallest scale is far outside the
        # Hubble radius
        y = jnp.array([a_pivot, pot.phi_pivot, a_pivot * dphidt_pivot])
        self.reach_aH(y, k_max / prec.inflation_ratio_max)

        aH_ini = k_min / prec.inflation_ratio_min
        result = self._shoot_initial_field(
            a_pivot, H_pivot, dphidt_pivot, aH_ini
        )
        if not result.converged:
            raise PrimordialError(
                f"when searching for an initial value of phi just before "
                f"observable inflation takes place, could not converge after "
                f"{result.iterations} iterations. The potential does not "
                "allow enough inflationary e-folds before reaching the pivot "
                "scale"
            )
        a_ini, phi_ini, dphidt_ini = result.value

        y_ini = jnp.array([a_ini, phi_ini, a_ini * dphidt_ini])
        check_potential(phi_ini, pot)
        if not float(conformal_hubble(y_ini, pot)) < aH_ini:
            raise PrimordialError(
                "at initial time, a_k_min > a*H*ratio_min"
            )
        logging.debug(
            f"initial state found after {result.iterations} iterations: "
            f"phi_ini={phi_ini:g}, a_ini={a_ini:e}"
        )
        return y_ini

    def spectra(self, lnk, y_ini):
        """
        Curvature and tensor spectra on the grid lnk, starting every mode
        from the background state y_ini.

        Returns
        -------
        curvature, tensor : numpy.ndarray
            P_R(k) and P_h(k) at each node.
        """
        pot, prec = self.pot, self.prec
        k = np.exp(np.asarray(lnk, dtype=np.float64))

        if prec.inflation_vectorize_k:
            curvature, tensor, phi, status = _solve_all_k(
                jnp.asarray(k), y_ini, pot, prec
            )
        else:
            results = [
                _solve_single_k(float(kk), y_ini, pot, prec) for kk in k
            ]
            curvature, tensor, phi, status = (
                jnp.stack(column) for column in zip(*results)
            )

        curvature = np.asarray(curvature)
        tensor = np.asarray(tensor)
        for i, kk in enumerate(k):
            raise_for_status(
                status[i],
                phi[i],
                pot,
                prec,
                f"integrating the modes of k={kk:e}",
            )
            check_spectra(kk, curvature[i], tensor[i])
        return curvature, tensor

    def solve(self, lnk, k_pivot):
        """
        Computes ln P_R and ln P_h on the grid lnk.

        Parameters
        ----------
        lnk : array-like
            Tabulated ln(k) in increasing order, k in 1/Mpc.
        k_pivot : float
            Pivot wavenumber in 1/Mpc.

        Returns
        -------
        lnpk_scalar, lnpk_tensor : numpy.ndarray
            Logarithm of the curvature and tensor spectra.
        """
        y_ini = self.initial_state(lnk, k_pivot)
        curvature, tensor = self.spectra(lnk, y_ini)
        logging.info(
            f"inflation solved for {len(curvature)} wavenumbers between "
            f"k={np.exp(lnk[0]):e} and k={np.exp(lnk[-1]):e}"
        )
        return np.log(curvature), np.log(tensor)

    def slow_roll_predictions(self):
        """Leading-order slow-roll A_s, r, n_s, n_t and A_t at the pivot."""
        return slow_roll_predictions(self.pot)

    def plot_potential(self, phi_range=None, n_points=1000, relative=False):
        """
        Plots the potential around the pivot field value.

        Parameters
        ----------
        phi_range : tuple, optional
            Range of the field, by default one unit on either side of
            phi_pivot.
        n_points : int, optional
            Number of points to plot, by default 1000.
        relative : bool, optional
            If True, plot V/V0 against phi - phi_pivot.

        Returns
        -------
        fig : matplotlib.figure.Figure
            The matplotlib figure object containing the plot.
        """
        if phi_range is None:
            phi_range = (self.pot.phi_pivot - 1.0, self.pot.phi_pivot + 1.0)
        phi = jnp.linspace(*phi_range, n_points)
        V, _, _ = polynomial_potential(phi, self.pot)
        if relative:
            V = V / self.pot.V0
            phi = phi - self.pot.phi_pivot
            labels = ["$V/V_0$", "$\\phi-\\phi_*$"]
        else:
            labels = ["$V$", "$\\phi$"]

        fig, ax = plt.subplots()
        ax.plot(phi, V)
        ax.axvline(
            0.0 if relative else self.pot.phi_pivot, color="k", ls="--"
        )
        ax.set_xlabel(labels[1])
        ax.set_ylabel(labels[0])
        return fig


if __name__ == "__main__":
    from primspec.params import PrimordialParams
    from primspec.utils import get_lnk_list

    logging.basicConfig(level=logging.INFO)

    solver = InflationSolver(PrimordialParams())
    lnk = get_lnk_list(1e-4, 1.0, 10.0)
    lnpk_scalar, lnpk_tensor = solver.solve(lnk, 0.05)

    fig, ax = plt.subplots()
    ax.loglog(np.exp(lnk), np.exp(lnpk_scalar), label="$P_\\mathcal{R}$")
    ax.loglog(np.exp(lnk), np.exp(lnpk_tensor), label="$P_h$")
    ax.set_xlabel("$k$ [1/Mpc]")
    ax.legend()
    plt.show()
