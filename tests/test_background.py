# Global
import unittest
import numpy as np
import jax.numpy as jnp

# Local
from primspec.background import (
    IDX,
    Status,
    conformal_hubble,
    evolve_background,
    find_attractor,
    inflation_derivs,
    raise_for_status,
    reach_aH,
    slow_roll_velocity,
)
from primspec.params import PrecisionParams, PrimordialParams
from primspec.potential import PotentialParams, potential_from_params
from primspec.utils import PrimordialError


QUADRATIC = potential_from_params(PrimordialParams())
PREC = PrecisionParams()


def slow_roll_state(phi, pot, a=1.0):
    return jnp.array([a, phi, a * slow_roll_velocity(phi, pot)])


class TestDerivatives(unittest.TestCase):

    def test_indices(self):
        self.assertEqual(IDX.bg_size, 3)
        self.assertEqual(IDX.size, 11)
        self.assertEqual(
            sorted(IDX[: IDX.size]), list(range(IDX.size))
        )

    def test_background_derivatives(self):
        """
        a' = a^2 H, phi' = dphi and the Klein-Gordon equation.
        """
        y = slow_roll_state(0.0, QUADRATIC, a=2.0)
        dy = inflation_derivs(0.0, y, (QUADRATIC, 0.0))
        aH = conformal_hubble(y, QUADRATIC)

        self.assertEqual(dy.shape, (IDX.bg_size,))
        np.testing.assert_allclose(dy[IDX.a], y[IDX.a] * aH)
        self.assertEqual(dy[IDX.phi], y[IDX.dphi])
        np.testing.assert_allclose(
            dy[IDX.dphi],
            -2.0 * aH * y[IDX.dphi] - 4.0 * QUADRATIC.V1,
        )

    def test_mode_derivatives(self):
        """
        Deep inside the horizon the modes oscillate with frequency k.
        """
        y = jnp.zeros(IDX.size).at[: IDX.bg_size].set(
            slow_roll_state(0.0, QUADRATIC)
        )
        y = y.at[IDX.ksi_re].set(1.0).at[IDX.ah_im].set(1.0)
        k = 1e3
        dy = inflation_derivs(0.0, y, (QUADRATIC, k))

        self.assertEqual(dy.shape, (IDX.size,))
        np.testing.assert_allclose(dy[IDX.dksi_re], -k * k, rtol=1e-10)
        np.testing.assert_allclose(dy[IDX.dah_im], -k * k, rtol=1e-10)
        self.assertEqual(dy[IDX.dksi_im], 0.0)


class TestEvolveBackground(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.y0 = slow_roll_state(-0.5, QUADRATIC)
        cls.phi_stops = [-0.3, 0.0, 0.4]
        cls.states = [
            evolve_background(cls.y0, QUADRATIC, phi_stop, PREC)
            for phi_stop in cls.phi_stops
        ]

    def test_lands_on_phi_stop(self):
        for phi_stop, y in zip(self.phi_stops, self.states):
            self.assertAlmostEqual(float(y[IDX.phi]), phi_stop, places=12)

    def test_scale_factor_grows(self):
        """
        a increases monotonically while the field rolls down.
        """
        a = [float(self.y0[IDX.a])] + [float(y[IDX.a]) for y in self.states]
        self.assertTrue(np.all(np.diff(a) > 0.0))

    def test_efolds(self):
        """
        For the quadratic model N = 2 pi (x_1^2 - x_2^2) between two field
        values, with x the distance to the minimum.
        """
        phi_min = -QUADRATIC.V1 / QUADRATIC.V2
        a_1 = float(self.states[0][IDX.a])
        a_2 = float(self.states[2][IDX.a])
        expected = 2.0 * np.pi * (
            (phi_min + 0.3) ** 2 - (phi_min - 0.4) ** 2
        )
        np.testing.assert_allclose(np.log(a_2 / a_1), expected, rtol=0.02)

    def test_epsilon_crossing(self):
        """
        Evolving beyond the end of inflation is fatal.
        """
        phi_min = -QUADRATIC.V1 / QUADRATIC.V2
        phi_end = phi_min - 1.0 / np.sqrt(4.0 * np.pi)
        y = slow_roll_state(phi_end - 0.2, QUADRATIC)
        with self.assertRaises(PrimordialError) as context:
            evolve_background(y, QUADRATIC, phi_min - 0.05, PREC)
        self.assertIn("epsilon", str(context.exception))

    def test_invalid_potential(self):
        """
        Starting where dV/dphi > 0 is fatal.
        """
        phi_min = -QUADRATIC.V1 / QUADRATIC.V2
        y = jnp.array([1.0, phi_min + 0.1, 1e-6])
        with self.assertRaises(PrimordialError) as context:
            evolve_background(y, QUADRATIC, phi_min + 0.2, PREC)
        self.assertIn("dV/dphi", str(context.exception))

    def test_max_steps(self):
        prec = PREC.replace(inflation_max_steps=3)
        with self.assertRaises(PrimordialError) as context:
            evolve_background(self.y0, QUADRATIC, 0.0, prec)
        self.assertIn("steps", str(context.exception))


class TestReachAH(unittest.TestCase):

    def test_reach_aH(self):
        """
        The returned state has aH >= aH_stop, within one step.
        """
        y0 = slow_roll_state(0.0, QUADRATIC)
        aH_0 = float(conformal_hubble(y0, QUADRATIC))
        aH_stop = 50.0 * aH_0
        y = reach_aH(y0, QUADRATIC, aH_stop, PREC)
        aH = float(conformal_hubble(y, QUADRATIC))

        self.assertGreaterEqual(aH, aH_stop)
        self.assertLess(aH, aH_stop * (1.0 + 2.0 * PREC.inflation_bg_stepsize))

    def test_already_reached(self):
        y0 = slow_roll_state(0.0, QUADRATIC)
        aH_0 = float(conformal_hubble(y0, QUADRATIC))
        y = reach_aH(y0, QUADRATIC, 0.5 * aH_0, PREC)
        np.testing.assert_array_equal(np.asarray(y), np.asarray(y0))

    def test_invalid_potential(self):
        """
        Starting beyond the minimum of the potential is fatal.
        """
        phi_min = -QUADRATIC.V1 / QUADRATIC.V2
        y = jnp.array([1.0, phi_min + 0.1, 1e-6])
        with self.assertRaises(PrimordialError) as context:
            reach_aH(y, QUADRATIC, 1.0, PREC)
        self.assertIn("dV/dphi", str(context.exception))


class TestAttractor(unittest.TestCase):

    def test_slow_roll_limit(self):
        """
        On the attractor dphi/dt is close to the slow-roll value, and
        H^2 = 8 pi/3 (dphi_dt^2/2 + V).
        """
        H, dphidt = find_attractor(
            QUADRATIC, 0.0, PREC.inflation_attractor_precision_pivot, PREC
        )
        np.testing.assert_allclose(
            dphidt, slow_roll_velocity(0.0, QUADRATIC), rtol=0.02
        )
        np.testing.assert_allclose(
            H**2,
            8.0 * np.pi / 3.0 * (0.5 * dphidt**2 + QUADRATIC.V0),
            rtol=1e-12,
        )
        self.assertGreater(dphidt, 0.0)

    def test_idempotent(self):
        """
        Two identical calls give identical results.
        """
        first = find_attractor(QUADRATIC, 0.2, 1e-3, PREC)
        second = find_attractor(QUADRATIC, 0.2, 1e-3, PREC)
        self.assertEqual(first, second)

    def test_no_convergence(self):
        prec = PREC.replace(inflation_attractor_maxit=1)
        with self.assertRaises(PrimordialError) as context:
            find_attractor(QUADRATIC, 0.0, 1e-3, prec)
        self.assertIn("attractor", str(context.exception))

    def test_invalid_potential_before_phi_0(self):
        """
        The search steps back in field to where the slope of this potential
        changes sign.
        """
        pot = PotentialParams(1e-12, -1e-10, -1e-10, 0.0, 0.0, 0.0)
        with self.assertRaises(PrimordialError):
            find_attractor(pot, 0.0, 1e-3, PREC)


class TestRaiseForStatus(unittest.TestCase):

    def test_ok(self):
        raise_for_status(Status.OK, 0.0, QUADRATIC, PREC, "testing")

    def test_errors(self):
        for status in (
            Status.EPSILON_CROSSED,
            Status.INTEGRATION_FAILED,
            Status.MAX_STEPS,
        ):
            with self.assertRaises(PrimordialError):
                raise_for_status(
                    jnp.asarray(int(status)), 0.0, QUADRATIC, PREC, "testing"
                )


if __name__ == "__main__":
    unittest.main(verbosity=2)
