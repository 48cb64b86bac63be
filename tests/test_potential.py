# Global
import unittest
import numpy as np

# Local
from primspec.params import PrimordialParams
from primspec.potential import (
    PotentialParams,
    check_potential,
    polynomial_potential,
    potential_from_params,
    potential_is_valid,
    slow_roll_epsilon,
    slow_roll_predictions,
)
from primspec.utils import PrimordialError


# Quadratic potential with the pivot ~55 e-folds before the end of inflation
QUADRATIC = potential_from_params(PrimordialParams())


class TestPotential(unittest.TestCase):

    def test_taylor_expansion(self):
        """
        The potential and its derivatives match the Taylor expansion
        around the pivot.
        """
        pot = PotentialParams(1.0, -2.0, 3.0, -4.0, 5.0, 0.5)
        x = 0.3
        V, dV, ddV = polynomial_potential(0.5 + x, pot)

        self.assertAlmostEqual(
            V, 1.0 - 2.0 * x + 1.5 * x**2 - 4.0 / 6.0 * x**3 + 5.0 / 24.0 * x**4
        )
        self.assertAlmostEqual(
            dV, -2.0 + 3.0 * x - 2.0 * x**2 + 5.0 / 6.0 * x**3
        )
        self.assertAlmostEqual(ddV, 3.0 - 4.0 * x + 2.5 * x**2)

    def test_value_at_pivot(self):
        V, dV, ddV = polynomial_potential(QUADRATIC.phi_pivot, QUADRATIC)
        self.assertEqual(V, QUADRATIC.V0)
        self.assertEqual(dV, QUADRATIC.V1)
        self.assertEqual(ddV, QUADRATIC.V2)

    def test_validity(self):
        """
        The quadratic potential is valid up to its minimum at
        phi = -V1/V2 and invalid beyond.
        """
        phi_min = -QUADRATIC.V1 / QUADRATIC.V2
        self.assertTrue(bool(potential_is_valid(0.0, QUADRATIC)))
        self.assertTrue(bool(potential_is_valid(phi_min - 0.1, QUADRATIC)))
        self.assertFalse(bool(potential_is_valid(phi_min + 0.1, QUADRATIC)))

        check_potential(0.0, QUADRATIC)
        with self.assertRaises(PrimordialError):
            check_potential(phi_min + 0.1, QUADRATIC)

    def test_negative_potential(self):
        pot = PotentialParams(1.0, -1.0, 0.0, 0.0, 0.0, 0.0)
        with self.assertRaises(PrimordialError) as context:
            check_potential(2.0, pot)
        self.assertIn("negative", str(context.exception))

    def test_slow_roll_predictions(self):
        """
        For the quadratic model epsilon = eta at the pivot, so that
        n_s - 1 = -4 epsilon, r = 16 epsilon and n_t = -2 epsilon.
        """
        eps = float(slow_roll_epsilon(QUADRATIC.phi_pivot, QUADRATIC))
        pred = slow_roll_predictions(QUADRATIC)

        self.assertAlmostEqual(pred["n_s"], 1.0 - 4.0 * eps, places=3)
        self.assertAlmostEqual(pred["r"], 16.0 * eps, places=10)
        self.assertAlmostEqual(pred["n_t"], -2.0 * eps, places=10)
        np.testing.assert_allclose(pred["A_s"], 2.1e-9, rtol=0.05)
        np.testing.assert_allclose(pred["A_t"], pred["r"] * pred["A_s"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
