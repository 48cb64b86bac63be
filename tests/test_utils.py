# Global
import unittest
import numpy as np

# Local
from primspec import utils as ut


class TestLnkList(unittest.TestCase):

    def test_first_node_and_spacing(self):
        """
        The grid starts exactly at ln(k_min) and is equally spaced with
        k_per_decade nodes per decade.
        """
        lnk = ut.get_lnk_list(1e-4, 1.0, 10.0)

        self.assertEqual(lnk[0], np.log(1e-4))
        np.testing.assert_allclose(np.diff(lnk), np.log(10.0) / 10.0)

    def test_covers_k_max(self):
        """
        The last node is at or beyond ln(k_max).
        """
        for k_per_decade in (2.0, 7.5, 10.0, 33.0):
            lnk = ut.get_lnk_list(3e-5, 0.7, k_per_decade)
            self.assertGreaterEqual(lnk[-1], np.log(0.7))
            self.assertEqual(
                len(lnk), int(np.log10(0.7 / 3e-5) * k_per_decade) + 2
            )

    def test_invalid_input(self):
        """
        Inconsistent wavenumbers or a too sparse sampling are fatal.
        """
        with self.assertRaises(ut.PrimordialError):
            ut.get_lnk_list(0.0, 1.0, 10.0)
        with self.assertRaises(ut.PrimordialError):
            ut.get_lnk_list(1.0, 1.0, 10.0)
        with self.assertRaises(ut.PrimordialError):
            ut.get_lnk_list(1e-4, 1.0, 0.0)
        with self.assertRaises(ut.PrimordialError):
            ut.get_lnk_list(1e-4, 1.0, ut.K_PER_DECADE_PRIMORDIAL_MIN)


class TestPairIndex(unittest.TestCase):

    def test_packed_order(self):
        """
        The pairs are stored row by row without gaps.
        """
        for n in range(1, 6):
            offsets = [
                ut.pair_index(i, j, n) for i in range(n) for j in range(i, n)
            ]
            self.assertEqual(offsets, list(range(ut.pair_size(n))))

    def test_known_values(self):
        self.assertEqual(ut.pair_index(0, 0, 3), 0)
        self.assertEqual(ut.pair_index(0, 2, 3), 2)
        self.assertEqual(ut.pair_index(1, 1, 3), 3)
        self.assertEqual(ut.pair_index(2, 2, 3), 5)

    def test_lower_triangle_rejected(self):
        with self.assertRaises(ValueError):
            ut.pair_index(1, 0, 3)
        with self.assertRaises(ValueError):
            ut.pair_index(0, 3, 3)


class TestFiniteDifferences(unittest.TestCase):

    def test_quadratic_is_exact(self):
        """
        Tilt and running of ln P = c0 + c1 x + c2 x^2 / 2 are recovered
        exactly by the centered differences.
        """
        c0, c1, c2 = -20.0, -0.035, 0.004
        dlnk = 0.23

        def lnpk(x):
            return c0 + c1 * x + 0.5 * c2 * x**2

        tilt, running = ut.finite_difference_parameters(
            lnpk(-dlnk), lnpk(0.0), lnpk(dlnk), dlnk
        )
        self.assertAlmostEqual(tilt, c1, places=12)
        self.assertAlmostEqual(running, c2, places=10)


if __name__ == "__main__":
    unittest.main(verbosity=2)
