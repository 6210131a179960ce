"""Tests for the model parameters and derived quantities."""

from __future__ import annotations

import math
import unittest

import numpy as np

from scatterbasis.model import ALPHA_EM, C_KMS, M_ELECTRON_EV, Model, km_s


class ModelTests(unittest.TestCase):
    """Derived quantities of :class:`Model`."""

    def setUp(self) -> None:
        self.model = Model(fdm=2.0, mX=1.0e8, mSM=M_ELECTRON_EV, deltaE=4.0)

    def test_reduced_mass_and_prefactor(self) -> None:
        mu = self.model.mX * M_ELECTRON_EV / (self.model.mX + M_ELECTRON_EV)
        self.assertAlmostEqual(self.model.mu / mu, 1.0, places=14)
        self.assertAlmostEqual(self.model.k0 * 4.0 * math.pi * self.model.mX * mu ** 2, 1.0, places=12)
        self.assertAlmostEqual(self.model.q0, ALPHA_EM * M_ELECTRON_EV)

    def test_v_min(self) -> None:
        q = np.array([1.0e3, 4.0e3])
        expected = q / (2.0 * self.model.mX) + self.model.deltaE / q
        np.testing.assert_allclose(self.model.v_min(q), expected)
        self.assertEqual(self.model.v_min(0.0), math.inf)
        elastic = Model(0.0, 1.0, 1.0, 0.0)
        self.assertEqual(elastic.v_min(0.0), 0.0)
        self.assertAlmostEqual(elastic.v_min(0.5), 0.25)

    def test_form_factor(self) -> None:
        q0 = self.model.q0
        self.assertAlmostEqual(self.model.form_factor_sq(q0), 1.0)
        self.assertAlmostEqual(self.model.form_factor_sq(2.0 * q0), 1.0 / 16.0)
        self.assertEqual(Model(0.0, 1.0, 1.0, 0.0).form_factor_sq(0.3), 1.0)

    def test_infrared_divergence_flag(self) -> None:
        self.assertFalse(self.model.infrared_divergent)
        self.assertTrue(Model(1.0, 1.0, 1.0, 0.0).infrared_divergent)
        self.assertFalse(Model(0.0, 1.0, 1.0, 0.0).infrared_divergent)

    def test_validation(self) -> None:
        for args in ((0.0, -1.0, 1.0, 0.0), (0.0, 1.0, 0.0, 0.0), (0.0, 1.0, 1.0, -1.0), (math.nan, 1.0, 1.0, 0.0)):
            with self.assertRaises(ValueError):
                Model(*args)

    def test_models_compare_by_value(self) -> None:
        self.assertEqual(Model(0, 1, 1, 0), Model(0.0, 1.0, 1.0, 0.0))
        self.assertEqual(len({Model(0, 1, 1, 0), Model(0.0, 1.0, 1.0, 0.0)}), 1)

    def test_velocity_units(self) -> None:
        self.assertAlmostEqual(km_s(C_KMS), 1.0)
        np.testing.assert_allclose(km_s([220.0, 544.0]), np.array([220.0, 544.0]) / C_KMS)


if __name__ == "__main__":  # pragma: no cover - manual execution
    unittest.main()
