"""Tests for the rate assembly."""

from __future__ import annotations

import math
import unittest

import numpy as np
from scipy.spatial.transform import Rotation

from scatterbasis.basis import RadialBasis
from scatterbasis.errors import ConfigurationError
from scatterbasis.harmonics import lm_count
from scatterbasis.kinematics import KinematicCache, kinematic_matrix
from scatterbasis.model import Model
from scatterbasis.projection import ProjectedF
from scatterbasis.rates import RateCalculator, iter_rates, rate


class SingleBinRateTests(unittest.TestCase):
    """End-to-end value for uniform distributions on a single bin."""

    def test_uniform_distributions(self) -> None:
        """Compare with ``k0 c_g c_f 4π² (v² q²/2 − q⁴/16 mX²)``."""

        v_max, q_max = 0.5, 0.4
        model = Model(0.0, 2.0, 1.0, 0.0)
        c_g, c_f = 1.7, 0.6
        scale = math.sqrt(4.0 * math.pi / 3.0)
        gX = ProjectedF(RadialBasis.tophat(1, v_max), 0, [[c_g * scale]])
        fs2 = ProjectedF(RadialBasis.tophat(1, q_max), 0, [[c_f * scale]])

        expected = (
            model.k0
            * c_g
            * c_f
            * 4.0
            * math.pi ** 2
            * (0.5 * v_max ** 2 * q_max ** 2 - q_max ** 4 / (16.0 * model.mX ** 2))
        )
        self.assertAlmostEqual(rate(None, model, gX, fs2) / expected, 1.0, places=12)
        self.assertAlmostEqual(rate(None, model, gX, fs2, t_exp=4.0) / expected, 0.25, places=12)


class RateAssemblyTests(unittest.TestCase):
    """Rotation handling, compatibility checks and batching."""

    def setUp(self) -> None:
        rng = np.random.default_rng(21)
        self.model = Model(0.0, 1.0, 1.0, 0.1)
        self.v_basis = RadialBasis.tophat(4, 1.0)
        self.q_basis = RadialBasis.wavelet(4, 1.0)
        self.gX = ProjectedF(self.v_basis, 3, rng.normal(size=(4, lm_count(3))))
        self.fs2 = ProjectedF(self.q_basis, 2, rng.normal(size=(4, lm_count(2))))
        self.kinematic = kinematic_matrix(self.v_basis, self.q_basis, self.model, 3, nodes=16)
        self.rotations = Rotation.from_euler(
            "zyz", [[0.1, 0.2, 0.3], [1.0, -0.5, 2.0], [-2.0, 2.5, 0.4]]
        )

    def _rate(self, rotations, **kwargs):
        return rate(rotations, self.model, self.gX, self.fs2, self.kinematic, **kwargs)

    def test_identity_rotation_equals_no_rotation(self) -> None:
        self.assertAlmostEqual(self._rate(np.array([1.0, 0.0, 0.0, 0.0])), self._rate(None), places=12)
        self.assertAlmostEqual(self._rate(Rotation.identity()), self._rate(None), places=12)

    def test_rotating_detector_equals_rotated_projection(self) -> None:
        rotation = self.rotations[1]
        rotated = self.fs2.rotated(rotation)
        direct = self._rate(rotation)
        via_projection = rate(None, self.model, self.gX, rotated, self.kinematic)
        self.assertAlmostEqual(direct, via_projection, places=12)

    def test_sequence_preserves_order(self) -> None:
        values = self._rate(self.rotations)
        self.assertIsInstance(values, list)
        self.assertEqual(len(values), 3)
        for index, value in enumerate(values):
            self.assertAlmostEqual(value, self._rate(self.rotations[index]), places=12)

        quats = self.rotations.as_quat()[:, [3, 0, 1, 2]]
        np.testing.assert_allclose(self._rate(quats), values, rtol=1.0e-12)

    def test_generator_of_rotations_is_consumed_once(self) -> None:
        expected = self._rate(self.rotations)
        values = self._rate(self.rotations[i] for i in range(3))
        self.assertIsInstance(values, list)
        np.testing.assert_allclose(values, expected, rtol=1.0e-12)
        pooled = self._rate((quat for quat in self.rotations.as_quat()[:, [3, 0, 1, 2]]), workers=2)
        np.testing.assert_allclose(pooled, expected, rtol=1.0e-12)

    def test_pooled_iteration_matches_serial(self) -> None:
        many = Rotation.from_quat(np.random.default_rng(4).normal(size=(12, 4)))
        serial = list(iter_rates(many, self.model, self.gX, self.fs2, self.kinematic))
        pooled = list(iter_rates(many, self.model, self.gX, self.fs2, self.kinematic, workers=3))
        np.testing.assert_allclose(pooled, serial, rtol=1.0e-13)

    def test_iter_rates_is_lazy(self) -> None:
        stream = iter_rates(self.rotations, self.model, self.gX, self.fs2, self.kinematic)
        first = next(stream)
        self.assertIsInstance(first, float)
        stream.close()

    def test_rate_is_linear_in_projections(self) -> None:
        doubled = self._rate(self.rotations[0]) * 2.0
        self.assertAlmostEqual(
            rate(self.rotations[0], self.model, 2.0 * self.gX, self.fs2, self.kinematic),
            doubled,
            places=10,
        )

    def test_kinematic_computed_on_demand(self) -> None:
        fresh = rate(None, self.model, self.gX, self.fs2, nodes=16)
        self.assertAlmostEqual(fresh, self._rate(None), places=12)

    def test_incompatible_inputs(self) -> None:
        with self.assertRaises(ConfigurationError):
            rate(None, self.model, ProjectedF.zeros(RadialBasis.tophat(3, 1.0), 1), self.fs2, self.kinematic)
        with self.assertRaises(ConfigurationError):
            rate(None, self.model, self.gX, ProjectedF.zeros(RadialBasis.wavelet(4, 2.0), 1), self.kinematic)
        with self.assertRaises(ConfigurationError):
            rate(None, self.model, ProjectedF.zeros(self.v_basis, 4), self.fs2, self.kinematic)
        with self.assertRaises(ConfigurationError):
            rate(None, Model(0.0, 2.0, 1.0, 0.1), self.gX, self.fs2, self.kinematic)
        with self.assertRaises(ConfigurationError):
            self._rate(np.array([1.0, 1.0, 0.0, 0.0]))
        with self.assertRaises(ConfigurationError):
            self._rate(None, t_exp=0.0)


class RateCalculatorTests(unittest.TestCase):
    """The cached evaluator refreshes stale kinematics."""

    def test_update_invalidates_cache(self) -> None:
        rng = np.random.default_rng(2)
        basis = RadialBasis.tophat(3, 1.0)
        gX = ProjectedF(basis, 1, rng.normal(size=(3, 4)))
        fs2 = ProjectedF(basis, 1, rng.normal(size=(3, 4)))
        cache = KinematicCache(nodes=16)
        calculator = RateCalculator(Model(0.0, 1.0, 1.0, 0.1), gX, fs2, cache=cache)

        before = calculator.rate()
        self.assertEqual(len(cache), 1)
        self.assertAlmostEqual(calculator.rate(), before)
        self.assertEqual(cache.hits, 1)

        heavier = Model(0.0, 3.0, 1.0, 0.1)
        calculator.update(model=heavier)
        self.assertEqual(len(cache), 0)
        after = calculator.rate()
        self.assertEqual(calculator.kinematic.model, heavier)
        self.assertNotAlmostEqual(after, before)

        values = list(calculator.iter_rates(Rotation.from_euler("xy", [[0.2, 0.4], [1.0, -0.3]])))
        self.assertEqual(len(values), 2)


if __name__ == "__main__":  # pragma: no cover - manual execution
    unittest.main()
