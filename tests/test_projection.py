"""Tests for the numerical projector and the coefficient container."""

from __future__ import annotations

import math
import unittest
import warnings

import numpy as np

from scatterbasis.basis import RadialBasis
from scatterbasis.errors import ConfigurationError, ConvergenceWarning
from scatterbasis.harmonics import lm_count, lm_index, real_sph_harm
from scatterbasis.projection import ProjectedF, Projector, QuadratureSettings, project_f


def _gaussian_dipole(points: np.ndarray) -> np.ndarray:
    radius2 = np.sum(points ** 2, axis=-1)
    return (1.0 + 0.4 * points[..., 0] - 0.2 * points[..., 1] * points[..., 2]) * np.exp(-radius2)


class ProjectorTests(unittest.TestCase):
    """Projection onto radial × harmonic bases."""

    def test_basis_element_projects_to_unit_coefficient(self) -> None:
        basis = RadialBasis.wavelet(4, 2.0)

        def element(points: np.ndarray) -> np.ndarray:
            radius = np.linalg.norm(points, axis=-1)
            return basis.evaluate(2, radius) * real_sph_harm(2, -1, points)

        projection = project_f(element, basis, 2)
        expected = np.zeros((4, lm_count(2)))
        expected[2, lm_index(2, -1)] = 1.0
        np.testing.assert_allclose(projection.coefficients, expected, atol=1.0e-9)
        self.assertTrue(projection.converged)

    def test_constant_field(self) -> None:
        """``f = c`` on one bin gives ``f_000 = c √(4π/3)``."""

        basis = RadialBasis.tophat(1, 3.0)
        projection = project_f(lambda points: 2.5, basis, 1)
        self.assertAlmostEqual(projection.coefficient(0, 0, 0), 2.5 * math.sqrt(4.0 * math.pi / 3.0), places=10)
        for m in (-1, 0, 1):
            self.assertEqual(projection.coefficient(0, 1, m), 0.0)

    def test_linearity(self) -> None:
        basis = RadialBasis.tophat(3, 2.5)
        projector = Projector(basis, 2)

        def other(points: np.ndarray) -> np.ndarray:
            return points[..., 2] ** 2 * np.exp(-np.linalg.norm(points, axis=-1))

        combined = projector(lambda p: 2.0 * _gaussian_dipole(p) - 0.5 * other(p))
        separate = 2.0 * projector(_gaussian_dipole) - 0.5 * projector(other)
        np.testing.assert_allclose(combined.coefficients, separate.coefficients, atol=1.0e-10)

    def test_scalar_callable_matches_vectorised(self) -> None:
        basis = RadialBasis.tophat(2, 2.0)
        vectorised = project_f(_gaussian_dipole, basis, 1)
        scalar = project_f(_gaussian_dipole, basis, 1, vectorized=False)
        np.testing.assert_allclose(scalar.coefficients, vectorised.coefficients, atol=1.0e-12)

    def test_threaded_projection_matches_serial(self) -> None:
        basis = RadialBasis.wavelet(8, 2.0)
        serial = project_f(_gaussian_dipole, basis, 2)
        threaded = project_f(_gaussian_dipole, basis, 2, workers=3)
        np.testing.assert_allclose(threaded.coefficients, serial.coefficients, atol=1.0e-14)

    def test_small_coefficients_are_exact_zero(self) -> None:
        basis = RadialBasis.tophat(2, 1.0)
        projection = project_f(lambda p: np.exp(-np.sum(p ** 2, axis=-1)), basis, 3)
        # An isotropic field has no l > 0 content.
        self.assertTrue(np.all(projection.coefficients[:, 1:] == 0.0))
        self.assertEqual(len(list(projection.items())), 2)

    def test_convergence_failure_is_reported(self) -> None:
        basis = RadialBasis.tophat(1, 1.0)
        settings = QuadratureSettings(epsrel=1.0e-13, limit=2)

        def oscillating(points: np.ndarray) -> np.ndarray:
            return np.sin(400.0 * np.linalg.norm(points, axis=-1))

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            projection = project_f(oscillating, basis, 0, settings=settings)
        self.assertFalse(projection.converged)
        self.assertTrue(any(issubclass(w.category, ConvergenceWarning) for w in caught))

    def test_bad_field_shape(self) -> None:
        basis = RadialBasis.tophat(1, 1.0)
        with self.assertRaises(ValueError):
            project_f(lambda points: np.zeros(3), basis, 0)

    def test_angular_degree_must_resolve_l_max(self) -> None:
        basis = RadialBasis.tophat(1, 1.0)
        with self.assertRaises(ConfigurationError):
            Projector(basis, 4, settings=QuadratureSettings(angular_degree=6))
        with self.assertRaises(ValueError):
            QuadratureSettings(limit=1)


class ProjectedFTests(unittest.TestCase):
    """Container semantics of :class:`ProjectedF`."""

    def setUp(self) -> None:
        self.basis = RadialBasis.wavelet(4, 1.0)
        rng = np.random.default_rng(11)
        self.a = ProjectedF(self.basis, 2, rng.normal(size=(4, 9)))
        self.b = ProjectedF(self.basis, 2, rng.normal(size=(4, 9)))

    def test_lookup_and_bounds(self) -> None:
        self.assertEqual(self.a.coefficient(1, 2, -2), self.a.coefficients[1, 4])
        with self.assertRaises(IndexError):
            self.a.coefficient(4, 0, 0)
        with self.assertRaises(IndexError):
            self.a.coefficient(0, 3, 0)
        with self.assertRaises(IndexError):
            self.a.coefficient(0, 1, 2)

    def test_coefficients_are_read_only(self) -> None:
        with self.assertRaises(ValueError):
            self.a.coefficients[0, 0] = 1.0

    def test_arithmetic(self) -> None:
        np.testing.assert_allclose((self.a + self.b).coefficients, self.a.coefficients + self.b.coefficients)
        np.testing.assert_allclose((self.a - self.b).coefficients, self.a.coefficients - self.b.coefficients)
        np.testing.assert_allclose((3.0 * self.a).coefficients, 3.0 * self.a.coefficients)
        np.testing.assert_allclose((-self.a).coefficients, -self.a.coefficients)

    def test_incompatible_combination(self) -> None:
        other = ProjectedF.zeros(RadialBasis.tophat(4, 1.0), 2)
        with self.assertRaises(ConfigurationError):
            self.a + other
        with self.assertRaises(ConfigurationError):
            self.a - ProjectedF.zeros(self.basis, 1)

    def test_power_and_norm(self) -> None:
        power = self.a.power()
        self.assertEqual(power.shape, (3,))
        self.assertAlmostEqual(float(np.sum(power)), self.a.norm())

    def test_items_round_trip(self) -> None:
        rebuilt = ProjectedF.from_items(self.basis, 2, self.a.items())
        np.testing.assert_array_equal(rebuilt.coefficients, self.a.coefficients)

    def test_evaluate_reconstructs_basis_element(self) -> None:
        coefficients = np.zeros((4, 9))
        coefficients[1, lm_index(1, 1)] = 1.0
        projection = ProjectedF(self.basis, 2, coefficients)
        point = np.array([0.3, 0.0, 0.0])
        expected = self.basis.evaluate(1, 0.3) * math.sqrt(3.0 / (4.0 * math.pi))
        self.assertAlmostEqual(projection.evaluate(point), expected)


if __name__ == "__main__":  # pragma: no cover - manual execution
    unittest.main()
