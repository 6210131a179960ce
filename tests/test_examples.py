"""Smoke tests for the example scripts."""

from __future__ import annotations

import importlib.util
import unittest
from pathlib import Path

import numpy as np

from scatterbasis.basis import RadialBasis
from scatterbasis.harmonics import lm_count
from scatterbasis.model import Model
from scatterbasis.projection import ProjectedF
from scatterbasis.rates import RateCalculator

DEMO_PATH = Path(__file__).resolve().parents[1] / "examples" / "rate_demo.py"


def _load_demo():
    spec = importlib.util.spec_from_file_location("rate_demo", DEMO_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class RateDemoTests(unittest.TestCase):
    """The orientation scan of ``examples/rate_demo.py``."""

    def setUp(self) -> None:
        self.demo = _load_demo()

    def test_tilt_rotations_form_a_stack(self) -> None:
        angles = np.linspace(0.0, np.pi, 7)
        rotations = self.demo.tilt_rotations(angles)
        self.assertFalse(rotations.single)
        self.assertEqual(len(rotations), 7)
        np.testing.assert_allclose(rotations.magnitude(), angles, atol=1.0e-12)

    def test_tilt_scan_gives_one_rate_per_angle(self) -> None:
        rng = np.random.default_rng(3)
        gX = ProjectedF(RadialBasis.wavelet(4, 1.0), 2, rng.normal(size=(4, lm_count(2))))
        fs2 = ProjectedF(RadialBasis.wavelet(4, 1.0), 2, rng.normal(size=(4, lm_count(2))))
        calculator = RateCalculator(Model(0.0, 1.0, 1.0, 0.1), gX, fs2)
        rates = calculator.rate(self.demo.tilt_rotations(np.linspace(0.0, np.pi, 5)))
        self.assertIsInstance(rates, list)
        self.assertEqual(len(rates), 5)
        self.assertAlmostEqual(rates[0], calculator.rate(), places=12)


if __name__ == "__main__":  # pragma: no cover - manual execution
    unittest.main()
