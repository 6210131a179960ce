"""Tests for coefficient persistence."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import numpy as np

from scatterbasis.basis import RadialBasis
from scatterbasis.errors import SerializationError
from scatterbasis.io import dumps, loads, read_projection, write_projection
from scatterbasis.projection import ProjectedF


class PersistenceTests(unittest.TestCase):
    """Text format round trips and parse errors."""

    def setUp(self) -> None:
        rng = np.random.default_rng(8)
        coefficients = rng.normal(size=(8, 9))
        coefficients[coefficients < 0.0] = 0.0
        self.projection = ProjectedF(RadialBasis.wavelet(8, 2.3e-3), 2, coefficients)

    def test_round_trip_is_exact(self) -> None:
        restored = loads(dumps(self.projection))
        self.assertEqual(restored.basis, self.projection.basis)
        self.assertEqual(restored.l_max, 2)
        np.testing.assert_array_equal(restored.coefficients, self.projection.coefficients)

    def test_file_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = write_projection(self.projection, Path(tmp) / "gX.txt")
            restored = read_projection(path)
        np.testing.assert_array_equal(restored.coefficients, self.projection.coefficients)

    def test_header_and_comments(self) -> None:
        text = "# scatterbasis basis=tophat n_max=3 l_max=1 u_max=1.5\n\n# comment\n2 1 -1 0.25\n"
        projection = loads(text)
        self.assertEqual(projection.basis, RadialBasis.tophat(3, 1.5))
        self.assertEqual(projection.coefficient(2, 1, -1), 0.25)
        self.assertEqual(list(projection.items()), [(2, 1, -1, 0.25)])

    def test_malformed_row_reports_line(self) -> None:
        text = "# scatterbasis basis=tophat n_max=3 l_max=1 u_max=1.5\n0 0 0 1.0\n1 0 x 2.0\n"
        with self.assertRaises(SerializationError) as ctx:
            loads(text)
        self.assertEqual(ctx.exception.line, 3)
        self.assertIn("line 3", str(ctx.exception))

    def test_out_of_range_rows(self) -> None:
        header = "# scatterbasis basis=tophat n_max=3 l_max=1 u_max=1.5\n"
        for row in ("3 0 0 1.0", "0 2 0 1.0", "0 1 2 1.0", "0 1 0"):
            with self.assertRaises(SerializationError) as ctx:
                loads(header + row + "\n")
            self.assertEqual(ctx.exception.line, 2)

    def test_bad_headers(self) -> None:
        for text in (
            "",
            "0 0 0 1.0\n",
            "# scatterbasis basis=spline n_max=3 l_max=1 u_max=1.5\n",
            "# scatterbasis basis=tophat n_max=3 u_max=1.5\n",
            "# scatterbasis basis=tophat n_max=three l_max=1 u_max=1.5\n",
            "# scatterbasis basis=tophat n_max=3 l_max=1 u_max=-1\n",
        ):
            with self.assertRaises(SerializationError) as ctx:
                loads(text)
            self.assertEqual(ctx.exception.line, 1)


if __name__ == "__main__":  # pragma: no cover - manual execution
    unittest.main()
