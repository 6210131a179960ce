"""Numerical projection of scalar fields onto radial × real-harmonic bases.

Logging
-------
:func:`project_f` logs the basis, truncation and quadrature configuration at
DEBUG level together with the elapsed time, and emits a WARNING (plus a
:class:`~scatterbasis.errors.ConvergenceWarning`) whenever a radial cell did
not converge within its subdivision budget.
"""

from __future__ import annotations

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Iterator, Optional

import numpy as np
from loguru import logger
from scipy.integrate import quad_vec

from .basis import RadialBasis
from .errors import ConfigurationError, ConvergenceWarning
from .harmonics import (
    AngularQuadrature,
    directions_to_angles,
    lm_count,
    lm_index,
    lm_pairs,
    real_sph_harm_all,
    real_sph_harm_angles,
)
from .rotation import rotation_operator

ScalarField = Callable[[np.ndarray], Any]


@dataclass(frozen=True)
class QuadratureSettings:
    """Tolerances and budgets for the adaptive radial quadrature.

    ``limit`` bounds the number of subintervals per radial cell; once it is
    reached the projection is reported as not converged. ``angular_degree``
    defaults to ``2 l_max + 8``.
    """

    epsabs: float = 1.0e-12
    epsrel: float = 1.0e-9
    limit: int = 200
    angular_degree: Optional[int] = None
    zero_tol: float = 1.0e-14

    def __post_init__(self) -> None:
        if self.epsabs < 0.0 or self.epsrel < 0.0:
            raise ValueError("Quadrature tolerances must be non-negative.")
        if self.epsabs == 0.0 and self.epsrel == 0.0:
            raise ValueError("At least one quadrature tolerance must be positive.")
        if self.limit < 2:
            raise ValueError("The subdivision budget must allow at least two subintervals.")
        if self.angular_degree is not None and self.angular_degree < 0:
            raise ValueError("The angular quadrature degree must be non-negative.")
        if self.zero_tol < 0.0:
            raise ValueError("zero_tol must be non-negative.")

    def degree_for(self, l_max: int) -> int:
        if self.angular_degree is None:
            return 2 * int(l_max) + 8
        if self.angular_degree < 2 * l_max:
            raise ConfigurationError(
                f"Angular degree {self.angular_degree} cannot resolve l_max={l_max}; need ≥ {2 * l_max}."
            )
        return int(self.angular_degree)


@dataclass(frozen=True, eq=False)
class ProjectedF:
    """Coefficients ``f_nlm`` of a field in ``basis`` truncated at ``l_max``.

    ``coefficients`` is a read-only array of shape ``(n_max, (l_max + 1)²)``
    addressed with :func:`~scatterbasis.harmonics.lm_index`.
    """

    basis: RadialBasis
    l_max: int
    coefficients: np.ndarray
    converged: bool = True
    error_estimate: float = 0.0

    def __post_init__(self) -> None:
        """Validate the coefficient layout and freeze the array."""

        if int(self.l_max) != self.l_max or self.l_max < 0:
            raise ValueError("l_max must be a non-negative integer.")
        object.__setattr__(self, "l_max", int(self.l_max))
        coeffs = np.array(self.coefficients, dtype=float, copy=True)
        expected = (self.basis.n_max, lm_count(self.l_max))
        if coeffs.shape != expected:
            raise ValueError(
                f"Coefficient array has shape {coeffs.shape}; expected {expected}."
            )
        coeffs.setflags(write=False)
        object.__setattr__(self, "coefficients", coeffs)

    @classmethod
    def zeros(cls, basis: RadialBasis, l_max: int) -> "ProjectedF":
        return cls(basis, l_max, np.zeros((basis.n_max, lm_count(l_max))))

    @classmethod
    def from_items(
        cls,
        basis: RadialBasis,
        l_max: int,
        rows: Iterator[tuple[int, int, int, float]],
    ) -> "ProjectedF":
        """Build an instance from ``(n, l, m, value)`` rows."""

        coeffs = np.zeros((basis.n_max, lm_count(l_max)), dtype=float)
        for n, l, m, value in rows:
            basis._check_index(n)
            if l > l_max:
                raise IndexError(f"Angular degree l={l} exceeds l_max={l_max}.")
            coeffs[n, lm_index(l, m)] = value
        return cls(basis, l_max, coeffs)

    @property
    def n_max(self) -> int:
        return self.basis.n_max

    @property
    def u_max(self) -> float:
        return self.basis.u_max

    def coefficient(self, n: int, l: int, m: int) -> float:
        """Return ``f_nlm``; ``IndexError`` outside the stored ranges."""

        self.basis._check_index(n)
        if l > self.l_max:
            raise IndexError(f"Angular degree l={l} exceeds l_max={self.l_max}.")
        return float(self.coefficients[n, lm_index(l, m)])

    def lm_block(self, l: int) -> np.ndarray:
        """Return the ``(n_max, 2l + 1)`` slice for degree ``l``."""

        if not (0 <= l <= self.l_max):
            raise IndexError(f"Angular degree l={l} outside [0, {self.l_max}].")
        return self.coefficients[:, l * l:(l + 1) * (l + 1)]

    def items(self) -> Iterator[tuple[int, int, int, float]]:
        """Yield the populated ``(n, l, m, value)`` coefficients."""

        pairs = lm_pairs(self.l_max)
        for n, idx in zip(*np.nonzero(self.coefficients)):
            l, m = pairs[idx]
            yield int(n), l, m, float(self.coefficients[n, idx])

    def evaluate(self, u: np.ndarray) -> float | np.ndarray:
        """Reconstruct ``Σ f_nlm r_n(|u|) Y_lm(û)`` at point(s) ``u``."""

        points = np.asarray(u, dtype=float)
        flat = np.atleast_2d(points)
        radius = np.linalg.norm(flat, axis=-1)
        theta, phi = directions_to_angles(flat)
        radial = np.vstack(
            [np.asarray(self.basis.evaluate(n, radius), dtype=float).reshape(-1) for n in range(self.n_max)]
        )
        angular = np.vstack(
            [
                np.asarray(real_sph_harm_angles(l, m, theta, phi), dtype=float).reshape(-1)
                for l, m in lm_pairs(self.l_max)
            ]
        )
        values = np.einsum("nk,ni,ki->i", self.coefficients, radial, angular)
        if points.ndim == 1:
            return float(values[0])
        return values

    def power(self) -> np.ndarray:
        """Return ``Σ_{n,m} f_nlm²`` for each degree ``l``."""

        return np.array([float(np.sum(self.lm_block(l) ** 2)) for l in range(self.l_max + 1)])

    def norm(self) -> float:
        """Parseval estimate of ``⟨f|f⟩`` within the truncated basis."""

        return float(np.sum(self.coefficients ** 2))

    def _require_compatible(self, other: "ProjectedF") -> None:
        if not self.basis.compatible_with(other.basis):
            raise ConfigurationError(
                f"Cannot combine projections in different bases: {self.basis} vs {other.basis}."
            )
        if self.l_max != other.l_max:
            raise ConfigurationError(
                f"Cannot combine projections with l_max={self.l_max} and l_max={other.l_max}."
            )

    def _replace(self, coefficients: np.ndarray, other: Optional["ProjectedF"] = None) -> "ProjectedF":
        converged = self.converged and (other is None or other.converged)
        error = self.error_estimate + (0.0 if other is None else other.error_estimate)
        return ProjectedF(self.basis, self.l_max, coefficients, converged, error)

    def __add__(self, other: "ProjectedF") -> "ProjectedF":
        if not isinstance(other, ProjectedF):
            return NotImplemented
        self._require_compatible(other)
        return self._replace(self.coefficients + other.coefficients, other)

    def __sub__(self, other: "ProjectedF") -> "ProjectedF":
        if not isinstance(other, ProjectedF):
            return NotImplemented
        self._require_compatible(other)
        return self._replace(self.coefficients - other.coefficients, other)

    def __mul__(self, scale: float) -> "ProjectedF":
        if isinstance(scale, ProjectedF):
            return NotImplemented
        scale = float(scale)
        return ProjectedF(
            self.basis,
            self.l_max,
            scale * self.coefficients,
            self.converged,
            abs(scale) * self.error_estimate,
        )

    __rmul__ = __mul__

    def __neg__(self) -> "ProjectedF":
        return self * -1.0

    def rotated(self, rotation: Any) -> "ProjectedF":
        """Return the coefficients of ``f(R⁻¹ u)`` for the rotation ``R``."""

        operator = rotation_operator(rotation, self.l_max)
        return self._replace(operator.apply(self.coefficients))


def _sample_field(f: ScalarField, points: np.ndarray, vectorized: bool) -> np.ndarray:
    """Evaluate ``f`` on ``points`` of shape ``(N, 3)``."""

    if vectorized:
        values = np.asarray(f(points), dtype=float)
        if values.size == 1:
            return np.full(points.shape[0], float(values.reshape(-1)[0]))
        if values.size != points.shape[0]:
            raise ValueError(
                f"Vectorised field returned shape {values.shape} for {points.shape[0]} points."
            )
        return values.reshape(-1)
    return np.fromiter((float(f(point)) for point in points), dtype=float, count=points.shape[0])


class Projector:
    """Project scalar fields onto ``basis`` × real harmonics up to ``l_max``.

    The radial integral is taken separately on every cell of
    :meth:`RadialBasis.cell_edges` with :func:`scipy.integrate.quad_vec`, so no
    quadrature panel ever crosses a discontinuity of the basis. At each radial
    node the angular integral uses an :class:`AngularQuadrature` rule.
    """

    def __init__(
        self,
        basis: RadialBasis,
        l_max: int,
        *,
        settings: Optional[QuadratureSettings] = None,
        vectorized: bool = True,
        workers: Optional[int] = None,
    ) -> None:
        """Prepare the angular tables for ``basis`` and ``l_max``."""

        if int(l_max) != l_max or l_max < 0:
            raise ValueError("l_max must be a non-negative integer.")
        if workers is not None and workers < 1:
            raise ValueError("workers must be a positive integer.")
        self.basis = basis
        self.l_max = int(l_max)
        self.settings = settings or QuadratureSettings()
        self.vectorized = vectorized
        self.workers = workers

        self.angular = AngularQuadrature(self.settings.degree_for(self.l_max))
        harmonics = real_sph_harm_all(self.l_max, self.angular.directions)
        self._weighted_harmonics = self.angular.weights[:, None] * harmonics
        self._edges = basis.cell_edges()
        self._cell_matrix = basis.cell_matrix()

    def _integrate_cell(self, f: ScalarField, lo: float, hi: float) -> tuple[np.ndarray, float, bool, str]:
        directions = self.angular.directions
        u_max = self.basis.u_max

        def integrand(x: float) -> np.ndarray:
            values = _sample_field(f, (u_max * x) * directions, self.vectorized)
            return (x * x) * (values @ self._weighted_harmonics)

        result, error, info = quad_vec(
            integrand,
            lo,
            hi,
            epsabs=self.settings.epsabs,
            epsrel=self.settings.epsrel,
            limit=self.settings.limit,
            full_output=True,
        )
        return np.asarray(result, dtype=float), float(error), bool(info.success), str(info.message)

    def project(self, f: ScalarField) -> ProjectedF:
        """Return the :class:`ProjectedF` of ``f``."""

        t0 = perf_counter()
        cells = list(zip(self._edges[:-1], self._edges[1:]))
        logger.debug(
            (
                f"project_f: start | basis={self.basis.kind} n_max={self.basis.n_max} "
                f"u_max={self.basis.u_max:.6g} | l_max={self.l_max} | cells={len(cells)} | "
                f"angular nodes={self.angular.size} | eps=({self.settings.epsabs:.1e}, "
                f"{self.settings.epsrel:.1e}) | limit={self.settings.limit}"
            )
        )

        if self.workers and self.workers > 1 and len(cells) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                results = list(pool.map(lambda cell: self._integrate_cell(f, *cell), cells))
        else:
            results = [self._integrate_cell(f, lo, hi) for lo, hi in cells]

        cell_integrals = np.vstack([res for res, _, _, _ in results])
        cell_errors = np.array([err for _, err, _, _ in results], dtype=float)
        failed = [
            (idx, message) for idx, (_, _, ok, message) in enumerate(results) if not ok
        ]

        coefficients = self._cell_matrix @ cell_integrals
        error_estimate = float(np.max(np.abs(self._cell_matrix) @ cell_errors)) if cell_errors.size else 0.0
        if not np.all(np.isfinite(coefficients)):
            failed.append((-1, "non-finite coefficients"))
        coefficients[np.abs(coefficients) < self.settings.zero_tol] = 0.0

        converged = not failed
        if not converged:
            summary = ", ".join(
                f"cell {idx} [{self._edges[idx]:.4g}, {self._edges[idx + 1]:.4g}]: {msg}" if idx >= 0 else msg
                for idx, msg in failed[:5]
            )
            logger.warning(f"project_f: radial quadrature did not converge | {summary}")
            warnings.warn(
                f"Projection did not converge in {len(failed)} radial cell(s): {summary}",
                ConvergenceWarning,
                stacklevel=3,
            )

        dt = perf_counter() - t0
        logger.debug(
            (
                f"project_f: done | nonzero={int(np.count_nonzero(coefficients))} | "
                f"error≈{error_estimate:.3e} | converged={converged} | {dt*1e3:.2f} ms"
            )
        )
        return ProjectedF(self.basis, self.l_max, coefficients, converged, error_estimate)

    __call__ = project


def project_f(
    f: ScalarField,
    basis: RadialBasis,
    l_max: int,
    *,
    settings: Optional[QuadratureSettings] = None,
    vectorized: bool = True,
    workers: Optional[int] = None,
) -> ProjectedF:
    """Project ``f`` onto ``basis`` × real harmonics up to ``l_max``.

    ``f`` receives Cartesian points of shape ``(N, 3)`` (or a single point of
    shape ``(3,)`` when ``vectorized=False``) and returns the field values.
    The coefficients follow ``f_nlm = u_max⁻³ ∫ f(u) r_n(|u|) Y_lm(û) d³u``.
    """

    projector = Projector(
        basis, l_max, settings=settings, vectorized=vectorized, workers=workers
    )
    return projector.project(f)


__all__ = [
    "ProjectedF",
    "Projector",
    "QuadratureSettings",
    "project_f",
]
