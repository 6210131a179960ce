"""Kinematic scattering matrix coupling velocity and momentum radial bases.

The matrix is

    I^l_{nn'} = 2π v_max² q_max² ∫ dy y r_n'(y) F_DM²(q)
                ∫_{x ≥ w(y)} dx x P_l(w(y) / x) r_n(x),

with ``q = q_max y`` and ``w(y) = v_min(q) / v_max``. The velocity integral
over each cell is taken for all degrees at once by
:func:`~scatterbasis.basis.cell_legendre_transforms`, which is closed form at
``w = 0`` and otherwise uses panelled Gauss-Legendre quadrature accurate to
rounding at any ``l``.
The momentum integral is split at every ``y`` where ``w(y)`` crosses a
velocity cell edge, the roots of ``α y² − x y + β = 0``, so each panel carries
an analytic integrand and is integrated with Gauss-Legendre nodes. Panels on
which ``w ≥ 1`` are kinematically forbidden and are skipped, so their
contribution is exactly zero.

Logging
-------
Start/finish of :func:`kinematic_matrix` are logged at DEBUG level with the
cell counts, panel counts and elapsed time. :class:`KinematicCache` logs
cache misses and invalidations.
"""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from time import perf_counter
from typing import Optional

import numpy as np
from loguru import logger

from .basis import RadialBasis, cell_legendre_transforms
from .errors import ConfigurationError
from .legendre import gauss_legendre
from .model import Model


@dataclass(frozen=True, eq=False)
class KinematicMatrix:
    """Read-only tensor ``I[l, n, n']`` for a ``(v_basis, q_basis, model)`` triple."""

    v_basis: RadialBasis
    q_basis: RadialBasis
    model: Model
    l_max: int
    values: np.ndarray
    nodes: int = 32

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float, copy=True)
        expected = (self.l_max + 1, self.v_basis.n_max, self.q_basis.n_max)
        if values.shape != expected:
            raise ValueError(f"Kinematic tensor has shape {values.shape}; expected {expected}.")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    def block(self, l: int) -> np.ndarray:
        """Return the ``(n_v, n_q)`` matrix for degree ``l``."""

        if not (0 <= l <= self.l_max):
            raise IndexError(f"Angular degree l={l} outside [0, {self.l_max}].")
        return self.values[l]

    def value(self, l: int, n: int, n_prime: int) -> float:
        self.v_basis._check_index(n)
        self.q_basis._check_index(n_prime)
        return float(self.block(l)[n, n_prime])


def _crossings(alpha: float, beta: float, x: float, lo: float, hi: float) -> list[float]:
    """Roots of ``α y + β / y = x`` strictly inside ``(lo, hi)``."""

    disc = x * x - 4.0 * alpha * beta
    if disc < 0.0:
        return []
    root = math.sqrt(disc)
    candidates = ((x - root) / (2.0 * alpha), (x + root) / (2.0 * alpha))
    return [y for y in candidates if lo < y < hi]


def _q_cell_column(
    ya: float,
    yb: float,
    v_edges: np.ndarray,
    l_max: int,
    model: Model,
    v_max: float,
    q_max: float,
    nodes: int,
) -> tuple[np.ndarray, int]:
    """Integrate one momentum cell against every velocity cell and degree."""

    alpha = q_max / (2.0 * model.mX * v_max)
    beta = model.deltaE / (q_max * v_max)
    # P_l(w(y) / x) oscillates l times across a panel
    order = max(int(nodes), l_max + 16)
    n_vcells = v_edges.size - 1
    column = np.zeros((l_max + 1, n_vcells), dtype=float)

    breaks = {ya, yb}
    for edge in v_edges:
        breaks.update(_crossings(alpha, beta, float(edge), ya, yb))
    breaks_sorted = sorted(breaks)

    panels = 0
    for p0, p1 in zip(breaks_sorted[:-1], breaks_sorted[1:]):
        if p1 - p0 <= 1.0e-15 * max(1.0, p1):
            continue
        y_mid = 0.5 * (p0 + p1)
        w_mid = alpha * y_mid + (beta / y_mid if beta > 0.0 else 0.0)
        if w_mid >= 1.0:
            continue
        panels += 1
        y, weights = gauss_legendre(order, p0, p1)
        w = alpha * y + beta / y
        radial_weight = weights * y * np.asarray(model.form_factor_sq(q_max * y), dtype=float)
        for b in range(n_vcells):
            lo, hi = float(v_edges[b]), float(v_edges[b + 1])
            if w_mid >= hi:
                continue
            column[:, b] += cell_legendre_transforms(lo, hi, l_max, w) @ radial_weight
    return column, panels


def kinematic_matrix(
    v_basis: RadialBasis,
    q_basis: RadialBasis,
    model: Model,
    l_max: int,
    *,
    nodes: int = 32,
    workers: Optional[int] = None,
) -> KinematicMatrix:
    """Compute the kinematic scattering matrix ``I[l, n, n']``.

    ``v_basis`` spans velocities up to ``v_max = v_basis.u_max`` and
    ``q_basis`` momenta up to ``q_max = q_basis.u_max``. ``nodes`` is the
    minimum Gauss-Legendre order used on each analytic momentum panel; it
    is raised to ``l_max + 16`` when that is larger.
    """

    if int(l_max) != l_max or l_max < 0:
        raise ConfigurationError("l_max must be a non-negative integer.")
    if nodes < 2:
        raise ConfigurationError("At least two Gauss-Legendre nodes per panel are required.")
    if model.infrared_divergent:
        raise ConfigurationError(
            f"The momentum integral diverges at q → 0 for deltaE=0 and fdm={model.fdm:g}."
        )

    t0 = perf_counter()
    l_max = int(l_max)
    v_max, q_max = v_basis.u_max, q_basis.u_max
    v_edges = v_basis.cell_edges()
    q_edges = q_basis.cell_edges()
    q_cells = list(zip(q_edges[:-1].tolist(), q_edges[1:].tolist()))
    logger.debug(
        (
            f"kinematic_matrix: start | v=({v_basis.kind}, n={v_basis.n_max}, v_max={v_max:.6g}) | "
            f"q=({q_basis.kind}, n={q_basis.n_max}, q_max={q_max:.6g}) | l_max={l_max} | nodes={int(nodes)} | "
            f"model=(fdm={model.fdm:g}, mX={model.mX:.6g}, mSM={model.mSM:.6g}, deltaE={model.deltaE:.6g})"
        )
    )

    def _column(cell: tuple[float, float]) -> tuple[np.ndarray, int]:
        return _q_cell_column(cell[0], cell[1], v_edges, l_max, model, v_max, q_max, nodes)

    if workers and workers > 1 and len(q_cells) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            columns = list(pool.map(_column, q_cells))
    else:
        columns = [_column(cell) for cell in q_cells]

    # cell tensor K[l, v_cell, q_cell]
    cell_tensor = np.stack([col for col, _ in columns], axis=-1)
    cell_tensor *= 2.0 * np.pi * v_max ** 2 * q_max ** 2
    panels = sum(count for _, count in columns)

    c_v = v_basis.cell_matrix()
    c_q = q_basis.cell_matrix()
    values = np.einsum("na,lab,kb->lnk", c_v, cell_tensor, c_q)

    dt = perf_counter() - t0
    logger.debug(
        (
            f"kinematic_matrix: done | cells=({v_edges.size - 1}, {len(q_cells)}) | panels={panels} | "
            f"zero blocks={int(np.sum(~np.any(values != 0.0, axis=(0, 1))))} | {dt*1e3:.2f} ms"
        )
    )
    return KinematicMatrix(v_basis, q_basis, model, l_max, values, int(nodes))


class KinematicCache:
    """Explicit cache of kinematic matrices keyed by ``(v_basis, q_basis, model)``.

    A cached matrix with a larger ``l_max`` satisfies smaller requests.
    Entries are dropped with :meth:`invalidate` or :meth:`clear`.
    """

    def __init__(self, *, nodes: int = 32, workers: Optional[int] = None) -> None:
        self.nodes = int(nodes)
        self.workers = workers
        self._entries: dict[tuple[RadialBasis, RadialBasis, Model], KinematicMatrix] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self,
        v_basis: RadialBasis,
        q_basis: RadialBasis,
        model: Model,
        l_max: int,
    ) -> KinematicMatrix:
        """Return a matrix covering ``l_max``, computing it on a miss."""

        key = (v_basis, q_basis, model)
        cached = self._entries.get(key)
        if cached is not None and cached.l_max >= l_max:
            self.hits += 1
            return cached

        self.misses += 1
        logger.debug(f"KinematicCache: miss | l_max={int(l_max)} | entries={len(self._entries)}")
        matrix = kinematic_matrix(
            v_basis, q_basis, model, l_max, nodes=self.nodes, workers=self.workers
        )
        self._entries[key] = matrix
        return matrix

    def invalidate(
        self,
        *,
        v_basis: Optional[RadialBasis] = None,
        q_basis: Optional[RadialBasis] = None,
        model: Optional[Model] = None,
    ) -> int:
        """Drop entries matching every supplied parameter; return the count."""

        stale = [
            key
            for key in self._entries
            if (v_basis is None or key[0] == v_basis)
            and (q_basis is None or key[1] == q_basis)
            and (model is None or key[2] == model)
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"KinematicCache: invalidated {len(stale)} entr{'y' if len(stale) == 1 else 'ies'}")
        return len(stale)

    def clear(self) -> None:
        """Drop every entry and reset the hit/miss counters."""

        self._entries.clear()
        self.hits = 0
        self.misses = 0


__all__ = ["KinematicCache", "KinematicMatrix", "kinematic_matrix"]
