"""Legendre polynomial helpers shared by the radial transforms."""

from __future__ import annotations

from functools import lru_cache

import numpy as np
import scipy.special as sp


def _to_output(value: np.ndarray | float) -> float | np.ndarray:
    """Return a Python float when ``value`` is scalar, otherwise an array."""

    arr = np.asarray(value, dtype=float)
    if arr.shape == ():
        return float(arr)
    return arr


def legendre_P(l: int | np.ndarray, x: float | np.ndarray) -> float | np.ndarray:
    """Evaluate the Legendre polynomial ``P_l(x)`` for scalar or array input."""

    l_arr = np.asarray(l)
    x_arr = np.asarray(x)
    l_broadcast, x_broadcast = np.broadcast_arrays(l_arr, x_arr)
    l_broadcast = l_broadcast.astype(int, copy=False)
    x_broadcast = x_broadcast.astype(float, copy=False)
    values = sp.eval_legendre(l_broadcast, x_broadcast)
    return _to_output(values)


def legendre_table(l_max: int, x: float | np.ndarray) -> np.ndarray:
    """Return ``P_0(x) … P_{l_max}(x)`` stacked along a new leading axis.

    Uses Bonnet's upward recurrence, which is stable for ``|x| ≤ 1``.
    """

    if l_max < 0:
        raise IndexError(f"Legendre degree must be non-negative, got {l_max}.")
    x_arr = np.asarray(x, dtype=float)
    table = np.empty((int(l_max) + 1,) + x_arr.shape, dtype=float)
    table[0] = 1.0
    if l_max >= 1:
        table[1] = x_arr
    for k in range(1, int(l_max)):
        table[k + 1] = ((2 * k + 1) * x_arr * table[k] - k * table[k - 1]) / (k + 1)
    return table


def legendre_P_zero(l: int | np.ndarray) -> float | np.ndarray:
    """Value of ``P_l(0)`` computed in log-space for numerical stability."""

    ell = np.asarray(l, dtype=int)
    if ell.size == 0:
        return np.asarray(ell, dtype=float)
    result = np.zeros_like(ell, dtype=float)
    mask_even = (ell % 2) == 0
    if np.any(mask_even):
        k = (ell[mask_even] // 2).astype(int)
        log_val = sp.gammaln(2 * k + 1) - 2 * k * np.log(2.0) - 2 * sp.gammaln(k + 1)
        result[mask_even] = ((-1.0) ** k) * np.exp(log_val)
    return _to_output(result)


@lru_cache(maxsize=64)
def _leggauss(nodes: int) -> tuple[np.ndarray, np.ndarray]:
    x, w = np.polynomial.legendre.leggauss(nodes)
    x.setflags(write=False)
    w.setflags(write=False)
    return x, w


def gauss_legendre(nodes: int, lo: float, hi: float) -> tuple[np.ndarray, np.ndarray]:
    """Gauss-Legendre nodes and weights mapped onto ``[lo, hi]``."""

    x, w = _leggauss(int(nodes))
    half = 0.5 * (hi - lo)
    return half * x + 0.5 * (hi + lo), half * w


__all__ = [
    "gauss_legendre",
    "legendre_P",
    "legendre_P_zero",
    "legendre_table",
]
