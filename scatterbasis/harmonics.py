"""Real spherical harmonics and product quadrature on the unit sphere.

The real harmonics used throughout the package carry no Condon-Shortley
phase and are orthonormal on the sphere::

    Y_l0  = N_l0 P_l(cos θ)
    Y_lm  = √2 N_lm P̄_l^m(cos θ) cos(m φ)       (m > 0)
    Y_l-m = √2 N_lm P̄_l^m(cos θ) sin(m φ)       (m > 0)

With this choice ``Y_1,-1 ∝ y``, ``Y_10 ∝ z`` and ``Y_11 ∝ x``.
Coefficients are stored densely at ``lm_index(l, m) = l² + l + m``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
import scipy.special as sp

from .legendre import _to_output, gauss_legendre

Y00 = 1.0 / math.sqrt(4.0 * math.pi)


def lm_count(l_max: int) -> int:
    """Number of ``(l, m)`` slots with ``l ≤ l_max``."""

    return (int(l_max) + 1) ** 2


def lm_index(l: int, m: int) -> int:
    """Dense offset of ``(l, m)``."""

    _check_lm(l, m)
    return int(l * l + l + m)


def lm_pairs(l_max: int) -> list[tuple[int, int]]:
    """All ``(l, m)`` pairs up to ``l_max`` in storage order."""

    return [(l, m) for l in range(int(l_max) + 1) for m in range(-l, l + 1)]


def _check_lm(l: int, m: int) -> None:
    if l < 0 or abs(m) > l:
        raise IndexError(f"Invalid angular index (l={l}, m={m}); need l ≥ 0 and |m| ≤ l.")


def _normalisation(l: int, am: int) -> float:
    log_ratio = sp.gammaln(l - am + 1) - sp.gammaln(l + am + 1)
    return math.sqrt((2 * l + 1) / (4.0 * math.pi) * math.exp(log_ratio))


def directions_to_angles(directions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return polar angles ``(θ, φ)`` for direction vectors of shape ``(..., 3)``."""

    vec = np.asarray(directions, dtype=float)
    if vec.shape[-1] != 3:
        raise ValueError("Direction vectors must have a trailing dimension of 3.")
    x, y, z = vec[..., 0], vec[..., 1], vec[..., 2]
    r = np.sqrt(x * x + y * y + z * z)
    cos_theta = np.divide(z, r, out=np.ones_like(r), where=r > 0.0)
    theta = np.arccos(np.clip(cos_theta, -1.0, 1.0))
    phi = np.arctan2(y, x)
    return theta, phi


def real_sph_harm_angles(
    l: int, m: int, theta: float | np.ndarray, phi: float | np.ndarray
) -> float | np.ndarray:
    """Evaluate the real harmonic ``Y_lm`` at polar angles ``(θ, φ)``."""

    _check_lm(l, m)
    theta_arr, phi_arr = np.broadcast_arrays(
        np.asarray(theta, dtype=float), np.asarray(phi, dtype=float)
    )
    if l == 0:
        return _to_output(np.full(theta_arr.shape, Y00))

    am = abs(m)
    # scipy includes the Condon-Shortley phase; strip it.
    plm = ((-1.0) ** am) * sp.lpmv(am, l, np.cos(theta_arr))
    norm = _normalisation(l, am)
    if m == 0:
        values = norm * plm
    elif m > 0:
        values = math.sqrt(2.0) * norm * plm * np.cos(am * phi_arr)
    else:
        values = math.sqrt(2.0) * norm * plm * np.sin(am * phi_arr)
    return _to_output(values)


def real_sph_harm(l: int, m: int, direction: np.ndarray) -> float | np.ndarray:
    """Evaluate ``Y_lm`` on direction vector(s) of shape ``(3,)`` or ``(N, 3)``."""

    theta, phi = directions_to_angles(direction)
    return real_sph_harm_angles(l, m, theta, phi)


def real_sph_harm_all(l_max: int, directions: np.ndarray) -> np.ndarray:
    """Return the table ``Y[i, lm_index(l, m)]`` for ``N`` directions."""

    if l_max < 0:
        raise IndexError("l_max must be non-negative.")
    theta, phi = directions_to_angles(np.atleast_2d(directions))
    table = np.empty((theta.size, lm_count(l_max)), dtype=float)
    theta = theta.reshape(-1)
    phi = phi.reshape(-1)
    for l, m in lm_pairs(l_max):
        table[:, l * l + l + m] = real_sph_harm_angles(l, m, theta, phi)
    return table


@dataclass(frozen=True)
class AngularQuadrature:
    """Gauss-Legendre × trapezoid product rule on the sphere.

    Integrates every spherical polynomial of degree ≤ ``degree`` exactly,
    so products ``Y_lm Y_l'm'`` with ``l + l' ≤ degree`` are exact.
    """

    degree: int
    directions: np.ndarray = field(init=False, repr=False, compare=False)
    weights: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.degree < 0:
            raise ValueError("The quadrature degree must be non-negative.")
        n_theta = self.degree // 2 + 1
        n_phi = self.degree + 1
        cos_theta, w_theta = gauss_legendre(n_theta, -1.0, 1.0)
        phi = 2.0 * np.pi * np.arange(n_phi) / n_phi
        sin_theta = np.sqrt(np.maximum(1.0 - cos_theta ** 2, 0.0))

        ct, ph = np.meshgrid(cos_theta, phi, indexing="ij")
        st, _ = np.meshgrid(sin_theta, phi, indexing="ij")
        directions = np.stack(
            [st * np.cos(ph), st * np.sin(ph), ct], axis=-1
        ).reshape(-1, 3)
        weights = np.repeat(w_theta, n_phi) * (2.0 * np.pi / n_phi)

        directions.setflags(write=False)
        weights.setflags(write=False)
        object.__setattr__(self, "directions", directions)
        object.__setattr__(self, "weights", weights)

    @property
    def size(self) -> int:
        return int(self.weights.size)

    def integrate(self, values: np.ndarray) -> np.ndarray:
        """Integrate samples on ``directions`` (leading axis) over the sphere."""

        return np.tensordot(self.weights, np.asarray(values, dtype=float), axes=(0, 0))


__all__ = [
    "AngularQuadrature",
    "Y00",
    "directions_to_angles",
    "lm_count",
    "lm_index",
    "lm_pairs",
    "real_sph_harm",
    "real_sph_harm_all",
    "real_sph_harm_angles",
]
