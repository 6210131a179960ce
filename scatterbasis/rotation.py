"""Rotation operators ``G^l`` acting on real spherical-harmonic coefficients.

A rotation is given either as a unit quaternion ``(w, x, y, z)`` or as a
:class:`scipy.spatial.transform.Rotation`. The quaternion is split into the
Cayley-Klein pair ``Ra = w + iz = cos(β/2) e^{i(α+γ)/2}`` and
``Rb = y + ix = sin(β/2) e^{i(γ−α)/2}``, which yields the ZYZ Euler angles of
``R = R_z(α) R_y(β) R_z(γ)`` without gimbal-lock branches. The complex Wigner
matrix ``D_{m'm} = e^{−im'α} d_{m'm}(β) e^{−imγ}`` is then mapped to the real
harmonic basis with the fixed unitary ``U`` (``Y_real = U Y_complex``)::

    G^l = Re(U conj(D^l) U†)

``G^l`` maps the coefficients of ``f`` to those of ``f(R⁻¹ u)``; it is
orthogonal and ``G(R1 R2) = G(R1) G(R2)``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

import numpy as np
import scipy.special as sp
from scipy.spatial.transform import Rotation

from .errors import ConfigurationError
from .harmonics import lm_count

# Quaternions whose norm deviates from one by less than this are renormalised;
# larger deviations are rejected.
ROTATION_NORM_TOL = 1.0e-6


def as_quaternion(rotation: Any) -> np.ndarray:
    """Return the unit quaternion ``(w, x, y, z)`` for ``rotation``."""

    if isinstance(rotation, Rotation):
        xyzw = np.asarray(rotation.as_quat(), dtype=float)
        if xyzw.shape != (4,):
            raise ConfigurationError("Expected a single rotation, got a stack of rotations.")
        quat = np.array([xyzw[3], xyzw[0], xyzw[1], xyzw[2]], dtype=float)
    else:
        quat = np.asarray(rotation, dtype=float)
        if quat.shape != (4,):
            raise ConfigurationError(
                f"A rotation must be a quaternion (w, x, y, z); got shape {quat.shape}."
            )

    norm = float(np.linalg.norm(quat))
    if not np.isfinite(norm) or abs(norm - 1.0) > ROTATION_NORM_TOL:
        raise ConfigurationError(
            f"Rotation quaternion must have unit norm (|q|={norm:.9g})."
        )
    return quat / norm


def euler_zyz(quaternion: np.ndarray) -> tuple[float, float, float]:
    """ZYZ Euler angles ``(α, β, γ)`` of a unit quaternion."""

    w, x, y, z = (float(c) for c in quaternion)
    ra = complex(w, z)
    rb = complex(y, x)
    beta = 2.0 * math.atan2(abs(rb), abs(ra))
    arg_a = math.atan2(ra.imag, ra.real)
    arg_b = math.atan2(rb.imag, rb.real)
    return arg_a - arg_b, beta, arg_a + arg_b


def wigner_d_small(l: int, beta: float) -> np.ndarray:
    """Wigner small-d matrix ``d^l_{m'm}(β)``, indexed ``[m' + l, m + l]``."""

    if l < 0:
        raise IndexError(f"Angular degree must be non-negative, got {l}.")
    if l == 0:
        return np.ones((1, 1), dtype=float)

    mp = np.arange(-l, l + 1)[:, None, None]
    m = np.arange(-l, l + 1)[None, :, None]
    s = np.arange(0, 2 * l + 1)[None, None, :]

    a1 = l + m - s
    a3 = mp - m + s
    a4 = l - mp - s
    valid = (a1 >= 0) & (a3 >= 0) & (a4 >= 0)

    def _lf(arg: np.ndarray) -> np.ndarray:
        return sp.gammaln(np.where(valid, arg, 0) + 1.0)

    log_prefactor = 0.5 * (
        sp.gammaln(l + mp + 1.0)
        + sp.gammaln(l - mp + 1.0)
        + sp.gammaln(l + m + 1.0)
        + sp.gammaln(l - m + 1.0)
    )
    log_denominator = _lf(a1) + _lf(s) + _lf(a3) + _lf(a4)
    sign = np.where(np.abs(a3) % 2 == 0, 1.0, -1.0)

    cos_half = math.cos(0.5 * beta)
    sin_half = math.sin(0.5 * beta)
    power_cos = np.where(valid, a1 + a4, 0)
    power_sin = np.where(valid, a3 + s, 0)
    terms = (
        sign
        * np.exp(log_prefactor - log_denominator)
        * np.power(cos_half, power_cos)
        * np.power(sin_half, power_sin)
    )
    return np.sum(np.where(valid, terms, 0.0), axis=-1)


def wigner_D(l: int, alpha: float, beta: float, gamma: float) -> np.ndarray:
    """Complex Wigner matrix ``D^l_{m'm}(α, β, γ)`` for ``R_z(α) R_y(β) R_z(γ)``."""

    m = np.arange(-l, l + 1)
    left = np.exp(-1j * m * alpha)[:, None]
    right = np.exp(-1j * m * gamma)[None, :]
    return left * wigner_d_small(l, beta) * right


@lru_cache(maxsize=None)
def _complex_to_real(l: int) -> np.ndarray:
    size = 2 * l + 1
    u = np.zeros((size, size), dtype=complex)
    u[l, l] = 1.0
    root_half = 1.0 / math.sqrt(2.0)
    for m in range(1, l + 1):
        phase = (-1.0) ** m
        u[l + m, l + m] = phase * root_half
        u[l + m, l - m] = root_half
        u[l - m, l - m] = 1j * root_half
        u[l - m, l + m] = -1j * phase * root_half
    u.setflags(write=False)
    return u


def complex_to_real(l: int) -> np.ndarray:
    """Unitary ``U`` with ``Y_real = U Y_complex`` for degree ``l``."""

    if l < 0:
        raise IndexError(f"Angular degree must be non-negative, got {l}.")
    return _complex_to_real(int(l)).copy()


@dataclass(frozen=True, eq=False)
class RotationOperator:
    """Per-degree real rotation matrices ``G^l`` for ``l ≤ l_max``."""

    l_max: int
    blocks: tuple[np.ndarray, ...]
    quaternion: Optional[np.ndarray] = None

    def matrix(self, l: int) -> np.ndarray:
        """Return the ``(2l + 1) × (2l + 1)`` block for degree ``l``."""

        if not (0 <= l <= self.l_max):
            raise IndexError(f"Angular degree l={l} outside [0, {self.l_max}].")
        return self.blocks[l]

    @property
    def is_identity(self) -> bool:
        return self.quaternion is None

    def apply(self, coefficients: np.ndarray) -> np.ndarray:
        """Rotate a dense ``(n, (l_max + 1)²)`` coefficient array."""

        coeffs = np.asarray(coefficients, dtype=float)
        if coeffs.shape[-1] != lm_count(self.l_max):
            raise ConfigurationError(
                f"Coefficient array with {coeffs.shape[-1]} (l, m) slots does not match l_max={self.l_max}."
            )
        out = np.empty_like(coeffs)
        for l, block in enumerate(self.blocks):
            sl = slice(l * l, (l + 1) * (l + 1))
            out[..., sl] = coeffs[..., sl] @ block.T
        return out


def identity_operator(l_max: int) -> RotationOperator:
    blocks = tuple(np.eye(2 * l + 1) for l in range(int(l_max) + 1))
    return RotationOperator(int(l_max), blocks, None)


def rotation_operator(rotation: Any, l_max: int) -> RotationOperator:
    """Build ``G^l`` for ``l ≤ l_max``; ``None`` gives the identity operator."""

    if int(l_max) != l_max or l_max < 0:
        raise ConfigurationError("l_max must be a non-negative integer.")
    if rotation is None:
        return identity_operator(l_max)

    quat = as_quaternion(rotation)
    alpha, beta, gamma = euler_zyz(quat)
    blocks = []
    for l in range(int(l_max) + 1):
        if l == 0:
            blocks.append(np.ones((1, 1), dtype=float))
            continue
        u = _complex_to_real(l)
        d_conj = np.conj(wigner_D(l, alpha, beta, gamma))
        blocks.append(np.real(u @ d_conj @ u.conj().T))
    return RotationOperator(int(l_max), tuple(blocks), quat)


__all__ = [
    "ROTATION_NORM_TOL",
    "RotationOperator",
    "as_quaternion",
    "complex_to_real",
    "euler_zyz",
    "identity_operator",
    "rotation_operator",
    "wigner_D",
    "wigner_d_small",
]
