"""Particle-physics model parameters entering the kinematic matrix and rates."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .legendre import _to_output

ALPHA_EM = 1.0 / 137.035999084
C_KMS = 299792.458
M_ELECTRON_EV = 510998.95


def km_s(velocity_kms: float | np.ndarray) -> float | np.ndarray:
    """Convert a velocity in km/s to units of the speed of light."""

    return _to_output(np.asarray(velocity_kms, dtype=float) / C_KMS)


@dataclass(frozen=True)
class Model:
    """Dark-matter model: ``(fdm, mX, mSM, deltaE)`` in natural units.

    ``fdm`` is the exponent of the form factor ``F_DM(q) = (q0 / q)^fdm``,
    ``mX`` the dark-matter mass, ``mSM`` the Standard-Model target mass and
    ``deltaE`` the transition energy. Masses, energies and momenta share one
    unit; velocities are fractions of ``c``.
    """

    fdm: float
    mX: float
    mSM: float
    deltaE: float

    def __post_init__(self) -> None:
        """Validate the model parameters."""

        if not np.isfinite(self.fdm):
            raise ValueError("The form-factor exponent must be finite.")
        if not (self.mX > 0.0 and np.isfinite(self.mX)):
            raise ValueError("The dark-matter mass must be positive.")
        if not (self.mSM > 0.0 and np.isfinite(self.mSM)):
            raise ValueError("The target mass must be positive.")
        if not (self.deltaE >= 0.0 and np.isfinite(self.deltaE)):
            raise ValueError("The transition energy must be non-negative.")
        for name in ("fdm", "mX", "mSM", "deltaE"):
            object.__setattr__(self, name, float(getattr(self, name)))

    @property
    def mu(self) -> float:
        """Reduced mass of the dark-matter/target system."""

        return self.mX * self.mSM / (self.mX + self.mSM)

    @property
    def q0(self) -> float:
        """Reference momentum ``α mSM`` of the form factor."""

        return ALPHA_EM * self.mSM

    @property
    def k0(self) -> float:
        """Mass prefactor ``1 / (4π mX μ²)`` of the rate."""

        return 1.0 / (4.0 * math.pi * self.mX * self.mu ** 2)

    def v_min(self, q: float | np.ndarray) -> float | np.ndarray:
        """Smallest speed able to transfer momentum ``q``: ``q / 2mX + ΔE / q``."""

        q_arr = np.asarray(q, dtype=float)
        with np.errstate(divide="ignore"):
            energy_term = np.where(
                q_arr > 0.0,
                self.deltaE / np.where(q_arr > 0.0, q_arr, 1.0),
                np.inf if self.deltaE > 0.0 else 0.0,
            )
        return _to_output(q_arr / (2.0 * self.mX) + energy_term)

    def form_factor_sq(self, q: float | np.ndarray) -> float | np.ndarray:
        """``F_DM(q)² = (q0 / q)^(2 fdm)``."""

        q_arr = np.asarray(q, dtype=float)
        with np.errstate(divide="ignore"):
            return _to_output((self.q0 / q_arr) ** (2.0 * self.fdm))

    @property
    def infrared_divergent(self) -> bool:
        """``True`` when the momentum integral diverges at ``q → 0``."""

        return self.deltaE == 0.0 and self.fdm >= 1.0


__all__ = ["ALPHA_EM", "C_KMS", "M_ELECTRON_EV", "Model", "km_s"]
