#!/usr/bin/env python3
"""Daily-modulation demo with logging

This script projects a boosted Maxwellian velocity distribution and a toy
anisotropic detector response, builds the kinematic matrix for a sub-GeV
dark-matter model scattering off electrons, and evaluates the rate for a set
of detector orientations. It configures the loguru logger at DEBUG level so
that internal debug logs from scatterbasis.projection, scatterbasis.kinematics
and scatterbasis.rates are visible.

Usage
-----
Run directly:
    python examples/rate_demo.py

You can tweak parameters below (n_max, l_max, the model, etc.).
"""
from __future__ import annotations

from time import perf_counter

import numpy as np
from loguru import logger
from scipy.spatial.transform import Rotation

import sys
from pathlib import Path

# Ensure local repo import when running from source tree
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from scatterbasis import (
    ALPHA_EM,
    M_ELECTRON_EV,
    KinematicCache,
    Model,
    RadialBasis,
    RateCalculator,
    km_s,
    project_f,
)

V0 = km_s(220.0)
V_EARTH = np.array([0.0, 0.0, km_s(232.0)])
Q_SCALE = ALPHA_EM * M_ELECTRON_EV


def boosted_maxwellian(v: np.ndarray) -> np.ndarray:
    shifted = v + V_EARTH
    return np.exp(-np.sum(shifted ** 2, axis=-1) / V0 ** 2) / (np.pi ** 1.5 * V0 ** 3)


def detector_response(q: np.ndarray) -> np.ndarray:
    q_norm = np.linalg.norm(q, axis=-1)
    cos2 = np.divide(q[..., 2] ** 2, q_norm ** 2, out=np.zeros_like(q_norm), where=q_norm > 0.0)
    return np.exp(-0.5 * (q_norm / (3.0 * Q_SCALE)) ** 2) * (1.0 + 0.5 * cos2)


def tilt_rotations(angles: np.ndarray) -> Rotation:
    """Stack of rotations about the x axis, one per tilt angle."""

    return Rotation.from_euler("x", np.asarray(angles, dtype=float)[:, None])


def main() -> None:
    # Configure loguru at DEBUG level with a simple format
    logger.remove()
    logger.add(lambda msg: print(msg, end=""), level="DEBUG", format="<lvl>{level}</lvl> | {name}:{function}:{line} | {message}")

    v_basis = RadialBasis.wavelet(16, km_s(960.0))
    q_basis = RadialBasis.wavelet(16, 10.0 * Q_SCALE)
    l_max = 4

    gX = project_f(boosted_maxwellian, v_basis, l_max, workers=4)
    fs2 = project_f(detector_response, q_basis, l_max, workers=4)
    print(f"\ngX power per l: {gX.power()}")
    print(f"fs2 power per l: {fs2.power()}\n")

    model = Model(fdm=0.0, mX=100.0e6, mSM=M_ELECTRON_EV, deltaE=4.0)
    calculator = RateCalculator(model, gX, fs2, cache=KinematicCache(workers=4), workers=2)

    print("\n== Rate vs. detector orientation ==\n")
    angles = np.linspace(0.0, np.pi, 7)
    t0 = perf_counter()
    rates = calculator.rate(tilt_rotations(angles))
    dt = perf_counter() - t0
    for angle, value in zip(angles, rates):
        print(f"tilt={np.degrees(angle):6.1f} deg | rate={value:.6e}")
    print(f"\n{len(rates)} orientations in {dt*1e3:.2f} ms (kinematic matrix included)")

    heavier = Model(fdm=0.0, mX=1.0e9, mSM=M_ELECTRON_EV, deltaE=4.0)
    calculator.update(model=heavier)
    print(f"mX=1 GeV, no rotation | rate={calculator.rate():.6e}")


if __name__ == "__main__":
    main()
