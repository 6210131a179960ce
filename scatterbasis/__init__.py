"""Scattering rates from radial × real-harmonic basis projections.

The package is organised into focused submodules:

``scatterbasis.basis``
    Tophat and Haar-wavelet radial bases with their Legendre transforms.
``scatterbasis.harmonics``
    Real spherical harmonics, dense ``(l, m)`` offsets and sphere quadrature.
``scatterbasis.projection``
    Numerical projection of scalar fields into :class:`ProjectedF` coefficients.
``scatterbasis.model``
    Dark-matter model parameters, ``v_min(q)`` and the rate prefactor.
``scatterbasis.kinematics``
    The kinematic scattering matrix ``I[l, n, n']`` and its explicit cache.
``scatterbasis.rotation``
    Real-harmonic rotation operators ``G^l`` built from Wigner matrices.
``scatterbasis.rates``
    Contraction of projections, kinematics and rotations into rates.
``scatterbasis.io``
    Text persistence of projected coefficients.

The most commonly used symbols are re-exported here."""

from __future__ import annotations

from .basis import BASIS_KINDS, RadialBasis, cell_legendre_transform, cell_legendre_transforms
from .errors import ConfigurationError, ConvergenceWarning, SerializationError
from .harmonics import (
    AngularQuadrature,
    lm_count,
    lm_index,
    lm_pairs,
    real_sph_harm,
    real_sph_harm_all,
    real_sph_harm_angles,
)
from .io import dumps, loads, read_projection, write_projection
from .kinematics import KinematicCache, KinematicMatrix, kinematic_matrix
from .legendre import legendre_P, legendre_table
from .model import ALPHA_EM, C_KMS, M_ELECTRON_EV, Model, km_s
from .projection import ProjectedF, Projector, QuadratureSettings, project_f
from .rates import RateCalculator, check_compatibility, iter_rates, rate
from .rotation import (
    RotationOperator,
    as_quaternion,
    complex_to_real,
    rotation_operator,
    wigner_D,
    wigner_d_small,
)

__all__ = [
    "ALPHA_EM",
    "BASIS_KINDS",
    "C_KMS",
    "M_ELECTRON_EV",
    "AngularQuadrature",
    "ConfigurationError",
    "ConvergenceWarning",
    "KinematicCache",
    "KinematicMatrix",
    "Model",
    "ProjectedF",
    "Projector",
    "QuadratureSettings",
    "RadialBasis",
    "RateCalculator",
    "RotationOperator",
    "SerializationError",
    "as_quaternion",
    "cell_legendre_transform",
    "cell_legendre_transforms",
    "check_compatibility",
    "complex_to_real",
    "dumps",
    "iter_rates",
    "kinematic_matrix",
    "km_s",
    "legendre_P",
    "legendre_table",
    "lm_count",
    "lm_index",
    "lm_pairs",
    "loads",
    "project_f",
    "rate",
    "read_projection",
    "real_sph_harm",
    "real_sph_harm_all",
    "real_sph_harm_angles",
    "rotation_operator",
    "wigner_D",
    "wigner_d_small",
    "write_projection",
]
