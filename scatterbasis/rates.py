"""Rate assembly from projected distributions, kinematics and rotations.

For each rotation ``R`` the rate is

    R = (k0 / T_exp) Σ_{l,n,n',m,m'} gX_{nlm} I^l_{nn'} G^l_{mm'} fs2_{n'lm'},

where ``G^l`` rotates the momentum-space (detector) coefficients. All
compatibility checks run before any contraction: mismatched bases, ranges or
models raise :class:`~scatterbasis.errors.ConfigurationError` instead of being
silently truncated.
"""

from __future__ import annotations

import numbers
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from time import perf_counter
from typing import Any, Iterator, List, Optional

import numpy as np
from loguru import logger
from scipy.spatial.transform import Rotation

from .errors import ConfigurationError
from .kinematics import KinematicCache, KinematicMatrix, kinematic_matrix
from .model import Model
from .projection import ProjectedF
from .rotation import RotationOperator, as_quaternion, rotation_operator


def check_compatibility(
    model: Model,
    gX: ProjectedF,
    fs2: ProjectedF,
    kinematic: KinematicMatrix,
) -> None:
    """Raise :class:`ConfigurationError` unless the inputs can be contracted."""

    if not gX.basis.compatible_with(kinematic.v_basis):
        raise ConfigurationError(
            f"Velocity projection basis {gX.basis} does not match the kinematic v-basis {kinematic.v_basis}."
        )
    if not fs2.basis.compatible_with(kinematic.q_basis):
        raise ConfigurationError(
            f"Momentum projection basis {fs2.basis} does not match the kinematic q-basis {kinematic.q_basis}."
        )
    if gX.l_max > kinematic.l_max or fs2.l_max > kinematic.l_max:
        raise ConfigurationError(
            f"Projection l_max ({gX.l_max}, {fs2.l_max}) exceeds the kinematic matrix l_max={kinematic.l_max}."
        )
    if kinematic.model != model:
        raise ConfigurationError("The kinematic matrix was computed for a different model.")


def _contract(
    gX: ProjectedF,
    fs2: ProjectedF,
    kinematic: KinematicMatrix,
    operator: Optional[RotationOperator],
) -> float:
    """``Σ gX I G fs2`` without prefactors; ``operator=None`` skips ``G``."""

    total = 0.0
    for l in range(min(gX.l_max, fs2.l_max) + 1):
        coupled = kinematic.block(l) @ fs2.lm_block(l)
        if operator is not None:
            coupled = coupled @ operator.matrix(l).T
        total += float(np.sum(gX.lm_block(l) * coupled))
    return total


def _split_rotations(rotations: Any) -> tuple[list, bool]:
    """Return ``(rotation list, single)`` for the accepted rotation inputs."""

    if rotations is None:
        return [None], True
    if isinstance(rotations, Rotation):
        if rotations.single:
            return [rotations], True
        return [rotations[i] for i in range(len(rotations))], False
    if isinstance(rotations, np.ndarray) or (
        isinstance(rotations, (list, tuple))
        and len(rotations) > 0
        and all(isinstance(c, numbers.Real) for c in rotations)
    ):
        arr = np.asarray(rotations, dtype=float)
        if arr.shape == (4,):
            return [arr], True
        if arr.ndim == 2 and arr.shape[1] == 4:
            return list(arr), False
        raise ConfigurationError(
            f"Quaternion input must have shape (4,) or (N, 4); got {arr.shape}."
        )
    return list(rotations), False


def _resolve_kinematic(
    model: Model,
    gX: ProjectedF,
    fs2: ProjectedF,
    kinematic: Optional[KinematicMatrix],
    nodes: int,
) -> KinematicMatrix:
    if kinematic is None:
        kinematic = kinematic_matrix(
            gX.basis, fs2.basis, model, max(gX.l_max, fs2.l_max), nodes=nodes
        )
    check_compatibility(model, gX, fs2, kinematic)
    return kinematic


def _rate_stream(
    rotation_list: list,
    model: Model,
    gX: ProjectedF,
    fs2: ProjectedF,
    kinematic: Optional[KinematicMatrix],
    t_exp: float,
    workers: Optional[int],
    nodes: int,
) -> Iterator[float]:
    """Validate eagerly, then return the lazy rate iterator for an already split list."""

    if not t_exp > 0.0:
        raise ConfigurationError("t_exp must be positive.")
    kinematic = _resolve_kinematic(model, gX, fs2, kinematic, nodes)
    rotation_list = [
        None if rotation is None else as_quaternion(rotation) for rotation in rotation_list
    ]
    prefactor = model.k0 / t_exp
    l_top = min(gX.l_max, fs2.l_max)

    def _one(rotation: Any) -> float:
        operator = None if rotation is None else rotation_operator(rotation, l_top)
        return prefactor * _contract(gX, fs2, kinematic, operator)

    def _serial() -> Iterator[float]:
        for rotation in rotation_list:
            yield _one(rotation)

    def _pooled() -> Iterator[float]:
        window = 2 * int(workers)
        pending: deque[Future] = deque()
        next_index = 0
        with ThreadPoolExecutor(max_workers=int(workers)) as pool:
            try:
                while pending or next_index < len(rotation_list):
                    while len(pending) < window and next_index < len(rotation_list):
                        pending.append(pool.submit(_one, rotation_list[next_index]))
                        next_index += 1
                    yield pending.popleft().result()
            finally:
                for future in pending:
                    future.cancel()

    if workers and workers > 1:
        return _pooled()
    return _serial()


def iter_rates(
    rotations: Any,
    model: Model,
    gX: ProjectedF,
    fs2: ProjectedF,
    kinematic: Optional[KinematicMatrix] = None,
    *,
    t_exp: float = 1.0,
    workers: Optional[int] = None,
    nodes: int = 32,
) -> Iterator[float]:
    """Lazily yield one rate per rotation, in input order.

    Inputs and rotations are validated immediately; rates are computed as the iterator is
    consumed, so abandoning it stops further work. With ``workers > 1`` at most
    ``2 * workers`` rotations are in flight at any time.
    """

    rotation_list, _ = _split_rotations(rotations)
    return _rate_stream(rotation_list, model, gX, fs2, kinematic, t_exp, workers, nodes)


def rate(
    rotations: Any,
    model: Model,
    gX: ProjectedF,
    fs2: ProjectedF,
    kinematic: Optional[KinematicMatrix] = None,
    *,
    t_exp: float = 1.0,
    workers: Optional[int] = None,
    nodes: int = 32,
) -> float | List[float]:
    """Return the rate for one rotation, or a list matching a rotation sequence.

    ``rotations`` may be ``None`` (no rotation contraction), a quaternion
    ``(w, x, y, z)``, a :class:`scipy.spatial.transform.Rotation` (single or
    stacked), an ``(N, 4)`` array or any iterable of these. Iterables are
    consumed exactly once.
    """

    t0 = perf_counter()
    rotation_list, single = _split_rotations(rotations)
    values = list(_rate_stream(rotation_list, model, gX, fs2, kinematic, t_exp, workers, nodes))
    dt = perf_counter() - t0
    logger.debug(
        f"rate: {len(values)} rotation(s) | l_max=({gX.l_max}, {fs2.l_max}) | {dt*1e3:.2f} ms"
    )
    return values[0] if single else values


class RateCalculator:
    """Rate evaluator owning a :class:`KinematicCache` for its inputs.

    Replacing the model or either projection through :meth:`update` drops the
    cached kinematic matrices that no longer apply.
    """

    def __init__(
        self,
        model: Model,
        gX: ProjectedF,
        fs2: ProjectedF,
        *,
        cache: Optional[KinematicCache] = None,
        t_exp: float = 1.0,
        workers: Optional[int] = None,
    ) -> None:
        """Store the inputs; the kinematic matrix is computed on first use."""

        if not t_exp > 0.0:
            raise ValueError("t_exp must be positive.")
        self.model = model
        self.gX = gX
        self.fs2 = fs2
        self.cache = cache if cache is not None else KinematicCache()
        self.t_exp = float(t_exp)
        self.workers = workers

    def update(
        self,
        *,
        model: Optional[Model] = None,
        gX: Optional[ProjectedF] = None,
        fs2: Optional[ProjectedF] = None,
    ) -> None:
        """Replace inputs and invalidate the cache entries they made stale."""

        if model is not None and model != self.model:
            self.cache.invalidate(model=self.model)
            self.model = model
        if gX is not None:
            if not gX.basis.compatible_with(self.gX.basis):
                self.cache.invalidate(v_basis=self.gX.basis)
            self.gX = gX
        if fs2 is not None:
            if not fs2.basis.compatible_with(self.fs2.basis):
                self.cache.invalidate(q_basis=self.fs2.basis)
            self.fs2 = fs2

    @property
    def kinematic(self) -> KinematicMatrix:
        return self.cache.get(
            self.gX.basis,
            self.fs2.basis,
            self.model,
            max(self.gX.l_max, self.fs2.l_max),
        )

    def rate(self, rotation: Any = None) -> float | List[float]:
        return rate(
            rotation,
            self.model,
            self.gX,
            self.fs2,
            self.kinematic,
            t_exp=self.t_exp,
            workers=self.workers,
        )

    def iter_rates(self, rotations: Any) -> Iterator[float]:
        return iter_rates(
            rotations,
            self.model,
            self.gX,
            self.fs2,
            self.kinematic,
            t_exp=self.t_exp,
            workers=self.workers,
        )


__all__ = [
    "RateCalculator",
    "check_compatibility",
    "iter_rates",
    "rate",
]
