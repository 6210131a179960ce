"""Text persistence for :class:`~scatterbasis.projection.ProjectedF`.

Format::

    # scatterbasis basis=wavelet n_max=16 l_max=4 u_max=0.0025
    0 0 0 1.2345678901234567e-01
    3 2 -1 -4.5e-05

The metadata record comes first; each following non-blank line is one
populated ``n l m value`` coefficient. Lines starting with ``#`` after the
header are comments.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Union

from loguru import logger

from .basis import BASIS_KINDS, RadialBasis
from .errors import SerializationError
from .projection import ProjectedF

HEADER_TAG = "scatterbasis"
PathLike = Union[str, os.PathLike]


def dumps(projection: ProjectedF) -> str:
    """Serialise ``projection`` to the text format."""

    basis = projection.basis
    lines = [
        f"# {HEADER_TAG} basis={basis.kind} n_max={basis.n_max} "
        f"l_max={projection.l_max} u_max={basis.u_max!r}"
    ]
    for n, l, m, value in projection.items():
        lines.append(f"{n} {l} {m} {value:.17g}")
    return "\n".join(lines) + "\n"


def _parse_header(line: str) -> tuple[RadialBasis, int]:
    tokens = line.lstrip("#").split()
    if not tokens or tokens[0] != HEADER_TAG:
        raise SerializationError("missing scatterbasis metadata record", line=1)
    fields: dict[str, str] = {}
    for token in tokens[1:]:
        key, sep, value = token.partition("=")
        if not sep or not value:
            raise SerializationError(f"malformed metadata field '{token}'", line=1)
        fields[key] = value

    missing = {"basis", "n_max", "l_max", "u_max"} - fields.keys()
    if missing:
        raise SerializationError(f"metadata lacks {sorted(missing)}", line=1)
    if fields["basis"] not in BASIS_KINDS:
        raise SerializationError(f"unknown basis '{fields['basis']}'", line=1)
    try:
        n_max = int(fields["n_max"])
        l_max = int(fields["l_max"])
        u_max = float(fields["u_max"])
        basis = RadialBasis(fields["basis"], n_max, u_max)
    except ValueError as exc:
        raise SerializationError(f"invalid metadata: {exc}", line=1) from exc
    if l_max < 0:
        raise SerializationError("l_max must be non-negative", line=1)
    return basis, l_max


def _parse_rows(lines: list[str], basis: RadialBasis, l_max: int) -> Iterator[tuple[int, int, int, float]]:
    for offset, raw in enumerate(lines, start=2):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) != 4:
            raise SerializationError(f"expected 'n l m value', got {raw!r}", line=offset)
        try:
            n, l, m = (int(p) for p in parts[:3])
            value = float(parts[3])
        except ValueError as exc:
            raise SerializationError(f"cannot parse {raw!r}: {exc}", line=offset) from exc
        if not (0 <= n < basis.n_max) or not (0 <= l <= l_max) or abs(m) > l:
            raise SerializationError(
                f"index (n={n}, l={l}, m={m}) outside n_max={basis.n_max}, l_max={l_max}",
                line=offset,
            )
        yield n, l, m, value


def loads(text: str) -> ProjectedF:
    """Parse the text format into a :class:`ProjectedF`."""

    lines = text.splitlines()
    if not lines or not lines[0].strip():
        raise SerializationError("empty coefficient data", line=1)
    basis, l_max = _parse_header(lines[0].strip())
    return ProjectedF.from_items(basis, l_max, _parse_rows(lines[1:], basis, l_max))


def write_projection(projection: ProjectedF, path: PathLike) -> Path:
    """Write ``projection`` to ``path`` and return the path."""

    target = Path(path)
    text = dumps(projection)
    target.write_text(text, encoding="utf-8")
    logger.debug(
        f"write_projection: {target} | rows={text.count(chr(10)) - 1} | basis={projection.basis.kind}"
    )
    return target


def read_projection(path: PathLike) -> ProjectedF:
    """Read a projection written by :func:`write_projection`."""

    target = Path(path)
    projection = loads(target.read_text(encoding="utf-8"))
    logger.debug(
        f"read_projection: {target} | basis={projection.basis.kind} n_max={projection.n_max} l_max={projection.l_max}"
    )
    return projection


__all__ = ["dumps", "loads", "read_projection", "write_projection"]
