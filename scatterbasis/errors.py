"""Exception and warning types raised by :mod:`scatterbasis`."""

from __future__ import annotations

from typing import Optional


class ConfigurationError(ValueError):
    """Objects that are combined do not share a basis, range or model."""


class SerializationError(ValueError):
    """Persisted coefficient data could not be parsed."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line


class ConvergenceWarning(UserWarning):
    """An adaptive quadrature exhausted its budget before reaching tolerance."""


__all__ = ["ConfigurationError", "ConvergenceWarning", "SerializationError"]
