"""Exception hierarchy raised by :mod:`spiralvec`."""

from __future__ import annotations

__all__ = [
    "VectorError",
    "PreconditionError",
    "DimensionMismatchError",
    "VectorIndexError",
    "NumericDomainError",
    "VectorParseError",
    "AllocationError",
    "BackendUnavailableError",
]


class VectorError(Exception):
    """Base class for every error raised by vector operations."""


class PreconditionError(VectorError, ValueError):
    """An operation was called with arguments it cannot accept (nothing was modified)."""


class DimensionMismatchError(PreconditionError):
    def __init__(self, operation: str, expected: int, found: int) -> None:
        super().__init__(f"{operation}: dimension mismatch, expected {expected} but got {found}")
        self.operation = operation
        self.expected = expected
        self.found = found


class VectorIndexError(VectorError, IndexError):
    pass


class NumericDomainError(VectorError, ArithmeticError):
    """A math function was asked for a value outside its domain or range."""


class VectorParseError(VectorError, ValueError):
    """Serialized vector data could not be decoded.

    ``position`` is the stream offset where the read began and ``current`` the
    offset where decoding stopped; either may be ``None`` for streams that do
    not report offsets.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        found: str | None = None,
        position: int | None = None,
        current: int | None = None,
    ) -> None:
        detail = f"Failed to read vector from stream. {message}"
        if expected is not None or found is not None:
            detail += f" (expected {expected}, got {found})"
        detail += f" File position at start is {position}, currently {current}"
        super().__init__(detail)
        self.reason = message
        self.expected = expected
        self.found = found
        self.position = position
        self.current = current


class AllocationError(VectorError, MemoryError):
    pass


class BackendUnavailableError(VectorError, RuntimeError):
    pass
