"""Element widths understood by :mod:`spiralvec` vectors."""

from __future__ import annotations

import math
import sys
from array import array
from enum import Enum

__all__ = ["ElementType", "FLOAT32", "FLOAT64", "as_element_type"]

_FLT_EPSILON = 1.1920928955078125e-07
_FLT_MAX = 3.4028234663852886e38


class ElementType(Enum):
    """Storage width of a vector element.

    The value tuple is ``(typecode, itemsize, binary tag)``; the typecode is the
    one used by :class:`array.array` for the backing buffer.
    """

    FLOAT32 = ("f", 4, "FV")
    FLOAT64 = ("d", 8, "DV")

    @property
    def typecode(self) -> str:
        return self.value[0]

    @property
    def itemsize(self) -> int:
        return self.value[1]

    @property
    def token(self) -> str:
        return self.value[2]

    @property
    def epsilon(self) -> float:
        if self is ElementType.FLOAT32:
            return _FLT_EPSILON
        return sys.float_info.epsilon

    @property
    def max(self) -> float:
        if self is ElementType.FLOAT32:
            return _FLT_MAX
        return sys.float_info.max

    @property
    def min_log_diff(self) -> float:
        # Terms further than this below the maximum vanish in log-sum-exp.
        return math.log(self.epsilon)

    @property
    def other(self) -> "ElementType":
        if self is ElementType.FLOAT32:
            return ElementType.FLOAT64
        return ElementType.FLOAT32

    def round(self, value: float) -> float:
        """Return ``value`` as it would be stored in an element of this width."""

        if self is ElementType.FLOAT64:
            return float(value)
        return array("f", (value,))[0]

    def allocate(self, dim: int) -> array:
        return array(self.typecode, bytes(dim * self.itemsize))

    @classmethod
    def from_typecode(cls, typecode: str) -> "ElementType":
        for member in cls:
            if member.typecode == typecode:
                return member
        raise TypeError(f"unsupported array typecode {typecode!r}; expected 'f' or 'd'")

    @classmethod
    def from_token(cls, token: str) -> "ElementType | None":
        for member in cls:
            if member.token == token:
                return member
        return None

    def __str__(self) -> str:
        return "float32" if self is ElementType.FLOAT32 else "float64"


FLOAT32 = ElementType.FLOAT32
FLOAT64 = ElementType.FLOAT64


def as_element_type(value: object) -> ElementType:
    """Normalise ``value`` (an :class:`ElementType`, name or typecode) to an :class:`ElementType`."""

    if isinstance(value, ElementType):
        return value
    if value is None:
        return FLOAT32
    normalized = str(value).strip().lower()
    if normalized in {"f", "float32", "float", "single", "fv"}:
        return FLOAT32
    if normalized in {"d", "float64", "double", "dv"}:
        return FLOAT64
    raise TypeError(f"unsupported element type {value!r}")
