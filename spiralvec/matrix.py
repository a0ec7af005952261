"""Read-only matrix views consumed by vector operations.

Vectors never own or modify these; they only read the row data, row/column
counts and stride when computing matrix-vector products or copying rows,
columns and diagonals.  Dense matrices are row-major with a row stride of at
least ``num_cols``.  Packed matrices store the lower triangle row by row, so
element ``(i, j)`` with ``j <= i`` lives at ``i * (i + 1) // 2 + j``.
"""

from __future__ import annotations

from array import array
from enum import Enum
from typing import Iterable, Sequence

from .dtypes import ElementType, FLOAT32, as_element_type
from .errors import PreconditionError, VectorIndexError

__all__ = [
    "Transpose",
    "as_transpose",
    "DenseMatrix",
    "PackedMatrix",
    "SymmetricPackedMatrix",
    "TriangularPackedMatrix",
]


class Transpose(Enum):
    NO_TRANS = "N"
    TRANS = "T"

    @property
    def transposed(self) -> bool:
        return self is Transpose.TRANS


def as_transpose(value: "Transpose | bool") -> Transpose:
    if isinstance(value, Transpose):
        return value
    return Transpose.TRANS if value else Transpose.NO_TRANS


class DenseMatrix:
    """A row-major matrix over an ``array`` buffer."""

    def __init__(
        self,
        num_rows: int,
        num_cols: int,
        data: array | None = None,
        *,
        stride: int | None = None,
        offset: int = 0,
        dtype: ElementType | str | None = None,
    ) -> None:
        if num_rows < 0 or num_cols < 0:
            raise PreconditionError(f"matrix dimensions must be non-negative, got ({num_rows}, {num_cols})")
        if stride is None:
            stride = num_cols
        if stride < num_cols:
            raise PreconditionError(f"matrix stride {stride} is smaller than its {num_cols} columns")
        if data is None:
            element = as_element_type(dtype)
            data = element.allocate(num_rows * stride)
        else:
            element = ElementType.from_typecode(data.typecode)
            if dtype is not None and as_element_type(dtype) is not element:
                raise PreconditionError(f"buffer typecode {data.typecode!r} does not match {dtype}")
        needed = offset + (num_rows - 1) * stride + num_cols if num_rows and num_cols else offset
        if offset < 0 or needed > len(data):
            raise PreconditionError(
                f"buffer of {len(data)} elements is too small for a ({num_rows}, {num_cols}) "
                f"matrix with stride {stride} at offset {offset}"
            )
        self.num_rows = num_rows
        self.num_cols = num_cols
        self.stride = stride
        self.offset = offset
        self.data = data
        self.dtype = element

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[Sequence[float]],
        dtype: ElementType | str | None = FLOAT32,
        *,
        stride: int | None = None,
    ) -> "DenseMatrix":
        num_rows = len(rows)
        num_cols = len(rows[0]) if num_rows else 0
        for index, row in enumerate(rows):
            if len(row) != num_cols:
                raise PreconditionError(
                    f"row {index} has {len(row)} entries, expected {num_cols}"
                )
        matrix = cls(num_rows, num_cols, stride=stride, dtype=dtype)
        for i, row in enumerate(rows):
            start = matrix.row_offset(i)
            for j, value in enumerate(row):
                matrix.data[start + j] = value
        return matrix

    def row_offset(self, row: int) -> int:
        """Index into :attr:`data` of the first element of ``row``."""

        return self.offset + row * self.stride

    def __getitem__(self, index: tuple[int, int]) -> float:
        row, col = index
        if not (0 <= row < self.num_rows and 0 <= col < self.num_cols):
            raise VectorIndexError(f"index ({row}, {col}) out of range for {self.shape} matrix")
        return self.data[self.row_offset(row) + col]

    @property
    def shape(self) -> tuple[int, int]:
        return (self.num_rows, self.num_cols)

    def tolist(self) -> list[list[float]]:
        return [
            list(self.data[self.row_offset(i) : self.row_offset(i) + self.num_cols])
            for i in range(self.num_rows)
        ]

    def __repr__(self) -> str:
        return f"DenseMatrix({self.num_rows}, {self.num_cols}, stride={self.stride}, dtype={self.dtype})"


class PackedMatrix:
    """Lower-triangular packed storage for an ``n x n`` matrix."""

    def __init__(
        self,
        num_rows: int,
        data: array | None = None,
        *,
        offset: int = 0,
        dtype: ElementType | str | None = None,
    ) -> None:
        if num_rows < 0:
            raise PreconditionError(f"matrix dimension must be non-negative, got {num_rows}")
        size = num_rows * (num_rows + 1) // 2
        if data is None:
            element = as_element_type(dtype)
            data = element.allocate(size)
        else:
            element = ElementType.from_typecode(data.typecode)
        if offset < 0 or offset + size > len(data):
            raise PreconditionError(
                f"buffer of {len(data)} elements is too small for a packed {num_rows}x{num_rows} matrix"
            )
        self.num_rows = num_rows
        self.offset = offset
        self.data = data
        self.dtype = element

    @property
    def num_cols(self) -> int:
        return self.num_rows

    @property
    def size(self) -> int:
        """Number of stored elements."""

        return self.num_rows * (self.num_rows + 1) // 2

    @classmethod
    def from_lower(
        cls, rows: Iterable[Sequence[float]], dtype: ElementType | str | None = FLOAT32
    ) -> "PackedMatrix":
        """Build from the lower triangle; row ``i`` must hold at least ``i + 1`` values."""

        rows = [list(row) for row in rows]
        matrix = cls(len(rows), dtype=dtype)
        for i, row in enumerate(rows):
            if len(row) < i + 1:
                raise PreconditionError(f"row {i} needs {i + 1} lower-triangle entries, got {len(row)}")
            for j in range(i + 1):
                matrix.data[matrix.offset + i * (i + 1) // 2 + j] = row[j]
        return matrix

    def packed_index(self, row: int, col: int) -> int:
        return self.offset + row * (row + 1) // 2 + col

    def _check(self, row: int, col: int) -> None:
        if not (0 <= row < self.num_rows and 0 <= col < self.num_rows):
            raise VectorIndexError(
                f"index ({row}, {col}) out of range for {self.num_rows}x{self.num_rows} matrix"
            )

    def __getitem__(self, index: tuple[int, int]) -> float:
        row, col = index
        self._check(row, col)
        if col > row:
            return 0.0
        return self.data[self.packed_index(row, col)]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.num_rows}, dtype={self.dtype})"


class SymmetricPackedMatrix(PackedMatrix):
    def __getitem__(self, index: tuple[int, int]) -> float:
        row, col = index
        self._check(row, col)
        if col > row:
            row, col = col, row
        return self.data[self.packed_index(row, col)]


class TriangularPackedMatrix(PackedMatrix):
    """Lower-triangular matrix; entries above the diagonal read as zero."""
