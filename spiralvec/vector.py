"""Strided vectors over ``array`` buffers.

:class:`VectorView` is a non-owning handle ``(data, offset, stride, dim)`` onto a
buffer that somebody else owns: an :class:`OwningVector`, a matrix row or
column, or a plain ``array``.  It carries the whole elementwise, reduction and
matrix-interaction API.  :class:`OwningVector` adds allocation, resizing and
buffer swapping.  Views taken from an owning vector are stale once that vector
is resized.

Operands of the same element width go through :func:`spiralvec.backend.backend_for`;
mixed widths always use the portable loops.
"""

from __future__ import annotations

import logging
import math
from array import array
from enum import Enum
from typing import IO, Iterable, Iterator

from . import _numeric
from . import reductions
from .backend import PORTABLE, Backend, backend_for
from .dtypes import FLOAT32, FLOAT64, ElementType, as_element_type
from .errors import (
    AllocationError,
    DimensionMismatchError,
    NumericDomainError,
    PreconditionError,
    VectorIndexError,
)
from .matrix import (
    DenseMatrix,
    PackedMatrix,
    SymmetricPackedMatrix,
    Transpose,
    TriangularPackedMatrix,
    as_transpose,
)
from .rand import RandomSource, default_source

__all__ = [
    "ResizeType",
    "VectorView",
    "OwningVector",
    "vec_vec",
    "vec_mat_vec",
]

logger = logging.getLogger(__name__)

# Row/column sums are computed as matrix-vector products against this many ones
# at a time; BLAS does not allow a zero-stride vector operand in gemv.
ONES_CHUNK = 64

_ONES: dict[ElementType, array] = {}


def _ones(dtype: ElementType) -> array:
    ones = _ONES.get(dtype)
    if ones is None:
        ones = array(dtype.typecode, [1.0]) * ONES_CHUNK
        _ONES[dtype] = ones
    return ones


class ResizeType(Enum):
    SET_ZERO = "set_zero"
    UNDEFINED = "undefined"
    COPY_DATA = "copy_data"


def _allocate(dtype: ElementType, dim: int) -> array | None:
    if dim < 0:
        raise PreconditionError(f"vector dimension must be non-negative, got {dim}")
    if dim == 0:
        return None
    try:
        return dtype.allocate(dim)
    except (MemoryError, OverflowError) as exc:
        logger.debug("spiralvec: allocation of %d %s elements failed: %s", dim, dtype, exc)
        raise AllocationError(f"could not allocate {dim} {dtype} elements") from exc


def _backend(*operands: "VectorView | DenseMatrix | PackedMatrix") -> Backend:
    first = operands[0].dtype
    for operand in operands[1:]:
        if operand.dtype is not first:
            return PORTABLE
    return backend_for(first)


def _check_dim(operation: str, expected: int, found: int) -> None:
    if expected != found:
        raise DimensionMismatchError(operation, expected, found)


class VectorView:
    """A stride-aware window of ``dim`` elements onto an ``array`` buffer."""

    def __init__(
        self,
        data: array,
        dim: int | None = None,
        *,
        offset: int = 0,
        stride: int = 1,
    ) -> None:
        if not isinstance(data, array):
            raise TypeError(f"VectorView needs an array.array buffer, got {type(data).__name__}")
        dtype = ElementType.from_typecode(data.typecode)
        if stride < 1:
            raise PreconditionError(f"vector stride must be at least 1, got {stride}")
        if offset < 0:
            raise PreconditionError(f"vector offset must be non-negative, got {offset}")
        available = len(data) - offset
        if dim is None:
            dim = max(0, (available + stride - 1) // stride)
        if dim < 0:
            raise PreconditionError(f"vector dimension must be non-negative, got {dim}")
        if dim and offset + (dim - 1) * stride >= len(data):
            raise PreconditionError(
                f"buffer of {len(data)} elements cannot hold {dim} elements "
                f"at offset {offset} with stride {stride}"
            )
        self._bind(data, dim, offset, stride, dtype)

    def _bind(self, data: array | None, dim: int, offset: int, stride: int, dtype: ElementType) -> None:
        self._data = data
        self._dim = dim
        self._offset = offset
        self._stride = stride
        self._dtype = dtype

    # ------------------------------------------------------------------ access

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def stride(self) -> int:
        return self._stride

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def data(self) -> array | None:
        """The backing buffer (``None`` for an empty owning vector)."""

        return self._data

    @property
    def dtype(self) -> ElementType:
        return self._dtype

    def __len__(self) -> int:
        return self._dim

    def _index(self, i: int) -> int:
        if not isinstance(i, int):
            raise TypeError(f"vector indices must be integers, got {type(i).__name__}")
        if not 0 <= i < self._dim:
            raise VectorIndexError(f"index {i} out of range for vector of dimension {self._dim}")
        return self._offset + i * self._stride

    def __getitem__(self, i: int) -> float:
        return self._data[self._index(i)]  # type: ignore[index]

    def __setitem__(self, i: int, value: float) -> None:
        self._data[self._index(i)] = value  # type: ignore[index]

    def __iter__(self) -> Iterator[float]:
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            yield data[offset + i * stride]  # type: ignore[index]

    def tolist(self) -> list[float]:
        return list(self)

    def __repr__(self) -> str:
        values = " ".join(repr(value) for value in self)
        return f"{type(self).__name__}({self._dtype}, [{values}])"

    def range(self, start: int, length: int) -> "VectorView":
        """Sub-vector of ``length`` elements starting at logical index ``start``."""

        if start < 0 or length < 0 or start + length > self._dim:
            raise VectorIndexError(
                f"range({start}, {length}) out of bounds for vector of dimension {self._dim}"
            )
        view = VectorView.__new__(VectorView)
        view._bind(self._data, length, self._offset + start * self._stride, self._stride, self._dtype)
        return view

    def view(self) -> "VectorView":
        return self.range(0, self._dim)

    def _aliases(self, other: "VectorView") -> bool:
        return (
            other is self
            or (self._data is not None and other._data is self._data and other._offset == self._offset)
        )

    def _fill(self, value: float) -> None:
        if self._dim == 0:
            return
        end = self._offset + (self._dim - 1) * self._stride + 1
        self._data[self._offset : end : self._stride] = array(self._dtype.typecode, [value]) * self._dim  # type: ignore[index]

    def to_numpy(self):
        """Zero-copy NumPy view sharing this vector's storage (requires ``numpy``)."""

        import numpy as np

        np_dtype = np.float32 if self._dtype is FLOAT32 else np.float64
        if self._dim == 0:
            return np.empty(0, dtype=np_dtype)
        flat = np.frombuffer(self._data, dtype=np_dtype)  # type: ignore[arg-type]
        end = self._offset + (self._dim - 1) * self._stride + 1
        return flat[self._offset : end : self._stride]

    # ------------------------------------------------------- copy and fill

    def copy_from_vec(self, v: "VectorView") -> None:
        """Copy ``v`` into this vector, converting between widths when they differ."""

        _check_dim("copy_from_vec", self._dim, v._dim)
        if self._aliases(v) and v._stride == self._stride:
            return
        _backend(self, v).copy(self._dim, v._data, v._offset, v._stride, self._data, self._offset, self._stride)

    def copy_from_packed(self, M: PackedMatrix) -> None:
        """Copy the packed storage of ``M`` (``n * (n + 1) / 2`` elements)."""

        _check_dim("copy_from_packed", self._dim, M.size)
        _backend(self, M).copy(self._dim, M.data, M.offset, 1, self._data, self._offset, self._stride)

    def set(self, value: float) -> None:
        self._fill(value)

    def set_zero(self) -> None:
        self._fill(0.0)

    def set_randn(self, source: RandomSource | None = None) -> None:
        """Fill with standard normal draws, taken in pairs."""

        source = source or default_source()
        data, offset, stride = self._data, self._offset, self._stride
        last = self._dim - 1 if self._dim % 2 == 1 else self._dim
        for i in range(0, last, 2):
            first, second = source.gauss2()
            data[offset + i * stride] = first  # type: ignore[index]
            data[offset + (i + 1) * stride] = second  # type: ignore[index]
        if last != self._dim:
            data[offset + last * stride] = source.gauss()  # type: ignore[index]

    def set_rand_uniform(self, source: RandomSource | None = None) -> None:
        source = source or default_source()
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            data[offset + i * stride] = source.uniform()  # type: ignore[index]

    # ---------------------------------------------------- elementwise updates

    def add(self, c: float) -> None:
        """Add the scalar ``c`` to every element."""

        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            data[offset + i * stride] += c  # type: ignore[index]

    def scale(self, alpha: float) -> None:
        backend_for(self._dtype).scal(self._dim, alpha, self._data, self._offset, self._stride)

    def mul_elements(self, v: "VectorView") -> None:
        _check_dim("mul_elements", self._dim, v._dim)
        data, offset, stride = self._data, self._offset, self._stride
        v_data, v_offset, v_stride = v._data, v._offset, v._stride
        for i in range(self._dim):
            data[offset + i * stride] *= v_data[v_offset + i * v_stride]  # type: ignore[index]

    def div_elements(self, v: "VectorView") -> None:
        _check_dim("div_elements", self._dim, v._dim)
        data, offset, stride = self._data, self._offset, self._stride
        v_data, v_offset, v_stride = v._data, v._offset, v._stride
        for i in range(self._dim):
            index = offset + i * stride
            data[index] = _numeric.divide(data[index], v_data[v_offset + i * v_stride])  # type: ignore[index]

    def invert_elements(self) -> None:
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            index = offset + i * stride
            data[index] = _numeric.divide(1.0, data[index])  # type: ignore[index]

    def replace_value(self, orig: float, changed: float) -> None:
        """Set every element exactly equal to ``orig`` to ``changed``."""

        orig = self._dtype.round(orig)
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            index = offset + i * stride
            if data[index] == orig:  # type: ignore[index]
                data[index] = changed  # type: ignore[index]

    def apply_abs(self) -> None:
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            index = offset + i * stride
            data[index] = abs(data[index])  # type: ignore[index]

    def apply_log(self) -> None:
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            index = offset + i * stride
            if data[index] < 0.0:  # type: ignore[index]
                raise NumericDomainError(
                    f"trying to take log of a negative number ({data[index]} at index {i})"  # type: ignore[index]
                )
            data[index] = _numeric.log(data[index])  # type: ignore[index]

    def log_of(self, v: "VectorView") -> None:
        """Set this vector to the elementwise log of ``v``."""

        _check_dim("log_of", self._dim, v._dim)
        data, offset, stride = self._data, self._offset, self._stride
        v_data, v_offset, v_stride = v._data, v._offset, v._stride
        for i in range(self._dim):
            data[offset + i * stride] = _numeric.log(v_data[v_offset + i * v_stride])  # type: ignore[index]

    def apply_exp(self) -> None:
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            index = offset + i * stride
            data[index] = _numeric.exp(data[index])  # type: ignore[index]

    def apply_pow(self, power: float) -> None:
        """Raise every element to ``power``.

        Powers 1, 2 and 0.5 are handled exactly; any other power goes through
        ``math.pow`` and fails on overflow or a negative base with a
        non-integer exponent.
        """

        data, offset, stride = self._data, self._offset, self._stride
        if power == 1.0:
            return
        if power == 2.0:
            for i in range(self._dim):
                index = offset + i * stride
                value = data[index]  # type: ignore[index]
                data[index] = value * value  # type: ignore[index]
        elif power == 0.5:
            for i in range(self._dim):
                index = offset + i * stride
                value = data[index]  # type: ignore[index]
                if not value >= 0.0:
                    raise NumericDomainError(f"cannot take square root of negative value {value}")
                data[index] = math.sqrt(value)  # type: ignore[index]
        else:
            limit = self._dtype.max
            for i in range(self._dim):
                index = offset + i * stride
                data[index] = _numeric.power(data[index], power, limit, i)  # type: ignore[index]

    def apply_pow_abs(self, power: float, include_sign: bool = False) -> None:
        """Raise ``|x|`` to ``power``, keeping the sign of ``x`` when ``include_sign``."""

        data, offset, stride = self._data, self._offset, self._stride
        limit = self._dtype.max
        for i in range(self._dim):
            index = offset + i * stride
            value = data[index]  # type: ignore[index]
            sign = -1.0 if include_sign and value < 0.0 else 1.0
            magnitude = abs(value)
            if power == 1.0:
                result = magnitude
            elif power == 2.0:
                result = magnitude * magnitude
            elif power == 0.5:
                result = math.sqrt(magnitude)
            elif power < 0.0 and magnitude == 0.0:
                result = 0.0
            else:
                result = _numeric.power(magnitude, power, limit, i)
            data[index] = sign * result  # type: ignore[index]

    def apply_floor(self, floor: "float | VectorView") -> int:
        """Raise elements below ``floor`` (a scalar or per-index vector); returns how many changed."""

        data, offset, stride = self._data, self._offset, self._stride
        count = 0
        if isinstance(floor, VectorView):
            _check_dim("apply_floor", self._dim, floor._dim)
            f_data, f_offset, f_stride = floor._data, floor._offset, floor._stride
            for i in range(self._dim):
                index = offset + i * stride
                bound = f_data[f_offset + i * f_stride]  # type: ignore[index]
                if data[index] < bound:  # type: ignore[index]
                    data[index] = bound  # type: ignore[index]
                    count += 1
            return count
        bound = self._dtype.round(floor)
        for i in range(self._dim):
            index = offset + i * stride
            if data[index] < bound:  # type: ignore[index]
                data[index] = bound  # type: ignore[index]
                count += 1
        return count

    def apply_ceiling(self, ceiling: float) -> int:
        bound = self._dtype.round(ceiling)
        data, offset, stride = self._data, self._offset, self._stride
        count = 0
        for i in range(self._dim):
            index = offset + i * stride
            if data[index] > bound:  # type: ignore[index]
                data[index] = bound  # type: ignore[index]
                count += 1
        return count

    def tanh(self, src: "VectorView") -> None:
        """Set this vector to ``tanh(src)`` without overflowing for large inputs."""

        _check_dim("tanh", self._dim, src._dim)
        data, offset, stride = self._data, self._offset, self._stride
        s_data, s_offset, s_stride = src._data, src._offset, src._stride
        for i in range(self._dim):
            data[offset + i * stride] = _numeric.tanh(s_data[s_offset + i * s_stride])  # type: ignore[index]

    def sigmoid(self, src: "VectorView") -> None:
        _check_dim("sigmoid", self._dim, src._dim)
        data, offset, stride = self._data, self._offset, self._stride
        s_data, s_offset, s_stride = src._data, src._offset, src._stride
        for i in range(self._dim):
            data[offset + i * stride] = _numeric.sigmoid(s_data[s_offset + i * s_stride])  # type: ignore[index]

    # -------------------------------------------------------------- reductions

    def sum(self) -> float:
        # A dot product against a single one with stride zero.
        total = backend_for(self._dtype).dot(
            self._dim, self._data, self._offset, self._stride, _ones(self._dtype), 0, 0
        )
        return self._dtype.round(total)

    def sum_log(self) -> float:
        """Sum of the logs of the elements, robust to long products."""

        return self._dtype.round(reductions.sum_log(self._data, self._offset, self._stride, self._dim))  # type: ignore[arg-type]

    def max(self) -> float:
        return reductions.max_value(self._data, self._offset, self._stride, self._dim)  # type: ignore[arg-type]

    def min(self) -> float:
        return reductions.min_value(self._data, self._offset, self._stride, self._dim)  # type: ignore[arg-type]

    def max_index(self) -> tuple[float, int]:
        """Return ``(value, index)`` of the first maximal element."""

        return reductions.max_with_index(self._data, self._offset, self._stride, self._dim)  # type: ignore[arg-type]

    def min_index(self) -> tuple[float, int]:
        return reductions.min_with_index(self._data, self._offset, self._stride, self._dim)  # type: ignore[arg-type]

    def norm(self, p: float) -> float:
        value = reductions.norm(self._data, self._offset, self._stride, self._dim, p, self._dtype)  # type: ignore[arg-type]
        return self._dtype.round(value)

    def log_sum_exp(self, prune: float = -1.0) -> float:
        value = reductions.log_sum_exp(
            self._data, self._offset, self._stride, self._dim, self._dtype, prune  # type: ignore[arg-type]
        )
        return self._dtype.round(value)

    def apply_softmax(self) -> float:
        """Normalise in place to a probability vector; returns the log partition function."""

        value = reductions.softmax_inplace(self._data, self._offset, self._stride, self._dim)  # type: ignore[arg-type]
        return self._dtype.round(value)

    def apply_log_softmax(self) -> float:
        value = reductions.log_softmax_inplace(self._data, self._offset, self._stride, self._dim)  # type: ignore[arg-type]
        return self._dtype.round(value)

    def rand_categorical(self, source: RandomSource | None = None) -> int:
        """Draw an index with probability proportional to its element.

        A roundoff miss at the upper boundary falls back to the last index with
        positive mass.
        """

        return reductions.rand_categorical(
            self._data, self._offset, self._stride, self._dim, self.sum(), source  # type: ignore[arg-type]
        )

    def is_zero(self, cutoff: float = 1.0e-6) -> bool:
        return reductions.max_abs(self._data, self._offset, self._stride, self._dim) <= cutoff  # type: ignore[arg-type]

    def approx_equal(self, other: "VectorView", tol: float = 0.01) -> bool:
        """Compare with ``other``; ``tol == 0`` demands exact equality.

        Otherwise the vectors are equal when ``||self - other|| <= tol * ||self||``.
        """

        _check_dim("approx_equal", self._dim, other._dim)
        if tol < 0.0:
            raise PreconditionError(f"tolerance must be non-negative, got {tol}")
        if tol == 0.0:
            return all(a == b for a, b in zip(self, other))
        with OwningVector.from_vector(self) as difference:
            difference.add_vec(-1.0, other)
            return difference.norm(2.0) <= self._dtype.round(tol) * self.norm(2.0)

    # ------------------------------------------------------- vector algebra

    def add_vec(self, alpha: float, v: "VectorView") -> None:
        """``self += alpha * v``; ``v`` may be of the other element width."""

        _check_dim("add_vec", self._dim, v._dim)
        if self._aliases(v):
            raise PreconditionError("add_vec: v must not alias the destination vector")
        _backend(self, v).axpy(self._dim, alpha, v._data, v._offset, v._stride, self._data, self._offset, self._stride)

    def add_vec2(self, alpha: float, v: "VectorView") -> None:
        """``self += alpha * v * v`` elementwise."""

        _check_dim("add_vec2", self._dim, v._dim)
        data, offset, stride = self._data, self._offset, self._stride
        v_data, v_offset, v_stride = v._data, v._offset, v._stride
        for i in range(self._dim):
            value = v_data[v_offset + i * v_stride]  # type: ignore[index]
            data[offset + i * stride] += alpha * value * value  # type: ignore[index]

    def add_vec_vec(self, alpha: float, v: "VectorView", r: "VectorView", beta: float) -> None:
        """``self = beta * self + alpha * v * r`` elementwise."""

        if self._aliases(v) or self._aliases(r):
            raise PreconditionError("add_vec_vec: v and r must not alias the destination vector")
        _check_dim("add_vec_vec", self._dim, v._dim)
        _check_dim("add_vec_vec", self._dim, r._dim)
        # v is treated as the diagonal of a band matrix with no off-diagonals.
        _backend(self, v, r).gbmv_diag(
            self._dim,
            alpha,
            v._data,
            v._offset,
            v._stride,
            r._data,
            r._offset,
            r._stride,
            beta,
            self._data,
            self._offset,
            self._stride,
        )

    def add_vec_div_vec(self, alpha: float, v: "VectorView", r: "VectorView", beta: float) -> None:
        """``self = beta * self + alpha * v / r`` elementwise."""

        _check_dim("add_vec_div_vec", self._dim, v._dim)
        _check_dim("add_vec_div_vec", self._dim, r._dim)
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            index = offset + i * stride
            quotient = _numeric.divide(
                v._data[v._offset + i * v._stride], r._data[r._offset + i * r._stride]  # type: ignore[index]
            )
            data[index] = alpha * quotient + beta * data[index]  # type: ignore[index]

    def _apply_beta(self, beta: float) -> None:
        if beta == 0.0:
            self.set_zero()
        elif beta != 1.0:
            self.scale(beta)

    # ------------------------------------------------------- matrix algebra

    def add_mat_vec(
        self,
        alpha: float,
        M: DenseMatrix,
        trans: "Transpose | bool",
        v: "VectorView",
        beta: float = 1.0,
    ) -> None:
        """``self = beta * self + alpha * op(M) v``."""

        transposed = as_transpose(trans).transposed
        self._check_mat_vec("add_mat_vec", M, transposed, v)
        if (M.num_rows if transposed else M.num_cols) == 0:
            self._apply_beta(beta)
            return
        _backend(self, M, v).gemv(
            transposed,
            M.num_rows,
            M.num_cols,
            alpha,
            M.data,
            M.offset,
            M.stride,
            v._data,
            v._offset,
            v._stride,
            beta,
            self._data,
            self._offset,
            self._stride,
        )

    def add_mat_svec(
        self,
        alpha: float,
        M: DenseMatrix,
        trans: "Transpose | bool",
        v: "VectorView",
        beta: float = 1.0,
    ) -> None:
        """Like :meth:`add_mat_vec` but only touches the columns (rows) where ``v`` is non-zero."""

        transposed = as_transpose(trans).transposed
        self._check_mat_vec("add_mat_svec", M, transposed, v)
        self._apply_beta(beta)
        backend = _backend(self, M)
        for k, value in enumerate(v):
            if value == 0.0:
                continue
            if transposed:
                # Row k of M scaled into self.
                backend.axpy(
                    self._dim, alpha * value, M.data, M.row_offset(k), 1, self._data, self._offset, self._stride
                )
            else:
                backend.axpy(
                    self._dim, alpha * value, M.data, M.offset + k, M.stride, self._data, self._offset, self._stride
                )

    def _check_mat_vec(self, operation: str, M: DenseMatrix, transposed: bool, v: "VectorView") -> None:
        rows, cols = (M.num_cols, M.num_rows) if transposed else (M.num_rows, M.num_cols)
        if cols != v._dim or rows != self._dim:
            raise PreconditionError(
                f"{operation}: op(M) is {rows}x{cols} but vectors have dimensions "
                f"{self._dim} (destination) and {v._dim} (operand)"
            )
        if self._aliases(v):
            raise PreconditionError(f"{operation}: v must not alias the destination vector")

    def add_sp_vec(self, alpha: float, M: SymmetricPackedMatrix, v: "VectorView", beta: float = 1.0) -> None:
        """``self = beta * self + alpha * M v`` for a symmetric packed ``M``."""

        _check_dim("add_sp_vec", M.num_rows, v._dim)
        _check_dim("add_sp_vec", self._dim, v._dim)
        if self._aliases(v):
            raise PreconditionError("add_sp_vec: v must not alias the destination vector")
        _backend(self, M, v).spmv(
            self._dim,
            alpha,
            M.data,
            M.offset,
            v._data,
            v._offset,
            v._stride,
            beta,
            self._data,
            self._offset,
            self._stride,
        )

    def mul_tp(self, M: TriangularPackedMatrix, trans: "Transpose | bool" = Transpose.NO_TRANS) -> None:
        """``self = op(M) self`` for a lower-triangular packed ``M``."""

        _check_dim("mul_tp", M.num_rows, self._dim)
        _backend(self, M).tpmv(
            as_transpose(trans).transposed, self._dim, M.data, M.offset, self._data, self._offset, self._stride
        )

    def solve(self, M: TriangularPackedMatrix, trans: "Transpose | bool" = Transpose.NO_TRANS) -> None:
        """``self = op(M)^-1 self``; the result is unspecified if ``M`` is singular."""

        _check_dim("solve", M.num_rows, self._dim)
        _backend(self, M).tpsv(
            as_transpose(trans).transposed, self._dim, M.data, M.offset, self._data, self._offset, self._stride
        )

    def add_tp_vec(
        self,
        alpha: float,
        M: TriangularPackedMatrix,
        trans: "Transpose | bool",
        v: "VectorView",
        beta: float = 1.0,
    ) -> None:
        _check_dim("add_tp_vec", self._dim, v._dim)
        _check_dim("add_tp_vec", self._dim, M.num_rows)
        if beta == 0.0:
            if not self._aliases(v):
                self.copy_from_vec(v)
            self.mul_tp(M, trans)
            if alpha != 1.0:
                self.scale(alpha)
            return
        with OwningVector.from_vector(v, self._dtype) as product:
            product.mul_tp(M, trans)
            if beta != 1.0:
                self.scale(beta)
            self.add_vec(alpha, product)

    def add_row_sum_mat(self, alpha: float, M: DenseMatrix, beta: float = 1.0) -> None:
        """``self = beta * self + alpha * (sum of the rows of M)``."""

        _check_dim("add_row_sum_mat", self._dim, M.num_cols)
        if M.num_rows == 0:
            self._apply_beta(beta)
            return
        backend = _backend(self, M)
        ones = _ones(M.dtype)
        for row_offset in range(0, M.num_rows, ONES_CHUNK):
            chunk = min(ONES_CHUNK, M.num_rows - row_offset)
            backend.gemv(
                True,
                chunk,
                M.num_cols,
                alpha,
                M.data,
                M.row_offset(row_offset),
                M.stride,
                ones,
                0,
                1,
                beta,
                self._data,
                self._offset,
                self._stride,
            )
            beta = 1.0

    def add_col_sum_mat(self, alpha: float, M: DenseMatrix, beta: float = 1.0) -> None:
        """``self = beta * self + alpha * (sum of the columns of M)``."""

        _check_dim("add_col_sum_mat", self._dim, M.num_rows)
        if M.num_cols == 0:
            self._apply_beta(beta)
            return
        backend = _backend(self, M)
        ones = _ones(M.dtype)
        for col_offset in range(0, M.num_cols, ONES_CHUNK):
            chunk = min(ONES_CHUNK, M.num_cols - col_offset)
            backend.gemv(
                False,
                M.num_rows,
                chunk,
                alpha,
                M.data,
                M.offset + col_offset,
                M.stride,
                ones,
                0,
                1,
                beta,
                self._data,
                self._offset,
                self._stride,
            )
            beta = 1.0

    def add_diag_mat2(
        self,
        alpha: float,
        M: DenseMatrix,
        trans: "Transpose | bool" = Transpose.NO_TRANS,
        beta: float = 1.0,
    ) -> None:
        """Add ``alpha`` times the diagonal of ``M M^T`` (``M^T M`` when transposed)."""

        transposed = as_transpose(trans).transposed
        backend = _backend(M)
        data, offset, stride = self._data, self._offset, self._stride
        if transposed:
            _check_dim("add_diag_mat2", self._dim, M.num_cols)
            length, step, inc = M.num_rows, 1, M.stride
        else:
            _check_dim("add_diag_mat2", self._dim, M.num_rows)
            length, step, inc = M.num_cols, M.stride, 1
        for i in range(self._dim):
            start = M.offset + i * step
            product = backend.dot(length, M.data, start, inc, M.data, start, inc)
            index = offset + i * stride
            if beta == 0.0:
                data[index] = alpha * product  # type: ignore[index]
            else:
                data[index] = beta * data[index] + alpha * product  # type: ignore[index]

    def add_diag_mat_mat(
        self,
        alpha: float,
        M: DenseMatrix,
        trans_m: "Transpose | bool",
        N: DenseMatrix,
        trans_n: "Transpose | bool",
        beta: float = 1.0,
    ) -> None:
        """Add ``alpha`` times the diagonal of ``op(M) op(N)`` without forming the product."""

        m_trans = as_transpose(trans_m).transposed
        n_trans = as_transpose(trans_n).transposed
        m_rows, m_cols = (M.num_cols, M.num_rows) if m_trans else (M.num_rows, M.num_cols)
        n_rows, n_cols = (N.num_cols, N.num_rows) if n_trans else (N.num_rows, N.num_cols)
        _check_dim("add_diag_mat_mat", m_cols, n_rows)
        _check_dim("add_diag_mat_mat", self._dim, m_rows)
        _check_dim("add_diag_mat_mat", self._dim, n_cols)
        m_row_stride, m_col_stride = (1, M.stride) if m_trans else (M.stride, 1)
        n_row_stride, n_col_stride = (1, N.stride) if n_trans else (N.stride, 1)
        backend = _backend(M, N)
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            product = backend.dot(
                m_cols,
                M.data,
                M.offset + i * m_row_stride,
                m_col_stride,
                N.data,
                N.offset + i * n_col_stride,
                n_row_stride,
            )
            index = offset + i * stride
            if beta == 0.0:
                data[index] = alpha * product  # type: ignore[index]
            else:
                data[index] = beta * data[index] + alpha * product  # type: ignore[index]

    # ------------------------------------------------- copies from matrices

    def copy_rows_from_mat(self, M: DenseMatrix) -> None:
        """Concatenate the rows of ``M`` into this vector."""

        _check_dim("copy_rows_from_mat", self._dim, M.num_rows * M.num_cols)
        backend = _backend(self, M)
        cols = M.num_cols
        for i in range(M.num_rows):
            backend.copy(
                cols, M.data, M.row_offset(i), 1, self._data, self._offset + i * cols * self._stride, self._stride
            )

    def copy_cols_from_mat(self, M: DenseMatrix) -> None:
        """Concatenate the columns of ``M`` into this vector."""

        _check_dim("copy_cols_from_mat", self._dim, M.num_rows * M.num_cols)
        backend = _backend(self, M)
        rows = M.num_rows
        for j in range(M.num_cols):
            backend.copy(
                rows, M.data, M.offset + j, M.stride, self._data, self._offset + j * rows * self._stride, self._stride
            )

    def copy_row_from_mat(self, M: DenseMatrix, row: int) -> None:
        if not 0 <= row < M.num_rows:
            raise VectorIndexError(f"row {row} out of range for matrix with {M.num_rows} rows")
        _check_dim("copy_row_from_mat", self._dim, M.num_cols)
        _backend(self, M).copy(self._dim, M.data, M.row_offset(row), 1, self._data, self._offset, self._stride)

    def copy_col_from_mat(self, M: DenseMatrix, col: int) -> None:
        if not 0 <= col < M.num_cols:
            raise VectorIndexError(f"column {col} out of range for matrix with {M.num_cols} columns")
        _check_dim("copy_col_from_mat", self._dim, M.num_rows)
        _backend(self, M).copy(self._dim, M.data, M.offset + col, M.stride, self._data, self._offset, self._stride)

    def copy_diag_from_mat(self, M: DenseMatrix) -> None:
        _check_dim("copy_diag_from_mat", self._dim, min(M.num_rows, M.num_cols))
        _backend(self, M).copy(self._dim, M.data, M.offset, M.stride + 1, self._data, self._offset, self._stride)

    def copy_diag_from_packed(self, M: PackedMatrix) -> None:
        _check_dim("copy_diag_from_packed", self._dim, M.num_rows)
        data, offset, stride = self._data, self._offset, self._stride
        for i in range(self._dim):
            data[offset + i * stride] = M.data[M.packed_index(i, i)]  # type: ignore[index]

    def copy_row_from_sp(self, M: SymmetricPackedMatrix, row: int) -> None:
        """Copy row ``row`` of the symmetric packed ``M``."""

        if not 0 <= row < M.num_rows:
            raise VectorIndexError(f"row {row} out of range for matrix with {M.num_rows} rows")
        _check_dim("copy_row_from_sp", self._dim, M.num_cols)
        data, offset, stride = self._data, self._offset, self._stride
        start = M.packed_index(row, 0)
        # Left of the diagonal the row is stored contiguously; from the
        # diagonal on it is read down column ``row``.
        for i in range(row):
            data[offset + i * stride] = M.data[start + i]  # type: ignore[index]
        for i in range(row, self._dim):
            data[offset + i * stride] = M.data[M.packed_index(i, row)]  # type: ignore[index]

    # ---------------------------------------------------------------- I/O

    def write(self, stream: IO, binary: bool) -> None:
        from .codec import write_vector

        write_vector(stream, self, binary)

    def read(self, stream: IO, binary: bool, add: bool = False) -> None:
        """Read into this fixed-size vector; the stored dimension must match."""

        from .codec import read_into_view

        read_into_view(self, stream, binary, add)


class OwningVector(VectorView):
    """A vector that owns its contiguous buffer.

    Use it as a context manager to release the buffer on every exit path::

        with OwningVector(dim, FLOAT64) as scratch:
            ...
    """

    def __init__(
        self,
        dim: int = 0,
        dtype: ElementType | str | None = FLOAT32,
        resize_type: ResizeType = ResizeType.SET_ZERO,
    ) -> None:
        element = as_element_type(dtype)
        self._bind(None, 0, 0, 1, element)
        self.resize(dim, resize_type)

    @classmethod
    def from_values(cls, values: Iterable[float], dtype: ElementType | str | None = FLOAT32) -> "OwningVector":
        element = as_element_type(dtype)
        buffer = array(element.typecode, values)
        vector = cls(0, element)
        if len(buffer):
            vector._bind(buffer, len(buffer), 0, 1, element)
        return vector

    @classmethod
    def from_vector(cls, v: VectorView, dtype: ElementType | str | None = None) -> "OwningVector":
        element = v.dtype if dtype is None else as_element_type(dtype)
        vector = cls(v.dim, element, ResizeType.UNDEFINED)
        vector.copy_from_vec(v)
        return vector

    @classmethod
    def from_numpy(cls, values, dtype: ElementType | str | None = None) -> "OwningVector":
        """Copy a one-dimensional NumPy array (requires ``numpy``)."""

        import numpy as np

        values = np.asarray(values)
        if values.ndim != 1:
            raise PreconditionError(f"expected a one-dimensional array, got shape {values.shape}")
        if dtype is None:
            dtype = FLOAT64 if values.dtype == np.float64 else FLOAT32
        element = as_element_type(dtype)
        np_dtype = np.float32 if element is FLOAT32 else np.float64
        vector = cls(values.shape[0], element, ResizeType.UNDEFINED)
        if vector.dim:
            vector.to_numpy()[:] = values.astype(np_dtype, copy=False)
        return vector

    def copy(self) -> "OwningVector":
        return OwningVector.from_vector(self)

    def __enter__(self) -> "OwningVector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()

    def _init(self, dim: int) -> None:
        buffer = _allocate(self._dtype, dim)
        self._bind(buffer, dim, 0, 1, self._dtype)

    def destroy(self) -> None:
        """Release the buffer and become an empty vector."""

        self._bind(None, 0, 0, 1, self._dtype)

    def resize(self, dim: int, resize_type: ResizeType = ResizeType.SET_ZERO) -> None:
        """Change the dimension.

        ``COPY_DATA`` keeps the common prefix and zero-fills any growth,
        ``SET_ZERO`` zero-fills everything and ``UNDEFINED`` leaves the
        contents unspecified.  The buffer may be replaced, so existing views
        become stale.
        """

        if dim < 0:
            raise PreconditionError(f"vector dimension must be non-negative, got {dim}")
        if resize_type is ResizeType.COPY_DATA:
            if self._data is None or dim == 0:
                resize_type = ResizeType.SET_ZERO
            elif self._dim == dim:
                return
            else:
                with OwningVector(dim, self._dtype, ResizeType.UNDEFINED) as tmp:
                    keep = min(dim, self._dim)
                    tmp._data[:keep] = self._data[:keep]  # type: ignore[index]
                    if dim > keep:
                        tmp.range(keep, dim - keep).set_zero()
                    tmp.swap(self)
                return
        if self._data is not None:
            if self._dim == dim:
                if resize_type is ResizeType.SET_ZERO:
                    self.set_zero()
                return
            self.destroy()
        self._init(dim)
        if resize_type is ResizeType.SET_ZERO:
            self.set_zero()

    def remove_element(self, i: int) -> None:
        """Drop element ``i``, shifting the tail left; the buffer is not reallocated."""

        if not 0 <= i < self._dim:
            raise VectorIndexError(f"index {i} out of range for vector of dimension {self._dim}")
        data = self._data
        for j in range(i + 1, self._dim):
            data[j - 1] = data[j]  # type: ignore[index]
        if self._dim == 1:
            self.destroy()
        else:
            self._dim -= 1

    def swap(self, other: "OwningVector") -> None:
        """Exchange buffers and dimensions with ``other`` in constant time."""

        if not isinstance(other, OwningVector):
            raise TypeError("swap needs another OwningVector")
        if other._dtype is not self._dtype:
            raise PreconditionError(f"cannot swap a {self._dtype} vector with a {other._dtype} vector")
        self._data, other._data = other._data, self._data
        self._dim, other._dim = other._dim, self._dim

    def read(self, stream: IO, binary: bool, add: bool = False) -> None:
        """Read a vector, resizing to the stored dimension (or adding into this one)."""

        from .codec import read_into_owning

        read_into_owning(self, stream, binary, add)


def vec_vec(a: VectorView, b: VectorView) -> float:
    """Dot product; ``b`` may be of the other element width."""

    _check_dim("vec_vec", a.dim, b.dim)
    total = _backend(a, b).dot(a.dim, a.data, a.offset, a.stride, b.data, b.offset, b.stride)
    return a.dtype.round(total)


def vec_mat_vec(v1: VectorView, M: DenseMatrix, v2: VectorView) -> float:
    """``v1^T M v2``."""

    if v1.dim != M.num_rows or v2.dim != M.num_cols:
        raise PreconditionError(
            f"vec_mat_vec: M is {M.num_rows}x{M.num_cols} but vectors have dimensions {v1.dim} and {v2.dim}"
        )
    with OwningVector(M.num_rows, M.dtype) as product:
        product.add_mat_vec(1.0, M, Transpose.NO_TRANS, v2, 0.0)
        return vec_vec(v1, product)
