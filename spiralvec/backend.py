"""Execution strategies for the primitive vector kernels.

Every primitive is expressed BLAS-style over ``array`` buffers addressed as
``(buffer, offset, increment)``.  :class:`AcceleratedBackend` forwards to the
CBLAS routines bound by :mod:`spiralvec._blas`; :class:`PortableBackend` runs
explicit strided loops with the same semantics and also serves operands of
mixed element widths.  Packed matrices are lower-triangular, row-major.

Results of the two strategies agree to rounding only; the accumulation order of
the vendor library is not reproduced.
"""

from __future__ import annotations

import logging
import os
import warnings
from array import array
from contextlib import contextmanager
from typing import Iterator

from . import _blas
from . import _numeric
from .dtypes import ElementType
from .errors import BackendUnavailableError

__all__ = [
    "Backend",
    "PortableBackend",
    "AcceleratedBackend",
    "PORTABLE",
    "available_backends",
    "select_backend",
    "backend_for",
    "default_backend_preference",
    "use_backend",
]

logger = logging.getLogger(__name__)


def _packed_index(row: int, col: int) -> int:
    return row * (row + 1) // 2 + col


class Backend:
    """Interface shared by the execution strategies."""

    name = "abstract"

    def dot(self, n: int, x: array, xoff: int, incx: int, y: array, yoff: int, incy: int) -> float:
        raise NotImplementedError

    def axpy(
        self, n: int, alpha: float, x: array, xoff: int, incx: int, y: array, yoff: int, incy: int
    ) -> None:
        """``y += alpha * x``."""

        raise NotImplementedError

    def scal(self, n: int, alpha: float, x: array, xoff: int, incx: int) -> None:
        raise NotImplementedError

    def copy(self, n: int, x: array, xoff: int, incx: int, y: array, yoff: int, incy: int) -> None:
        raise NotImplementedError

    def gemv(
        self,
        trans: bool,
        m: int,
        n: int,
        alpha: float,
        a: array,
        aoff: int,
        lda: int,
        x: array,
        xoff: int,
        incx: int,
        beta: float,
        y: array,
        yoff: int,
        incy: int,
    ) -> None:
        """``y = beta * y + alpha * op(A) x`` for the ``m x n`` row-major ``A``.

        ``y`` is not read when ``beta == 0``.
        """

        raise NotImplementedError

    def spmv(
        self,
        n: int,
        alpha: float,
        ap: array,
        apoff: int,
        x: array,
        xoff: int,
        incx: int,
        beta: float,
        y: array,
        yoff: int,
        incy: int,
    ) -> None:
        raise NotImplementedError

    def tpmv(self, trans: bool, n: int, ap: array, apoff: int, x: array, xoff: int, incx: int) -> None:
        raise NotImplementedError

    def tpsv(self, trans: bool, n: int, ap: array, apoff: int, x: array, xoff: int, incx: int) -> None:
        raise NotImplementedError

    def gbmv_diag(
        self,
        n: int,
        alpha: float,
        a: array,
        aoff: int,
        lda: int,
        x: array,
        xoff: int,
        incx: int,
        beta: float,
        y: array,
        yoff: int,
        incy: int,
    ) -> None:
        """``y = beta * y + alpha * diag(a) x``: a band matrix with no off-diagonals."""

        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class PortableBackend(Backend):
    name = "portable"

    def dot(self, n, x, xoff, incx, y, yoff, incy):
        total = 0.0
        for i in range(n):
            total += x[xoff + i * incx] * y[yoff + i * incy]
        return total

    def axpy(self, n, alpha, x, xoff, incx, y, yoff, incy):
        if n <= 0 or alpha == 0.0:
            return
        if alpha == 1.0:
            for i in range(n):
                y[yoff + i * incy] += x[xoff + i * incx]
        else:
            for i in range(n):
                y[yoff + i * incy] += alpha * x[xoff + i * incx]

    def scal(self, n, alpha, x, xoff, incx):
        for i in range(n):
            x[xoff + i * incx] *= alpha

    def copy(self, n, x, xoff, incx, y, yoff, incy):
        if n <= 0:
            return
        source = x[xoff : xoff + (n - 1) * incx + 1 : incx]
        if x.typecode != y.typecode:
            source = array(y.typecode, source)
        y[yoff : yoff + (n - 1) * incy + 1 : incy] = source

    def gemv(self, trans, m, n, alpha, a, aoff, lda, x, xoff, incx, beta, y, yoff, incy):
        ylen, xlen = (n, m) if trans else (m, n)
        if ylen <= 0:
            return
        xs = [x[xoff + k * incx] for k in range(xlen)]
        if trans:
            acc = [0.0] * n
            for i in range(m):
                xi = xs[i]
                row = aoff + i * lda
                for j in range(n):
                    acc[j] += a[row + j] * xi
        else:
            acc = []
            for i in range(m):
                row = aoff + i * lda
                total = 0.0
                for j in range(n):
                    total += a[row + j] * xs[j]
                acc.append(total)
        self._store(ylen, alpha, acc, beta, y, yoff, incy)

    def spmv(self, n, alpha, ap, apoff, x, xoff, incx, beta, y, yoff, incy):
        if n <= 0:
            return
        xs = [x[xoff + k * incx] for k in range(n)]
        acc = [0.0] * n
        for i in range(n):
            base = apoff + _packed_index(i, 0)
            xi = xs[i]
            for j in range(i):
                value = ap[base + j]
                acc[i] += value * xs[j]
                acc[j] += value * xi
            acc[i] += ap[base + i] * xi
        self._store(n, alpha, acc, beta, y, yoff, incy)

    def tpmv(self, trans, n, ap, apoff, x, xoff, incx):
        if trans:
            # x[i] depends on x[j] for j >= i, which are still unmodified.
            for i in range(n):
                total = 0.0
                for j in range(i, n):
                    total += ap[apoff + _packed_index(j, i)] * x[xoff + j * incx]
                x[xoff + i * incx] = total
        else:
            for i in range(n - 1, -1, -1):
                base = apoff + _packed_index(i, 0)
                total = 0.0
                for j in range(i + 1):
                    total += ap[base + j] * x[xoff + j * incx]
                x[xoff + i * incx] = total

    def tpsv(self, trans, n, ap, apoff, x, xoff, incx):
        if trans:
            for i in range(n - 1, -1, -1):
                total = x[xoff + i * incx]
                for j in range(i + 1, n):
                    total -= ap[apoff + _packed_index(j, i)] * x[xoff + j * incx]
                x[xoff + i * incx] = _numeric.divide(total, ap[apoff + _packed_index(i, i)])
        else:
            for i in range(n):
                base = apoff + _packed_index(i, 0)
                total = x[xoff + i * incx]
                for j in range(i):
                    total -= ap[base + j] * x[xoff + j * incx]
                x[xoff + i * incx] = _numeric.divide(total, ap[base + i])

    def gbmv_diag(self, n, alpha, a, aoff, lda, x, xoff, incx, beta, y, yoff, incy):
        acc = [a[aoff + i * lda] * x[xoff + i * incx] for i in range(n)]
        self._store(n, alpha, acc, beta, y, yoff, incy)

    @staticmethod
    def _store(n: int, alpha: float, acc: list[float], beta: float, y: array, yoff: int, incy: int) -> None:
        if beta == 0.0:
            for i in range(n):
                y[yoff + i * incy] = alpha * acc[i]
        elif beta == 1.0:
            for i in range(n):
                y[yoff + i * incy] += alpha * acc[i]
        else:
            for i in range(n):
                index = yoff + i * incy
                y[index] = beta * y[index] + alpha * acc[i]


def _address(buffer: array, offset: int) -> int:
    return buffer.buffer_info()[0] + offset * buffer.itemsize


class AcceleratedBackend(Backend):
    """Forward primitives to CBLAS for operands of one element width."""

    name = "accelerated"

    def __init__(self, dtype: ElementType) -> None:
        if not _blas.blas_available():
            raise BackendUnavailableError(
                f"accelerated backend requested but no CBLAS library is loaded: {_blas.blas_error()}"
            )
        self.dtype = dtype
        prefix = "s" if dtype is ElementType.FLOAT32 else "d"
        self._dot = _blas.routine(prefix + "dot")
        self._axpy = _blas.routine(prefix + "axpy")
        self._scal = _blas.routine(prefix + "scal")
        self._copy = _blas.routine(prefix + "copy")
        self._gemv = _blas.routine(prefix + "gemv")
        self._spmv = _blas.routine(prefix + "spmv")
        self._tpmv = _blas.routine(prefix + "tpmv")
        self._tpsv = _blas.routine(prefix + "tpsv")
        self._gbmv = _blas.routine(prefix + "gbmv")

    def __repr__(self) -> str:
        return f"<AcceleratedBackend {self.dtype} via {_blas.blas_vendor()}>"

    @staticmethod
    def _trans(trans: bool) -> int:
        return _blas.CBLAS_TRANS if trans else _blas.CBLAS_NO_TRANS

    def dot(self, n, x, xoff, incx, y, yoff, incy):
        if n <= 0:
            return 0.0
        return float(self._dot(n, _address(x, xoff), incx, _address(y, yoff), incy))

    def axpy(self, n, alpha, x, xoff, incx, y, yoff, incy):
        if n <= 0:
            return
        self._axpy(n, alpha, _address(x, xoff), incx, _address(y, yoff), incy)

    def scal(self, n, alpha, x, xoff, incx):
        if n <= 0:
            return
        self._scal(n, alpha, _address(x, xoff), incx)

    def copy(self, n, x, xoff, incx, y, yoff, incy):
        if n <= 0:
            return
        self._copy(n, _address(x, xoff), incx, _address(y, yoff), incy)

    def gemv(self, trans, m, n, alpha, a, aoff, lda, x, xoff, incx, beta, y, yoff, incy):
        if m <= 0 or n <= 0:
            return
        self._gemv(
            _blas.CBLAS_ROW_MAJOR,
            self._trans(trans),
            m,
            n,
            alpha,
            _address(a, aoff),
            lda,
            _address(x, xoff),
            incx,
            beta,
            _address(y, yoff),
            incy,
        )

    def spmv(self, n, alpha, ap, apoff, x, xoff, incx, beta, y, yoff, incy):
        if n <= 0:
            return
        self._spmv(
            _blas.CBLAS_ROW_MAJOR,
            _blas.CBLAS_LOWER,
            n,
            alpha,
            _address(ap, apoff),
            _address(x, xoff),
            incx,
            beta,
            _address(y, yoff),
            incy,
        )

    def tpmv(self, trans, n, ap, apoff, x, xoff, incx):
        if n <= 0:
            return
        self._tpmv(
            _blas.CBLAS_ROW_MAJOR,
            _blas.CBLAS_LOWER,
            self._trans(trans),
            _blas.CBLAS_NON_UNIT,
            n,
            _address(ap, apoff),
            _address(x, xoff),
            incx,
        )

    def tpsv(self, trans, n, ap, apoff, x, xoff, incx):
        if n <= 0:
            return
        self._tpsv(
            _blas.CBLAS_ROW_MAJOR,
            _blas.CBLAS_LOWER,
            self._trans(trans),
            _blas.CBLAS_NON_UNIT,
            n,
            _address(ap, apoff),
            _address(x, xoff),
            incx,
        )

    def gbmv_diag(self, n, alpha, a, aoff, lda, x, xoff, incx, beta, y, yoff, incy):
        if n <= 0:
            return
        self._gbmv(
            _blas.CBLAS_ROW_MAJOR,
            _blas.CBLAS_NO_TRANS,
            n,
            n,
            0,
            0,
            alpha,
            _address(a, aoff),
            lda,
            _address(x, xoff),
            incx,
            beta,
            _address(y, yoff),
            incy,
        )


PORTABLE = PortableBackend()

_ACCELERATED: dict[ElementType, AcceleratedBackend] = {}
_PREFERENCES = ("auto", "accelerated", "portable")


def available_backends() -> tuple[str, ...]:
    if _blas.blas_available():
        return ("accelerated", "portable")
    return ("portable",)


def select_backend(preference: str | None = None) -> str:
    """Normalise a backend hint to ``"accelerated"`` or ``"portable"``."""

    if preference is None:
        preference = _DEFAULT_PREFERENCE
    normalized = str(preference).strip().lower()
    if normalized in {"", "auto"}:
        return "accelerated" if _blas.blas_available() else "portable"
    if normalized in {"accelerated", "blas", "cblas"}:
        if not _blas.blas_available():
            raise BackendUnavailableError(
                f"accelerated backend requested but no CBLAS library is loaded: {_blas.blas_error()}"
            )
        return "accelerated"
    if normalized in {"portable", "python", "cpu"}:
        return "portable"
    raise ValueError(f"Unsupported backend {preference!r}; expected one of {', '.join(_PREFERENCES)}")


def backend_for(
    dtype: ElementType,
    other: ElementType | None = None,
    *,
    preference: str | None = None,
) -> Backend:
    """Return the strategy used for operands of width ``dtype`` (and ``other``).

    Mixed widths have no CBLAS counterpart and always use the portable loops.
    """

    if other is not None and other is not dtype:
        return PORTABLE
    if select_backend(preference) == "portable":
        return PORTABLE
    backend = _ACCELERATED.get(dtype)
    if backend is None:
        backend = AcceleratedBackend(dtype)
        _ACCELERATED[dtype] = backend
        logger.debug("spiralvec: accelerated backend bound for %s", dtype)
    return backend


def _preference_from_env() -> str:
    value = os.environ.get("SPIRALVEC_BACKEND", "").strip().lower()
    if not value:
        return "auto"
    if value in {"auto", "accelerated", "blas", "cblas", "portable", "python", "cpu"}:
        return value
    warnings.warn(
        f"Ignoring invalid SPIRALVEC_BACKEND value {value!r}; expected one of {', '.join(_PREFERENCES)}",
        RuntimeWarning,
    )
    return "auto"


_DEFAULT_PREFERENCE = _preference_from_env()


def default_backend_preference() -> str:
    return _DEFAULT_PREFERENCE


@contextmanager
def use_backend(preference: str) -> Iterator[str]:
    """Temporarily override the default backend preference within the managed context."""

    global _DEFAULT_PREFERENCE

    resolved = select_backend(preference)
    previous = _DEFAULT_PREFERENCE
    _DEFAULT_PREFERENCE = resolved
    try:
        yield resolved
    finally:
        _DEFAULT_PREFERENCE = previous
