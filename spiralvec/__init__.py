"""Strided float32/float64 vectors with a CBLAS fast path.

``import spiralvec`` works without any native library: the CBLAS routines are
loaded through :mod:`ctypes` when one can be found (see ``SPIRALVEC_BLAS_LIB``)
and every primitive falls back to portable strided loops otherwise.
"""

from __future__ import annotations

from ._blas import blas_available, blas_vendor
from .backend import (
    available_backends,
    backend_for,
    default_backend_preference,
    select_backend,
    use_backend,
)
from .codec import read_vector, write_vector
from .dtypes import FLOAT32, FLOAT64, ElementType, as_element_type
from .errors import (
    AllocationError,
    BackendUnavailableError,
    DimensionMismatchError,
    NumericDomainError,
    PreconditionError,
    VectorError,
    VectorIndexError,
    VectorParseError,
)
from .matrix import (
    DenseMatrix,
    PackedMatrix,
    SymmetricPackedMatrix,
    Transpose,
    TriangularPackedMatrix,
)
from .rand import RandomSource, seed
from .vector import OwningVector, ResizeType, VectorView, vec_mat_vec, vec_vec

__version__ = "0.1.0"

__all__ = [
    "AllocationError",
    "BackendUnavailableError",
    "DenseMatrix",
    "DimensionMismatchError",
    "ElementType",
    "FLOAT32",
    "FLOAT64",
    "NumericDomainError",
    "OwningVector",
    "PackedMatrix",
    "PreconditionError",
    "RandomSource",
    "ResizeType",
    "SymmetricPackedMatrix",
    "Transpose",
    "TriangularPackedMatrix",
    "VectorError",
    "VectorIndexError",
    "VectorParseError",
    "VectorView",
    "as_element_type",
    "available_backends",
    "backend_for",
    "blas_available",
    "blas_vendor",
    "default_backend_preference",
    "read_vector",
    "seed",
    "select_backend",
    "use_backend",
    "vec_mat_vec",
    "vec_vec",
    "write_vector",
]
