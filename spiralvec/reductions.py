"""Numerically careful reductions over strided buffers.

The kernels take the raw ``(data, offset, stride, dim)`` addressing used by
:class:`~spiralvec.vector.VectorView` so they can run on any view without
materialising a copy.  Results are plain Python floats; callers round them to
the element width of the vector.
"""

from __future__ import annotations

import logging
import math
from array import array

from . import _numeric
from .dtypes import ElementType
from .errors import PreconditionError
from .rand import RandomSource, default_source

__all__ = [
    "max_value",
    "max_with_index",
    "min_value",
    "min_with_index",
    "max_abs",
    "norm",
    "sum_log",
    "log_sum_exp",
    "softmax_inplace",
    "log_softmax_inplace",
    "rand_categorical",
    "SUM_LOG_LOWER",
    "SUM_LOG_UPPER",
]

logger = logging.getLogger(__name__)

# The running product in sum_log is folded into the log accumulator whenever
# it leaves this band.
SUM_LOG_LOWER = 1.0e-10
SUM_LOG_UPPER = 1.0e10


def max_value(data: array, offset: int, stride: int, dim: int) -> float:
    """Largest element, ``-inf`` for an empty range; NaNs are skipped."""

    ans = -math.inf
    i = 0
    # Groups of four: only when one of them beats the running max do we resolve it.
    while i + 4 <= dim:
        base = offset + i * stride
        a1 = data[base]
        a2 = data[base + stride]
        a3 = data[base + 2 * stride]
        a4 = data[base + 3 * stride]
        if a1 > ans or a2 > ans or a3 > ans or a4 > ans:
            b1 = a1 if a1 > a2 else a2
            b2 = a3 if a3 > a4 else a4
            if b1 > ans:
                ans = b1
            if b2 > ans:
                ans = b2
        i += 4
    while i < dim:
        value = data[offset + i * stride]
        if value > ans:
            ans = value
        i += 1
    return ans


def max_with_index(data: array, offset: int, stride: int, dim: int) -> tuple[float, int]:
    if dim == 0:
        raise PreconditionError("cannot take the index of the maximum of an empty vector")
    ans = -math.inf
    index = 0
    i = 0
    while i + 4 <= dim:
        base = offset + i * stride
        a1 = data[base]
        a2 = data[base + stride]
        a3 = data[base + 2 * stride]
        a4 = data[base + 3 * stride]
        if a1 > ans or a2 > ans or a3 > ans or a4 > ans:
            if a1 > ans:
                ans, index = a1, i
            if a2 > ans:
                ans, index = a2, i + 1
            if a3 > ans:
                ans, index = a3, i + 2
            if a4 > ans:
                ans, index = a4, i + 3
        i += 4
    while i < dim:
        value = data[offset + i * stride]
        if value > ans:
            ans, index = value, i
        i += 1
    return ans, index


def min_value(data: array, offset: int, stride: int, dim: int) -> float:
    """Smallest element, ``+inf`` for an empty range; NaNs are skipped."""

    ans = math.inf
    i = 0
    while i + 4 <= dim:
        base = offset + i * stride
        a1 = data[base]
        a2 = data[base + stride]
        a3 = data[base + 2 * stride]
        a4 = data[base + 3 * stride]
        if a1 < ans or a2 < ans or a3 < ans or a4 < ans:
            b1 = a1 if a1 < a2 else a2
            b2 = a3 if a3 < a4 else a4
            if b1 < ans:
                ans = b1
            if b2 < ans:
                ans = b2
        i += 4
    while i < dim:
        value = data[offset + i * stride]
        if value < ans:
            ans = value
        i += 1
    return ans


def min_with_index(data: array, offset: int, stride: int, dim: int) -> tuple[float, int]:
    if dim == 0:
        raise PreconditionError("cannot take the index of the minimum of an empty vector")
    ans = math.inf
    index = 0
    i = 0
    while i + 4 <= dim:
        base = offset + i * stride
        a1 = data[base]
        a2 = data[base + stride]
        a3 = data[base + 2 * stride]
        a4 = data[base + 3 * stride]
        if a1 < ans or a2 < ans or a3 < ans or a4 < ans:
            if a1 < ans:
                ans, index = a1, i
            if a2 < ans:
                ans, index = a2, i + 1
            if a3 < ans:
                ans, index = a3, i + 2
            if a4 < ans:
                ans, index = a4, i + 3
        i += 4
    while i < dim:
        value = data[offset + i * stride]
        if value < ans:
            ans, index = value, i
        i += 1
    return ans, index


def max_abs(data: array, offset: int, stride: int, dim: int) -> float:
    ans = 0.0
    for i in range(dim):
        value = abs(data[offset + i * stride])
        if value > ans:
            ans = value
    return ans


def norm(data: array, offset: int, stride: int, dim: int, p: float, dtype: ElementType) -> float:
    """The ``p``-norm; ``p == 0`` counts the non-zero entries."""

    if not p >= 0.0:
        raise PreconditionError(f"norm order must be non-negative, got {p}")
    if p == 0.0:
        return float(sum(1 for i in range(dim) if data[offset + i * stride] != 0.0))
    if p == 1.0:
        return math.fsum(abs(data[offset + i * stride]) for i in range(dim))
    if p == 2.0:
        total = 0.0
        for i in range(dim):
            value = data[offset + i * stride]
            total += value * value
        return math.sqrt(total)
    if math.isinf(p):
        return max_abs(data, offset, stride, dim)

    total = 0.0
    ok = True
    for i in range(dim):
        term = _numeric.try_power(abs(data[offset + i * stride]), p, dtype.max)
        if term is None:
            ok = False
            break
        total += term
    if ok and not math.isinf(total):
        return math.pow(total, 1.0 / p)

    # Some |x|^p overflowed: rescale a copy by the largest magnitude and recurse.
    largest = max(max_value(data, offset, stride, dim), -min_value(data, offset, stride, dim))
    if math.isinf(largest):
        return math.inf
    logger.debug("norm(%s): rescaling by %s to avoid overflow", p, largest)
    scaled = dtype.allocate(dim)
    inverse = 1.0 / largest
    for i in range(dim):
        scaled[i] = data[offset + i * stride] * inverse
    return norm(scaled, 0, 1, dim, p, dtype) * largest


def sum_log(data: array, offset: int, stride: int, dim: int) -> float:
    """Sum of logs computed as the log of a running product, rescaled to stay in range."""

    total = 0.0
    product = 1.0
    for i in range(dim):
        product *= data[offset + i * stride]
        if product < SUM_LOG_LOWER or product > SUM_LOG_UPPER:
            total += _numeric.log(product)
            product = 1.0
    if product != 1.0:
        total += _numeric.log(product)
    return total


def log_sum_exp(
    data: array, offset: int, stride: int, dim: int, dtype: ElementType, prune: float = -1.0
) -> float:
    """``log(sum(exp(x)))`` ignoring terms too small to contribute.

    Elements below ``max + dtype.min_log_diff`` are skipped; a positive
    ``prune`` raises the cutoff to ``max - prune`` when that is tighter.
    """

    max_elem = max_value(data, offset, stride, dim)
    if math.isinf(max_elem):
        # Empty, all -inf, or an infinite element dominating everything.
        return max_elem
    cutoff = max_elem + dtype.min_log_diff
    if prune > 0.0 and max_elem - prune > cutoff:
        cutoff = max_elem - prune
    total = 0.0
    for i in range(dim):
        value = data[offset + i * stride]
        if value >= cutoff:
            total += _numeric.exp(value - max_elem)
    return max_elem + _numeric.log(total)


def softmax_inplace(data: array, offset: int, stride: int, dim: int) -> float:
    """Replace the elements by their softmax; returns the log of the partition function."""

    max_elem = max_value(data, offset, stride, dim)
    total = 0.0
    for i in range(dim):
        index = offset + i * stride
        data[index] = _numeric.exp(data[index] - max_elem)
        total += data[index]
    inverse = _numeric.divide(1.0, total)
    for i in range(dim):
        data[offset + i * stride] *= inverse
    return max_elem + _numeric.log(total)


def log_softmax_inplace(data: array, offset: int, stride: int, dim: int) -> float:
    max_elem = max_value(data, offset, stride, dim)
    total = 0.0
    for i in range(dim):
        index = offset + i * stride
        data[index] -= max_elem
        total += _numeric.exp(data[index])
    log_total = _numeric.log(total)
    for i in range(dim):
        data[offset + i * stride] -= log_total
    return max_elem + log_total


def rand_categorical(
    data: array,
    offset: int,
    stride: int,
    dim: int,
    total: float,
    source: RandomSource | None = None,
) -> int:
    """Sample an index with probability proportional to its (non-negative) element.

    If roundoff leaves the draw past the running sum, the last index with a
    positive element is returned rather than the last index, so a zero-mass
    index is never sampled.
    """

    if dim == 0:
        raise PreconditionError("cannot sample from an empty vector")
    smallest = min_value(data, offset, stride, dim)
    if not (smallest >= 0.0 and total > 0.0):
        raise PreconditionError(
            f"categorical sampling needs non-negative elements with a positive sum "
            f"(min {smallest}, sum {total})"
        )
    source = source or default_source()
    r = source.uniform() * total
    running = 0.0
    last_positive = dim - 1
    for i in range(dim):
        value = data[offset + i * stride]
        if value > 0.0:
            last_positive = i
        running += value
        if r < running:
            return i
    # Only reached through roundoff at the upper boundary.
    return last_positive
