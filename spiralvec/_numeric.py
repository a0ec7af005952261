"""Scalar math with C/IEEE semantics.

Python raises on ``1.0 / 0.0``, ``math.exp(1000)`` and ``math.log(0.0)``
where the C library returns ``inf``/``nan``.  The vector kernels want the C
behaviour for the cases that are imprecision rather than error, and a
:class:`~spiralvec.errors.NumericDomainError` for genuine domain violations.
"""

from __future__ import annotations

import math

from .errors import NumericDomainError

INF = math.inf
NAN = math.nan


def exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return INF


def log(x: float) -> float:
    """Natural log; ``log(0) == -inf``, negative input is a domain error."""

    if x > 0.0 or math.isnan(x):
        return math.log(x)
    if x == 0.0:
        return -INF
    raise NumericDomainError(f"cannot take log of negative value {x}")


def divide(num: float, den: float) -> float:
    if den != 0.0:
        return num / den
    if num == 0.0 or math.isnan(num):
        return NAN
    return math.copysign(INF, num) * math.copysign(1.0, den)


def power(base: float, exponent: float, limit: float, index: int | None = None) -> float:
    """``base ** exponent``, raising when the result is not representable.

    ``limit`` is the largest finite value of the destination width.
    """

    where = "" if index is None else f" {index}"
    try:
        result = math.pow(base, exponent)
    except (ValueError, OverflowError) as exc:
        raise NumericDomainError(
            f"could not raise element{where} ({base}) to power {exponent}: {exc}"
        ) from exc
    if math.isinf(result) or abs(result) > limit:
        raise NumericDomainError(
            f"could not raise element{where} ({base}) to power {exponent}: "
            f"returned value = {result}"
        )
    return result


def try_power(base: float, exponent: float, limit: float) -> float | None:
    """Like :func:`power` for non-negative bases but returns ``None`` on overflow."""

    try:
        result = math.pow(base, exponent)
    except OverflowError:
        return None
    if math.isinf(result) or result > limit:
        return None
    return result


def sigmoid(x: float) -> float:
    if x > 0.0:
        return 1.0 / (1.0 + exp(-x))
    ex = exp(x)
    return ex / (ex + 1.0)


def tanh(x: float) -> float:
    if x > 0.0:
        inv_expx = exp(-x)
        return -1.0 + 2.0 / (1.0 + inv_expx * inv_expx)
    expx = exp(x)
    return 1.0 - 2.0 / (1.0 + expx * expx)
