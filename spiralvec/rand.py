"""Process-level random source used to fill and sample vectors."""

from __future__ import annotations

import math
import random

__all__ = ["RandomSource", "default_source", "seed"]


class RandomSource:
    """Uniform and Gaussian draws backed by :class:`random.Random`."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def seed(self, value: int | None) -> None:
        self._rng.seed(value)

    def uniform(self) -> float:
        """Return a draw from the open interval ``(0, 1)``."""

        value = self._rng.random()
        while value == 0.0:
            value = self._rng.random()
        return value

    def gauss(self) -> float:
        return self.gauss2()[0]

    def gauss2(self) -> tuple[float, float]:
        """Return two independent standard normal draws (Box-Muller)."""

        u1 = self.uniform()
        u2 = self.uniform()
        radius = math.sqrt(-2.0 * math.log(u1))
        angle = 2.0 * math.pi * u2
        return radius * math.cos(angle), radius * math.sin(angle)


_DEFAULT = RandomSource()


def default_source() -> RandomSource:
    return _DEFAULT


def seed(value: int | None) -> None:
    """Reseed the process-level source."""

    _DEFAULT.seed(value)
