"""Seeded 32-bit pseudo-random stream (Mulberry32).

Every stochastic decision in a composition is drawn from one of these
streams, so identical seeds reproduce identical output on any platform.
All state arithmetic is done on unsigned 32-bit integers.
"""

from __future__ import annotations

import numpy as np

_MASK = 0xFFFF_FFFF
_INCREMENT = 0x6D2B_79F5
_TWO_32 = 4_294_967_296


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply."""
    return (a * b) & _MASK


def to_uint32(value: int) -> int:
    """Reduce any integer to its unsigned 32-bit representative."""
    return int(value) & _MASK


def derive_seed(base: int, index: int = 0, step: int = 0, xor: int = 0) -> int:
    """Combine a base seed with fixed constants: ``((base + index*step) ^ xor) mod 2**32``."""
    return to_uint32((to_uint32(base + index * step)) ^ xor)


class SeededRandom:
    """Deterministic stream of floats in ``[0, 1)``.

    Owned by whoever creates it; never shared across compositions.
    """

    __slots__ = ("_state", "seed")

    def __init__(self, seed: int) -> None:
        self.seed = to_uint32(seed)
        self._state = self.seed

    def next(self) -> float:
        self._state = (self._state + _INCREMENT) & _MASK
        t = self._state
        n = _imul(t ^ (t >> 15), t | 1)
        n ^= (n + _imul(n ^ (n >> 7), n | 61)) & _MASK
        return ((n ^ (n >> 14)) & _MASK) / _TWO_32

    __call__ = next

    def uniform(self, low: float, high: float) -> float:
        return low + self.next() * (high - low)

    def integer(self, count: int) -> int:
        """Index in ``[0, count)``; ``count`` below 1 is treated as 1."""
        return int(self.next() * max(1, count))

    def shuffle(self, values: np.ndarray) -> np.ndarray:
        """Fisher-Yates shuffle of *values* in place, walking from the end."""
        for i in range(len(values) - 1, 0, -1):
            j = int(self.next() * (i + 1))
            values[i], values[j] = values[j], values[i]
        return values
